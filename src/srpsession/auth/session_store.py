"""Saved sessions, one file per profile.

Stores the data needed to restore a :class:`~srpsession.auth.session.Session`
in ``~/.local/share/srpsession/sessions/<profile>.json`` (XDG) or the
platform equivalent. Files are written atomically with ``0o600``
permissions. Only the UID and refresh token are persisted; access tokens
are short-lived and re-obtained on restore.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

from srpsession.auth.session import Session
from srpsession.config import atomic_write, get_sessions_dir


class StoredSession(BaseModel):
    """A persisted session.

    Attributes:
        uid: Server-side session identifier.
        refresh_token: The latest refresh token.
        user_id: Account identifier.
        scopes: Scopes granted at the time of saving.
        saved_at: UTC time the entry was written.
    """

    uid: str
    refresh_token: str
    user_id: str = ""
    scopes: list[str] = Field(default_factory=list)
    saved_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_session(cls, session: Session) -> StoredSession:
        data = session.refresh_data()
        return cls(
            uid=data.uid,
            refresh_token=data.refresh_token,
            user_id=session.user_id,
            scopes=sorted(session.scopes),
        )


class SessionStore:
    """Read/write the saved session of a single profile.

    Example::

        store = SessionStore("work")
        store.save(StoredSession.from_session(session))
        saved = store.load()
    """

    def __init__(self, profile_name: str, directory: Optional[Path] = None) -> None:
        self._profile_name = profile_name
        self._path = (directory or get_sessions_dir()) / f"{profile_name}.json"

    @property
    def path(self) -> Path:
        return self._path

    def save(self, entry: StoredSession) -> None:
        """Persist *entry* atomically with ``0o600`` permissions."""
        text = json.dumps(entry.model_dump(mode="json"), indent=2) + "\n"
        atomic_write(self._path, text, mode=0o600)

    def save_session(self, session: Session) -> None:
        """Persist *session*; usable as a :meth:`Session.on_refreshed` callback."""
        self.save(StoredSession.from_session(session))

    def load(self) -> Optional[StoredSession]:
        """Return the saved entry, or ``None`` if missing or unreadable."""
        if not self._path.is_file():
            return None
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            return StoredSession.model_validate(data)
        except (json.JSONDecodeError, ValueError, OSError):
            return None

    def clear(self) -> None:
        if self._path.is_file():
            self._path.unlink()
