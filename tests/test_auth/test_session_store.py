"""Tests for the per-profile saved session store."""

from __future__ import annotations

import json
import stat
import sys
from pathlib import Path

import pytest

from srpsession.auth import Session, SessionStore, StoredSession, TokenPair


def _session() -> Session:
    return Session("u1", TokenPair("a1", "r1"), user_id="user-alice", scopes=["self", "full"])


class TestSessionStore:
    def test_default_location(self, isolated_config: Path) -> None:
        store = SessionStore("work")
        assert store.path == isolated_config / "data" / "srpsession" / "sessions" / "work.json"

    def test_round_trip(self, tmp_path: Path) -> None:
        store = SessionStore("work", directory=tmp_path)
        store.save_session(_session())

        loaded = store.load()
        assert loaded is not None
        assert loaded.uid == "u1"
        assert loaded.refresh_token == "r1"
        assert loaded.user_id == "user-alice"
        assert loaded.scopes == ["full", "self"]
        assert loaded.saved_at.tzinfo is not None

    def test_access_token_not_persisted(self, tmp_path: Path) -> None:
        store = SessionStore("work", directory=tmp_path)
        store.save_session(_session())
        assert "a1" not in json.loads(store.path.read_text()).values()

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_file_is_owner_only(self, tmp_path: Path) -> None:
        store = SessionStore("work", directory=tmp_path)
        store.save(StoredSession(uid="u1", refresh_token="r1"))
        assert stat.S_IMODE(store.path.stat().st_mode) == 0o600

    def test_missing_file_loads_none(self, tmp_path: Path) -> None:
        assert SessionStore("nobody", directory=tmp_path).load() is None

    def test_corrupt_file_loads_none(self, tmp_path: Path) -> None:
        (tmp_path / "work.json").write_text("{not json")
        assert SessionStore("work", directory=tmp_path).load() is None

    def test_clear(self, tmp_path: Path) -> None:
        store = SessionStore("work", directory=tmp_path)
        store.save_session(_session())
        store.clear()
        store.clear()
        assert not store.path.exists()

    def test_tracks_refreshes(self, transport, alice_password, tmp_path: Path) -> None:
        from srpsession.auth import login

        session = login(transport, "alice", alice_password).session
        store = SessionStore("work", directory=tmp_path)
        session.on_refreshed(store.save_session)

        session.refresh(transport)

        assert store.load().refresh_token == "r2"

    def test_invalidated_session_cannot_be_saved(self, tmp_path: Path) -> None:
        from srpsession.exceptions import SessionInvalidatedError

        session = _session()
        session.invalidate("test")
        with pytest.raises(SessionInvalidatedError):
            SessionStore("work", directory=tmp_path).save_session(session)
