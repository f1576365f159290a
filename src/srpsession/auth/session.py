"""Authenticated session and token lifecycle.

A :class:`Session` is produced by a successful
:class:`~srpsession.auth.handshake.LoginHandshake` (or restored from saved
refresh data) and owns the current :class:`TokenPair`. The pair is the only
mutable state shared between callers:

- Readers take the pair through a single attribute read and never see a
  half-updated pair; a refresh publishes a *new* frozen pair by reference.
- Refreshes are single-flight. Concurrent threads share one
  :class:`concurrent.futures.Future`; concurrent coroutines share one
  :class:`asyncio.Task`. Either way only one ``auth/v4/refresh`` call is
  made and every caller receives the same pair.
- Once invalidated (logout, revoked refresh token, or :meth:`Session.invalidate`)
  the session refuses to authorize or refresh without touching the network.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from srpsession.auth.requests import (
    auth_headers,
    logout_request,
    parse_refresh,
    refresh_request,
)
from srpsession.exceptions import (
    RefreshError,
    SessionInvalidatedError,
    TransportError,
)
from srpsession.models import ErrorMapping
from srpsession.transport.base import AsyncTransport, Request, Response, Transport

logger = logging.getLogger(__name__)

RefreshCallback = Callable[["Session"], None]


@dataclass(frozen=True)
class TokenPair:
    """An access token and the refresh token that can replace it."""

    access_token: str = field(repr=False)
    refresh_token: str = field(repr=False)


@dataclass(frozen=True)
class SessionRefreshData:
    """What must be kept to restore a session later."""

    uid: str
    refresh_token: str = field(repr=False)


class _RefreshFlight:
    """One in-progress refresh shared by every thread that asks for it.

    ``waiters`` counts the callers that joined after the leader started.
    """

    def __init__(self) -> None:
        self.future: concurrent.futures.Future[TokenPair] = concurrent.futures.Future()
        self.waiters = 0


class Session:
    """An authenticated API session.

    Args:
        uid: Server-side session identifier.
        tokens: The initial token pair.
        user_id: Account identifier, if known.
        scopes: Scopes granted to the session.
        errors: Mapping used to decide whether a refresh failure is final.
        second_factor_pending: ``True`` while the login still awaits a
            one-time code.
    """

    def __init__(
        self,
        uid: str,
        tokens: TokenPair,
        *,
        user_id: str = "",
        scopes: Iterable[str] = (),
        errors: Optional[ErrorMapping] = None,
        second_factor_pending: bool = False,
    ) -> None:
        self.uid = uid
        self.user_id = user_id
        self.scopes: frozenset[str] = frozenset(scopes)
        self.errors = errors or ErrorMapping()
        self._tokens: Optional[TokenPair] = tokens
        self._second_factor_pending = second_factor_pending
        self._invalidated: Optional[str] = None
        self._lock = threading.Lock()
        self._flight: Optional[_RefreshFlight] = None
        self._task: Optional[asyncio.Task[TokenPair]] = None
        self._callbacks: list[RefreshCallback] = []

    def __repr__(self) -> str:
        state = f"invalidated={self._invalidated!r}" if self._invalidated else "valid"
        return f"Session(uid={self.uid!r}, user_id={self.user_id!r}, {state})"

    # ------------------------------------------------------------------ #
    # State
    # ------------------------------------------------------------------ #

    @property
    def is_valid(self) -> bool:
        return self._invalidated is None

    @property
    def invalidation_reason(self) -> Optional[str]:
        return self._invalidated

    @property
    def second_factor_pending(self) -> bool:
        return self._second_factor_pending

    @property
    def tokens(self) -> TokenPair:
        """The current token pair.

        Raises:
            SessionInvalidatedError: If the session is no longer usable.
        """
        pair = self._tokens
        if self._invalidated is not None or pair is None:
            raise SessionInvalidatedError(f"Session is invalidated ({self._invalidated})")
        return pair

    def refresh_data(self) -> SessionRefreshData:
        return SessionRefreshData(self.uid, self.tokens.refresh_token)

    def invalidate(self, reason: str = "invalidated") -> None:
        """Mark the session dead. Later calls never reach the network."""
        if self._invalidated is None:
            logger.debug("Session %s invalidated: %s", self.uid, reason)
            self._invalidated = reason
        self._tokens = None

    def on_refreshed(self, callback: RefreshCallback) -> RefreshCallback:
        """Register *callback* to run after each successful token rotation."""
        self._callbacks.append(callback)
        return callback

    def complete_second_factor(
        self, tokens: Optional[TokenPair] = None, scopes: Optional[Iterable[str]] = None
    ) -> None:
        """Clear the pending second-factor flag, adopting any new tokens."""
        if tokens is not None:
            self._tokens = tokens
        if scopes is not None:
            self.scopes = frozenset(scopes)
        self._second_factor_pending = False

    # ------------------------------------------------------------------ #
    # Authorization
    # ------------------------------------------------------------------ #

    def authorize(self, request: Request, tokens: Optional[TokenPair] = None) -> Request:
        """Return a copy of *request* carrying the session's credentials.

        Args:
            request: The request to authorize.
            tokens: A pair previously read from :attr:`tokens`. Defaults to
                the current pair.

        Raises:
            SessionInvalidatedError: If the session is no longer usable.
        """
        pair = self.tokens if tokens is None else tokens
        if not self.is_valid:
            raise SessionInvalidatedError(f"Session is invalidated ({self._invalidated})")
        return request.with_headers(auth_headers(self.uid, pair.access_token))

    # ------------------------------------------------------------------ #
    # Refresh
    # ------------------------------------------------------------------ #

    def refresh(self, transport: Transport, stale: Optional[TokenPair] = None) -> TokenPair:
        """Exchange the refresh token for a new pair.

        If *stale* is given and the session already holds a different pair,
        that pair is returned without network I/O. Concurrent callers share
        a single refresh call.

        Raises:
            SessionInvalidatedError: If the session is no longer usable.
            RefreshError: If the refresh failed. ``revoked`` tells whether
                the session was invalidated as a result.
        """
        with self._lock:
            current = self.tokens
            if stale is not None and current != stale:
                return current
            flight = self._flight
            leader = flight is None
            if flight is None:
                flight = self._flight = _RefreshFlight()
            else:
                flight.waiters += 1

        if not leader:
            logger.debug("Joining in-flight refresh for session %s", self.uid)
            return flight.future.result()

        try:
            pair = self._refresh_once(transport)
        except BaseException as exc:
            flight.future.set_exception(exc)
            raise
        else:
            flight.future.set_result(pair)
            return pair
        finally:
            with self._lock:
                self._flight = None
                if flight.waiters:
                    logger.debug(
                        "Refresh of session %s shared with %d waiting caller(s)",
                        self.uid,
                        flight.waiters,
                    )

    async def arefresh(
        self, transport: AsyncTransport, stale: Optional[TokenPair] = None
    ) -> TokenPair:
        """Async counterpart of :meth:`refresh`; concurrent tasks share one refresh."""
        current = self.tokens
        if stale is not None and current != stale:
            return current
        task = self._task
        if task is None or task.done():
            task = asyncio.ensure_future(self._arefresh_once(transport))
            task.add_done_callback(self._forget_task)
            self._task = task
        else:
            logger.debug("Joining in-flight refresh for session %s", self.uid)
        return await asyncio.shield(task)

    def _forget_task(self, task: asyncio.Task[TokenPair]) -> None:
        if self._task is task:
            self._task = None
        if not task.cancelled():
            # Mark the exception retrieved even if every awaiter was cancelled.
            task.exception()

    def _refresh_once(self, transport: Transport) -> TokenPair:
        request = refresh_request(self.uid, self.tokens.refresh_token)
        logger.debug("Refreshing session %s", self.uid)
        try:
            response = transport.send(request)
        except TransportError as exc:
            raise RefreshError(f"Token refresh failed: {exc}", revoked=False) from exc
        return self._apply_refresh(response)

    async def _arefresh_once(self, transport: AsyncTransport) -> TokenPair:
        request = refresh_request(self.uid, self.tokens.refresh_token)
        logger.debug("Refreshing session %s", self.uid)
        try:
            response = await transport.send(request)
        except TransportError as exc:
            raise RefreshError(f"Token refresh failed: {exc}", revoked=False) from exc
        return self._apply_refresh(response)

    def _apply_refresh(self, response: Response) -> TokenPair:
        if not self.is_valid:
            raise SessionInvalidatedError(
                f"Session was invalidated during refresh ({self._invalidated})"
            )
        if response.is_success:
            body = parse_refresh(response)
            pair = TokenPair(body.access_token, body.refresh_token)
            self._tokens = pair
            if body.scope:
                self.scopes = frozenset(body.scope.split())
            logger.debug("Session %s refreshed", self.uid)
            self._notify_refreshed()
            return pair

        api_error = response.api_error()
        status = response.status_code
        if status in self.errors.rate_limit_statuses or status >= 500:
            raise RefreshError(
                f"Token refresh failed temporarily (HTTP {status})", revoked=False
            ) from api_error
        if status in self.errors.refresh_revoked_statuses or (
            api_error.code in self.errors.refresh_revoked_codes
        ):
            self.invalidate("refresh token revoked")
            raise RefreshError(
                f"Refresh token rejected (HTTP {status}, code {api_error.code}); "
                "session invalidated",
                revoked=True,
            ) from api_error
        raise RefreshError(
            f"Token refresh failed (HTTP {status}, code {api_error.code})", revoked=False
        ) from api_error

    def _notify_refreshed(self) -> None:
        for callback in list(self._callbacks):
            try:
                callback(self)
            except Exception as exc:
                logger.warning("Refresh callback %r failed: %s", callback, exc)

    # ------------------------------------------------------------------ #
    # Logout & restore
    # ------------------------------------------------------------------ #

    def logout(self, transport: Transport) -> None:
        """Revoke the session server-side (best effort) and invalidate it locally."""
        if not self.is_valid:
            return
        request = logout_request(self.uid, self.tokens.access_token)
        try:
            response = transport.send(request)
            if not response.is_success:
                logger.warning("Logout returned HTTP %d; invalidating locally", response.status_code)
        except TransportError as exc:
            logger.warning("Logout request failed: %s; invalidating locally", exc)
        finally:
            self.invalidate("logged out")

    async def alogout(self, transport: AsyncTransport) -> None:
        """Async counterpart of :meth:`logout`."""
        if not self.is_valid:
            return
        request = logout_request(self.uid, self.tokens.access_token)
        try:
            response = await transport.send(request)
            if not response.is_success:
                logger.warning("Logout returned HTTP %d; invalidating locally", response.status_code)
        except TransportError as exc:
            logger.warning("Logout request failed: %s; invalidating locally", exc)
        finally:
            self.invalidate("logged out")

    @classmethod
    def restore(
        cls,
        transport: Transport,
        uid: str,
        refresh_token: str,
        *,
        user_id: str = "",
        scopes: Iterable[str] = (),
        errors: Optional[ErrorMapping] = None,
    ) -> Session:
        """Rebuild a session from saved refresh data by refreshing it once.

        Raises:
            RefreshError: If the saved refresh token is no longer accepted.
        """
        session = cls(
            uid, TokenPair("", refresh_token), user_id=user_id, scopes=scopes, errors=errors
        )
        session.refresh(transport)
        return session

    @classmethod
    async def arestore(
        cls,
        transport: AsyncTransport,
        uid: str,
        refresh_token: str,
        *,
        user_id: str = "",
        scopes: Iterable[str] = (),
        errors: Optional[ErrorMapping] = None,
    ) -> Session:
        session = cls(
            uid, TokenPair("", refresh_token), user_id=user_id, scopes=scopes, errors=errors
        )
        await session.arefresh(transport)
        return session
