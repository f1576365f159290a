"""Authenticated request dispatch with a single refresh-and-retry.

:class:`RequestDispatcher` and :class:`AsyncRequestDispatcher` send caller
requests on behalf of a :class:`~srpsession.auth.session.Session`:

1. Authorize the request with the current token pair and send it.
2. If the server answers with an auth-expiry status, refresh the session
   once (passing the pair that was used, so a refresh already done by
   another caller is reused) and retry once.
3. A second expiry raises
   :class:`~srpsession.exceptions.UnauthenticatedError`; there is never a
   third attempt.

Human-verification and rate-limit responses are raised as their dedicated
exceptions and are not retried. Any other status ``>= 400`` raises
:class:`~srpsession.exceptions.APIError`.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from srpsession.auth.classify import classify
from srpsession.auth.session import Session
from srpsession.exceptions import UnauthenticatedError
from srpsession.transport.base import AsyncTransport, Request, Response, Transport

logger = logging.getLogger(__name__)


def build_request(
    method: str,
    path: str,
    *,
    json: Any = None,
    params: Optional[dict[str, Any]] = None,
    headers: Optional[dict[str, str]] = None,
) -> Request:
    return Request(
        method.upper(),
        path.lstrip("/"),
        headers=dict(headers or {}),
        json=json,
        params=dict(params or {}),
    )


class _DispatcherBase:
    def __init__(self, session: Session) -> None:
        self.session = session

    def _expired(self, response: Response) -> bool:
        return response.status_code in self.session.errors.auth_expired_statuses

    def _checked(self, response: Response) -> Response:
        if response.status_code >= 400:
            raise classify(response, self.session.errors)
        return response

    def _unauthenticated(self, request: Request, response: Response) -> UnauthenticatedError:
        return UnauthenticatedError(
            f"{request.method} {request.path} still rejected after a token refresh "
            f"(HTTP {response.status_code})",
            response.api_error(),
        )


class RequestDispatcher(_DispatcherBase):
    """Sends authenticated requests through a blocking transport.

    Example::

        dispatcher = RequestDispatcher(transport, handshake.session)
        user = dispatcher.get("core/v4/users").json()
    """

    def __init__(self, transport: Transport, session: Session) -> None:
        super().__init__(session)
        self.transport = transport

    def send(self, request: Request) -> Response:
        """Send *request* with credentials, refreshing once on expiry.

        Raises:
            SessionInvalidatedError: If the session is no longer usable.
            RefreshError: If the refresh triggered by an expiry failed.
            UnauthenticatedError: If the retried request is rejected again.
            HumanVerificationRequiredError: On a human-verification response.
            RateLimitedError: On a rate-limit response.
            APIError: On any other error status.
        """
        tokens = self.session.tokens
        response = self.transport.send(self.session.authorize(request, tokens))
        if self._expired(response):
            logger.debug("%s %s: access token expired, refreshing", request.method, request.path)
            tokens = self.session.refresh(self.transport, stale=tokens)
            response = self.transport.send(self.session.authorize(request, tokens))
            if self._expired(response):
                raise self._unauthenticated(request, response)
        return self._checked(response)

    def request(self, method: str, path: str, **kwargs: Any) -> Response:
        return self.send(build_request(method, path, **kwargs))

    def get(self, path: str, **kwargs: Any) -> Response:
        return self.request("GET", path, **kwargs)

    def post(self, path: str, **kwargs: Any) -> Response:
        return self.request("POST", path, **kwargs)

    def put(self, path: str, **kwargs: Any) -> Response:
        return self.request("PUT", path, **kwargs)

    def delete(self, path: str, **kwargs: Any) -> Response:
        return self.request("DELETE", path, **kwargs)


class AsyncRequestDispatcher(_DispatcherBase):
    """Async counterpart of :class:`RequestDispatcher`."""

    def __init__(self, transport: AsyncTransport, session: Session) -> None:
        super().__init__(session)
        self.transport = transport

    async def send(self, request: Request) -> Response:
        tokens = self.session.tokens
        response = await self.transport.send(self.session.authorize(request, tokens))
        if self._expired(response):
            logger.debug("%s %s: access token expired, refreshing", request.method, request.path)
            tokens = await self.session.arefresh(self.transport, stale=tokens)
            response = await self.transport.send(self.session.authorize(request, tokens))
            if self._expired(response):
                raise self._unauthenticated(request, response)
        return self._checked(response)

    async def request(self, method: str, path: str, **kwargs: Any) -> Response:
        return await self.send(build_request(method, path, **kwargs))

    async def get(self, path: str, **kwargs: Any) -> Response:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> Response:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs: Any) -> Response:
        return await self.request("PUT", path, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> Response:
        return await self.request("DELETE", path, **kwargs)
