"""Transport abstraction -- the request/response capability the core depends on.

This module defines the plain containers that cross the transport boundary
and the two abstract transports:

- :class:`Request` / :class:`Response` -- backend-independent HTTP-like
  request and response values.
- :class:`Transport` -- blocking ``send(request) -> Response``.
- :class:`AsyncTransport` -- the same contract with ``await send(request)``.

The handshake, session and dispatcher are written against these types only.
Concrete implementations live in :mod:`srpsession.transport.sync_transport`
and :mod:`srpsession.transport.async_transport`.

Every transport-level failure (DNS, TLS, timeout, reset) must surface as a
single :class:`~srpsession.exceptions.TransportError` whose ``retryable``
flag distinguishes transient causes from permanent ones. HTTP error statuses
are *not* transport failures; they are returned as a :class:`Response`.
"""

from __future__ import annotations

import json as json_mod
import ssl
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from srpsession.exceptions import APIError, ProtocolError, TransportError
from srpsession.models import APIErrorBody

X_PM_APP_VERSION_HEADER = "x-pm-appversion"
X_PM_UID_HEADER = "x-pm-uid"
X_PM_HUMAN_VERIFICATION_TOKEN = "x-pm-human-verification-token"
X_PM_HUMAN_VERIFICATION_TOKEN_TYPE = "x-pm-human-verification-token-type"


@dataclass(frozen=True)
class Request:
    """An outbound API request.

    ``path`` is relative to the transport's base URL. Requests are immutable;
    :meth:`with_headers` returns a copy so that the same logical request can
    be re-authorized and re-sent.
    """

    method: str
    path: str
    headers: dict[str, str] = field(default_factory=dict)
    json: Any = None
    content: Optional[bytes] = None
    params: dict[str, Any] = field(default_factory=dict)

    def with_headers(self, headers: dict[str, str]) -> Request:
        """Return a copy with *headers* merged over the existing ones."""
        return replace(self, headers={**self.headers, **headers})


@dataclass(frozen=True)
class Response:
    """A response received from the API, whatever its status code."""

    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    content: bytes = b""

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self) -> Any:
        """Decode the body as JSON.

        Raises:
            ProtocolError: If the body is empty or not valid JSON.
        """
        if not self.content:
            raise ProtocolError(f"Empty response body (HTTP {self.status_code})")
        try:
            return json_mod.loads(self.content)
        except (ValueError, UnicodeDecodeError) as exc:
            raise ProtocolError(
                f"Response body is not valid JSON (HTTP {self.status_code}): {exc}"
            ) from exc

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None

    def api_error(self) -> APIError:
        """Decode the ``{Code, Error, Details}`` envelope into an :class:`APIError`.

        Bodies that are empty or do not match the envelope still produce an
        :class:`APIError` carrying just the HTTP status.
        """
        try:
            body = APIErrorBody.model_validate(json_mod.loads(self.content))
        except (ValueError, UnicodeDecodeError, ValidationError, TypeError):
            return APIError(self.status_code)
        return APIError(self.status_code, body.code, body.error, body.details)


class Transport(ABC):
    """Blocking transport: one call, one response."""

    @abstractmethod
    def send(self, request: Request) -> Response:
        """Send *request* and return the response.

        Raises:
            TransportError: On any network-level failure.
        """
        ...

    def close(self) -> None:
        """Release network resources. The default does nothing."""

    def __enter__(self) -> Transport:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


class AsyncTransport(ABC):
    """Non-blocking transport with the same logical contract as :class:`Transport`."""

    @abstractmethod
    async def send(self, request: Request) -> Response:
        """Send *request* and return the response.

        Raises:
            TransportError: On any network-level failure.
        """
        ...

    async def aclose(self) -> None:
        """Release network resources. The default does nothing."""

    async def __aenter__(self) -> AsyncTransport:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()


# ------------------------------------------------------------------ #
# httpx helpers shared by both implementations
# ------------------------------------------------------------------ #


def _caused_by_tls(exc: BaseException) -> bool:
    """Walk the exception chain looking for a TLS/certificate failure."""
    seen: set[int] = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, ssl.SSLError):
            return True
        if "CERTIFICATE_VERIFY_FAILED" in str(current):
            return True
        current = current.__cause__ or current.__context__
    return False


def map_httpx_error(exc: httpx.HTTPError) -> TransportError:
    """Translate an httpx exception into a :class:`TransportError`.

    Timeouts, connection failures and broken connections are retryable.
    TLS validation failures, proxy errors, invalid URLs and anything else
    are fatal.
    """
    if isinstance(exc, httpx.TimeoutException):
        return TransportError(f"Request timed out: {exc}", retryable=True)
    if isinstance(exc, httpx.ProxyError):
        return TransportError(f"Proxy error: {exc}", retryable=False)
    if _caused_by_tls(exc):
        return TransportError(f"TLS validation failed: {exc}", retryable=False)
    if isinstance(exc, (httpx.ConnectError, httpx.ReadError, httpx.WriteError,
                        httpx.RemoteProtocolError, httpx.CloseError)):
        return TransportError(f"Connection error: {exc}", retryable=True)
    return TransportError(f"Request failed: {exc}", retryable=False)


def build_httpx_kwargs(request: Request) -> dict[str, Any]:
    """Convert a :class:`Request` into keyword arguments for ``httpx`` ``request()``."""
    kwargs: dict[str, Any] = {
        "method": request.method,
        "url": request.path,
        "headers": request.headers,
    }
    if request.params:
        kwargs["params"] = request.params
    if request.json is not None:
        kwargs["json"] = request.json
    elif request.content is not None:
        kwargs["content"] = request.content
    return kwargs


def to_response(response: httpx.Response) -> Response:
    """Convert a fully read :class:`httpx.Response` into a :class:`Response`."""
    return Response(
        status_code=response.status_code,
        headers=dict(response.headers),
        content=response.content,
    )
