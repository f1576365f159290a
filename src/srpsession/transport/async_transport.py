"""Non-blocking transport -- mirrors :class:`~srpsession.transport.sync_transport.HttpxTransport`.

:class:`AsyncHttpxTransport` wraps :class:`httpx.AsyncClient` and offers the
same feature set (default headers, timeouts, proxy, cookie persistence,
error mapping) but uses ``await`` so it can run inside an event loop.

See Also:
    :class:`~srpsession.transport.sync_transport.HttpxTransport` for the
    blocking equivalent.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from srpsession.exceptions import ConfigError
from srpsession.models import TransportConfig
from srpsession.transport.base import (
    AsyncTransport,
    Request,
    Response,
    build_httpx_kwargs,
    map_httpx_error,
    to_response,
)
from srpsession.transport.sync_transport import client_options

logger = logging.getLogger(__name__)


class AsyncHttpxTransport(AsyncTransport):
    """Asynchronous transport for the authentication API.

    Args:
        config: Base URL, timeouts, TLS verification and proxy settings.
        transport: Optional low-level async httpx transport. Tests inject an
            :class:`httpx.MockTransport` here.

    Example::

        async with AsyncHttpxTransport(config) as t:
            response = await t.send(Request("DELETE", "auth/v4"))
    """

    def __init__(
        self,
        config: Optional[TransportConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config or TransportConfig()
        options = client_options(self._config)
        if transport is not None:
            options["transport"] = transport
            options.pop("proxy", None)
        self._client: Optional[httpx.AsyncClient] = httpx.AsyncClient(**options)

    @property
    def cookies(self) -> httpx.Cookies:
        """The persistent cookie jar."""
        assert self._client is not None, "Transport is closed"
        return self._client.cookies

    async def send(self, request: Request) -> Response:
        if self._client is None:
            raise ConfigError("Transport is closed")
        try:
            response = await self._client.request(**build_httpx_kwargs(request))
        except httpx.HTTPError as exc:
            error = map_httpx_error(exc)
            logger.debug(
                "%s %s failed (retryable=%s): %s",
                request.method, request.path, error.retryable, exc,
            )
            raise error from exc
        logger.debug("%s %s -> %d", request.method, request.path, response.status_code)
        return to_response(response)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
