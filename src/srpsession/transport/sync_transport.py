"""Blocking transport backed by :class:`httpx.Client`.

:class:`HttpxTransport` is the synchronous implementation of
:class:`~srpsession.transport.base.Transport`. It layers on:

- **Base URL and default headers** -- the ``x-pm-appversion`` header and
  user agent are sent with every request.
- **Timeouts** -- a full request timeout and an optional, shorter connect
  timeout.
- **Proxy routing** -- optional HTTPS or SOCKS5 proxy from
  :class:`~srpsession.models.ProxyConfig`.
- **Cookie persistence** -- the client's cookie jar keeps anti-abuse
  cookies across calls for the lifetime of the transport.
- **Error mapping** -- every httpx failure becomes a
  :class:`~srpsession.exceptions.TransportError`.

See Also:
    :class:`~srpsession.transport.async_transport.AsyncHttpxTransport` for
    the equivalent non-blocking implementation.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from srpsession.exceptions import ConfigError
from srpsession.models import TransportConfig
from srpsession.transport.base import (
    X_PM_APP_VERSION_HEADER,
    Request,
    Response,
    Transport,
    build_httpx_kwargs,
    map_httpx_error,
    to_response,
)

logger = logging.getLogger(__name__)


def client_options(config: TransportConfig) -> dict[str, Any]:
    """Build the keyword arguments shared by ``httpx.Client`` and ``httpx.AsyncClient``.

    Raises:
        ConfigError: If the base URL is plain ``http://`` and
            ``allow_http`` is not set.
    """
    base_url = config.base_url.rstrip("/") + "/"
    if base_url.startswith("http://") and not config.allow_http:
        raise ConfigError(
            f"Refusing plain HTTP base URL {config.base_url!r}; set allow_http to permit it"
        )

    options: dict[str, Any] = {
        "base_url": base_url,
        "timeout": httpx.Timeout(config.timeout, connect=config.connect_timeout or config.timeout),
        "verify": config.verify_ssl,
        "headers": {
            X_PM_APP_VERSION_HEADER: config.app_version,
            "User-Agent": config.user_agent,
            "Accept": "application/vnd.protonmail.v1+json",
        },
        "follow_redirects": False,
    }
    if config.proxy is not None:
        options["proxy"] = config.proxy.as_url()
    return options


class HttpxTransport(Transport):
    """Synchronous transport for the authentication API.

    Args:
        config: Base URL, timeouts, TLS verification and proxy settings.
        transport: Optional low-level httpx transport. Tests inject an
            :class:`httpx.MockTransport` here.

    Example::

        with HttpxTransport(TransportConfig(base_url="https://api.example.com")) as t:
            response = t.send(Request("POST", "auth/v4/info", json={"Username": "alice"}))
    """

    def __init__(
        self,
        config: Optional[TransportConfig] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._config = config or TransportConfig()
        options = client_options(self._config)
        if transport is not None:
            options["transport"] = transport
            # httpx ignores the proxy when a transport is mounted explicitly.
            options.pop("proxy", None)
        self._client: Optional[httpx.Client] = httpx.Client(**options)

    @property
    def cookies(self) -> httpx.Cookies:
        """The persistent cookie jar."""
        assert self._client is not None, "Transport is closed"
        return self._client.cookies

    def send(self, request: Request) -> Response:
        if self._client is None:
            raise ConfigError("Transport is closed")
        try:
            response = self._client.request(**build_httpx_kwargs(request))
        except httpx.HTTPError as exc:
            error = map_httpx_error(exc)
            logger.debug(
                "%s %s failed (retryable=%s): %s",
                request.method, request.path, error.retryable, exc,
            )
            raise error from exc
        logger.debug("%s %s -> %d", request.method, request.path, response.status_code)
        return to_response(response)

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
