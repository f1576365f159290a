"""Transport layer for srpsession.

Provides the abstract request/response capability used by the core, and two
conforming implementations that wrap :mod:`httpx`:

Classes:
    :class:`Transport` / :class:`AsyncTransport` -- the abstract contract.
    :class:`HttpxTransport` -- blocking transport backed by :class:`httpx.Client`.
    :class:`AsyncHttpxTransport` -- non-blocking transport backed by
    :class:`httpx.AsyncClient`.

Both implementations are context managers and accept the same
:class:`~srpsession.models.TransportConfig`.

Example::

    from srpsession.transport import HttpxTransport

    with HttpxTransport(profile.transport) as transport:
        handshake = login(transport, "alice", password)
"""

from srpsession.transport.async_transport import AsyncHttpxTransport
from srpsession.transport.base import AsyncTransport, Request, Response, Transport
from srpsession.transport.sync_transport import HttpxTransport

__all__ = [
    "AsyncHttpxTransport",
    "AsyncTransport",
    "HttpxTransport",
    "Request",
    "Response",
    "Transport",
]
