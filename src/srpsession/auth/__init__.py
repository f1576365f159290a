"""SRP authentication and session management.

The main entry points are:

- :class:`LoginHandshake` -- the login state machine, with :func:`login` /
  :func:`alogin` helpers for the common case.
- :class:`Session` -- the authenticated session and its token pair.
- :class:`RequestDispatcher` / :class:`AsyncRequestDispatcher` -- send
  authenticated requests with a single refresh-and-retry on expiry.
- :class:`PySRPBridge` -- SRP-6a proof derivation over the :mod:`srp` library.
- :class:`SessionStore` -- persistent, per-profile saved sessions.

Typical usage::

    from srpsession.auth import HandshakeState, login

    handshake = login(transport, "alice", password)
    if handshake.state is HandshakeState.SECOND_FACTOR_PENDING:
        handshake.submit_second_factor(transport, input("Code: "))
    session = handshake.session
"""

from srpsession.auth.dispatcher import AsyncRequestDispatcher, RequestDispatcher
from srpsession.auth.handshake import (
    HandshakeState,
    HumanVerificationToken,
    LoginHandshake,
    SecondFactorRequirement,
    alogin,
    login,
)
from srpsession.auth.session import Session, SessionRefreshData, TokenPair
from srpsession.auth.session_store import SessionStore, StoredSession
from srpsession.auth.srp_bridge import ClientProof, LoginChallenge, PySRPBridge, SRPBridge

__all__ = [
    "AsyncRequestDispatcher",
    "ClientProof",
    "HandshakeState",
    "HumanVerificationToken",
    "LoginChallenge",
    "LoginHandshake",
    "PySRPBridge",
    "RequestDispatcher",
    "SRPBridge",
    "SecondFactorRequirement",
    "Session",
    "SessionRefreshData",
    "SessionStore",
    "StoredSession",
    "TokenPair",
    "alogin",
    "login",
]
