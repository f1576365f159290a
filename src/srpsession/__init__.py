"""srpsession -- SRP-authenticated sessions for token-based HTTP APIs.

The package logs in to an API that uses the Secure Remote Password
protocol (SRP-6a) instead of sending the password, keeps the resulting
access/refresh token pair fresh, and sends authenticated requests over a
blocking or non-blocking transport.

Typical use::

    from srpsession.auth import RequestDispatcher, login
    from srpsession.transport import HttpxTransport

    with HttpxTransport(config) as transport:
        handshake = login(transport, "alice", password)
        dispatcher = RequestDispatcher(transport, handshake.session)
        dispatcher.get("core/v4/users")

Modules:
    app: Typer application and CLI entry point.
    auth: Handshake, session, dispatcher and session persistence.
    transport: Transport abstraction and httpx implementations.
    models: Pydantic models for configuration and wire payloads.
    config: XDG-aware configuration and profile management.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes.
    output: stdout/stderr formatting with Rich support.
"""

__version__ = "0.1.0"
