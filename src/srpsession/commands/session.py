"""Session commands -- log in, inspect, refresh, log out, and call the API.

Provides the ``srpsession session`` sub-command group. A successful login
saves the session's UID and refresh token under the data directory (see
:class:`~srpsession.auth.session_store.SessionStore`); later commands
restore the session from there, and every token rotation is written back.

Typical workflow::

    srpsession session login work
    srpsession session request work GET core/v4/users
    srpsession session logout work
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Optional

import typer

from srpsession.output import error, format_response, info, success, suggest, warning
from srpsession.transport import HttpxTransport, Transport

if TYPE_CHECKING:
    from srpsession.auth.session import Session
    from srpsession.auth.session_store import SessionStore
    from srpsession.models import Profile


session_app = typer.Typer(no_args_is_help=True)

_MAX_CODE_ATTEMPTS = 3


def open_transport(profile: Profile) -> Transport:
    """Create the transport used by every session command."""
    return HttpxTransport(profile.transport)


def _resolve_profile(ctx: typer.Context, name: Optional[str]) -> Profile:
    from srpsession.config import resolve_config
    from srpsession.exceptions import ConfigError

    obj = ctx.obj or {}
    _, profile = resolve_config(
        cli_profile=name or obj.get("profile"),
        cli_base_url=obj.get("base_url"),
    )
    if profile is None:
        raise ConfigError("No profile selected; pass a profile name or set SRPSESSION_PROFILE")
    return profile


def _restore(profile: Profile, transport: Transport, store: SessionStore) -> Session:
    """Restore the saved session and keep the store in sync with token rotation."""
    from srpsession.auth.session import Session
    from srpsession.exceptions import RefreshError, SessionInvalidatedError

    saved = store.load()
    if saved is None:
        raise SessionInvalidatedError(f'No saved session for profile "{profile.name}"')
    try:
        session = Session.restore(
            transport,
            saved.uid,
            saved.refresh_token,
            user_id=saved.user_id,
            scopes=saved.scopes,
            errors=profile.errors,
        )
    except RefreshError as exc:
        if exc.revoked:
            store.clear()
        raise
    store.save_session(session)
    session.on_refreshed(store.save_session)
    return session


@session_app.command("login")
def session_login(
    ctx: typer.Context,
    profile_name: Optional[str] = typer.Argument(None, help="Profile name."),
    username: Optional[str] = typer.Option(None, "--username", help="Override the account name."),
    password_source: Optional[str] = typer.Option(
        None, "--password-source", "-s", help="Password source: env:VAR, file:/path, prompt."
    ),
    totp_source: Optional[str] = typer.Option(
        None, "--totp-source", help="One-time code source: env:VAR, file:/path, prompt."
    ),
) -> None:
    """Log in with SRP and save the session.

    Prompts for a one-time code when the account has two-factor
    authentication enabled. With a prompt source a rejected code may be
    retried a few times; other sources fail on the first rejection.

    Example::

        srpsession session login work --password-source env:WORK_PW
    """
    from srpsession.auth.handshake import HandshakeState, LoginHandshake
    from srpsession.auth.session_store import SessionStore
    from srpsession.config import resolve_credential
    from srpsession.exceptions import ConfigError, SecondFactorInvalidError

    profile = _resolve_profile(ctx, profile_name)
    account = username or profile.username
    if not account:
        raise ConfigError(f'Profile "{profile.name}" has no username; pass --username')

    secret = resolve_credential(
        password_source or profile.password_source, prompt=f"Password for {account}: "
    )
    password = bytearray(secret.encode("utf-8"))
    del secret

    with open_transport(profile) as transport:
        handshake = LoginHandshake(
            account, password, retry=profile.retry, errors=profile.errors
        )
        info(f"Logging in as {account}...")
        state = handshake.run(transport)

        if state is HandshakeState.SECOND_FACTOR_PENDING:
            source = totp_source or profile.totp_source or "prompt"
            for attempt in range(1, _MAX_CODE_ATTEMPTS + 1):
                code = resolve_credential(source, prompt="Two-factor code: ")
                try:
                    handshake.submit_second_factor(transport, code)
                    break
                except SecondFactorInvalidError:
                    if source != "prompt" or attempt == _MAX_CODE_ATTEMPTS:
                        raise
                    warning("Incorrect code, try again.")

        session = handshake.session
        SessionStore(profile.name).save_session(session)

    success(f'Logged in to "{profile.name}" as {account}.')
    suggest(f"Check it: srpsession session status {profile.name}")


@session_app.command("status")
def session_status(
    ctx: typer.Context,
    profile_name: Optional[str] = typer.Argument(None, help="Profile name."),
) -> None:
    """Show the saved session for a profile without contacting the server."""
    from srpsession.auth.session_store import SessionStore
    from srpsession.exit_codes import EXIT_AUTH_FAILURE

    profile = _resolve_profile(ctx, profile_name)
    saved = SessionStore(profile.name).load()
    if saved is None:
        error(f'Not logged in to "{profile.name}".')
        suggest(f"Log in: srpsession session login {profile.name}")
        raise typer.Exit(code=EXIT_AUTH_FAILURE)

    format_response(
        {
            "profile": profile.name,
            "uid": saved.uid,
            "user_id": saved.user_id,
            "scopes": " ".join(saved.scopes),
            "saved_at": saved.saved_at.isoformat(),
        }
    )


@session_app.command("refresh")
def session_refresh(
    ctx: typer.Context,
    profile_name: Optional[str] = typer.Argument(None, help="Profile name."),
) -> None:
    """Rotate the saved session's tokens."""
    from srpsession.auth.session_store import SessionStore

    profile = _resolve_profile(ctx, profile_name)
    with open_transport(profile) as transport:
        _restore(profile, transport, SessionStore(profile.name))
    success(f'Session for "{profile.name}" refreshed.')


@session_app.command("logout")
def session_logout(
    ctx: typer.Context,
    profile_name: Optional[str] = typer.Argument(None, help="Profile name."),
) -> None:
    """Revoke the saved session and forget it locally."""
    from srpsession.auth.session_store import SessionStore
    from srpsession.exceptions import RefreshError, TransportError

    profile = _resolve_profile(ctx, profile_name)
    store = SessionStore(profile.name)
    if store.load() is None:
        info(f'Not logged in to "{profile.name}".')
        return

    with open_transport(profile) as transport:
        try:
            session = _restore(profile, transport, store)
            session.logout(transport)
        except RefreshError as exc:
            if exc.revoked:
                warning("Session was already revoked by the server.")
            else:
                warning(f"Could not revoke the session on the server: {exc}")
        except TransportError as exc:
            warning(f"Could not revoke the session on the server: {exc}")
        finally:
            store.clear()
    success(f'Logged out of "{profile.name}".')


@session_app.command("request")
def session_request(
    ctx: typer.Context,
    profile_name: str = typer.Argument(help="Profile name."),
    method: str = typer.Argument(help="HTTP method, e.g. GET."),
    path: str = typer.Argument(help="Path relative to the base URL."),
    body: Optional[str] = typer.Option(None, "--body", "-d", help="JSON request body."),
    param: Optional[list[str]] = typer.Option(
        None, "--param", help="Query parameter as key=value (repeatable)."
    ),
) -> None:
    """Send one authenticated request and print the response body.

    Example::

        srpsession session request work GET core/v4/users
        srpsession session request work PUT settings/mail --body '{"Sign": 1}'
    """
    from srpsession.auth.dispatcher import RequestDispatcher
    from srpsession.auth.session_store import SessionStore

    json_body = _parse_body(body)
    params = _parse_params(param or [])
    profile = _resolve_profile(ctx, profile_name)
    with open_transport(profile) as transport:
        session = _restore(profile, transport, SessionStore(profile.name))
        response = RequestDispatcher(transport, session).request(
            method, path, json=json_body, params=params
        )

    if response.content:
        format_response(response.content.decode("utf-8", errors="replace"))


def _parse_body(body: Optional[str]) -> Any:
    if body is None:
        return None
    try:
        return json.loads(body)
    except json.JSONDecodeError as exc:
        error(f"--body is not valid JSON: {exc}")
        raise typer.Exit(code=2) from None


def _parse_params(pairs: list[str]) -> dict[str, str]:
    params: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            error(f"Invalid --param {pair!r}; expected key=value")
            raise typer.Exit(code=2)
        params[key] = value
    return params
