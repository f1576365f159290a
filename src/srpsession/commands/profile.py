"""Profile commands -- manage account profiles.

Provides the ``srpsession profile`` sub-command group. A profile records
which API deployment to talk to, the account name, and where the password
and one-time codes come from.

Typical workflow::

    srpsession profile add work --base-url https://api.example.com --username alice
    srpsession profile list
    srpsession session login work
"""

from __future__ import annotations

from typing import Optional

import typer

from srpsession.models import ProxyConfig
from srpsession.output import error, format_response, get_output, info, success, suggest


profile_app = typer.Typer(no_args_is_help=True)


@profile_app.command("add")
def profile_add(
    ctx: typer.Context,
    name: str = typer.Argument(help="Profile name."),
    base_url: Optional[str] = typer.Option(None, "--base-url", "-u", help="API base URL."),
    username: Optional[str] = typer.Option(None, "--username", help="Account name."),
    password_source: str = typer.Option(
        "prompt",
        "--password-source",
        "-s",
        help="Password source: env:VAR, file:/path, prompt.",
    ),
    totp_source: Optional[str] = typer.Option(
        None, "--totp-source", help="One-time code source: env:VAR, file:/path, prompt."
    ),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Request timeout (s)."),
    proxy: Optional[str] = typer.Option(
        None, "--proxy", help="Proxy as scheme://host:port (https or socks5)."
    ),
    insecure: bool = typer.Option(False, "--insecure", help="Skip TLS verification."),
    allow_http: bool = typer.Option(False, "--allow-http", help="Permit http:// base URLs."),
) -> None:
    """Create or replace a profile.

    Asks for confirmation before overwriting an existing profile unless
    ``--force`` is active.

    Example::

        srpsession profile add work --username alice --password-source env:WORK_PW
    """
    from srpsession.config import profile_exists, save_profile
    from srpsession.models import Profile, TransportConfig

    force = ctx.obj.get("force", False) if ctx.obj else False
    if profile_exists(name) and not force:
        if not typer.confirm(f'Profile "{name}" exists. Overwrite?'):
            info("Cancelled.")
            raise typer.Exit()

    transport = TransportConfig(verify_ssl=not insecure, allow_http=allow_http)
    if base_url is not None:
        transport.base_url = base_url
    if timeout is not None:
        transport.timeout = timeout
    if proxy is not None:
        transport.proxy = _parse_proxy(proxy)

    profile = Profile(
        name=name,
        username=username,
        password_source=password_source,
        totp_source=totp_source,
        transport=transport,
    )
    save_profile(profile)
    success(f'Profile "{name}" saved.')
    suggest(f"Log in: srpsession session login {name}")


def _parse_proxy(value: str) -> ProxyConfig:
    scheme, sep, rest = value.partition("://")
    host, colon, port = rest.rpartition(":")
    if not sep or not colon or not port.isdigit():
        error(f"Invalid proxy {value!r}; expected scheme://host:port")
        raise typer.Exit(code=2)
    try:
        return ProxyConfig(protocol=scheme, host=host, port=int(port))
    except ValueError as exc:
        error(f"Invalid proxy {value!r}: {exc}")
        raise typer.Exit(code=2) from None


@profile_app.command("list")
def profile_list() -> None:
    """List profiles with their account and base URL."""
    from srpsession.config import list_profiles, load_profile
    from srpsession.exceptions import ConfigError

    names = list_profiles()
    if not names:
        info("No profiles configured.")
        suggest("Create one: srpsession profile add <name> --username <user>")
        return

    rows = []
    for name in names:
        try:
            profile = load_profile(name)
        except ConfigError:
            rows.append([name, "error", ""])
            continue
        rows.append([name, profile.username or "", profile.transport.base_url])
    get_output().print_table(["Profile", "Username", "Base URL"], rows, title="Profiles")


@profile_app.command("show")
def profile_show(name: str = typer.Argument(help="Profile name.")) -> None:
    """Show a profile's full configuration. Secrets are never stored in profiles."""
    from srpsession.config import load_profile

    format_response(load_profile(name).model_dump(mode="json"))


@profile_app.command("remove")
def profile_remove(
    ctx: typer.Context,
    name: str = typer.Argument(help="Profile name."),
) -> None:
    """Delete a profile and any saved session for it."""
    from srpsession.auth.session_store import SessionStore
    from srpsession.config import delete_profile

    force = ctx.obj.get("force", False) if ctx.obj else False
    if not force and not typer.confirm(f'Delete profile "{name}"?'):
        info("Cancelled.")
        raise typer.Exit()

    delete_profile(name)
    SessionStore(name).clear()
    success(f'Profile "{name}" removed.')
