"""Canonical Pydantic models shared across all srpsession modules.

This is the single source of truth for data shapes in the project. The models
fall into two groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`ProxyConfig`, :class:`TransportConfig`, :class:`RetryPolicy`,
    :class:`ErrorMapping`, :class:`OutputConfig`, :class:`GlobalConfig`, and
    :class:`Profile`.

**Wire models** -- request and response payloads of the authentication API.
The API uses PascalCase JSON keys; every wire model declares aliases and
accepts either the alias or the Python field name:
    :class:`AuthInfoRequest`, :class:`AuthInfoResponse`, :class:`AuthRequest`,
    :class:`AuthResponse`, :class:`TwoFactorInfo`, :class:`SecondFactorRequest`,
    :class:`SecondFactorResponse`, :class:`RefreshRequest`,
    :class:`RefreshResponse`, :class:`APIErrorBody`, and
    :class:`HumanVerificationChallenge`.

All models use Pydantic v2. Configuration models that accept extensions use
``extra="allow"`` so that unknown keys are preserved in ``model_extra``.
"""

from __future__ import annotations

import enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr

DEFAULT_BASE_URL = "https://mail.proton.me/api"
DEFAULT_APP_VERSION = "srpsession@0.1.0"
DEFAULT_USER_AGENT = "srpsession/0.1.0"


# --- Transport Config ---


class ProxyProtocol(str, enum.Enum):
    """Proxy schemes understood by the httpx transports."""

    HTTPS = "https"
    SOCKS5 = "socks5"


class ProxyConfig(BaseModel):
    """Optional proxy routing for every request issued by a transport.

    Example::

        ProxyConfig(protocol="socks5", host="127.0.0.1", port=9050)
    """

    protocol: ProxyProtocol = ProxyProtocol.HTTPS
    host: str
    port: int
    username: Optional[str] = None
    password: Optional[SecretStr] = None

    def as_url(self) -> str:
        """Render the proxy as a URL accepted by ``httpx``'s ``proxy=`` option."""
        auth = ""
        if self.username:
            secret = self.password.get_secret_value() if self.password else ""
            auth = f"{self.username}:{secret}@"
        return f"{self.protocol.value}://{auth}{self.host}:{self.port}"


class TransportConfig(BaseModel):
    """Settings shared by the blocking and non-blocking transports."""

    base_url: str = Field(default=DEFAULT_BASE_URL, description="API base URL")
    timeout: float = Field(default=30.0, description="Full request timeout in seconds")
    connect_timeout: Optional[float] = Field(
        default=None, description="Connect timeout in seconds (defaults to timeout)"
    )
    verify_ssl: bool = Field(default=True, description="Verify TLS certificates")
    allow_http: bool = Field(
        default=False, description="Permit plain http:// base URLs (test servers only)"
    )
    proxy: Optional[ProxyConfig] = None
    app_version: str = Field(
        default=DEFAULT_APP_VERSION, description="Value of the x-pm-appversion header"
    )
    user_agent: str = DEFAULT_USER_AGENT


class RetryPolicy(BaseModel):
    """Bounded exponential backoff for the login-info request.

    The info request is the only step retried automatically, and only on
    retryable transport errors. The delay for attempt ``n`` (0-based) is
    ``min(backoff_base * 2**n, backoff_max)``.
    """

    max_retries: int = Field(default=3, ge=0, description="Retries after the first attempt")
    backoff_base: float = Field(default=0.5, ge=0, description="First delay in seconds")
    backoff_max: float = Field(default=8.0, ge=0, description="Upper bound for any delay")

    def delay(self, attempt: int) -> float:
        """Return the sleep before retry number ``attempt + 1``."""
        return min(self.backoff_base * (2 ** attempt), self.backoff_max)


class ErrorMapping(BaseModel):
    """Server error codes and statuses mapped to client-side error kinds.

    Which API codes mean "human verification" or "stale challenge" is
    server-specific, so the mapping is configuration rather than logic.
    The defaults match the reference API and the bundled test server.
    """

    human_verification_codes: set[int] = Field(default_factory=lambda: {9001})
    invalid_credentials_codes: set[int] = Field(default_factory=lambda: {8002, 2001})
    challenge_expired_codes: set[int] = Field(default_factory=lambda: {8004})
    second_factor_invalid_codes: set[int] = Field(default_factory=lambda: {8002, 8008})
    auth_expired_statuses: set[int] = Field(default_factory=lambda: {401})
    refresh_revoked_statuses: set[int] = Field(default_factory=lambda: {400, 401, 422})
    refresh_revoked_codes: set[int] = Field(default_factory=lambda: {10013})
    rate_limit_statuses: set[int] = Field(default_factory=lambda: {429})


# --- Profiles & global config ---


class OutputConfig(BaseModel):
    """Default output format preferences stored in :class:`GlobalConfig`."""

    format: str = Field(
        default="auto", description="Output format: auto, json, plain, rich"
    )


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/srpsession/config.json``.

    Loaded and saved by :func:`~srpsession.config.load_global_config` and
    :func:`~srpsession.config.save_global_config`. See
    :func:`~srpsession.config.resolve_config` for the full precedence chain.
    """

    default_profile: Optional[str] = None
    auto_select_single_profile: bool = True
    output: OutputConfig = Field(default_factory=OutputConfig)


class Profile(BaseModel):
    """Per-account profile stored as JSON under the ``profiles/`` config directory.

    A profile bundles the account name, where to obtain its password (and
    TOTP codes), and the transport, retry and error-mapping settings needed
    to talk to one API deployment.

    See Also:
        :func:`~srpsession.config.load_profile`: Deserialise a profile by name.
        :func:`~srpsession.config.save_profile`: Persist a profile to disk.
    """

    model_config = ConfigDict(extra="allow")

    name: str
    username: Optional[str] = None
    password_source: str = Field(
        default="prompt",
        description="Password source: env:VAR, file:/path, prompt",
    )
    totp_source: Optional[str] = Field(
        default=None,
        description="Second-factor code source: env:VAR, file:/path, prompt",
    )
    transport: TransportConfig = Field(default_factory=TransportConfig)
    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    errors: ErrorMapping = Field(default_factory=ErrorMapping)


# --- Wire models ---


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_wire(self) -> dict[str, Any]:
        """Serialise with the API's PascalCase keys."""
        return self.model_dump(by_alias=True, mode="json")


class AuthInfoRequest(_WireModel):
    username: str = Field(alias="Username")


class AuthInfoResponse(_WireModel):
    """Login parameters for one SRP attempt. Binary values are base64."""

    code: int = Field(default=1000, alias="Code")
    version: int = Field(alias="Version")
    modulus: str = Field(alias="Modulus")
    server_ephemeral: str = Field(alias="ServerEphemeral")
    salt: str = Field(alias="Salt")
    srp_session: str = Field(alias="SRPSession")


class AuthRequest(_WireModel):
    username: str = Field(alias="Username")
    client_ephemeral: str = Field(alias="ClientEphemeral")
    client_proof: str = Field(alias="ClientProof")
    srp_session: str = Field(alias="SRPSession")


class TwoFactorStatus(int, enum.Enum):
    """Second-factor methods enabled on the account."""

    NONE = 0
    TOTP = 1
    FIDO2 = 2
    TOTP_OR_FIDO2 = 3


class TwoFactorInfo(_WireModel):
    enabled: TwoFactorStatus = Field(default=TwoFactorStatus.NONE, alias="Enabled")
    expires_in: Optional[float] = Field(default=None, alias="ExpiresIn")


class AuthResponse(_WireModel):
    code: int = Field(default=1000, alias="Code")
    uid: str = Field(alias="UID")
    user_id: str = Field(default="", alias="UserID")
    access_token: str = Field(alias="AccessToken")
    refresh_token: str = Field(alias="RefreshToken")
    token_type: Optional[str] = Field(default=None, alias="TokenType")
    scope: str = Field(default="", alias="Scope")
    server_proof: str = Field(alias="ServerProof")
    two_factor: TwoFactorInfo = Field(default_factory=TwoFactorInfo, alias="2FA")
    password_mode: int = Field(default=1, alias="PasswordMode")


class SecondFactorRequest(_WireModel):
    srp_session: str = Field(alias="SRPSession")
    two_factor_code: str = Field(alias="TwoFactorCode")


class SecondFactorResponse(_WireModel):
    code: int = Field(default=1000, alias="Code")
    scope: Optional[str] = Field(default=None, alias="Scope")
    access_token: Optional[str] = Field(default=None, alias="AccessToken")
    refresh_token: Optional[str] = Field(default=None, alias="RefreshToken")


class RefreshRequest(_WireModel):
    uid: str = Field(alias="UID")
    refresh_token: str = Field(alias="RefreshToken")
    grant_type: str = Field(default="refresh_token", alias="GrantType")
    response_type: str = Field(default="token", alias="ResponseType")
    redirect_uri: str = Field(default="https://protonmail.ch/", alias="RedirectURI")


class RefreshResponse(_WireModel):
    code: int = Field(default=1000, alias="Code")
    uid: str = Field(alias="UID")
    access_token: str = Field(alias="AccessToken")
    refresh_token: str = Field(alias="RefreshToken")
    token_type: Optional[str] = Field(default=None, alias="TokenType")
    scope: str = Field(default="", alias="Scope")


class APIErrorBody(_WireModel):
    """The ``{Code, Error, Details}`` error envelope."""

    code: int = Field(default=0, alias="Code")
    error: Optional[str] = Field(default=None, alias="Error")
    details: Optional[dict[str, Any]] = Field(default=None, alias="Details")


class HumanVerificationChallenge(_WireModel):
    """Challenge data from the ``Details`` of a human-verification error.

    The caller solves the challenge out of band (CAPTCHA, email, SMS) and
    resubmits the login with a :class:`~srpsession.auth.handshake.HumanVerificationToken`.
    """

    token: str = Field(default="", alias="HumanVerificationToken")
    methods: list[str] = Field(default_factory=list, alias="HumanVerificationMethods")
    title: Optional[str] = Field(default=None, alias="Title")
    details: dict[str, Any] = Field(default_factory=dict, exclude=True)
