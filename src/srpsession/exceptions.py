"""Exception hierarchy for srpsession.

All exceptions inherit from :class:`SrpSessionError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`srpsession.exit_codes`.
Library code raises these; the CLI entry point in :func:`srpsession.app.main`
catches ``SrpSessionError`` and exits with the appropriate code.

Subclass hierarchy::

    SrpSessionError (exit 1)
    +-- ConfigError                         (exit 1)
    +-- TransportError                      (exit 6)
    +-- CryptoError                         (exit 8)
    +-- ProtocolError                       (exit 9)
    |   +-- ServerProofError                (exit 9)
    +-- APIError                            (exit 5)
    |   +-- RateLimitedError                (exit 5)
    +-- AuthError                           (exit 3)
    |   +-- InvalidCredentialsError
    |   +-- SecondFactorRequiredError
    |   +-- SecondFactorInvalidError
    |   +-- UnsupportedSecondFactorError
    |   +-- ChallengeExpiredError
    |   +-- HumanVerificationRequiredError
    |   +-- SessionInvalidatedError
    |   +-- UnauthenticatedError
    +-- RefreshError                        (exit 3)
"""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING, Any, Optional

from srpsession.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONNECTION_ERROR,
    EXIT_CRYPTO_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_PROTOCOL_ERROR,
    EXIT_SERVER_ERROR,
)

if TYPE_CHECKING:
    from srpsession.models import HumanVerificationChallenge


class SrpSessionError(Exception):
    """Base exception for all srpsession errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`srpsession.exit_codes`.

    Args:
        message: Human-readable error description.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigError(SrpSessionError):
    """Raised for configuration problems (missing profiles, invalid JSON, bad credential sources)."""

    exit_code = EXIT_GENERIC_FAILURE


class TransportError(SrpSessionError):
    """Raised for any network-level failure reported by a transport.

    ``retryable`` is ``True`` for timeouts, connection failures and resets,
    and ``False`` for failures a retry cannot fix (TLS validation, proxy
    misconfiguration, invalid URLs).
    """

    exit_code = EXIT_CONNECTION_ERROR

    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


class CryptoError(SrpSessionError):
    """Raised when server-supplied SRP parameters fail the sanity checks.

    Always fatal to the current login attempt and never retried.
    """

    exit_code = EXIT_CRYPTO_ERROR


class ProtocolError(SrpSessionError):
    """Raised when a server response does not have the expected shape."""

    exit_code = EXIT_PROTOCOL_ERROR


class ServerProofError(ProtocolError):
    """Raised when the server's SRP proof does not match the locally expected one.

    The server accepted our proof but could not prove it knows the verifier,
    so the exchange is treated as an impersonation attempt.
    """


class APIError(SrpSessionError):
    """An error payload returned by the remote API.

    Args:
        status_code: HTTP status of the response.
        code: API-level error code from the ``Code`` field (0 if absent).
        message: Optional ``Error`` text from the payload.
        details: Optional ``Details`` object from the payload.
    """

    exit_code = EXIT_SERVER_ERROR

    def __init__(
        self,
        status_code: int,
        code: int = 0,
        message: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        text = message or f"APIError code={code} http={status_code}"
        super().__init__(text)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details or {}


class RateLimitedError(APIError):
    """The server throttled the request (HTTP 429).

    ``retry_after`` holds the server's ``Retry-After`` hint in seconds, if any.
    """

    def __init__(
        self,
        status_code: int,
        code: int = 0,
        message: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(status_code, code, message, details)
        self.retry_after = retry_after


class AuthErrorKind(str, enum.Enum):
    """Categories of authentication failure."""

    INVALID_CREDENTIALS = "invalid_credentials"
    SECOND_FACTOR_REQUIRED = "second_factor_required"
    SECOND_FACTOR_INVALID = "second_factor_invalid"
    UNSUPPORTED_SECOND_FACTOR = "unsupported_second_factor"
    CHALLENGE_EXPIRED = "challenge_expired"
    HUMAN_VERIFICATION_REQUIRED = "human_verification_required"
    SESSION_INVALIDATED = "session_invalidated"
    UNAUTHENTICATED = "unauthenticated"


class AuthError(SrpSessionError):
    """Raised when authentication fails or a session can no longer authorize requests.

    Args:
        message: Human-readable error description.
        api_error: The server error payload that caused this failure, if any.
    """

    exit_code = EXIT_AUTH_FAILURE
    kind: AuthErrorKind = AuthErrorKind.UNAUTHENTICATED

    def __init__(self, message: str, api_error: Optional[APIError] = None):
        super().__init__(message)
        self.api_error = api_error


class InvalidCredentialsError(AuthError):
    """The username or password was rejected."""

    kind = AuthErrorKind.INVALID_CREDENTIALS


class SecondFactorRequiredError(AuthError):
    """A session was requested while the second-factor step is still pending."""

    kind = AuthErrorKind.SECOND_FACTOR_REQUIRED


class SecondFactorInvalidError(AuthError):
    """The submitted one-time code was rejected."""

    kind = AuthErrorKind.SECOND_FACTOR_INVALID


class UnsupportedSecondFactorError(AuthError):
    """The account only offers a second factor this client cannot complete (FIDO2)."""

    kind = AuthErrorKind.UNSUPPORTED_SECOND_FACTOR


class ChallengeExpiredError(AuthError):
    """The login challenge or second-factor window is stale; restart the login."""

    kind = AuthErrorKind.CHALLENGE_EXPIRED


class HumanVerificationRequiredError(AuthError):
    """The server demands a CAPTCHA-like challenge before continuing.

    ``challenge`` carries the token and allowed methods so the caller can
    present the challenge and resubmit.
    """

    kind = AuthErrorKind.HUMAN_VERIFICATION_REQUIRED

    def __init__(
        self,
        message: str,
        challenge: HumanVerificationChallenge,
        api_error: Optional[APIError] = None,
    ):
        super().__init__(message, api_error)
        self.challenge = challenge


class SessionInvalidatedError(AuthError):
    """The session was logged out, revoked, or otherwise invalidated."""

    kind = AuthErrorKind.SESSION_INVALIDATED


class UnauthenticatedError(AuthError):
    """The server still rejected the request after a successful token refresh."""

    kind = AuthErrorKind.UNAUTHENTICATED


class RefreshError(SrpSessionError):
    """Raised when exchanging the refresh token fails.

    ``revoked`` is ``True`` when the server definitively rejected the
    refresh token; the session is invalidated and the error is not
    retryable. Otherwise the failure was transient and the session is kept.
    """

    exit_code = EXIT_AUTH_FAILURE

    def __init__(self, message: str, revoked: bool = False):
        super().__init__(message)
        self.revoked = revoked

    @property
    def retryable(self) -> bool:
        return not self.revoked
