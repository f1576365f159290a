"""The SRP login handshake.

:class:`LoginHandshake` drives one login attempt through its states::

    IDLE -> INFO_REQUESTED -> PROOF_SUBMITTED -> AUTHENTICATED
                                              -> SECOND_FACTOR_PENDING -> AUTHENTICATED
    any non-terminal state -> FAILED
    AUTHENTICATED | SECOND_FACTOR_PENDING -> LOGGED_OUT

The state machine itself never performs I/O. Each step either produces the
next :class:`~srpsession.transport.base.Request` or consumes a
:class:`~srpsession.transport.base.Response`:

============================  =========================================
``start()``                   the info request
``receive_info(response)``    the proof request
``receive_proof(response)``   the resulting state
``second_factor_request(c)``  the one-time-code request
``receive_second_factor(r)``  the authenticated session
============================  =========================================

:meth:`LoginHandshake.run` / :meth:`LoginHandshake.arun` and
:meth:`LoginHandshake.submit_second_factor` /
:meth:`LoginHandshake.asubmit_second_factor` are thin drivers that feed
those steps through a blocking or non-blocking transport. The
:func:`login` and :func:`alogin` helpers wrap construction and the first
driver call.

Only the info request is retried, and only on retryable transport errors.
Every later failure is terminal for the attempt; a new handshake is needed.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional, Union

from srpsession.auth.classify import classify
from srpsession.auth.requests import (
    parse_auth,
    parse_info,
    parse_second_factor,
    proof_request,
)
from srpsession.auth.requests import info_request as build_info_request
from srpsession.auth.requests import second_factor_request as build_second_factor_request
from srpsession.auth.session import Session, TokenPair
from srpsession.auth.srp_bridge import (
    ClientProof,
    LoginChallenge,
    PySRPBridge,
    SRPBridge,
    decode_base64_field,
)
from srpsession.exceptions import (
    APIError,
    ChallengeExpiredError,
    InvalidCredentialsError,
    ProtocolError,
    SecondFactorInvalidError,
    SecondFactorRequiredError,
    ServerProofError,
    SrpSessionError,
    TransportError,
    UnsupportedSecondFactorError,
)
from srpsession.models import AuthResponse, ErrorMapping, RetryPolicy, TwoFactorStatus
from srpsession.transport.base import AsyncTransport, Request, Response, Transport

logger = logging.getLogger(__name__)

Password = Union[str, bytes, bytearray]


class HandshakeState(str, enum.Enum):
    IDLE = "idle"
    INFO_REQUESTED = "info_requested"
    PROOF_SUBMITTED = "proof_submitted"
    SECOND_FACTOR_PENDING = "second_factor_pending"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"
    LOGGED_OUT = "logged_out"


_TERMINAL = {HandshakeState.FAILED, HandshakeState.LOGGED_OUT, HandshakeState.AUTHENTICATED}


@dataclass(frozen=True)
class SecondFactorRequirement:
    """The one-time-code step the server demands before issuing a session.

    ``expires_at`` is a :func:`time.monotonic` deadline, or ``None`` when the
    server gave no expiry.
    """

    session_info_id: str
    totp: bool
    fido2: bool
    expires_at: Optional[float] = None

    @property
    def expired(self) -> bool:
        return self.expires_at is not None and time.monotonic() >= self.expires_at

    @property
    def methods(self) -> tuple[str, ...]:
        names = []
        if self.totp:
            names.append("totp")
        if self.fido2:
            names.append("fido2")
        return tuple(names)


@dataclass(frozen=True)
class HumanVerificationToken:
    """A solved human-verification challenge, resubmitted with the login proof."""

    token: str
    token_type: str = "captcha"


class LoginHandshake:
    """One SRP login attempt.

    Args:
        username: Account name.
        password: The password. A ``bytearray`` is zeroed in place once the
            proof has been derived; other types are copied into a private
            buffer that is zeroed instead.
        bridge: SRP implementation. Defaults to :class:`PySRPBridge`.
        retry: Backoff policy for the info request.
        errors: Server error mapping.
        human_verification: Token from a solved challenge, sent with the proof.

    Attributes:
        state: The current :class:`HandshakeState`.
        failure: The error that moved the handshake to ``FAILED``.
        second_factor: The pending requirement while in
            ``SECOND_FACTOR_PENDING``.
    """

    def __init__(
        self,
        username: str,
        password: Password,
        *,
        bridge: Optional[SRPBridge] = None,
        retry: Optional[RetryPolicy] = None,
        errors: Optional[ErrorMapping] = None,
        human_verification: Optional[HumanVerificationToken] = None,
    ) -> None:
        self.username = username
        if isinstance(password, bytearray):
            self._password: Optional[bytearray] = password
        elif isinstance(password, str):
            self._password = bytearray(password.encode("utf-8"))
        else:
            self._password = bytearray(password)
        self.bridge = bridge or PySRPBridge()
        self.retry = retry or RetryPolicy()
        self.errors = errors or ErrorMapping()
        self.human_verification = human_verification

        self.state = HandshakeState.IDLE
        self.failure: Optional[BaseException] = None
        self.second_factor: Optional[SecondFactorRequirement] = None
        self._challenge: Optional[LoginChallenge] = None
        self._proof: Optional[ClientProof] = None
        self._session: Optional[Session] = None
        self._srp_session_id: Optional[str] = None

    def __repr__(self) -> str:
        return f"LoginHandshake(username={self.username!r}, state={self.state.value})"

    @property
    def session(self) -> Session:
        """The authenticated session.

        Raises:
            SecondFactorRequiredError: While a one-time code is still needed.
            ProtocolError: If the handshake has not authenticated.
        """
        if self.state is HandshakeState.SECOND_FACTOR_PENDING:
            raise SecondFactorRequiredError("A second-factor code must be submitted first")
        if self.state is not HandshakeState.AUTHENTICATED or self._session is None:
            raise ProtocolError(f"No session: handshake is {self.state.value}")
        return self._session

    # ------------------------------------------------------------------ #
    # Sans-IO steps
    # ------------------------------------------------------------------ #

    def start(self) -> Request:
        """Begin the attempt and return the info request."""
        if self.state is not HandshakeState.IDLE:
            raise ProtocolError(
                f"Handshake already used (state {self.state.value}); create a new one"
            )
        self._transition(HandshakeState.INFO_REQUESTED)
        return build_info_request(self.username)

    def receive_info(self, response: Response) -> Request:
        """Consume the info response and return the proof request."""
        self._expect(HandshakeState.INFO_REQUESTED)
        if not response.is_success:
            raise self._fail(self._login_error(response))
        try:
            info = parse_info(response)
            self._challenge = LoginChallenge.from_info(info)
            self._proof = self.bridge.derive_proof(
                self.username, self._password or b"", self._challenge
            )
        except SrpSessionError as exc:
            raise self._fail(exc)
        finally:
            self._clear_password()

        client_ephemeral, client_proof = self._proof.encoded()
        hv = self.human_verification
        request = proof_request(
            self.username,
            client_ephemeral,
            client_proof,
            self._challenge.session_info_id,
            hv_token=hv.token if hv else None,
            hv_token_type=hv.token_type if hv else None,
        )
        self._srp_session_id = self._challenge.session_info_id
        self._transition(HandshakeState.PROOF_SUBMITTED)
        return request

    def receive_proof(self, response: Response) -> HandshakeState:
        """Consume the proof response, verify the server, and settle the next state."""
        self._expect(HandshakeState.PROOF_SUBMITTED)
        if not response.is_success:
            raise self._fail(self._login_error(response))
        try:
            auth = parse_auth(response)
            server_proof = decode_base64_field(auth.server_proof, "ServerProof")
            assert self._proof is not None
            if not self._proof.verify_server_proof(server_proof):
                raise ServerProofError(
                    "Server proof does not match; the server could not prove it knows the verifier"
                )
        except SrpSessionError as exc:
            raise self._fail(exc)
        finally:
            self._clear_secrets()

        status = auth.two_factor.enabled
        if status is TwoFactorStatus.FIDO2:
            raise self._fail(
                UnsupportedSecondFactorError("The account requires FIDO2, which is not supported")
            )

        pending = status in (TwoFactorStatus.TOTP, TwoFactorStatus.TOTP_OR_FIDO2)
        self._session = self._new_session(auth, pending)
        if pending:
            expires_in = auth.two_factor.expires_in
            self.second_factor = SecondFactorRequirement(
                session_info_id=self._srp_session_id or "",
                totp=True,
                fido2=status is TwoFactorStatus.TOTP_OR_FIDO2,
                expires_at=time.monotonic() + expires_in if expires_in else None,
            )
            self._transition(HandshakeState.SECOND_FACTOR_PENDING)
        else:
            self._transition(HandshakeState.AUTHENTICATED)
        return self.state

    def second_factor_request(self, code: str) -> Request:
        """Build the request submitting a one-time *code*."""
        self._expect(HandshakeState.SECOND_FACTOR_PENDING)
        assert self.second_factor is not None and self._session is not None
        if self.second_factor.expired:
            raise self._fail(ChallengeExpiredError("The second-factor window has expired"))
        code = code.strip()
        if not code:
            raise SecondFactorInvalidError("Second-factor code is empty")
        tokens = self._session.tokens
        return build_second_factor_request(
            self._session.uid, tokens.access_token, self.second_factor.session_info_id, code
        )

    def receive_second_factor(self, response: Response) -> Session:
        """Consume the one-time-code response.

        A rejected code raises :class:`SecondFactorInvalidError` and leaves the
        handshake pending, so another code can be tried until the
        requirement expires.
        """
        self._expect(HandshakeState.SECOND_FACTOR_PENDING)
        assert self.second_factor is not None and self._session is not None
        if not response.is_success:
            api_error = response.api_error()
            if api_error.code in self.errors.challenge_expired_codes or self.second_factor.expired:
                raise self._fail(
                    ChallengeExpiredError("The second-factor window has expired", api_error)
                )
            if api_error.code in self.errors.second_factor_invalid_codes:
                logger.debug("Second-factor code rejected (code %d)", api_error.code)
                raise SecondFactorInvalidError(
                    api_error.message or "Incorrect second-factor code", api_error
                )
            raise self._fail(classify(response, self.errors))
        try:
            body = parse_second_factor(response)
        except SrpSessionError as exc:
            raise self._fail(exc)

        tokens = None
        if body.access_token and body.refresh_token:
            tokens = TokenPair(body.access_token, body.refresh_token)
        scopes = body.scope.split() if body.scope else None
        self._session.complete_second_factor(tokens, scopes)
        self.second_factor = None
        self._transition(HandshakeState.AUTHENTICATED)
        return self._session

    def abort(self, exc: Optional[BaseException] = None) -> None:
        """Clear secret material and fail the attempt unless it already settled."""
        self._clear_password()
        self._clear_secrets()
        if self.state not in _TERMINAL:
            self.failure = exc
            self._transition(HandshakeState.FAILED)

    # ------------------------------------------------------------------ #
    # Drivers
    # ------------------------------------------------------------------ #

    def run(self, transport: Transport) -> HandshakeState:
        """Drive the handshake through *transport* up to authentication or the 2FA step."""
        request = self.start()
        try:
            response = self._send_info(transport, request)
            response = transport.send(self.receive_info(response))
            return self.receive_proof(response)
        except BaseException as exc:
            self.abort(exc)
            raise

    async def arun(self, transport: AsyncTransport) -> HandshakeState:
        """Async counterpart of :meth:`run`."""
        request = self.start()
        try:
            response = await self._asend_info(transport, request)
            response = await transport.send(self.receive_info(response))
            return self.receive_proof(response)
        except BaseException as exc:
            self.abort(exc)
            raise

    def submit_second_factor(self, transport: Transport, code: str) -> Session:
        request = self.second_factor_request(code)
        try:
            response = transport.send(request)
        except BaseException as exc:
            self.abort(exc)
            raise
        return self.receive_second_factor(response)

    async def asubmit_second_factor(self, transport: AsyncTransport, code: str) -> Session:
        request = self.second_factor_request(code)
        try:
            response = await transport.send(request)
        except BaseException as exc:
            self.abort(exc)
            raise
        return self.receive_second_factor(response)

    def logout(self, transport: Transport) -> None:
        """Log the session out and move to ``LOGGED_OUT``."""
        self._expect_logout()
        assert self._session is not None
        self._session.logout(transport)
        self._transition(HandshakeState.LOGGED_OUT)

    async def alogout(self, transport: AsyncTransport) -> None:
        self._expect_logout()
        assert self._session is not None
        await self._session.alogout(transport)
        self._transition(HandshakeState.LOGGED_OUT)

    def _send_info(self, transport: Transport, request: Request) -> Response:
        attempt = 0
        while True:
            try:
                return transport.send(request)
            except TransportError as exc:
                if not self._should_retry(exc, attempt):
                    raise
                delay = self.retry.delay(attempt)
                attempt += 1
                logger.debug("Info request failed (%s); retry %d in %.2fs", exc, attempt, delay)
                time.sleep(delay)

    async def _asend_info(self, transport: AsyncTransport, request: Request) -> Response:
        attempt = 0
        while True:
            try:
                return await transport.send(request)
            except TransportError as exc:
                if not self._should_retry(exc, attempt):
                    raise
                delay = self.retry.delay(attempt)
                attempt += 1
                logger.debug("Info request failed (%s); retry %d in %.2fs", exc, attempt, delay)
                await asyncio.sleep(delay)

    def _should_retry(self, exc: TransportError, attempt: int) -> bool:
        if not exc.retryable:
            return False
        if attempt >= self.retry.max_retries:
            logger.warning("Info request failed after %d attempt(s): %s", attempt + 1, exc)
            return False
        return True

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _transition(self, state: HandshakeState) -> None:
        logger.debug("Handshake %s: %s -> %s", self.username, self.state.value, state.value)
        self.state = state

    def _expect(self, state: HandshakeState) -> None:
        if self.state is not state:
            raise ProtocolError(
                f"Handshake is {self.state.value}, expected {state.value}"
            )

    def _expect_logout(self) -> None:
        if self.state not in (HandshakeState.AUTHENTICATED, HandshakeState.SECOND_FACTOR_PENDING):
            raise ProtocolError(f"Cannot log out: handshake is {self.state.value}")

    def _fail(self, exc: BaseException) -> BaseException:
        self.abort(exc)
        return exc

    def _login_error(self, response: Response) -> SrpSessionError:
        error = classify(response, self.errors)
        if type(error) is not APIError:
            return error
        code = error.code
        if code in self.errors.challenge_expired_codes:
            return ChallengeExpiredError(
                "The login challenge expired; start a new login", error
            )
        if code in self.errors.invalid_credentials_codes:
            return InvalidCredentialsError(
                error.message or "Incorrect login credentials", error
            )
        return error

    def _new_session(self, auth: AuthResponse, pending: bool) -> Session:
        return Session(
            auth.uid,
            TokenPair(auth.access_token, auth.refresh_token),
            user_id=auth.user_id,
            scopes=auth.scope.split(),
            errors=self.errors,
            second_factor_pending=pending,
        )

    def _clear_password(self) -> None:
        if self._password is not None:
            for i in range(len(self._password)):
                self._password[i] = 0
            self._password = None

    def _clear_secrets(self) -> None:
        if self._proof is not None:
            self._proof.clear()
            self._proof = None
        self._challenge = None


def login(
    transport: Transport,
    username: str,
    password: Password,
    **options: Any,
) -> LoginHandshake:
    """Run a login over a blocking transport.

    Returns the handshake, either ``AUTHENTICATED`` or
    ``SECOND_FACTOR_PENDING``; in the latter case call
    :meth:`LoginHandshake.submit_second_factor`. Keyword options are passed
    to :class:`LoginHandshake`.
    """
    handshake = LoginHandshake(username, password, **options)
    handshake.run(transport)
    return handshake


async def alogin(
    transport: AsyncTransport,
    username: str,
    password: Password,
    **options: Any,
) -> LoginHandshake:
    """Async counterpart of :func:`login`."""
    handshake = LoginHandshake(username, password, **options)
    await handshake.arun(transport)
    return handshake

