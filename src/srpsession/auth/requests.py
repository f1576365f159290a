"""Request builders and response parsers for the ``auth/v4`` endpoints.

Builders return :class:`~srpsession.transport.base.Request` values; parsers
turn a successful :class:`~srpsession.transport.base.Response` into the
matching wire model, raising
:class:`~srpsession.exceptions.ProtocolError` when the body does not have
the expected shape.
"""

from __future__ import annotations

from typing import Optional, TypeVar

from pydantic import BaseModel, ValidationError

from srpsession.exceptions import ProtocolError
from srpsession.models import (
    AuthInfoRequest,
    AuthInfoResponse,
    AuthRequest,
    AuthResponse,
    RefreshRequest,
    RefreshResponse,
    SecondFactorRequest,
    SecondFactorResponse,
)
from srpsession.transport.base import (
    X_PM_HUMAN_VERIFICATION_TOKEN,
    X_PM_HUMAN_VERIFICATION_TOKEN_TYPE,
    X_PM_UID_HEADER,
    Request,
    Response,
)

AUTH_INFO_PATH = "auth/v4/info"
AUTH_PATH = "auth/v4"
AUTH_2FA_PATH = "auth/v4/2fa"
AUTH_REFRESH_PATH = "auth/v4/refresh"

ModelT = TypeVar("ModelT", bound=BaseModel)


def auth_headers(uid: str, access_token: str) -> dict[str, str]:
    """Headers that authorize a request for session *uid*."""
    return {X_PM_UID_HEADER: uid, "Authorization": f"Bearer {access_token}"}


def info_request(username: str) -> Request:
    return Request("POST", AUTH_INFO_PATH, json=AuthInfoRequest(username=username).to_wire())


def proof_request(
    username: str,
    client_ephemeral: str,
    client_proof: str,
    srp_session: str,
    hv_token: Optional[str] = None,
    hv_token_type: Optional[str] = None,
) -> Request:
    body = AuthRequest(
        username=username,
        client_ephemeral=client_ephemeral,
        client_proof=client_proof,
        srp_session=srp_session,
    )
    headers: dict[str, str] = {}
    if hv_token is not None:
        headers[X_PM_HUMAN_VERIFICATION_TOKEN] = hv_token
        headers[X_PM_HUMAN_VERIFICATION_TOKEN_TYPE] = hv_token_type or "captcha"
    return Request("POST", AUTH_PATH, headers=headers, json=body.to_wire())


def second_factor_request(uid: str, access_token: str, srp_session: str, code: str) -> Request:
    body = SecondFactorRequest(srp_session=srp_session, two_factor_code=code)
    return Request("POST", AUTH_2FA_PATH, headers=auth_headers(uid, access_token), json=body.to_wire())


def refresh_request(uid: str, refresh_token: str) -> Request:
    """The token refresh call. Only the UID header is sent, never the stale access token."""
    body = RefreshRequest(uid=uid, refresh_token=refresh_token)
    return Request(
        "POST", AUTH_REFRESH_PATH, headers={X_PM_UID_HEADER: uid}, json=body.to_wire()
    )


def logout_request(uid: str, access_token: str) -> Request:
    return Request("DELETE", AUTH_PATH, headers=auth_headers(uid, access_token))


def parse(response: Response, model: type[ModelT]) -> ModelT:
    """Validate a response body against *model*.

    Raises:
        ProtocolError: If the body is not JSON or is missing required fields.
    """
    data = response.json()
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise ProtocolError(
            f"Unexpected {model.__name__} payload: {exc.error_count()} validation error(s)"
        ) from exc


def parse_info(response: Response) -> AuthInfoResponse:
    return parse(response, AuthInfoResponse)


def parse_auth(response: Response) -> AuthResponse:
    return parse(response, AuthResponse)


def parse_second_factor(response: Response) -> SecondFactorResponse:
    return parse(response, SecondFactorResponse)


def parse_refresh(response: Response) -> RefreshResponse:
    return parse(response, RefreshResponse)
