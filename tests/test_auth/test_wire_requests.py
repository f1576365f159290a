"""Tests for auth request builders, response parsers and error classification."""

from __future__ import annotations

import json

import pytest

from srpsession.auth.classify import classify, retry_after
from srpsession.auth.requests import (
    info_request,
    logout_request,
    parse_auth,
    parse_refresh,
    proof_request,
    refresh_request,
    second_factor_request,
)
from srpsession.exceptions import (
    APIError,
    HumanVerificationRequiredError,
    ProtocolError,
    RateLimitedError,
)
from srpsession.models import ErrorMapping, TwoFactorStatus
from srpsession.transport.base import Response


def _response(status: int, body=None, headers=None) -> Response:
    content = json.dumps(body).encode() if body is not None else b""
    return Response(status, headers or {}, content)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


class TestBuilders:
    def test_info_request(self) -> None:
        request = info_request("alice")
        assert (request.method, request.path) == ("POST", "auth/v4/info")
        assert request.json == {"Username": "alice"}

    def test_proof_request_without_verification(self) -> None:
        request = proof_request("alice", "QQ==", "Qg==", "srp1")
        assert (request.method, request.path) == ("POST", "auth/v4")
        assert request.json == {
            "Username": "alice",
            "ClientEphemeral": "QQ==",
            "ClientProof": "Qg==",
            "SRPSession": "srp1",
        }
        assert request.headers == {}

    def test_proof_request_with_verification_token(self) -> None:
        request = proof_request("alice", "QQ==", "Qg==", "srp1", hv_token="tok")
        assert request.headers["x-pm-human-verification-token"] == "tok"
        assert request.headers["x-pm-human-verification-token-type"] == "captcha"

    def test_second_factor_request_is_authorized(self) -> None:
        request = second_factor_request("u1", "a1", "srp1", "123456")
        assert request.path == "auth/v4/2fa"
        assert request.headers == {"x-pm-uid": "u1", "Authorization": "Bearer a1"}
        assert request.json == {"SRPSession": "srp1", "TwoFactorCode": "123456"}

    def test_refresh_request_sends_no_access_token(self) -> None:
        request = refresh_request("u1", "r1")
        assert request.path == "auth/v4/refresh"
        assert request.headers == {"x-pm-uid": "u1"}
        assert request.json["UID"] == "u1"
        assert request.json["RefreshToken"] == "r1"
        assert request.json["GrantType"] == "refresh_token"
        assert request.json["ResponseType"] == "token"

    def test_logout_request(self) -> None:
        request = logout_request("u1", "a1")
        assert (request.method, request.path) == ("DELETE", "auth/v4")
        assert request.headers["Authorization"] == "Bearer a1"

    def test_with_headers_copies(self) -> None:
        request = info_request("alice")
        authorized = request.with_headers({"x-pm-uid": "u1"})
        assert request.headers == {}
        assert authorized.headers == {"x-pm-uid": "u1"}


# ---------------------------------------------------------------------------
# Parsers
# ---------------------------------------------------------------------------


class TestParsers:
    def test_parse_auth(self) -> None:
        auth = parse_auth(
            _response(
                200,
                {
                    "Code": 1000,
                    "UID": "u1",
                    "UserID": "user-1",
                    "AccessToken": "a1",
                    "RefreshToken": "r1",
                    "Scope": "full self",
                    "ServerProof": "AA==",
                    "2FA": {"Enabled": 3, "ExpiresIn": 60},
                    "Unknown": "ignored",
                },
            )
        )
        assert auth.uid == "u1"
        assert auth.two_factor.enabled is TwoFactorStatus.TOTP_OR_FIDO2
        assert auth.two_factor.expires_in == 60

    def test_parse_auth_defaults_two_factor_off(self) -> None:
        auth = parse_auth(
            _response(
                200,
                {"UID": "u1", "AccessToken": "a", "RefreshToken": "r", "ServerProof": "AA=="},
            )
        )
        assert auth.two_factor.enabled is TwoFactorStatus.NONE

    def test_missing_field_is_protocol_error(self) -> None:
        with pytest.raises(ProtocolError, match="RefreshResponse"):
            parse_refresh(_response(200, {"UID": "u1", "AccessToken": "a"}))

    def test_non_json_is_protocol_error(self) -> None:
        with pytest.raises(ProtocolError, match="not valid JSON"):
            parse_refresh(Response(200, {}, b"<html>"))

    def test_empty_body_is_protocol_error(self) -> None:
        with pytest.raises(ProtocolError, match="Empty"):
            parse_refresh(Response(200, {}, b""))


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


class TestClassify:
    def test_plain_api_error(self) -> None:
        error = classify(_response(404, {"Code": 2501, "Error": "Not found"}), ErrorMapping())
        assert type(error) is APIError
        assert error.status_code == 404
        assert error.code == 2501
        assert str(error) == "Not found"

    def test_unparseable_body_keeps_status(self) -> None:
        error = classify(Response(502, {}, b"Bad Gateway"), ErrorMapping())
        assert isinstance(error, APIError)
        assert error.status_code == 502
        assert error.code == 0

    def test_human_verification(self) -> None:
        body = {
            "Code": 9001,
            "Error": "Human verification required",
            "Details": {
                "HumanVerificationToken": "challenge-123",
                "HumanVerificationMethods": ["captcha", "email"],
                "Title": "Verify",
                "Extra": 1,
            },
        }
        error = classify(_response(422, body), ErrorMapping())
        assert isinstance(error, HumanVerificationRequiredError)
        assert error.challenge.token == "challenge-123"
        assert error.challenge.methods == ["captcha", "email"]
        assert error.challenge.details["Extra"] == 1
        assert error.api_error.code == 9001

    def test_human_verification_code_is_configurable(self) -> None:
        mapping = ErrorMapping(human_verification_codes={12087})
        error = classify(_response(422, {"Code": 12087}), mapping)
        assert isinstance(error, HumanVerificationRequiredError)
        assert error.challenge.token == ""

    def test_rate_limited(self) -> None:
        response = _response(429, {"Code": 2028, "Error": "Slow down"}, {"Retry-After": "7"})
        error = classify(response, ErrorMapping())
        assert isinstance(error, RateLimitedError)
        assert error.retry_after == 7.0
        assert error.code == 2028

    def test_retry_after_ignores_dates(self) -> None:
        response = _response(429, {}, {"retry-after": "Wed, 21 Oct 2015 07:28:00 GMT"})
        assert retry_after(response) is None
