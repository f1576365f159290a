"""Map error responses onto the exception hierarchy.

Which status codes and API codes mean "human verification", "rate limited"
or "stale challenge" comes from the profile's
:class:`~srpsession.models.ErrorMapping`, so the rules here stay generic.
"""

from __future__ import annotations

from typing import Optional

from pydantic import ValidationError

from srpsession.exceptions import (
    APIError,
    HumanVerificationRequiredError,
    RateLimitedError,
    SrpSessionError,
)
from srpsession.models import ErrorMapping, HumanVerificationChallenge
from srpsession.transport.base import Response


def retry_after(response: Response) -> Optional[float]:
    """Parse a numeric ``Retry-After`` header, if present."""
    value = response.header("Retry-After")
    if value is None:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None


def human_verification_error(api_error: APIError) -> HumanVerificationRequiredError:
    details = api_error.details or {}
    try:
        challenge = HumanVerificationChallenge.model_validate({**details, "details": details})
    except ValidationError:
        challenge = HumanVerificationChallenge(details=details)
    return HumanVerificationRequiredError(
        api_error.message or "Human verification required",
        challenge,
        api_error=api_error,
    )


def rate_limited_error(response: Response, api_error: APIError) -> RateLimitedError:
    return RateLimitedError(
        api_error.status_code,
        api_error.code,
        api_error.message or "Too many requests",
        api_error.details,
        retry_after=retry_after(response),
    )


def classify(response: Response, mapping: ErrorMapping) -> SrpSessionError:
    """Turn a non-success response into the most specific error.

    Human-verification and rate-limit responses get dedicated exceptions;
    anything else becomes a plain :class:`APIError`.
    """
    api_error = response.api_error()
    if api_error.code in mapping.human_verification_codes:
        return human_verification_error(api_error)
    if response.status_code in mapping.rate_limit_statuses:
        return rate_limited_error(response, api_error)
    return api_error
