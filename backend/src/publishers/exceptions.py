"""
Custom exceptions for social media connection and publishing

Every adapter raises one of these instead of leaking raw httpx errors or
provider payloads. The ``kind`` attribute is the provider-agnostic error
taxonomy the API layer and callers switch on.
"""
from typing import Optional, Tuple

import httpx

from schemas.social import PublishError


class PublisherException(Exception):
    """Base exception for all publisher errors"""

    kind = "publish_rejected"
    retryable = False

    def __init__(
        self,
        message: str,
        provider_code: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.provider_code = provider_code
        self.status_code = status_code

    def to_error(self) -> PublishError:
        return PublishError(
            kind=self.kind,
            provider_code=self.provider_code,
            message=self.message,
            retryable=self.retryable,
            retry_after=getattr(self, "retry_after", None),
        )


class ConfigurationException(PublisherException):
    """App credentials missing or rejected (e.g. unapproved callback URL)"""

    kind = "config_error"


class AuthenticationException(PublisherException):
    """User denied consent or the provider rejected the OAuth exchange"""

    kind = "auth_failed"


class NoBusinessAccountException(AuthenticationException):
    """Facebook Page exists but has no linked Instagram Business/Creator account"""

    kind = "no_business_account"


class NotConnectedException(PublisherException):
    """No stored connection for this user and provider"""

    kind = "not_connected"


class TokenExpiredException(PublisherException):
    """Token is expired, revoked, or rejected by the provider"""

    kind = "token_expired"


class PlatformUnavailableError(PublisherException):
    """Timeout, network failure, or 5xx from the provider"""

    kind = "provider_unavailable"
    retryable = True


class RateLimitException(PlatformUnavailableError):
    """Rate limit exceeded"""

    def __init__(self, message, retry_after=None, provider_code=None, status_code=429):
        super().__init__(message, provider_code=provider_code, status_code=status_code)
        self.retry_after = retry_after


class ValidationException(PublisherException):
    """Request cannot be published as given (limits, missing media)"""

    kind = "validation_error"


class ContentRejectedError(PublisherException):
    """Provider accepted the credentials but rejected this post"""

    kind = "publish_rejected"


def parse_provider_error(response: httpx.Response) -> Tuple[str, Optional[str]]:
    """
    Extract a human message and provider error code from an error response.

    Understands Graph API, LinkedIn, Twitter v1.1/v2 and plain OAuth error
    bodies. Falls back to the raw response text.

    Returns:
        (message, provider_code)
    """
    try:
        body = response.json()
    except ValueError:
        return (response.text or f"HTTP {response.status_code}")[:500], None

    if not isinstance(body, dict):
        return str(body)[:500], None

    # Graph API: {"error": {"message": ..., "code": 190}}
    error = body.get("error")
    if isinstance(error, dict):
        code = error.get("code")
        return error.get("message", "Unknown error"), str(code) if code is not None else None

    # Twitter v1.1: {"errors": [{"code": 89, "message": ...}]}
    errors = body.get("errors")
    if isinstance(errors, list) and errors and isinstance(errors[0], dict):
        first = errors[0]
        code = first.get("code")
        return first.get("message", "Unknown error"), str(code) if code is not None else None

    # LinkedIn: {"message": ..., "serviceErrorCode": 65600, "code": "EXPIRED_ACCESS_TOKEN"}
    if "serviceErrorCode" in body or ("message" in body and "status" in body):
        code = body.get("code") or body.get("serviceErrorCode")
        return body.get("message", "Unknown error"), str(code) if code is not None else None

    # Twitter v2 problem details
    if "detail" in body or "title" in body:
        return body.get("detail") or body.get("title"), body.get("type")

    # OAuth 2.0 token endpoint
    if "error_description" in body or isinstance(error, str):
        return body.get("error_description") or error, error if isinstance(error, str) else None

    return body.get("message") or response.text[:500], None
