"""
API Error Response Standardization

Provides standardized error responses for the social API. All errors carry
an error code, message and timestamp; social publishing errors additionally
carry the flat {success, message, kind, requiresAuth} fields the dashboard
reads to decide whether to prompt a reconnect.
"""
from datetime import datetime
from typing import Optional, Dict, Any
from enum import Enum
from fastapi import status
from fastapi.responses import JSONResponse

from schemas.social import PublishError


class ErrorCode(str, Enum):
    """Standardized error codes"""

    # Authentication Errors (AUTH_*)
    AUTH_TOKEN_EXPIRED = "AUTH_TOKEN_EXPIRED"
    AUTH_TOKEN_INVALID = "AUTH_TOKEN_INVALID"
    AUTH_TOKEN_MISSING = "AUTH_TOKEN_MISSING"

    # Validation Errors (VALIDATION_*)
    VALIDATION_INVALID_INPUT = "VALIDATION_INVALID_INPUT"

    # Rate Limiting Errors (RATE_LIMIT_*)
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"

    # Server Errors (SERVER_*)
    SERVER_INTERNAL_ERROR = "SERVER_INTERNAL_ERROR"
    SERVER_SERVICE_UNAVAILABLE = "SERVER_SERVICE_UNAVAILABLE"

    # Resource Errors (RESOURCE_*)
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    RESOURCE_FORBIDDEN = "RESOURCE_FORBIDDEN"

    # Social Media Errors (SOCIAL_*)
    SOCIAL_CONFIG_ERROR = "SOCIAL_CONFIG_ERROR"
    SOCIAL_CONNECTION_FAILED = "SOCIAL_CONNECTION_FAILED"
    SOCIAL_NO_BUSINESS_ACCOUNT = "SOCIAL_NO_BUSINESS_ACCOUNT"
    SOCIAL_NOT_CONNECTED = "SOCIAL_NOT_CONNECTED"
    SOCIAL_TOKEN_EXPIRED = "SOCIAL_TOKEN_EXPIRED"
    SOCIAL_PLATFORM_ERROR = "SOCIAL_PLATFORM_ERROR"
    SOCIAL_VALIDATION_FAILED = "SOCIAL_VALIDATION_FAILED"
    SOCIAL_PUBLISH_FAILED = "SOCIAL_PUBLISH_FAILED"


# Publish error kind -> (HTTP status, error code)
SOCIAL_ERROR_KINDS: Dict[str, Any] = {
    "config_error": (status.HTTP_503_SERVICE_UNAVAILABLE, ErrorCode.SOCIAL_CONFIG_ERROR),
    "auth_failed": (status.HTTP_401_UNAUTHORIZED, ErrorCode.SOCIAL_CONNECTION_FAILED),
    "no_business_account": (status.HTTP_400_BAD_REQUEST, ErrorCode.SOCIAL_NO_BUSINESS_ACCOUNT),
    "not_connected": (status.HTTP_400_BAD_REQUEST, ErrorCode.SOCIAL_NOT_CONNECTED),
    "token_expired": (status.HTTP_401_UNAUTHORIZED, ErrorCode.SOCIAL_TOKEN_EXPIRED),
    "provider_unavailable": (status.HTTP_503_SERVICE_UNAVAILABLE, ErrorCode.SOCIAL_PLATFORM_ERROR),
    "validation_error": (status.HTTP_400_BAD_REQUEST, ErrorCode.SOCIAL_VALIDATION_FAILED),
    "publish_rejected": (status.HTTP_422_UNPROCESSABLE_ENTITY, ErrorCode.SOCIAL_PUBLISH_FAILED),
}

# Kinds the frontend answers by sending the user through OAuth again
REQUIRES_AUTH_KINDS = frozenset({"auth_failed", "not_connected", "token_expired"})


def create_error_response(
    code: ErrorCode,
    message: str,
    status_code: int = status.HTTP_400_BAD_REQUEST,
    details: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """
    Create a standardized error response.

    Args:
        code: Error code from ErrorCode enum
        message: Human-readable error message
        status_code: HTTP status code
        details: Optional additional details
        headers: Optional response headers

    Returns:
        JSONResponse with standardized error format
    """
    error_response = {
        "success": False,
        "message": message,
        "error": {
            "code": code.value if isinstance(code, ErrorCode) else code,
            "message": message,
            "details": details or {},
            "timestamp": datetime.utcnow().isoformat() + "Z"
        }
    }

    return JSONResponse(
        status_code=status_code,
        content=error_response,
        headers=headers,
    )


def create_publish_error_response(error: PublishError) -> JSONResponse:
    """
    Create the response for a failed social operation.

    Returns:
        JSONResponse with {success: false, message, kind, retryable,
        requiresAuth?} plus the standard error block
    """
    retry_after = error.retry_after
    status_code, code = SOCIAL_ERROR_KINDS.get(
        error.kind, (status.HTTP_500_INTERNAL_SERVER_ERROR, ErrorCode.SERVER_INTERNAL_ERROR)
    )

    details: Dict[str, Any] = {"kind": error.kind}
    if error.provider_code:
        details["provider_code"] = error.provider_code
    if retry_after is not None:
        details["retry_after"] = retry_after

    body = {
        "success": False,
        "message": error.message,
        "kind": error.kind,
        "providerCode": error.provider_code,
        "retryable": error.retryable,
        "retryAfter": retry_after,
        "error": {
            "code": code.value,
            "message": error.message,
            "details": details,
            "timestamp": datetime.utcnow().isoformat() + "Z"
        }
    }
    if error.kind in REQUIRES_AUTH_KINDS:
        body["requiresAuth"] = True

    return JSONResponse(
        status_code=status_code,
        content=body,
        headers={"Retry-After": str(retry_after)} if retry_after is not None else None,
    )
