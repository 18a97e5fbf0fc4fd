"""
Global Exception Handlers

FastAPI global exception handlers that convert HTTPExceptions, request
validation errors and publisher errors to standardized error responses.
"""
from fastapi import Request, HTTPException, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
import logging

from src.publishers.exceptions import PublisherException
from utils.error_responses import ErrorCode, create_error_response, create_publish_error_response

logger = logging.getLogger(__name__)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """
    Global handler for HTTPExceptions to standardize error responses.

    Args:
        request: FastAPI request object
        exc: HTTPException instance

    Returns:
        JSONResponse with standardized error format
    """
    error_code = map_status_to_error_code(exc.status_code, str(exc.detail))

    logger.warning(
        f"HTTP Exception: {error_code.value} - {exc.detail} "
        f"(Status: {exc.status_code}, Path: {request.url.path})"
    )

    return create_error_response(
        error_code,
        str(exc.detail),
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError
) -> JSONResponse:
    """
    Handle request validation errors with standardized format.

    Converts validation errors to field-level error details.
    """
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"] if loc not in ("body", "query", "path"))
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"]
        })

    logger.warning(
        f"Validation Error: {len(errors)} field(s) failed "
        f"(Path: {request.url.path})"
    )

    return create_error_response(
        ErrorCode.VALIDATION_INVALID_INPUT,
        "Validation failed for one or more fields",
        status_code=status.HTTP_400_BAD_REQUEST,
        details={"validation_errors": errors},
    )


async def publisher_exception_handler(request: Request, exc: PublisherException) -> JSONResponse:
    """
    Handle publisher errors raised from connect, refresh and status routes.

    The error kind decides the HTTP status; kinds that need the user to
    reconnect carry requiresAuth: true.
    """
    logger.warning(f"Publisher error: {exc.kind} - {exc.message} (Path: {request.url.path})")

    return create_publish_error_response(exc.to_error())


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle unexpected exceptions with standardized format.

    Last resort handler for any unhandled exceptions.
    """
    logger.error(
        f"Unhandled Exception: {type(exc).__name__}: {str(exc)} "
        f"(Path: {request.url.path})",
        exc_info=True
    )

    return create_error_response(
        ErrorCode.SERVER_INTERNAL_ERROR,
        "An unexpected error occurred. Please try again later.",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def map_status_to_error_code(status_code: int, detail: str) -> ErrorCode:
    """
    Map HTTP status code to appropriate error code.

    Args:
        status_code: HTTP status code
        detail: Error detail message

    Returns:
        Error code
    """
    detail_lower = detail.lower()

    if status_code == 401:
        if "expired" in detail_lower:
            return ErrorCode.AUTH_TOKEN_EXPIRED
        elif "invalid" in detail_lower:
            return ErrorCode.AUTH_TOKEN_INVALID
        return ErrorCode.AUTH_TOKEN_MISSING

    elif status_code == 403:
        return ErrorCode.RESOURCE_FORBIDDEN

    elif status_code == 404:
        return ErrorCode.RESOURCE_NOT_FOUND

    elif status_code in (400, 422):
        return ErrorCode.VALIDATION_INVALID_INPUT

    elif status_code == 429:
        return ErrorCode.RATE_LIMIT_EXCEEDED

    elif status_code == 503:
        return ErrorCode.SERVER_SERVICE_UNAVAILABLE

    return ErrorCode.SERVER_INTERNAL_ERROR


def register_exception_handlers(app):
    """
    Register all custom exception handlers with FastAPI app.

    Args:
        app: FastAPI application instance
    """
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(PublisherException, publisher_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    logger.info("Registered standardized exception handlers")
