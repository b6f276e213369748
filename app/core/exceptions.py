"""Error taxonomy for the payments API and the handlers that render it."""
from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.logging import app_logger


class BankingError(Exception):
    """Base class for errors that are safe to report to the client."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "error"
    default_message = "Request failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInput(BankingError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "invalid_input"
    default_message = "Invalid input"


class InvalidState(BankingError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "invalid_state"
    default_message = "Transaction is not in a valid state for this action"


class NotFound(BankingError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
    default_message = "Not found"


class Unauthorized(BankingError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "unauthorized"
    default_message = "Unauthorized"


class Forbidden(BankingError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"
    default_message = "Forbidden"


class Conflict(BankingError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"
    default_message = "Resource already exists"


class RateLimited(BankingError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = "rate_limited"
    default_message = "Too many requests, please try again later"

    def __init__(self, message: str | None = None, retry_after: int | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class ServerError(BankingError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "server_error"
    default_message = "Server error"


def error_body(code: str, message: str, **extra) -> dict:
    return {"error": code, "message": message, **extra}


def error_response(
    status_code: int, code: str, message: str, headers: dict | None = None, **extra
) -> JSONResponse:
    """Build a JSON error response in the shape every client sees."""
    return JSONResponse(
        status_code=status_code,
        content=error_body(code, message, **extra),
        headers=headers,
    )


def server_error_response() -> JSONResponse:
    return error_response(
        ServerError.status_code, ServerError.code, ServerError.default_message
    )


async def banking_error_handler(request: Request, exc: BankingError) -> JSONResponse:
    headers = None
    if isinstance(exc, RateLimited) and exc.retry_after is not None:
        headers = {"Retry-After": str(exc.retry_after)}
    return error_response(exc.status_code, exc.code, exc.message, headers=headers)


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    details = [
        {
            "field": ".".join(str(part) for part in error["loc"][1:]) or None,
            "message": error["msg"],
        }
        for error in exc.errors()
    ]
    return error_response(
        status.HTTP_400_BAD_REQUEST,
        InvalidInput.code,
        InvalidInput.default_message,
        details=details,
    )


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    codes = {
        status.HTTP_401_UNAUTHORIZED: Unauthorized.code,
        status.HTTP_403_FORBIDDEN: Forbidden.code,
        status.HTTP_404_NOT_FOUND: NotFound.code,
        status.HTTP_405_METHOD_NOT_ALLOWED: "method_not_allowed",
        status.HTTP_413_REQUEST_ENTITY_TOO_LARGE: "payload_too_large",
    }
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return error_response(
        exc.status_code,
        codes.get(exc.status_code, "error"),
        message,
        headers=getattr(exc, "headers", None),
    )


async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    # Log internal error details for debugging (to stdout)
    app_logger.error(
        f"Database error on {request.method} {request.url.path}: {exc.__class__.__name__}: {exc}"
    )
    return server_error_response()


def log_unhandled_error(request: Request, exc: Exception) -> None:
    app_logger.error(
        f"Unhandled error on {request.method} {request.url.path}: {exc.__class__.__name__}: {exc}"
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    # Only reached for errors raised outside SecurityHeadersMiddleware
    log_unhandled_error(request, exc)
    return server_error_response()


def register_exception_handlers(app) -> None:
    app.add_exception_handler(BankingError, banking_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
