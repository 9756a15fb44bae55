"""Centralized error handling for the presentation layer.

Error responses never echo internal details: clients get a short message,
the log gets the rest.
"""

from typing import Any

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..domain.exceptions import (
    AuthorAlreadyExistsError,
    DomainError,
    ValidationError,
)

GENERIC_ERROR_MESSAGE = "Something went wrong. Please try again."
DATABASE_ERROR_MESSAGE = "A database error occurred. Please try again."


class ErrorFormatter:
    """Formats errors for consistent user experience."""

    @staticmethod
    def format_user_friendly_message(error: Exception) -> str:
        """Convert technical errors to user-friendly messages."""
        if isinstance(error, ValidationError):
            return str(error)
        elif isinstance(error, AuthorAlreadyExistsError):
            return "Please try again in a moment."
        # Token and notification failures say nothing useful to a client
        return GENERIC_ERROR_MESSAGE

    @staticmethod
    def get_status_code(error: Exception) -> int:
        if isinstance(error, ValidationError):
            return status.HTTP_422_UNPROCESSABLE_ENTITY
        elif isinstance(error, AuthorAlreadyExistsError):
            return status.HTTP_409_CONFLICT
        return status.HTTP_500_INTERNAL_SERVER_ERROR


def error_response(
    status_code: int, detail: str, errors: list[dict[str, Any]] | None = None
) -> JSONResponse:
    content: dict[str, Any] = {"detail": detail}
    if errors:
        content["errors"] = errors
    return JSONResponse(status_code=status_code, content=content)


def handle_domain_error(error: DomainError, _request: Request) -> JSONResponse:
    """Turn a domain error that escaped the services into a JSON response."""
    return error_response(
        ErrorFormatter.get_status_code(error),
        ErrorFormatter.format_user_friendly_message(error),
    )


def handle_request_validation_error(
    error: RequestValidationError, _request: Request
) -> JSONResponse:
    """List the rejected fields without echoing their values."""
    field_errors = []
    for err in error.errors():
        field_name = ".".join(str(loc) for loc in err["loc"] if loc != "body")
        field_errors.append(
            {
                "field": field_name or "unknown",
                "code": err["type"],
                "message": err["msg"],
            }
        )
    return error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "Request validation failed",
        errors=field_errors,
    )
