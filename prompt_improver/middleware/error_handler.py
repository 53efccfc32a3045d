"""Exception handlers returning error_kind + message JSON, never tracebacks."""

import logging
from typing import Any, Dict, List, Optional, Union

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..core.config import settings
from ..errors import PromptImproverError


logger = logging.getLogger(__name__)


# HTTP status per error kind; anything else is a server error
ERROR_KIND_STATUS = {
    "validation_error": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "not_found": status.HTTP_404_NOT_FOUND,
    "conflict": status.HTTP_409_CONFLICT,
    "provider_error": status.HTTP_502_BAD_GATEWAY,
    "empty_response": status.HTTP_502_BAD_GATEWAY,
    "malformed_output": status.HTTP_502_BAD_GATEWAY,
}

SECRET_FIELDS = ("api_key",)


def error_response(error_kind: str, message: str, **extra: Any) -> JSONResponse:
    """JSON error body shared by every handler."""
    return JSONResponse(
        status_code=ERROR_KIND_STATUS.get(error_kind, status.HTTP_500_INTERNAL_SERVER_ERROR),
        content={"error_kind": error_kind, "message": message, **extra},
    )


def _redact(value: Any) -> Any:
    """Never echo credentials back."""
    if isinstance(value, dict):
        return {k: ("***" if k in SECRET_FIELDS else v) for k, v in value.items()}
    return value


def _describe_errors(exc: Union[RequestValidationError, ValidationError]) -> List[Dict[str, Optional[Any]]]:
    described = []
    for error in exc.errors():
        loc = [str(part) for part in error["loc"] if part != "body"]
        secret = any(part in SECRET_FIELDS for part in loc)
        described.append({
            "field": ".".join(loc),
            "message": error["msg"],
            "type": error["type"],
            "input": None if secret else _redact(error.get("input")),
        })
    return described


async def validation_exception_handler(
    request: Request,
    exc: Union[RequestValidationError, ValidationError]
) -> JSONResponse:
    """
    Reject invalid task input with per-field details.

    Submitted credentials are masked so they never appear in the
    response or the log.
    """
    details = _describe_errors(exc)
    logger.warning(f"Validation error on {request.url.path}: {details}")
    return error_response("validation_error", "The request data failed validation", details=details)


async def database_exception_handler(
    request: Request,
    exc: SQLAlchemyError
) -> JSONResponse:
    """
    Handle database errors.

    Args:
        request: FastAPI request
        exc: Database error

    Returns:
        409 for constraint violations, 500 otherwise
    """
    logger.error(f"Database error on {request.url.path}: {exc}", exc_info=True)

    if isinstance(exc, IntegrityError):
        return error_response(
            "conflict",
            "The operation violates a database constraint",
            details=str(exc.orig) if settings.DEBUG else None,
        )
    return error_response(
        "database_error",
        "An error occurred while accessing the database",
        details=str(exc) if settings.DEBUG else None,
    )


async def prompt_improver_exception_handler(
    request: Request,
    exc: PromptImproverError
) -> JSONResponse:
    """
    Handle workflow errors that reach the HTTP layer.

    Args:
        request: FastAPI request
        exc: Workflow error

    Returns:
        JSON response carrying the error kind, message and agent excerpt
    """
    logger.warning(f"{exc.error_kind} on {request.url.path}: {exc}")
    return error_response(exc.error_kind, str(exc), excerpt=getattr(exc, "excerpt", None) or None)


async def generic_exception_handler(
    request: Request,
    exc: Exception
) -> JSONResponse:
    """Last resort: log the traceback, answer 500 without it."""
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return error_response(
        "internal_error",
        "An unexpected error occurred",
        details=str(exc) if settings.DEBUG else None,
    )
