"""Error handling and exception handlers for the Admissions CRM Gateway.

Provides consistent error response formatting and logging across all endpoints.
Engine errors (CRMError) are mapped onto HTTP statuses here; the engine itself
knows nothing about HTTP.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from packages.core.src import errors as crm_errors
from packages.core.src.config import Environment, get_config

logger = logging.getLogger(__name__)

# Checked in order; first match wins
CRM_ERROR_STATUS: tuple[tuple[type[crm_errors.CRMError], int], ...] = (
    (crm_errors.UnauthenticatedError, status.HTTP_401_UNAUTHORIZED),
    (crm_errors.RuleNotFoundError, status.HTTP_404_NOT_FOUND),
    (crm_errors.RecordNotFoundError, status.HTTP_404_NOT_FOUND),
    (crm_errors.RuleInactiveError, status.HTTP_409_CONFLICT),
    (crm_errors.ConditionsNotMetError, status.HTTP_409_CONFLICT),
    (crm_errors.ConcurrentUpdateError, status.HTTP_409_CONFLICT),
    (crm_errors.ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (crm_errors.UnknownTriggerTypeError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (crm_errors.UnknownActionTypeError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (crm_errors.ActionConfigError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (crm_errors.ActionTimeoutError, status.HTTP_504_GATEWAY_TIMEOUT),
    (crm_errors.IntegrationError, status.HTTP_502_BAD_GATEWAY),
)

HTTP_ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    422: "UNPROCESSABLE_ENTITY",
    500: "INTERNAL_SERVER_ERROR",
}


@lru_cache(maxsize=1)
def _is_production() -> bool:
    """Check if running in production environment (cached)."""
    return get_config().environment == Environment.PRODUCTION


def status_for(exc: crm_errors.CRMError) -> int:
    """HTTP status for an engine error."""
    for error_type, status_code in CRM_ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _format_error_response(
    error_code: str,
    message: str,
    status_code: int,
    details: dict[str, Any] | None = None,
    path: str | None = None,
) -> dict[str, Any]:
    """Format a consistent error response."""
    response = {
        "error": error_code,
        "message": message,
        "status_code": status_code,
    }

    if details and not _is_production():
        # Only include details in non-production for security
        response["details"] = details

    if path:
        response["path"] = path

    return response


async def crm_error_handler(request: Request, exc: crm_errors.CRMError) -> JSONResponse:
    """Handle admissions CRM engine errors."""
    status_code = status_for(exc)
    log = logger.error if status_code >= 500 else logger.warning
    log(
        "crm_error: code=%s path=%s message=%s",
        exc.code,
        request.url.path,
        exc.message,
    )

    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return JSONResponse(
        status_code=status_code,
        content=_format_error_response(
            error_code=exc.code,
            message=exc.message,
            status_code=status_code,
            details=exc.details,
            path=request.url.path,
        ),
        headers=headers,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle FastAPI HTTPExceptions with consistent formatting."""
    logger.warning(
        "http_exception: status=%d path=%s detail=%s",
        exc.status_code,
        request.url.path,
        exc.detail,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=_format_error_response(
            error_code=HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR"),
            message=str(exc.detail) if exc.detail else "An error occurred",
            status_code=exc.status_code,
            path=request.url.path,
        ),
        headers=getattr(exc, "headers", None),
    )


def _field_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Flatten pydantic error entries into field/message/type triples."""
    return [
        {
            "field": " -> ".join(str(part) for part in error["loc"] if part != "body"),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in errors
    ]


async def validation_exception_handler(
    request: Request, exc: RequestValidationError | ValidationError
) -> JSONResponse:
    """Handle request body and model construction validation errors."""
    field_errors = _field_errors(exc.errors())
    logger.warning("validation_error: path=%s errors=%s", request.url.path, field_errors)

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=_format_error_response(
            error_code="VALIDATION_ERROR",
            message="Request validation failed",
            status_code=422,
            details={"errors": field_errors},
            path=request.url.path,
        ),
    )


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    """Handle constraint violations, e.g. an execution referencing a deleted lead."""
    reason = str(exc.orig) if exc.orig else str(exc)
    logger.warning("integrity_error: path=%s error=%s", request.url.path, reason)

    if "foreign" in reason.lower():
        error_code, message = "INVALID_REFERENCE", "Referenced record does not exist"
    else:
        error_code, message = "INTEGRITY_ERROR", "Data constraint violation"

    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content=_format_error_response(
            error_code=error_code,
            message=message,
            status_code=409,
            path=request.url.path,
        ),
    )


async def sqlalchemy_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Handle general SQLAlchemy errors."""
    logger.error("database_error: path=%s error=%s", request.url.path, str(exc), exc_info=True)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_format_error_response(
            error_code="DATABASE_ERROR",
            message="A database error occurred" if _is_production() else str(exc),
            status_code=500,
            path=request.url.path,
        ),
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle all unhandled exceptions."""
    logger.error(
        "unhandled_exception: path=%s method=%s error_type=%s",
        request.url.path,
        request.method,
        type(exc).__name__,
        exc_info=True,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_format_error_response(
            error_code="INTERNAL_SERVER_ERROR",
            message="An unexpected error occurred" if _is_production() else str(exc),
            status_code=500,
            path=request.url.path,
        ),
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register the gateway's error handlers on the app."""
    app.add_exception_handler(crm_errors.CRMError, crm_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ValidationError, validation_exception_handler)
    app.add_exception_handler(IntegrityError, integrity_error_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)
