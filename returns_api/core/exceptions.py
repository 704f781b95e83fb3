"""
Domain errors and their HTTP rendering.

Services raise the ``AppException`` subclasses below and never touch
FastAPI.  ``add_exception_handlers`` turns them, along with framework and
unexpected errors, into one envelope::

    {"error": true, "code": "NoCalculationToRevert", "message": "..."}

``code`` is the exception class name unless given explicitly; request
validation failures add a ``details`` list of ``{field, message}``.
"""

import logging
import math
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from returns_api.core.resilience import CircuitBreakerError

logger = logging.getLogger(__name__)


# ────────────────────────────────────────────────────────────────────────────
# Domain exceptions
# ────────────────────────────────────────────────────────────────────────────


class AppException(Exception):
    """Base exception for all application-level errors."""

    def __init__(
        self,
        status_code: int,
        message: str,
        details: Any = None,
        code: Optional[str] = None,
    ):
        self.status_code = status_code
        self.message = message
        self.details = details
        self.code = code or type(self).__name__
        super().__init__(message)


class NotFoundException(AppException):
    """Resource not found (404)."""

    def __init__(self, resource: str, identifier: Any):
        super().__init__(
            status_code=404,
            message=f"{resource} with id '{identifier}' not found",
        )


class ConflictException(AppException):
    """Request conflicts with the current state of the resource (409)."""

    def __init__(self, message: str):
        super().__init__(status_code=409, message=message)


class BusinessRuleViolation(AppException):
    """Business rule was violated (422)."""

    def __init__(self, message: str):
        super().__init__(status_code=422, message=message)


class InvestmentNotEligible(BusinessRuleViolation):
    """Investment's return type, status or rate does not allow the operation."""


class InvalidReturnType(BusinessRuleViolation):
    """A variable-return operation was attempted on a non-VARIABLE investment."""


class NegativeBalanceRejected(BusinessRuleViolation):
    """The mutation would drive the investment balance below zero."""


class NoInterestDue(BusinessRuleViolation):
    """No whole accrual period has elapsed since the last calculation."""


class ValidationFailed(BusinessRuleViolation):
    """Input is well-formed but not acceptable (future date, missing confirmation...)."""


class NoCalculationToRevert(ConflictException):
    """There is no committed, non-reverted calculation that may be reverted."""


class ConcurrentModification(ConflictException):
    """The investment changed after the caller's preview was taken."""


class IdempotencyKeyReused(ConflictException):
    """An idempotency key was replayed with a different request."""


# ────────────────────────────────────────────────────────────────────────────
# HTTP rendering
# ────────────────────────────────────────────────────────────────────────────


def _error_response(
    status_code: int,
    code: str,
    message: Any,
    details: Any = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    body: Dict[str, Any] = {"error": True, "code": code, "message": message}
    if details is not None:
        body["details"] = details
    return JSONResponse(status_code=status_code, content=body, headers=headers)


async def _on_app_exception(request: Request, exc: AppException) -> JSONResponse:
    if exc.status_code == 409:
        logger.info("%s %s conflicted: %s", request.method, request.url.path, exc.message)
    return _error_response(exc.status_code, exc.code, exc.message, exc.details)


async def _on_circuit_open(request: Request, exc: CircuitBreakerError) -> JSONResponse:
    logger.warning("Rejected %s %s: %s", request.method, request.url.path, exc)
    return _error_response(
        503,
        "ServiceUnavailable",
        "Database unavailable, circuit is open. Retry later.",
        headers={"Retry-After": str(max(1, math.ceil(exc.retry_after)))},
    )


async def _on_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error_response(exc.status_code, "HTTPException", exc.detail)


async def _on_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {"field": " -> ".join(map(str, err["loc"])), "message": err["msg"]}
        for err in exc.errors()
    ]
    return _error_response(422, "RequestValidationError", "Validation failed", details)


async def _on_unhandled(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(
        500, "InternalServerError", "Internal Server Error. Please contact support."
    )


def add_exception_handlers(app: FastAPI) -> None:
    """Render every error as ``{"error": true, "code", "message"[, "details"]}``."""
    app.add_exception_handler(AppException, _on_app_exception)
    app.add_exception_handler(CircuitBreakerError, _on_circuit_open)
    app.add_exception_handler(StarletteHTTPException, _on_http_exception)
    app.add_exception_handler(RequestValidationError, _on_request_validation)
    app.add_exception_handler(Exception, _on_unhandled)
