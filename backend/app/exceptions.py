from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ErrorResponse(BaseModel):
    """Standard error response schema."""

    error: str
    detail: str | None = None
    status_code: int
    details: dict[str, Any] | None = None


class AppError(Exception):
    """Base application exception.

    Subclasses are operational errors: expected, recoverable by the caller,
    and surfaced with full detail.
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(AppError):
    """Malformed input; the caller can fix it and retry."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND


class PolicyViolationError(AppError):
    """An eligibility or usage rule rejected the request."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, message: str, violations: list[dict[str, Any]]) -> None:
        super().__init__(message, details={"violations": violations})
        self.violations = violations


class InsufficientBalanceError(AppError):
    """The transaction would drive the balance below zero."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, available_minutes: int, requested_minutes: int) -> None:
        super().__init__(
            f"Insufficient balance: {available_minutes} minutes available, {requested_minutes} requested",
            details={
                "available_minutes": available_minutes,
                "requested_minutes": requested_minutes,
                "shortfall_minutes": requested_minutes - available_minutes,
            },
        )
        self.available_minutes = available_minutes
        self.requested_minutes = requested_minutes


class InvalidTransitionError(AppError):
    """The state machine does not allow the requested move."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, entity: str, current: str, action: str) -> None:
        super().__init__(
            f"Cannot {action.lower()} {entity} in status {current}",
            details={"entity": entity, "current_status": current, "action": action},
        )
        self.current = current
        self.action = action


class ConflictError(AppError):
    """Overlapping request, duplicate clock-in, ambiguous policy or update contention."""

    status_code = status.HTTP_409_CONFLICT


class InvalidTimeSequenceError(AppError):
    """Clock-out before clock-in, breaks outside the entry, and similar."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, operation: str, reason: str) -> None:
        super().__init__(
            f"Invalid time sequence for {operation}: {reason}",
            details={"operation": operation, "reason": reason},
        )


class StorageError(AppError):
    """Non-operational: the storage layer failed after the retry budget was spent."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


async def _app_exception_handler(request: Request, exc: AppError) -> JSONResponse:
    if isinstance(exc, StorageError):
        logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=type(exc).__name__,
            detail=exc.message,
            status_code=exc.status_code,
            details=exc.details or None,
        ).model_dump(mode="json"),
    )


async def _validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=ErrorResponse(
            error="ValidationError",
            detail=str(exc.errors()),
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        ).model_dump(),
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register exception handlers on the application."""
    app.add_exception_handler(AppError, _app_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)  # type: ignore[arg-type]
