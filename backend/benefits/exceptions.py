from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response schema."""

    error: str
    detail: str | None = None
    status_code: int
    retryable: bool = False


class AppError(Exception):
    """Base application exception."""

    retryable = False

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


# ---------------------------------------------------------------------------
# Validation errors: caller mistakes, nothing was changed
# ---------------------------------------------------------------------------


class InvalidAmount(AppError):
    """A monetary input is negative or otherwise unusable."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=status.HTTP_422_UNPROCESSABLE_ENTITY)


class InvalidLineItem(AppError):
    """An expense line item failed validation; no line was applied."""

    def __init__(self, message: str, index: int | None = None) -> None:
        self.index = index
        if index is not None:
            message = f"Line item {index}: {message}"
        super().__init__(message, status_code=status.HTTP_422_UNPROCESSABLE_ENTITY)


class UnknownBenefitType(AppError):
    def __init__(self, benefit_type: str) -> None:
        self.benefit_type = benefit_type
        super().__init__(f"Unknown benefit type: {benefit_type}", status_code=status.HTTP_422_UNPROCESSABLE_ENTITY)


class NotEligible(AppError):
    """The employee does not qualify for this benefit yet."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=status.HTTP_422_UNPROCESSABLE_ENTITY)


# ---------------------------------------------------------------------------
# Capacity errors: expected business outcomes, never retried automatically
# ---------------------------------------------------------------------------


class InsufficientBudget(AppError):
    def __init__(self, message: str = "Insufficient budget for this request") -> None:
        super().__init__(message, status_code=status.HTTP_409_CONFLICT)


class CapExceeded(AppError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=status.HTTP_409_CONFLICT)


class AlreadyClaimed(AppError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=status.HTTP_409_CONFLICT)


# ---------------------------------------------------------------------------
# Workflow errors: the caller's view of the request is stale
# ---------------------------------------------------------------------------


class WrongStage(AppError):
    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=status.HTTP_409_CONFLICT)


class AlreadyTerminal(AppError):
    def __init__(self, message: str = "Request is already in a terminal state") -> None:
        super().__init__(message, status_code=status.HTTP_409_CONFLICT)


class NotEditable(AppError):
    def __init__(self, message: str = "Request can no longer be edited") -> None:
        super().__init__(message, status_code=status.HTTP_409_CONFLICT)


class ReservationConflict(AppError):
    """A concurrent writer won the race; recompute and resubmit the whole operation."""

    retryable = True

    def __init__(self, message: str = "Concurrent reservation conflict, please retry") -> None:
        super().__init__(message, status_code=status.HTTP_409_CONFLICT)


async def _app_exception_handler(request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=type(exc).__name__,
            detail=exc.message,
            status_code=exc.status_code,
            retryable=exc.retryable,
        ).model_dump(),
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
