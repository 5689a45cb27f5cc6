"""
Exception handlers translating engine errors into JSON responses.

Services raise domain errors only; the status code is decided here.

    not found            404
    business conflict    409 (capacity, family rules, retryable conflicts)
    invalid transition   422
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from rsvp_engine.core.exceptions import (
    AdmissionError,
    AttendeeNotFoundError,
    CapacityExceededError,
    EventNotFoundError,
    FamilyLimitExceededError,
    InvalidStatusTransitionError,
    PrimaryNotGoingError,
    WaitlistTransactionConflictError,
)
from rsvp_engine.core.logging import get_logger

logger = get_logger(__name__)

STATUS_CODES = {
    EventNotFoundError: status.HTTP_404_NOT_FOUND,
    AttendeeNotFoundError: status.HTTP_404_NOT_FOUND,
    CapacityExceededError: status.HTTP_409_CONFLICT,
    PrimaryNotGoingError: status.HTTP_409_CONFLICT,
    FamilyLimitExceededError: status.HTTP_409_CONFLICT,
    WaitlistTransactionConflictError: status.HTTP_409_CONFLICT,
    InvalidStatusTransitionError: 422,  # Unprocessable Content
}


def status_code_for(exc: AdmissionError) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_CODES:
            return STATUS_CODES[cls]
    return status.HTTP_400_BAD_REQUEST


async def admission_error_handler(request: Request, exc: AdmissionError) -> JSONResponse:
    status_code = status_code_for(exc)
    logger.info("admission_error", code=exc.code, status_code=status_code, message=exc.message)

    headers = {"Retry-After": "1"} if exc.retryable else None
    return JSONResponse(status_code=status_code, content=exc.to_dict(), headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AdmissionError, admission_error_handler)
