"""Domain errors raised by the scheduling and booking services.

Every error carries a stable ``kind`` and a human-readable message. The API
layer turns them into HTTP responses; services never build HTTP responses
themselves.
"""

import enum
import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ErrorKind(str, enum.Enum):
    """Stable error kinds exposed to callers."""

    NOT_FOUND = "NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"
    INVALID_WEEK = "INVALID_WEEK"
    DATE_MISMATCH = "DATE_MISMATCH"
    DEADLINE_EXCEEDED = "DEADLINE_EXCEEDED"
    CONFLICT = "CONFLICT"
    SLOT_UNAVAILABLE = "SLOT_UNAVAILABLE"
    BOOKINGS_CLOSED = "BOOKINGS_CLOSED"
    INVALID_STATE = "INVALID_STATE"
    INVALID_REQUEST = "INVALID_REQUEST"


HTTP_STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.INVALID_WEEK: status.HTTP_400_BAD_REQUEST,
    ErrorKind.DATE_MISMATCH: status.HTTP_400_BAD_REQUEST,
    ErrorKind.DEADLINE_EXCEEDED: status.HTTP_400_BAD_REQUEST,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.SLOT_UNAVAILABLE: status.HTTP_409_CONFLICT,
    ErrorKind.BOOKINGS_CLOSED: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INVALID_STATE: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INVALID_REQUEST: status.HTTP_400_BAD_REQUEST,
}


class DomainError(Exception):
    """Base class for expected, caller-visible failures."""

    kind: ErrorKind = ErrorKind.INVALID_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def status_code(self) -> int:
        return HTTP_STATUS_BY_KIND[self.kind]

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(kind={self.kind.value}, message='{self.message}')>"


class NotFoundError(DomainError):
    kind = ErrorKind.NOT_FOUND


class ForbiddenError(DomainError):
    kind = ErrorKind.FORBIDDEN


class InvalidWeekError(DomainError):
    kind = ErrorKind.INVALID_WEEK


class DateMismatchError(DomainError):
    kind = ErrorKind.DATE_MISMATCH


class DeadlineExceededError(DomainError):
    kind = ErrorKind.DEADLINE_EXCEEDED


class ConflictError(DomainError):
    kind = ErrorKind.CONFLICT


class SlotUnavailableError(DomainError):
    kind = ErrorKind.SLOT_UNAVAILABLE


class BookingsClosedError(DomainError):
    kind = ErrorKind.BOOKINGS_CLOSED


class InvalidStateError(DomainError):
    kind = ErrorKind.INVALID_STATE


class InvalidRequestError(DomainError):
    kind = ErrorKind.INVALID_REQUEST


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Render a domain error as a JSON response."""
    logger.info(
        f"Domain error on {request.method} {request.url.path}: {exc.kind.value} - {exc.message}"
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"status": "fail", "kind": exc.kind.value, "message": exc.message},
    )


def register_error_handlers(app: FastAPI) -> None:
    """Attach domain error handlers to the application."""
    app.add_exception_handler(DomainError, domain_error_handler)
