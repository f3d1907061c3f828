"""
Booking errors and their HTTP rendering.

Services raise the exceptions below; ``register_error_handlers`` turns them
into the standard response envelope so no domain failure crosses the API
boundary as a bare exception.
"""
import logging
from typing import Any, List, Optional

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from workspace_booking.schemas.common import ApiResponse

logger = logging.getLogger(__name__)

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class BookingError(Exception):
    """Base class for booking failures reported to the caller."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, code: Optional[str] = None):
        self.message = message
        self.code = code or self.__class__.__name__
        super().__init__(message)


class ValidationError(BookingError):
    """Malformed request; raised before the database is touched."""


class ConflictError(BookingError):
    """The resource cannot take the booking: missing, disabled or already booked."""

    status_code = status.HTTP_409_CONFLICT

    NOT_FOUND = "not_found"
    UNAVAILABLE = "unavailable"
    TIME_SLOT_TAKEN = "time_slot_taken"


class StateError(BookingError):
    """The requested transition is not allowed from the booking's current status."""


class NotFoundError(BookingError):
    status_code = status.HTTP_404_NOT_FOUND


class InfrastructureError(BookingError):
    """The store failed; the only kind of failure worth retrying."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


def error_envelope(message: str, errors: Optional[List[Any]] = None, code: Optional[str] = None):
    response = ApiResponse(success=False, message=message, errors=errors or [], code=code)
    return jsonable_encoder(response)


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(BookingError)
    async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.code}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content=error_envelope(exc.message, [exc.message], exc.code),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        message = exc.detail if isinstance(exc.detail, str) else "Request failed"
        return JSONResponse(
            status_code=exc.status_code,
            content=error_envelope(message, [message]),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        errors = []
        for error in exc.errors():
            location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
            errors.append(f"{location}: {error.get('msg')}" if location else error.get("msg"))
        return JSONResponse(
            status_code=HTTP_422_UNPROCESSABLE,
            content=error_envelope("Request validation failed", errors, "RequestValidationError"),
        )
