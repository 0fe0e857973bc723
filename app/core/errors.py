# app/core/errors.py

from fastapi import Request
from fastapi import status as http_status
from fastapi.responses import JSONResponse


class AppointmentError(Exception):
    """Base class for errors surfaced to callers of the appointment workflow."""

    status_code = http_status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def code(self) -> str:
        return type(self).__name__


class Unauthenticated(AppointmentError):
    status_code = http_status.HTTP_401_UNAUTHORIZED


class PermissionDenied(AppointmentError):
    status_code = http_status.HTTP_403_FORBIDDEN


class InvalidArgument(AppointmentError):
    status_code = 422


class NotFound(AppointmentError):
    status_code = http_status.HTTP_404_NOT_FOUND


class InvalidToken(NotFound):
    """The capability token does not resolve to any client."""


class InvalidState(AppointmentError):
    status_code = http_status.HTTP_409_CONFLICT


class AlreadyConfirmed(InvalidState):
    """Confirm was repeated on an appointment that is already confirmed."""


class Internal(AppointmentError):
    status_code = http_status.HTTP_500_INTERNAL_SERVER_ERROR


async def appointment_error_handler(request: Request, exc: AppointmentError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthenticated) else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
        headers=headers,
    )
