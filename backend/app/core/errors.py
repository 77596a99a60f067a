"""
Domain errors raised by the attendance and KPI services.

Every error carries the HTTP status it maps to and a stable ``code`` that
clients can switch on. Only the persistence failures are retryable.
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse


class AttendanceError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST
    message: str = "Attendance request failed"
    retryable: bool = False

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.message
        super().__init__(self.message)

    @property
    def code(self) -> str:
        return type(self).__name__


# --- validation ---


class InvalidLocation(AttendanceError):
    message = "Location data is required"


class LocationInaccurate(AttendanceError):
    message = "GPS accuracy is insufficient. Make sure GPS is enabled and accurate."


class LocationAdjustmentTooFar(AttendanceError):
    message = "Adjusted location is too far from the GPS position"


class OutsideGeofence(AttendanceError):
    message = "Location is outside the office area"


class InvalidRange(AttendanceError):
    message = "Invalid date range"


# --- state conflicts ---


class AlreadyCheckedIn(AttendanceError):
    status_code = status.HTTP_409_CONFLICT
    message = "You have already checked in today"


class AlreadyCheckedOut(AttendanceError):
    status_code = status.HTTP_409_CONFLICT
    message = "You have already checked out today"


class NotCheckedIn(AttendanceError):
    status_code = status.HTTP_409_CONFLICT
    message = "You have not checked in today"


class MissingCheckIn(AttendanceError):
    status_code = status.HTTP_409_CONFLICT
    message = "Check-in data not found"


class CheckoutBeforeCheckIn(AttendanceError):
    status_code = status.HTTP_409_CONFLICT
    message = "Check-out time must be after check-in time"


# --- persistence ---


class CheckInPersistenceFailed(AttendanceError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    message = "Check-in failed. Please try again."
    retryable = True


class CheckoutPersistenceFailed(AttendanceError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    message = "Check-out failed. Please try again."
    retryable = True


async def attendance_error_handler(request: Request, exc: AttendanceError) -> JSONResponse:
    headers = {"Retry-After": "1"} if exc.retryable else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
        headers=headers,
    )
