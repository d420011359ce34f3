from fastapi import status


class AttendanceError(Exception):
    """Base class for errors raised by the attendance and schedule services."""

    status_code = status.HTTP_400_BAD_REQUEST
    kind = "AttendanceError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict:
        return {"error": self.kind, "message": self.message}


class ValidationError(AttendanceError):
    """Malformed or missing input, e.g. a shift that ends before it starts."""

    status_code = status.HTTP_400_BAD_REQUEST
    kind = "ValidationError"


class ConflictError(AttendanceError):
    """Check-in attempted while the worker already has an open session."""

    status_code = status.HTTP_409_CONFLICT
    kind = "ConflictError"


class NotFoundError(AttendanceError):
    status_code = status.HTTP_404_NOT_FOUND
    kind = "NotFoundError"


class ForbiddenError(AttendanceError):
    status_code = status.HTTP_403_FORBIDDEN
    kind = "ForbiddenError"
