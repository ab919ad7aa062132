"""Error taxonomy for the room file relay.

Every error carries an HTTP status code and a ``kind`` tag so the HTTP layer
can render a uniform ``{"success": false, "message", "error"}`` body and
clients can branch on the cause rather than parse messages.
"""
from typing import Optional


class ErrorKind:
    VALIDATION = "validation_error"
    NOT_FOUND = "not_found"
    IO = "io_error"
    INTERNAL = "internal_error"


class FileShareError(Exception):
    """Base exception for room file relay errors."""
    kind = ErrorKind.INTERNAL

    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class RoomValidationError(FileShareError):
    """Raised when required input is missing or unusable."""
    kind = ErrorKind.VALIDATION

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message, status_code=status_code)


class UploadTooLargeError(RoomValidationError):
    """Raised when an upload exceeds the configured size limit."""

    def __init__(self, limit_bytes: int):
        self.limit_bytes = limit_bytes
        super().__init__(
            f"File exceeds the upload limit of {limit_bytes} bytes",
            status_code=413,
        )


class FileNotFoundInRoomError(FileShareError):
    """Raised when a download names a file the room does not hold."""
    kind = ErrorKind.NOT_FOUND

    def __init__(self, room_id: str, filename: str):
        self.room_id = room_id
        self.filename = filename
        super().__init__("File not found", status_code=404)

    @property
    def logical_path(self) -> str:
        return f"{self.room_id}/{self.filename}"


class StorageIOError(FileShareError):
    """Raised when the storage medium fails a read, write or enumeration."""
    kind = ErrorKind.IO

    def __init__(self, message: str, cause: Optional[OSError] = None):
        self.cause = cause
        super().__init__(message, status_code=500)
