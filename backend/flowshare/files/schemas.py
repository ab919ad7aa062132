"""Pydantic schemas for the room file relay.

- UploadResponse: body returned by POST /upload on success
- ErrorResponse: uniform failure body for every endpoint
- ClientConfigResponse: polling cadence and limits advertised to clients
"""
from typing import Optional

from pydantic import BaseModel, Field


class UploadResponse(BaseModel):
    """Response after a successful upload.

    ``filename`` is the stored name; clients pass it back verbatim to
    GET /download/{roomId}/{filename}.
    """
    success: bool = Field(True, description="Always true on success")
    filename: str = Field(..., description="Stored name of the uploaded file")
    message: str = Field("File uploaded successfully", description="Result description")


class ErrorResponse(BaseModel):
    """Failure body shared by all endpoints.

    ``error`` tags the cause (validation_error, not_found, io_error,
    internal_error) so clients can branch without parsing ``message``.
    """
    success: bool = Field(False, description="Always false on failure")
    message: str = Field(..., description="Human readable cause")
    error: str = Field(..., description="Error kind")
    path: Optional[str] = Field(None, description="room/file path of a missing download")


class ClientConfigResponse(BaseModel):
    """Settings clients need to follow the sync contract.

    Returned by GET /client-config so clients poll at the server's cadence
    and can refuse oversized files before sending them.
    """
    poll_interval_seconds: float = Field(..., description="How often clients should re-list a room")
    max_upload_bytes: int = Field(..., description="Largest accepted upload")
