"""FastAPI router for the room file relay.

Endpoints:
    POST /upload                          - Upload one file into a room
    GET  /files/{room_id}                 - List a room's stored names
    GET  /download/{room_id}/{filename}   - Download one stored file
    GET  /uploads/{room_id}/{filename}    - Serve one stored file inline

Handlers are synchronous so FastAPI runs them in its threadpool; disk I/O
never blocks the event loop. Service errors propagate to the exception
handlers registered in ``flowshare.main``.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import FileResponse

from ..errors import FileShareError
from .schemas import ErrorResponse, UploadResponse
from .service import RoomFiles

logger = logging.getLogger(__name__)

router = APIRouter(tags=["files"])

# ---------------------------------------------------------------------------
# Singleton service management
# ---------------------------------------------------------------------------

_room_files: Optional[RoomFiles] = None


def get_room_files() -> Optional[RoomFiles]:
    """Return the global RoomFiles services, or None if not configured."""
    return _room_files


def set_room_files(room_files: Optional[RoomFiles]) -> None:
    """Set (or clear) the global RoomFiles services."""
    global _room_files
    _room_files = room_files


def require_room_files() -> RoomFiles:
    room_files = get_room_files()
    if room_files is None:
        logger.warning("File storage requested before it was configured")
        raise FileShareError("File storage not configured", status_code=503)
    return room_files


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post(
    "/upload",
    response_model=UploadResponse,
    responses={400: {"model": ErrorResponse}, 413: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
def upload_file(
    room_id: Optional[str] = Form(None, alias="roomId"),
    file: Optional[UploadFile] = File(None),
    room_files: RoomFiles = Depends(require_room_files),
) -> UploadResponse:
    """Upload a file to a room.

    Args:
        room_id: Room code shared between devices (form field ``roomId``).
        file: The file to upload.

    Returns:
        UploadResponse carrying the stored name.
    """
    stored = room_files.ingest.ingest(
        room_id,
        file.filename if file is not None else None,
        file.file if file is not None else None,
    )
    return UploadResponse(filename=stored.stored_name)


@router.get(
    "/files/{room_id}",
    response_model=List[str],
    responses={500: {"model": ErrorResponse}},
)
def list_files(room_id: str, room_files: RoomFiles = Depends(require_room_files)) -> List[str]:
    """List the stored names in a room.

    Unknown rooms list as empty. Clients poll this endpoint to discover
    files uploaded from other devices.
    """
    return room_files.listing.list_files(room_id)


@router.get(
    "/download/{room_id}/{filename}",
    response_class=FileResponse,
    responses={404: {"model": ErrorResponse}},
)
def download_file(
    room_id: str,
    filename: str,
    room_files: RoomFiles = Depends(require_room_files),
) -> FileResponse:
    """Download a stored file as an attachment.

    ``filename`` must be a stored name exactly as returned by the listing.
    """
    found = room_files.retrieval.retrieve(room_id, filename)
    logger.info("Serving %s from room %s (%d bytes)", found.stored_name, found.room_id, found.size_bytes)
    return FileResponse(
        path=found.path,
        filename=found.stored_name,
        media_type=found.media_type,
    )


@router.get(
    "/uploads/{room_id}/{filename}",
    response_class=FileResponse,
    responses={404: {"model": ErrorResponse}},
)
def serve_upload(
    room_id: str,
    filename: str,
    room_files: RoomFiles = Depends(require_room_files),
) -> FileResponse:
    """Serve a stored file inline, for previews and direct links.

    Same lookup rules as the download endpoint; only the disposition differs.
    """
    found = room_files.retrieval.retrieve(room_id, filename)
    return FileResponse(path=found.path, media_type=found.media_type)
