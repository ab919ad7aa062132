"""Room file services.

Handles storage of uploaded files inside room namespaces, enumeration of a
room's files and lookup of a single file for download.
Files are stored in: <storage root>/<room id>/<timestamp>-<name>

All three services go through the NamespaceResolver; none of them builds a
room path on its own.
"""
import logging
import mimetypes
import os
import stat
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Callable, List, Optional, Tuple, Union

from ..errors import (
    FileNotFoundInRoomError,
    RoomValidationError,
    StorageIOError,
    UploadTooLargeError,
)
from ..rooms.resolver import NamespaceHandle, NamespaceResolver, sanitize_room_id
from .naming import MillisecondClock, build_stored_name, parse_stored_name, sanitize_filename

logger = logging.getLogger(__name__)

# In-flight uploads are hidden from listing and retrieval by this prefix.
TEMP_PREFIX = ".upload-"

DEFAULT_MAX_UPLOAD_BYTES = 100 * 1024 * 1024
DEFAULT_CHUNK_SIZE = 1024 * 1024

# Upper bound on timestamp bumps when resolving a stored-name collision.
MAX_PUBLISH_ATTEMPTS = 1000


@dataclass(frozen=True)
class StoredUpload:
    """Result of a successful ingest."""
    room_id: str
    stored_name: str
    size_bytes: int


@dataclass(frozen=True)
class RetrievedFile:
    """A file located for download."""
    room_id: str
    stored_name: str
    path: Path
    size_bytes: int
    media_type: str


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning("Could not remove temporary upload %s: %s", path, exc)


def _is_hidden(name: str) -> bool:
    return name.startswith(".")


class IngestService:
    """Accepts uploads into a room.

    The body is streamed into a hidden temporary file in the room namespace,
    fsynced, then hard-linked under its stored name. Linking never replaces an
    existing file, so a same-millisecond upload of the same name moves to the
    next free millisecond instead of overwriting.

    Args:
        resolver: Namespace resolver for the storage root.
        clock: Millisecond clock used for stored-name timestamps.
        max_upload_bytes: Largest accepted body.
        chunk_size: Read size when copying the body to disk.
    """

    def __init__(
        self,
        resolver: NamespaceResolver,
        clock: Optional[Callable[[], int]] = None,
        max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self._resolver = resolver
        self._clock = clock or MillisecondClock()
        self._max_upload_bytes = max_upload_bytes
        self._chunk_size = chunk_size

    @property
    def max_upload_bytes(self) -> int:
        return self._max_upload_bytes

    def ingest(
        self,
        room_id: Optional[str],
        original_name: Optional[str],
        stream: Optional[BinaryIO],
    ) -> StoredUpload:
        """Store an uploaded file in a room.

        Args:
            room_id: Untrusted room id, required.
            original_name: Client-supplied filename; sanitized.
            stream: Readable binary body.

        Returns:
            StoredUpload naming the published file.

        Raises:
            RoomValidationError: Missing room id or file.
            UploadTooLargeError: Body exceeds max_upload_bytes.
            StorageIOError: Writing or publishing failed.
        """
        if room_id is None or not room_id.strip():
            raise RoomValidationError("Room ID required")
        if stream is None:
            raise RoomValidationError("No file uploaded")

        namespace = self._resolver.resolve(room_id)
        safe_name = sanitize_filename(original_name)

        tmp_path, size_bytes = self._write_temporary(namespace, stream)
        try:
            stored_name = self._publish(namespace, tmp_path, safe_name)
        finally:
            _discard(tmp_path)

        logger.info(
            "Stored %s (%d bytes) in room %s", stored_name, size_bytes, namespace.room_id
        )
        return StoredUpload(
            room_id=namespace.room_id,
            stored_name=stored_name,
            size_bytes=size_bytes,
        )

    def _write_temporary(self, namespace: NamespaceHandle, stream: BinaryIO) -> Tuple[Path, int]:
        try:
            fd, tmp_name = tempfile.mkstemp(prefix=TEMP_PREFIX, dir=namespace.path)
        except OSError as exc:
            raise StorageIOError("Failed to store upload", cause=exc) from exc

        tmp_path = Path(tmp_name)
        written = 0
        try:
            with os.fdopen(fd, "wb") as out:
                while True:
                    chunk = stream.read(self._chunk_size)
                    if not chunk:
                        break
                    written += len(chunk)
                    if written > self._max_upload_bytes:
                        raise UploadTooLargeError(self._max_upload_bytes)
                    out.write(chunk)
                out.flush()
                os.fsync(out.fileno())
        except OSError as exc:
            _discard(tmp_path)
            raise StorageIOError("Failed to store upload", cause=exc) from exc
        except Exception:
            _discard(tmp_path)
            raise
        return tmp_path, written

    def _publish(self, namespace: NamespaceHandle, tmp_path: Path, safe_name: str) -> str:
        timestamp = self._clock()
        for _ in range(MAX_PUBLISH_ATTEMPTS):
            stored_name = build_stored_name(timestamp, safe_name)
            try:
                os.link(tmp_path, namespace.path / stored_name)
                return stored_name
            except FileExistsError:
                logger.debug("Stored name %s taken in room %s", stored_name, namespace.room_id)
                timestamp += 1
            except OSError as exc:
                raise StorageIOError("Failed to store upload", cause=exc) from exc
        raise StorageIOError(f"No free stored name for {safe_name}")


class ListingService:
    """Enumerates the stored files of a room."""

    def __init__(self, resolver: NamespaceResolver):
        self._resolver = resolver

    def list_files(self, room_id: str) -> List[str]:
        """Return the stored names in a room, oldest first.

        A room that was never materialized is indistinguishable from an empty
        one and yields an empty list.

        Raises:
            StorageIOError: If the namespace exists but cannot be enumerated.
        """
        namespace = self._resolver.locate(room_id)
        if namespace is None:
            return []

        try:
            with os.scandir(namespace.path) as entries:
                names = [
                    entry.name
                    for entry in entries
                    if not _is_hidden(entry.name) and entry.is_file()
                ]
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise StorageIOError("Failed to list files", cause=exc) from exc

        return sorted(names, key=_chronological_key)


def _chronological_key(stored_name: str) -> Tuple[int, int, str]:
    parsed = parse_stored_name(stored_name)
    if parsed is None:
        return (1, 0, stored_name)
    return (0, parsed[0], stored_name)


class RetrievalService:
    """Locates one stored file for download.

    The requested name is taken verbatim; it is only ever compared against
    what exists directly inside the room's namespace.
    """

    def __init__(self, resolver: NamespaceResolver):
        self._resolver = resolver

    def retrieve(self, room_id: str, stored_name: str) -> RetrievedFile:
        """Find a stored file.

        Raises:
            FileNotFoundInRoomError: The room or file does not exist, or the
                name does not address a regular file in the room.
            StorageIOError: The file exists but cannot be inspected.
        """
        not_found = FileNotFoundInRoomError(sanitize_room_id(room_id), stored_name)

        namespace = self._resolver.locate(room_id)
        if namespace is None or _is_hidden(stored_name):
            raise not_found
        path = namespace.child(stored_name)
        if path is None:
            raise not_found

        try:
            st = path.stat()
        except (FileNotFoundError, NotADirectoryError):
            raise not_found
        except OSError as exc:
            raise StorageIOError("Failed to read file", cause=exc) from exc
        if not stat.S_ISREG(st.st_mode):
            raise not_found

        media_type = mimetypes.guess_type(stored_name)[0] or "application/octet-stream"
        return RetrievedFile(
            room_id=namespace.room_id,
            stored_name=stored_name,
            path=path,
            size_bytes=st.st_size,
            media_type=media_type,
        )


@dataclass(frozen=True)
class RoomFiles:
    """The three room file services sharing one resolver."""
    resolver: NamespaceResolver
    ingest: IngestService
    listing: ListingService
    retrieval: RetrievalService

    @classmethod
    def build(
        cls,
        root: Union[str, Path],
        max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
        max_room_id_length: Optional[int] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        clock: Optional[Callable[[], int]] = None,
    ) -> "RoomFiles":
        if max_room_id_length is None:
            resolver = NamespaceResolver(root)
        else:
            resolver = NamespaceResolver(root, max_room_id_length=max_room_id_length)
        return cls(
            resolver=resolver,
            ingest=IngestService(
                resolver,
                clock=clock,
                max_upload_bytes=max_upload_bytes,
                chunk_size=chunk_size,
            ),
            listing=ListingService(resolver),
            retrieval=RetrievalService(resolver),
        )
