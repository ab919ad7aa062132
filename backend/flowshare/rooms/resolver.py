"""Room namespace resolution.

Maps an untrusted room identifier to a directory under the storage root:
``<root>/<sanitized room id>/``. This is the only place that turns room ids
into filesystem paths; the file services address storage exclusively through
the ``NamespaceHandle`` returned here.
"""
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from ..errors import RoomValidationError, StorageIOError

logger = logging.getLogger(__name__)

_ROOM_ID_DISALLOWED = re.compile(r"[^A-Za-z0-9]")

DEFAULT_MAX_ROOM_ID_LENGTH = 64


def sanitize_room_id(raw: str) -> str:
    """Strip every character outside ``[A-Za-z0-9]``.

    >>> sanitize_room_id("abc-123!")
    'abc123'
    """
    return _ROOM_ID_DISALLOWED.sub("", raw or "")


@dataclass(frozen=True)
class NamespaceHandle:
    """A materialized (or located) room namespace."""
    room_id: str
    path: Path

    def child(self, name: str) -> Optional[Path]:
        """Return the path of ``name`` directly inside this namespace.

        The name is not rewritten. Anything that would resolve outside the
        namespace, or to the namespace itself, yields None.
        """
        if not name or name in (".", "..") or "/" in name or "\\" in name or "\x00" in name:
            return None
        candidate = self.path / name
        if candidate.parent != self.path:
            return None
        return candidate


class NamespaceResolver:
    """Resolve room ids to per-room directories under a storage root.

    Args:
        root: Storage root directory. Created on demand.
        max_room_id_length: Longest sanitized room id accepted by ``resolve``.
    """

    def __init__(self, root: Union[str, Path], max_room_id_length: int = DEFAULT_MAX_ROOM_ID_LENGTH):
        self._root = Path(root)
        self._max_room_id_length = max_room_id_length

    @property
    def root(self) -> Path:
        return self._root

    def ensure_root(self) -> None:
        """Create the storage root if it does not exist yet."""
        try:
            self._root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageIOError("Failed to create storage root", cause=exc) from exc

    def _usable(self, room_id: str) -> bool:
        return bool(room_id) and len(room_id) <= self._max_room_id_length

    def resolve(self, raw_room_id: str) -> NamespaceHandle:
        """Sanitize a room id and materialize its namespace if missing.

        Safe to call repeatedly and from concurrent requests: an existing
        directory is not an error.

        Raises:
            RoomValidationError: If nothing usable survives sanitization.
            StorageIOError: If the directory cannot be created.
        """
        room_id = sanitize_room_id(raw_room_id)
        if not room_id:
            raise RoomValidationError("Room ID must contain letters or digits")
        if len(room_id) > self._max_room_id_length:
            raise RoomValidationError(
                f"Room ID must be at most {self._max_room_id_length} characters"
            )

        path = self._root / room_id
        try:
            path.mkdir(parents=True, exist_ok=True)
        except FileExistsError as exc:
            # A regular file squatting on the room's name.
            raise StorageIOError(f"Room namespace {room_id} is not a directory", cause=exc) from exc
        except OSError as exc:
            raise StorageIOError(f"Failed to create room namespace {room_id}", cause=exc) from exc

        logger.debug("Resolved room %r to %s", raw_room_id, path)
        return NamespaceHandle(room_id=room_id, path=path)

    def locate(self, raw_room_id: str) -> Optional[NamespaceHandle]:
        """Return the namespace for a room id without creating it.

        Returns None when the room has never been materialized or when the
        id sanitizes to something ``resolve`` would reject.
        """
        room_id = sanitize_room_id(raw_room_id)
        if not self._usable(room_id):
            return None
        path = self._root / room_id
        if not path.is_dir():
            return None
        return NamespaceHandle(room_id=room_id, path=path)
