"""Stored-name construction for uploaded files.

Files are stored as ``<timestamp>-<sanitized original name>`` where the
timestamp is the upload time in milliseconds since the epoch. The embedded
timestamp is what listing sorts on; there is no separate index.
"""
import re
import threading
import time
from typing import Callable, Optional, Tuple

_FILENAME_DISALLOWED = re.compile(r"[^A-Za-z0-9._-]")
_DOT_RUN = re.compile(r"\.{2,}")
_STORED_NAME = re.compile(r"^(\d+)-(.+)$")

# Leaves room for a 13+ digit timestamp and the separator under the
# common 255-byte filename limit.
MAX_SANITIZED_NAME_LENGTH = 200
_MAX_KEPT_EXTENSION = 16

FALLBACK_NAME = "unnamed"


def sanitize_filename(name: Optional[str]) -> str:
    """Make an untrusted filename safe to embed in a stored name.

    Characters outside ``[A-Za-z0-9._-]`` become ``_``, runs of dots collapse
    to a single dot and overlong names are cut down while keeping a short
    extension. The result never contains a path separator or ``..`` and the
    function is idempotent.

    >>> sanitize_filename("my report (final).pdf")
    'my_report__final_.pdf'
    >>> sanitize_filename("../../etc/passwd")
    '._._etc_passwd'
    """
    safe = _FILENAME_DISALLOWED.sub("_", name or "")

    if len(safe) > MAX_SANITIZED_NAME_LENGTH:
        stem, dot, ext = safe.rpartition(".")
        if dot and stem and len(ext) <= _MAX_KEPT_EXTENSION:
            safe = stem[: MAX_SANITIZED_NAME_LENGTH - len(ext) - 1] + "." + ext
        else:
            safe = safe[:MAX_SANITIZED_NAME_LENGTH]

    safe = _DOT_RUN.sub(".", safe)
    return safe or FALLBACK_NAME


def build_stored_name(timestamp_ms: int, sanitized_name: str) -> str:
    return f"{timestamp_ms}-{sanitized_name}"


def parse_stored_name(stored_name: str) -> Optional[Tuple[int, str]]:
    """Split a stored name into ``(timestamp_ms, sanitized_name)``.

    Returns None for names that were not produced by ``build_stored_name``.
    """
    match = _STORED_NAME.match(stored_name)
    if not match:
        return None
    return int(match.group(1)), match.group(2)


class MillisecondClock:
    """Wall-clock milliseconds that never go backwards within the process.

    Args:
        source: Returns the current time in milliseconds. Defaults to the
            system clock; tests pass a fake.
    """

    def __init__(self, source: Optional[Callable[[], int]] = None):
        self._source = source or (lambda: time.time_ns() // 1_000_000)
        self._last = 0
        self._lock = threading.Lock()

    def __call__(self) -> int:
        with self._lock:
            now = max(self._source(), self._last)
            self._last = now
            return now
