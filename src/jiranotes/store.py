"""
=============================================================================
NOTE STORE
=============================================================================

One JSON file per ticket inside a user-chosen folder:

    <notes_dir>/
        ABC-123.json     {"ticketId":"ABC-123","text":"...","updatedAt":"..."}
        OPS-7.json

The store treats the payload as opaque bytes: what /save receives is
exactly what /load returns.

=============================================================================
KEYS
=============================================================================

Ticket identifiers are uppercase alphanumerics joined by hyphens
("ABC-123"). Keys are stripped and uppercased before validation, so
"abc-123" and "ABC-123" name the same note. Anything else (slashes, dots,
spaces) is rejected, so a key can never point outside the folder.

=============================================================================
CONCURRENT WRITES
=============================================================================

Each save writes a temp file next to the target and os.replace()s it into
place. Two saves of the same ticket race, the last replace wins, and a
reader never sees a half-written file.

=============================================================================
"""

import logging
import os
import re
import tempfile
import threading
from pathlib import Path
from typing import Optional, Union


logger = logging.getLogger(__name__)


TICKET_ID_PATTERN = re.compile(r"^[A-Z0-9]+(?:-[A-Z0-9]+)*$")

NOTE_SUFFIX = ".json"


class NoteStoreError(Exception):
    """A note could not be written. The message is shown to the client."""


class FolderNotSet(NoteStoreError):
    """No notes folder has been chosen yet."""

    def __init__(self):
        super().__init__("notes folder not set")


def normalize_ticket_id(ticket_id: Optional[str]) -> Optional[str]:
    """
    Return the canonical form of a ticket id, or None if it is invalid.

        >>> normalize_ticket_id(" abc-123 ")
        'ABC-123'
        >>> normalize_ticket_id("../etc/passwd") is None
        True
    """
    if not ticket_id:
        return None
    key = ticket_id.strip().upper()
    if not TICKET_ID_PATTERN.match(key):
        return None
    return key


class FileNoteStore:
    """
    Directory-backed note store.

    The folder may be unset at startup and chosen later through
    set_directory(); until then reads find nothing and writes fail with
    FolderNotSet.
    """

    def __init__(self, directory: Optional[Union[str, Path]] = None):
        self._lock = threading.Lock()
        self._directory: Optional[Path] = None
        self.set_directory(directory)

    @property
    def directory(self) -> Optional[Path]:
        with self._lock:
            return self._directory

    def set_directory(self, directory: Optional[Union[str, Path]]) -> None:
        # resolve() follows symlinks, e.g. iCloud Drive folders
        path = Path(directory).expanduser().resolve() if directory else None
        with self._lock:
            self._directory = path
        if path is not None:
            logger.info(f"Notes folder: {path}")

    def path_for(self, ticket_id: str) -> Optional[Path]:
        """Absolute file path for a ticket, or None if unavailable."""
        key = normalize_ticket_id(ticket_id)
        directory = self.directory
        if key is None or directory is None:
            return None
        return directory / f"{key}{NOTE_SUFFIX}"

    def read_note(self, ticket_id: str) -> Optional[bytes]:
        """
        Return the stored payload, or None if there is none.

        Missing folder, invalid key, absent file and unreadable file all
        mean "no note".
        """
        path = self.path_for(ticket_id)
        if path is None:
            return None
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning(f"Cannot read {path}: {e}")
            return None

    def write_note(self, ticket_id: str, data: bytes) -> str:
        """
        Atomically store a payload.

        Returns:
            The absolute path written.

        Raises:
            FolderNotSet: If no folder has been chosen.
            NoteStoreError: For an invalid key or a filesystem failure.
        """
        key = normalize_ticket_id(ticket_id)
        if key is None:
            raise NoteStoreError("invalid ticketId")

        directory = self.directory
        if directory is None:
            raise FolderNotSet()

        target = directory / f"{key}{NOTE_SUFFIX}"
        try:
            directory.mkdir(parents=True, exist_ok=True)
            _atomic_write(target, data)
        except OSError as e:
            logger.warning(f"Write failed for {target}: {e}")
            raise NoteStoreError(e.strerror or str(e)) from e

        logger.info(f"Saved {key} to {target}")
        return str(target)


def _atomic_write(target: Path, data: bytes) -> None:
    fd, tmp = tempfile.mkstemp(dir=str(target.parent), prefix=f".{target.stem}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, target)
    except BaseException:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise
