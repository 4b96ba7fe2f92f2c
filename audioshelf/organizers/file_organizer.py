"""Copying imported audio into the library's media area."""

import logging
import shutil
import uuid
from pathlib import Path
from typing import Optional

from ..scope import ResourceScope


logger = logging.getLogger("shelf.file_organizer")

MEDIA_DIRNAME = "Media"


class FileOrganizer:
    """Handles byte copies into the library under generated storage keys."""

    def __init__(self, library_dir: Path, scope: Optional[ResourceScope] = None):
        """Initialize the file organizer.

        Args:
            library_dir: Root directory of the library
            scope: Resource scope wrapped around source reads
        """
        self.library_dir = library_dir
        self.media_dir = library_dir / MEDIA_DIRNAME
        self.scope = scope or ResourceScope()

    @staticmethod
    def storage_key_for(source: Path) -> str:
        """Fresh storage key; the uuid prefix keeps it distinct from the original name."""
        return f"{uuid.uuid4()}_{source.stem}{source.suffix}"

    def copy_into_library(self, source: Path) -> str:
        """Copy source bytes to a fresh storage key and return the key.

        Args:
            source: Original audio file

        Returns:
            Storage key relative to the media directory
        """
        storage_key = self.storage_key_for(source)
        target = self.media_dir / storage_key
        self.media_dir.mkdir(parents=True, exist_ok=True)
        with self.scope.acquire(source):
            try:
                shutil.copyfile(source, target)
            except OSError:
                target.unlink(missing_ok=True)
                raise
        logger.debug(f"Copied {source.name} to {storage_key}")
        return storage_key

    def resolve(self, storage_key: str) -> Path:
        return self.media_dir / storage_key

    def remove(self, storage_key: Optional[str]) -> None:
        if not storage_key:
            return
        try:
            self.resolve(storage_key).unlink(missing_ok=True)
        except OSError as e:
            logger.error(f"Error removing {storage_key}: {e}")
