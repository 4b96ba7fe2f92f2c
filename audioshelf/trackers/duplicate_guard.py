"""Duplicate detection for import candidates."""
import logging
from pathlib import Path
from typing import Set

from ..models import DuplicateFile


logger = logging.getLogger("shelf.duplicate_guard")


class DuplicateGuard:
    """Decides whether a candidate file is already in the library.

    Every import copies bytes under a freshly generated storage key, never one
    derived from the original filename, so no candidate can collide with an
    existing key. Re-importing the same source creates a second entry.
    """

    def is_duplicate(self, candidate: Path, existing_storage_keys: Set[str]) -> bool:
        """Check a candidate against the keys already in the library.

        Args:
            candidate: Source file about to be imported
            existing_storage_keys: Storage keys of persisted entries

        Returns:
            True if the candidate should be skipped
        """
        return candidate.name in existing_storage_keys

    def check(self, candidate: Path, existing_storage_keys: Set[str]) -> None:
        """Raise DuplicateFile when is_duplicate holds."""
        if self.is_duplicate(candidate, existing_storage_keys):
            logger.info(f"Skipping {candidate.name} (already in library)")
            raise DuplicateFile(candidate.name)
