"""Artwork files kept in the library's dedicated artwork area."""

import logging
import uuid
from pathlib import Path
from typing import Optional


logger = logging.getLogger("shelf.artwork")

ARTWORK_DIRNAME = "Artwork"


class ArtworkStore:
    """Writes cover images under generated names and resolves stored references.

    References are relative ("Artwork/<name>") so the library directory can
    move without rewriting the store.
    """

    def __init__(self, library_dir: Path):
        self.library_dir = library_dir
        self.artwork_dir = library_dir / ARTWORK_DIRNAME

    def save(self, data: bytes, file_name: str, prefix: str = "") -> Optional[str]:
        """Persist image bytes and return the relative reference, or None on failure."""
        artwork_name = f"{prefix}{uuid.uuid4()}_{self._sanitize(file_name)}.jpg"
        target = self.artwork_dir / artwork_name
        try:
            self.artwork_dir.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            logger.error(f"Failed to save artwork for {file_name}: {e}")
            return None
        return f"{ARTWORK_DIRNAME}/{artwork_name}"

    def save_custom(self, data: bytes, file_name: str) -> str:
        reference = self.save(data, file_name, prefix="custom_")
        if reference is None:
            raise OSError(f"Could not write custom artwork for {file_name}")
        return reference

    def save_custom_folder(self, data: bytes, folder_name: str) -> str:
        reference = self.save(data, folder_name, prefix="custom_folder_")
        if reference is None:
            raise OSError(f"Could not write custom artwork for folder {folder_name}")
        return reference

    def resolve(self, reference: Optional[str]) -> Optional[Path]:
        if not reference:
            return None
        return self.library_dir / reference

    def exists(self, reference: Optional[str]) -> bool:
        path = self.resolve(reference)
        return path is not None and path.is_file()

    def remove(self, reference: Optional[str]) -> None:
        path = self.resolve(reference)
        if path is None:
            return
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not remove artwork {reference}: {e}")

    @staticmethod
    def is_custom(reference: Optional[str]) -> bool:
        return bool(reference) and Path(reference).name.startswith("custom_")

    def _sanitize(self, name: str) -> str:
        invalid_chars = '<>:"/\\|?*'
        for char in invalid_chars:
            name = name.replace(char, "_")
        return name[:120].strip()
