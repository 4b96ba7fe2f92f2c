"""Classification of input paths and supported audio formats."""

from enum import Enum
from pathlib import Path

from ..models import UnsupportedFormat


class PathKind(str, Enum):
    FILE = "file"
    DIRECTORY = "directory"
    MISSING = "missing"


class PathClassifier:
    """Decides whether a path is a file, a directory, or missing."""

    SUPPORTED_FORMATS = {".mp3", ".m4a", ".m4b", ".aac", ".wav", ".flac", ".aiff", ".caf"}

    def classify(self, path: Path) -> PathKind:
        if path.is_dir():
            return PathKind.DIRECTORY
        if path.exists():
            return PathKind.FILE
        return PathKind.MISSING

    @classmethod
    def is_supported(cls, path: Path) -> bool:
        return path.suffix.lower() in cls.SUPPORTED_FORMATS

    @classmethod
    def validate_format(cls, path: Path) -> None:
        """Raise UnsupportedFormat for a file outside the allow-list."""
        if not cls.is_supported(path):
            extension = path.suffix[1:]
            raise UnsupportedFormat(extension.upper() if extension else "No extension")

    @staticmethod
    def is_hidden(path: Path) -> bool:
        return path.name.startswith(".")
