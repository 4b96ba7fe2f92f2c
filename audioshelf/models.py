"""Library entities, import results and the import error taxonomy."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional


class LibraryImportError(Exception):
    """Base class for per-file import failures."""

    kind = "import_error"

    @property
    def description(self) -> str:
        return str(self)


class UnsupportedFormat(LibraryImportError):
    kind = "unsupported_format"

    def __init__(self, extension: str):
        self.extension = extension
        super().__init__(extension)

    @property
    def description(self) -> str:
        return f"Unsupported audio format: {self.extension}"


class DuplicateFile(LibraryImportError):
    kind = "duplicate_file"

    def __init__(self, name: str):
        self.name = name
        super().__init__(name)

    @property
    def description(self) -> str:
        return f"File with similar name already exists: {self.name}"


class InvalidFile(LibraryImportError):
    kind = "invalid_file"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)

    @property
    def description(self) -> str:
        return f"Invalid file: {self.reason}"


class FolderProcessingError(LibraryImportError):
    kind = "folder_processing_error"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)

    @property
    def description(self) -> str:
        return f"Folder processing error: {self.reason}"


class StoreError(Exception):
    """Raised when the library store cannot apply or read changes."""


@dataclass
class AudioEntry:
    id: str
    file_path: str
    file_name: str
    title: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None
    genre: Optional[str] = None
    duration: float = 0.0
    file_size: int = 0
    date_added: datetime = field(default_factory=datetime.now)
    last_played: Optional[datetime] = None
    play_count: int = 0
    current_position: float = 0.0
    artwork_path: Optional[str] = None
    folder_id: Optional[str] = None

    @property
    def display_title(self) -> str:
        return self.title or Path(self.file_name).stem

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.display_title,
            "artist": self.artist,
            "album": self.album,
            "genre": self.genre,
            "duration": self.duration,
            "file_path": self.file_path,
            "file_name": self.file_name,
            "file_size": self.file_size,
            "date_added": self.date_added.isoformat(),
            "last_played": self.last_played.isoformat() if self.last_played else None,
            "play_count": self.play_count,
            "current_position": self.current_position,
            "artwork_path": self.artwork_path,
            "folder_id": self.folder_id,
        }


@dataclass
class Folder:
    id: str
    name: str
    path: str
    date_added: datetime = field(default_factory=datetime.now)
    file_count: int = 0
    artwork_path: Optional[str] = None
    parent_id: Optional[str] = None
    last_played_entry_id: Optional[str] = None
    last_played_position: float = 0.0
    last_played_date: Optional[datetime] = None

    @property
    def is_smart_group(self) -> bool:
        return self.path.startswith("smart_group_")

    def has_playback_state(self) -> bool:
        return self.last_played_position > 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "path": self.path,
            "date_added": self.date_added.isoformat(),
            "file_count": self.file_count,
            "artwork_path": self.artwork_path,
            "parent_id": self.parent_id,
            "smart_group": self.is_smart_group,
            "last_played_entry_id": self.last_played_entry_id,
            "last_played_position": self.last_played_position,
        }


@dataclass
class AudioMetadata:
    title: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None
    genre: Optional[str] = None
    duration: float = 0.0
    file_size: int = 0


@dataclass
class ImportResult:
    path: Path
    success: bool
    error: Optional[BaseException] = None
    failure_reason: Optional[str] = None

    @property
    def file_name(self) -> str:
        return self.path.name

    @property
    def error_kind(self) -> Optional[str]:
        if self.error is None:
            return None
        if isinstance(self.error, LibraryImportError):
            return self.error.kind
        return "io_error"

    @classmethod
    def ok(cls, path: Path) -> "ImportResult":
        return cls(path=path, success=True)

    @classmethod
    def failed(cls, path: Path, error: BaseException) -> "ImportResult":
        if isinstance(error, LibraryImportError):
            reason = error.description
        else:
            reason = str(error) or error.__class__.__name__
        return cls(path=path, success=False, error=error, failure_reason=reason)

    def to_dict(self) -> dict:
        return {
            "path": str(self.path),
            "file_name": self.file_name,
            "success": self.success,
            "error": self.error_kind,
            "failure_reason": self.failure_reason,
        }


@dataclass
class ImportBatch:
    """Outcome of one batch import: per-file results plus any commit failure."""

    results: List[ImportResult] = field(default_factory=list)
    commit_error: Optional[str] = None

    @property
    def succeeded(self) -> List[ImportResult]:
        return [r for r in self.results if r.success]

    @property
    def failed(self) -> List[ImportResult]:
        return [r for r in self.results if not r.success]

    @property
    def committed(self) -> bool:
        return self.commit_error is None

    def to_dict(self) -> dict:
        return {
            "total": len(self.results),
            "succeeded": len(self.succeeded),
            "failed": len(self.failed),
            "commit_error": self.commit_error,
            "results": [r.to_dict() for r in self.results],
        }
