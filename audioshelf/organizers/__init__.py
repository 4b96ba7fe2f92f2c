"""Organizer components that write into the library directory."""

from .artwork_store import ArtworkStore
from .file_organizer import FileOrganizer

__all__ = ["ArtworkStore", "FileOrganizer"]
