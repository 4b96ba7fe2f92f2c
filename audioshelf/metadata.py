"""Audio metadata and embedded artwork extraction."""
import base64
import logging
from pathlib import Path
from typing import Any, List, Optional

import mutagen
from mutagen.flac import Picture

from .analyzers.path_classifier import PathClassifier
from .models import AudioMetadata
from .scope import ResourceScope


logger = logging.getLogger("shelf.metadata")


class MetadataExtractor:
    """Extract metadata from audio files."""

    SUPPORTED_FORMATS = PathClassifier.SUPPORTED_FORMATS

    TITLE_KEYS = ['TIT2', 'TITLE', 'title', '\xa9nam']
    ARTIST_KEYS = ['TPE1', 'ARTIST', 'artist', '\xa9ART']
    ALBUM_KEYS = ['TALB', 'ALBUM', 'album', '\xa9alb']
    GENRE_KEYS = ['TCON', 'GENRE', 'genre', '\xa9gen']

    def __init__(self, scope: Optional[ResourceScope] = None):
        """Initialize the metadata extractor.

        Args:
            scope: Resource scope wrapped around every read
        """
        self.scope = scope or ResourceScope()

    def extract(self, file_path: Path) -> AudioMetadata:
        """Extract metadata from a single audio file.

        Tag failures are not errors: the fields stay empty and duration and
        size fall back to zero.

        Args:
            file_path: Path to the audio file

        Returns:
            AudioMetadata for the file
        """
        metadata = AudioMetadata()
        with self.scope.acquire(file_path):
            try:
                metadata.file_size = file_path.stat().st_size
            except OSError:
                metadata.file_size = 0

            audio = self._open(file_path)
            if audio is None:
                return metadata

            length = getattr(getattr(audio, 'info', None), 'length', None)
            try:
                duration = float(length) if length is not None else 0.0
            except (TypeError, ValueError):
                duration = 0.0
            # NaN and negative lengths both collapse to zero
            metadata.duration = duration if duration > 0 and duration != float('inf') else 0.0

            tags = getattr(audio, 'tags', None)
            if tags:
                metadata.title = self._get_tag(tags, self.TITLE_KEYS)
                metadata.artist = self._get_tag(tags, self.ARTIST_KEYS)
                metadata.album = self._get_tag(tags, self.ALBUM_KEYS)
                metadata.genre = self._get_tag(tags, self.GENRE_KEYS)

        return metadata

    def extract_artwork(self, file_path: Path) -> Optional[bytes]:
        """Return embedded cover image bytes, or None when there is none."""
        with self.scope.acquire(file_path):
            audio = self._open(file_path)
            if audio is None:
                return None
            try:
                return self._find_picture(audio)
            except Exception as e:
                logger.debug(f"Artwork lookup failed for {file_path.name}: {e}")
                return None

    def _open(self, file_path: Path) -> Any:
        try:
            return mutagen.File(file_path)
        except Exception as e:
            logger.debug(f"Could not read tags from {file_path.name}: {e}")
            return None

    def _find_picture(self, audio: Any) -> Optional[bytes]:
        # FLAC keeps pictures outside of the tag block
        pictures = getattr(audio, 'pictures', None)
        if pictures:
            return bytes(pictures[0].data)

        tags = getattr(audio, 'tags', None)
        if not tags:
            return None

        # ID3 (mp3, aiff, wav)
        getall = getattr(tags, 'getall', None)
        if callable(getall):
            frames = getall('APIC')
            if frames:
                return bytes(frames[0].data)

        # MP4 (m4a, m4b, aac in mp4 container)
        if 'covr' in tags:
            covers = tags['covr']
            if covers:
                return bytes(covers[0])

        # Vorbis comments
        if 'metadata_block_picture' in tags:
            for encoded in tags['metadata_block_picture']:
                try:
                    return Picture(base64.b64decode(encoded)).data
                except Exception:
                    continue
        return None

    def _get_tag(self, tags: Any, keys: List[str]) -> Optional[str]:
        """Get the first available tag from a list of possible keys."""
        for key in keys:
            if key in tags:
                value = tags[key]
                # ID3 frames carry their values in .text
                text = getattr(value, 'text', None)
                if isinstance(text, list) and text:
                    return str(text[0])
                if isinstance(value, list):
                    if value:
                        return str(value[0])
                elif value:
                    return str(value)
        return None
