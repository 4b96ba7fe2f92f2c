"""Directory expansion into a folder tree for import."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from ..scope import ResourceScope
from .path_classifier import PathClassifier


logger = logging.getLogger("shelf.walker")

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png"}
COMMON_ARTWORK_NAMES = ("cover", "album", "folder", "artwork")


def natural_key(name: str):
    """Sort key ordering "Chapter 2" before "Chapter 10", ignoring case."""
    return [int(part) if part.isdigit() else part.lower() for part in re.split(r"(\d+)", name)]


@dataclass
class FolderNode:
    """One directory discovered during a walk; no store state attached."""

    key: str
    name: str
    source_dir: Path
    parent_key: Optional[str] = None
    files: List[Path] = field(default_factory=list)
    artwork_file: Optional[Path] = None


@dataclass
class FolderTree:
    root_key: Optional[str] = None
    nodes: Dict[str, FolderNode] = field(default_factory=dict)

    def add(self, node: FolderNode) -> None:
        self.nodes.setdefault(node.key, node)

    def ordered(self) -> List[FolderNode]:
        """Nodes in discovery order: every parent precedes its children."""
        return list(self.nodes.values())

    def file_pairs(self) -> List[tuple[Path, FolderNode]]:
        return [(f, node) for node in self.nodes.values() for f in node.files]

    @property
    def total_files(self) -> int:
        return sum(len(n.files) for n in self.nodes.values())


class DirectoryWalker:
    """Recursively expands directories into (folder, audio files) groups."""

    def __init__(self, scope: Optional[ResourceScope] = None, classifier: Optional[PathClassifier] = None):
        self.scope = scope or ResourceScope()
        self.classifier = classifier or PathClassifier()

    def walk(self, root: Path, tree: Optional[FolderTree] = None) -> FolderTree:
        """Walk root and return its folder tree.

        Args:
            root: Directory selected for import
            tree: Existing tree to extend (several roots in one batch)

        Returns:
            FolderTree with one node per directory level
        """
        tree = tree if tree is not None else FolderTree()
        root = root.absolute()
        if tree.root_key is None:
            tree.root_key = str(root)
        self._walk_directory(root, tree)
        return tree

    def _walk_directory(self, directory: Path, tree: FolderTree) -> None:
        key = str(directory)
        parent_key = str(directory.parent) if str(directory.parent) in tree.nodes else None
        if key in tree.nodes:
            # Walked earlier as its own root; attach it under this walk's parent.
            existing = tree.nodes[key]
            if existing.parent_key is None and parent_key is not None:
                existing.parent_key = parent_key
            return
        node = FolderNode(key=key, name=directory.name, source_dir=directory, parent_key=parent_key)

        with self.scope.acquire(directory):
            try:
                items = sorted(
                    (p for p in directory.iterdir() if not self.classifier.is_hidden(p)),
                    key=lambda p: natural_key(p.name),
                )
            except OSError as e:
                logger.warning(f"Skipping {directory}: {e}")
                return

        tree.add(node)
        node.artwork_file = self.detect_artwork(items)

        subdirs: List[Path] = []
        for item in items:
            with self.scope.acquire(item):
                try:
                    is_dir = item.is_dir()
                except OSError as e:
                    logger.warning(f"Could not stat {item}: {e}")
                    continue
            if is_dir:
                subdirs.append(item)
            elif self.classifier.is_supported(item):
                node.files.append(item)

        for subdir in subdirs:
            self._walk_directory(subdir, tree)

    @staticmethod
    def detect_artwork(items: List[Path], matching_name: Optional[str] = None) -> Optional[Path]:
        """Pick a cover image among directory items.

        An image whose stem equals matching_name wins; otherwise the first
        image named like cover/album/folder/artwork.
        """
        images = [p for p in items if p.suffix.lower() in IMAGE_EXTENSIONS]
        if matching_name:
            wanted = matching_name.lower()
            for image in images:
                if image.stem.lower() == wanted:
                    return image
        for image in images:
            lowered = image.name.lower()
            if any(lowered.startswith(name) for name in COMMON_ARTWORK_NAMES):
                return image
        return None


COMMON_PREFIX_MARKERS = (" - ", " chapter", "_chapter", " ch", "_ch", " - part", "_part")


def common_file_prefix(file_name: str) -> str:
    """Part of a filename before chapter/part markers ("Book - Chapter 1" -> "Book")."""
    stem = Path(file_name).stem
    lowered = stem.lower()
    for marker in COMMON_PREFIX_MARKERS:
        index = lowered.find(marker)
        if index != -1:
            return stem[:index].strip()
    return stem.strip()
