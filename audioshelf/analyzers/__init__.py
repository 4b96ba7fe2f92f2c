"""Analyzer components that turn input paths into import work."""

from .directory_walker import DirectoryWalker, FolderNode, FolderTree
from .path_classifier import PathClassifier, PathKind
from .pattern_grouper import PatternGrouper, SmartGroup

__all__ = [
    "DirectoryWalker",
    "FolderNode",
    "FolderTree",
    "PathClassifier",
    "PathKind",
    "PatternGrouper",
    "SmartGroup",
]
