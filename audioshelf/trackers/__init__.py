"""Tracker components for batch imports."""

from .duplicate_guard import DuplicateGuard
from .progress_tracker import ProgressTracker

__all__ = ["DuplicateGuard", "ProgressTracker"]
