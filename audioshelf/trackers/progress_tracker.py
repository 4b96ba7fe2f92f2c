"""Progress tracking for batch imports."""

from typing import Dict

from ..models import ImportResult


class ProgressTracker:
    """Tracks counters and the current stage while a batch import runs."""

    STAGES = ("idle", "classifying", "walking", "grouping", "validating", "extracting", "persisting", "done")

    def __init__(self):
        """Initialize the progress tracker."""
        self.reset()

    def set_stage(self, stage: str):
        """Move to a named stage of the import state machine."""
        if stage not in self.STAGES:
            raise ValueError(f"Unknown stage: {stage}")
        self.stage = stage

    def record(self, result: ImportResult):
        """Count one per-file outcome.

        Args:
            result: Result recorded for a file
        """
        self.stats["total_processed"] += 1
        if result.success:
            self.stats["successful"] += 1
        else:
            self.stats["errors"] += 1
            kind = result.error_kind or "unknown"
            self.stats["errors_by_kind"][kind] = self.stats["errors_by_kind"].get(kind, 0) + 1

    def add_folders(self, count: int):
        self.stats["folders_touched"] += count

    def add_smart_groups(self, count: int):
        self.stats["smart_groups"] += count

    def get_stats(self) -> Dict:
        """Get current statistics.

        Returns:
            Dictionary containing current stats
        """
        stats = self.stats.copy()
        stats["errors_by_kind"] = dict(self.stats["errors_by_kind"])
        stats["stage"] = self.stage
        return stats

    def reset(self):
        """Reset all statistics to zero."""
        self.stage = "idle"
        self.stats = {
            "total_processed": 0,
            "successful": 0,
            "errors": 0,
            "errors_by_kind": {},
            "folders_touched": 0,
            "smart_groups": 0,
        }
