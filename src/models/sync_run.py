# src/models/sync_run.py

"""Execution record for one synchronization run."""

from dataclasses import dataclass
from datetime import datetime

STATUS_SUCCESS = "success"
STATUS_PARTIAL = "partial_success"
STATUS_FAILURE = "failure"


@dataclass
class SyncRun:
    """Bookkeeping for a batch or single-card sync."""

    started_at: datetime
    mode: str
    finished_at: datetime | None = None
    status: str | None = None
    cards_attempted: int = 0
    cards_succeeded: int = 0
    cards_failed: int = 0
    alerts_created: int = 0
    error: str = ""
    id: int | None = None

    @property
    def execution_time_seconds(self) -> float | None:
        """Wall time of the run, or ``None`` while unfinished."""
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    @property
    def success_rate(self) -> float:
        """Percentage of attempted cards that produced a price."""
        if not self.cards_attempted:
            return 0.0
        return round(
            self.cards_succeeded / self.cards_attempted * 100, 2
        )
