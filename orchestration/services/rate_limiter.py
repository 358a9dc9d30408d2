"""Sliding-window limiter for job starts, shared by every queue worker process."""

import logging
from datetime import datetime, timedelta

from sqlalchemy import func
from sqlalchemy.orm import Session

from orchestration.models.queue_job import QueueJob

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    At most ``max_calls`` job starts per ``time_window`` seconds.

    Starts are read from ``orchestration_queue.started_at`` so the budget is
    the same for every process using the table. Call it inside the claim
    transaction, after the queue-state row is locked.

    Usage:
        limiter = RateLimiter(max_calls=5, time_window=60)
        if limiter.has_capacity(db, now):
            ...  # claim a job
    """

    def __init__(self, max_calls: int = 5, time_window: float = 60):
        self.max_calls = max_calls
        self.time_window = time_window

    def _window_start(self, now: datetime) -> datetime:
        return now - timedelta(seconds=self.time_window)

    def recent_starts(self, db: Session, now: datetime) -> int:
        """Jobs started inside the current window."""
        return (
            db.query(func.count(QueueJob.id))
            .filter(QueueJob.started_at.isnot(None), QueueJob.started_at > self._window_start(now))
            .scalar()
        )

    def has_capacity(self, db: Session, now: datetime) -> bool:
        started = self.recent_starts(db, now)
        if started >= self.max_calls:
            logger.info(f"Rate limit reached ({started}/{self.max_calls} in {self.time_window}s)")
            return False
        return True

    def get_remaining_calls(self, db: Session, now: datetime) -> int:
        return max(0, self.max_calls - self.recent_starts(db, now))
