"""Queue job model for the worker pool."""

import uuid

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, Text, Uuid

from orchestration.database import Base, JSONType, utcnow


class QueueJob(Base):
    """A queued request to run the batch coordinator."""

    __tablename__ = "orchestration_queue"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)  # 'orchestration-batch', ...
    job_type = Column(Text, nullable=False)
    data = Column(JSONType, nullable=False)
    status = Column(Text, nullable=False)  # 'waiting', 'delayed', 'active', 'completed', 'failed'
    priority = Column(Integer, nullable=False, default=5)  # Higher runs first
    run_after = Column(DateTime, nullable=False, default=utcnow)
    attempts_made = Column(Integer, nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False, default=3)
    result = Column(JSONType)
    last_error = Column(Text)
    created_at = Column(DateTime, default=utcnow)
    started_at = Column(DateTime)
    finished_at = Column(DateTime)

    __table_args__ = (
        Index("idx_queue_status_priority", "status", "priority"),
        Index("idx_queue_run_after", "run_after"),
        Index("idx_queue_started_at", "started_at"),
        {"schema": None},
    )


class QueueState(Base):
    """Queue-wide flags shared by every worker process."""

    __tablename__ = "orchestration_queue_state"

    name = Column(Text, primary_key=True)  # 'orchestration'
    is_paused = Column(Boolean, nullable=False, default=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
