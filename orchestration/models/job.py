"""Orchestration job model."""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, Text, Uuid
from sqlalchemy.orm import relationship, validates

from orchestration.database import Base, JSONType, utcnow
from orchestration.exceptions import InvalidJobTransition
from orchestration.types import JobStatus


class Job(Base):
    """Job represents one invocation of the batch coordinator."""

    __tablename__ = "orchestration_jobs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"))  # Nullable for non-project jobs
    job_type = Column(Text, nullable=False, default="batch")  # 'batch', 'github_analysis', 'retry'
    triggered_by = Column(Text, nullable=False, default="system")
    triggered_by_user_id = Column(Text)
    status = Column(Text, nullable=False, default="pending")

    scheduled_at = Column(DateTime)
    started_at = Column(DateTime)
    completed_at = Column(DateTime)
    timeout_at = Column(DateTime)
    duration_ms = Column(Integer)

    agents_executed = Column(Integer, nullable=False, default=0)
    agents_succeeded = Column(Integer, nullable=False, default=0)
    agents_failed = Column(Integer, nullable=False, default=0)
    tasks_created = Column(Integer, nullable=False, default=0)

    error_message = Column(Text)
    error_code = Column(Text)
    attempt_number = Column(Integer, nullable=False, default=1)
    max_attempts = Column(Integer, nullable=False, default=3)

    input_params = Column(JSONType, default=dict)
    output_summary = Column(JSONType, default=dict)

    date_created = Column(DateTime, default=utcnow)
    date_updated = Column(DateTime, default=utcnow, onupdate=utcnow)

    execution_logs = relationship(
        "ExecutionLog",
        back_populates="job",
        cascade="all, delete-orphan",
        order_by="ExecutionLog.started_at",
    )

    __table_args__ = (
        Index("idx_orch_jobs_project", "project_id"),
        Index("idx_orch_jobs_status", "status"),
        {"schema": None},
    )

    @validates("status")
    def _guard_status(self, key, value):
        value = JobStatus(value).value
        if self.status is not None and self.status != value and JobStatus(self.status).is_terminal:
            raise InvalidJobTransition(self.id, self.status, value)
        return value

    @property
    def is_finalized(self) -> bool:
        return self.status is not None and JobStatus(self.status).is_terminal

    def finalize(
        self,
        status: JobStatus,
        now: datetime,
        error_message: Optional[str] = None,
        error_code: Optional[str] = None,
    ) -> None:
        """Move the job to a terminal status, stamping completion fields."""
        if not status.is_terminal:
            raise ValueError(f"{status.value} is not a terminal status")
        self.status = status.value
        self.completed_at = now
        if self.started_at:
            self.duration_ms = int((now - self.started_at).total_seconds() * 1000)
        if error_message is not None:
            self.error_message = error_message
        if error_code is not None:
            self.error_code = error_code
