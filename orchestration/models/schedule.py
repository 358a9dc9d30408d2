"""Agent orchestration schedule model."""

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    Time,
    Update,
    Uuid,
    update,
)

from orchestration.database import Base, JSONType, utcnow

ALL_DAYS = [0, 1, 2, 3, 4, 5, 6]  # 0=Sunday .. 6=Saturday


class Schedule(Base):
    """When one agent may run for one project."""

    __tablename__ = "agent_orchestration_schedules"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    agent_slug = Column(Text, nullable=False)

    is_enabled = Column(Boolean, nullable=False, default=True)
    schedule_type = Column(Text, nullable=False, default="daily")
    cron_expression = Column(Text)
    timezone = Column(Text, default="UTC")

    # Run window
    run_after_time = Column(Time)
    run_before_time = Column(Time)
    run_on_days = Column(JSONType, default=lambda: list(ALL_DAYS))

    # Limits
    min_interval_minutes = Column(Integer, nullable=False, default=60)
    max_runs_per_day = Column(Integer, nullable=False, default=24)
    cooldown_after_error_minutes = Column(Integer, nullable=False, default=30)
    priority = Column(Integer, nullable=False, default=5)  # 1-10, higher runs first
    allow_concurrent = Column(Boolean, nullable=False, default=False)

    # Running counters
    last_run_at = Column(DateTime)
    last_success_at = Column(DateTime)
    last_failure_at = Column(DateTime)
    consecutive_failures = Column(Integer, nullable=False, default=0)
    total_runs = Column(Integer, nullable=False, default=0)
    total_successes = Column(Integer, nullable=False, default=0)

    date_created = Column(DateTime, default=utcnow)
    date_updated = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("priority BETWEEN 1 AND 10", name="ck_schedule_priority"),
        Index("idx_orch_schedules_project", "project_id"),
        Index("idx_orch_schedules_enabled", "is_enabled"),
        {"schema": None},
    )

    @classmethod
    def success_update(cls, schedule_id: uuid.UUID, now: datetime) -> Update:
        """UPDATE bumping counters after a successful (or do-nothing) attempt.

        Counters are incremented in SQL so concurrent jobs for the same
        schedule do not lose updates.
        """
        return (
            update(cls)
            .where(cls.id == schedule_id)
            .values(
                last_run_at=now,
                last_success_at=now,
                consecutive_failures=0,
                total_runs=cls.total_runs + 1,
                total_successes=cls.total_successes + 1,
            )
            .execution_options(synchronize_session=False)
        )

    @classmethod
    def failure_update(cls, schedule_id: uuid.UUID, now: datetime) -> Update:
        """UPDATE bumping counters after a failed attempt."""
        return (
            update(cls)
            .where(cls.id == schedule_id)
            .values(
                last_run_at=now,
                last_failure_at=now,
                consecutive_failures=cls.consecutive_failures + 1,
                total_runs=cls.total_runs + 1,
            )
            .execution_options(synchronize_session=False)
        )
