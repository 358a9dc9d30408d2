"""Execution log model."""

import uuid

from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, Index, Integer, Text, Uuid
from sqlalchemy.orm import relationship

from orchestration.database import Base, JSONType, utcnow


class ExecutionLog(Base):
    """Record of one agent's attempt within one job."""

    __tablename__ = "orchestration_execution_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    job_id = Column(Uuid, ForeignKey("orchestration_jobs.id", ondelete="CASCADE"), nullable=False)
    schedule_id = Column(Uuid, ForeignKey("agent_orchestration_schedules.id", ondelete="SET NULL"))
    project_id = Column(Uuid)
    agent_id = Column(Uuid)
    agent_slug = Column(Text, nullable=False)
    agent_name = Column(Text)

    phase = Column(Text, nullable=False, default="analyze")  # analyze -> decide -> execute -> verify -> complete
    status = Column(Text, nullable=False, default="pending")
    started_at = Column(DateTime)
    completed_at = Column(DateTime)
    duration_ms = Column(Integer)

    # Decision
    should_act = Column(Boolean, nullable=False, default=True)
    do_nothing_reason = Column(Text)
    confidence_score = Column(Float)
    context_summary = Column(JSONType, default=dict)
    github_data_used = Column(JSONType, default=dict)

    # Actions
    actions_proposed = Column(Integer, nullable=False, default=0)
    actions_executed = Column(Integer, nullable=False, default=0)
    actions_approved = Column(Integer, nullable=False, default=0)
    actions_rejected = Column(Integer, nullable=False, default=0)
    output_data = Column(JSONType, default=dict)
    suggestions_created = Column(JSONType, default=list)
    tasks_created = Column(JSONType, default=list)

    error_message = Column(Text)
    tokens_used = Column(Integer, nullable=False, default=0)
    estimated_cost_cents = Column(Integer, nullable=False, default=0)

    date_created = Column(DateTime, default=utcnow)

    job = relationship("Job", back_populates="execution_logs")

    __table_args__ = (
        Index("idx_orch_logs_job", "job_id"),
        Index("idx_orch_logs_status", "status"),
        {"schema": None},
    )
