"""Agent suggestion model."""

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Text, Uuid

from orchestration.database import Base, JSONType, utcnow


class Suggestion(Base):
    """Human-reviewable artifact produced when an agent decides to act."""

    __tablename__ = "ai_suggestions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    agent_id = Column(Uuid, ForeignKey("ai_agents.id", ondelete="SET NULL"))
    agent_slug = Column(Text)
    suggestion_type = Column(Text, nullable=False)  # the action key
    title = Column(Text, nullable=False)
    content = Column(JSONType, default=dict)
    status = Column(Text, nullable=False, default="pending")  # 'pending', 'auto_approved', 'approved', 'rejected'
    context = Column(JSONType, default=dict)
    requires_approval = Column(Boolean, nullable=False, default=True)
    date_created = Column(DateTime, default=utcnow)

    __table_args__ = (
        Index("idx_suggestions_project_created", "project_id", "date_created"),
        {"schema": None},
    )
