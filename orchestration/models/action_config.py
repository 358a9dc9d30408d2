"""Autonomous action configuration model."""

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Text, UniqueConstraint, Uuid

from orchestration.database import Base, utcnow


class ActionConfig(Base):
    """Per-project toggle for one autonomous action."""

    __tablename__ = "autonomous_action_config"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    action_key = Column(Text, nullable=False)  # 'analyze_code', 'draft_blog_post', ...
    action_name = Column(Text)
    action_category = Column(Text)  # 'github', 'analysis', 'content', 'task', 'notification'
    agent_slug = Column(Text)  # NULL = available to every agent

    is_enabled = Column(Boolean, nullable=False, default=False)
    requires_approval = Column(Boolean, nullable=False, default=True)
    risk_level = Column(Text, nullable=False, default="medium")

    date_created = Column(DateTime, default=utcnow)
    date_updated = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("project_id", "action_key", "agent_slug", name="uq_action_config_key"),
        Index("idx_action_config_project", "project_id"),
        Index("idx_action_config_agent", "agent_slug"),
        {"schema": None},
    )
