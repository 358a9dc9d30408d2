"""Agent model."""

import uuid

from sqlalchemy import Boolean, Column, DateTime, Text, Uuid

from orchestration.database import Base, JSONType, utcnow


class Agent(Base):
    """An AI agent that can be scheduled against projects."""

    __tablename__ = "ai_agents"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    slug = Column(Text, nullable=False, unique=True)  # 'developer', 'researcher', ...
    name = Column(Text, nullable=False)
    capabilities = Column(JSONType, default=list)
    autonomy_level = Column(Text, default="suggest")
    is_active = Column(Boolean, default=True)
    date_created = Column(DateTime, default=utcnow)
