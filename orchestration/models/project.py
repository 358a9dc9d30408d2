"""Project and Task models."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Index, Text, Uuid

from orchestration.database import Base, utcnow


class Project(Base):
    """Project that agents are orchestrated for."""

    __tablename__ = "projects"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    description = Column(Text)
    status = Column(Text, nullable=False, default="active")  # 'active', 'paused', 'archived'
    github_repo = Column(Text)  # 'owner/name'
    date_created = Column(DateTime, default=utcnow)


class Task(Base):
    """Project task (todo), counted as recent internal activity."""

    __tablename__ = "todos"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    title = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default="open")
    date_created = Column(DateTime, default=utcnow)

    __table_args__ = (
        Index("idx_todos_project_created", "project_id", "date_created"),
        {"schema": None},
    )
