"""GitHub analysis cache model."""

import uuid

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    Uuid,
)

from orchestration.database import Base, JSONType, utcnow


class GitHubAnalysisCache(Base):
    """Time-windowed repository metrics snapshot."""

    __tablename__ = "github_analysis_cache"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    project_id = Column(Uuid, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    period_type = Column(Text, nullable=False, default="daily")
    period_start = Column(DateTime, nullable=False)
    period_end = Column(DateTime, nullable=False)

    commits_count = Column(Integer, default=0)
    commits_by_author = Column(JSONType, default=dict)
    files_changed = Column(Integer, default=0)
    lines_added = Column(Integer, default=0)
    lines_removed = Column(Integer, default=0)

    prs_opened = Column(Integer, default=0)
    prs_merged = Column(Integer, default=0)
    prs_closed = Column(Integer, default=0)
    avg_pr_review_hours = Column(Float)
    avg_pr_merge_hours = Column(Float)

    issues_opened = Column(Integer, default=0)
    issues_closed = Column(Integer, default=0)
    avg_issue_resolution_hours = Column(Float)
    issues_by_label = Column(JSONType, default=dict)

    velocity_score = Column(Float)
    velocity_trend = Column(Text)  # 'increasing', 'stable', 'decreasing'
    velocity_change_percent = Column(Float)
    active_contributors = Column(Integer, default=0)
    hot_spots = Column(JSONType, default=list)  # [{path, changes, risk_score}]

    data_hash = Column(Text)
    analyzed_at = Column(DateTime, default=utcnow)
    expires_at = Column(DateTime)
    is_stale = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("project_id", "period_type", "period_start", name="uq_github_cache_window"),
        Index("idx_github_cache_project", "project_id"),
        {"schema": None},
    )
