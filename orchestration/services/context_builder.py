"""Assembles the read-only context an agent reasons about."""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from orchestration.database import utcnow
from orchestration.exceptions import ContextBuildError
from orchestration.models.action_config import ActionConfig
from orchestration.models.project import Project, Task
from orchestration.models.suggestion import Suggestion
from orchestration.schemas.context import (
    ActionConfigSchema,
    AgentConfig,
    AgentExecutionContext,
    GitHubAnalysis,
)
from orchestration.services.result import ErrorKind, Result

logger = logging.getLogger(__name__)

RECENT_ACTIVITY_WINDOW = timedelta(hours=24)


class ContextBuilder:
    """Builds an AgentExecutionContext for one (project, agent) pair."""

    def __init__(self, clock=utcnow):
        self.clock = clock

    def build(
        self,
        db: Session,
        project_id: uuid.UUID,
        job_id: uuid.UUID,
        agent: AgentConfig,
        github_analysis: Optional[GitHubAnalysis],
        action_configs: List[ActionConfigSchema],
    ) -> AgentExecutionContext:
        """
        Assemble the context without mutating anything.

        Raises:
            ContextBuildError: If the store fails while reading
        """
        now = self.clock()

        activity = self.get_recent_activity(db, project_id, now)
        if activity.is_error:
            raise ContextBuildError(f"Recent activity unavailable: {activity.message}")

        project = self.get_project_context(db, project_id)
        if project.is_error:
            raise ContextBuildError(f"Project metadata unavailable: {project.message}")
        if project.is_absent:
            logger.warning(f"Project {project_id} not found, building context without metadata")

        return AgentExecutionContext(
            project_id=project_id,
            job_id=job_id,
            agent=agent,
            github_analysis=github_analysis,
            recent_activity=activity.value or {},
            project_context=project.value or {},
            action_configs=action_configs,
            now=now,
        )

    def get_recent_activity(
        self, db: Session, project_id: uuid.UUID, now: datetime
    ) -> Result[Dict[str, Any]]:
        """Counts and timestamps of internally created work in the last 24h."""
        since = now - RECENT_ACTIVITY_WINDOW
        try:
            suggestions_count, last_suggestion_at = (
                db.query(func.count(Suggestion.id), func.max(Suggestion.date_created))
                .filter(Suggestion.project_id == project_id, Suggestion.date_created > since)
                .one()
            )
            tasks_count, last_task_at = (
                db.query(func.count(Task.id), func.max(Task.date_created))
                .filter(Task.project_id == project_id, Task.date_created > since)
                .one()
            )
            last_competitor_analysis = (
                db.query(func.max(Suggestion.date_created))
                .filter(
                    Suggestion.project_id == project_id,
                    Suggestion.suggestion_type == "competitor_analysis",
                )
                .scalar()
            )
        except SQLAlchemyError as e:
            db.rollback()
            return Result.fail(ErrorKind.STORE_ERROR, str(e))

        return Result.ok(
            {
                "suggestions_last_24h": suggestions_count or 0,
                "tasks_last_24h": tasks_count or 0,
                "last_suggestion_at": last_suggestion_at,
                "last_task_at": last_task_at,
                "last_competitor_analysis": last_competitor_analysis,
            }
        )

    def get_project_context(self, db: Session, project_id: uuid.UUID) -> Result[Dict[str, Any]]:
        """Minimal project metadata."""
        try:
            project = db.query(Project).filter(Project.id == project_id).first()
        except SQLAlchemyError as e:
            db.rollback()
            return Result.fail(ErrorKind.STORE_ERROR, str(e))

        if not project:
            return Result.fail(ErrorKind.NOT_FOUND, f"Project {project_id} not found")

        return Result.ok(
            {
                "name": project.name,
                "description": project.description,
                "status": project.status,
                "has_github": bool(project.github_repo),
            }
        )

    def get_action_configs(
        self, db: Session, project_id: uuid.UUID, agent_slug: str
    ) -> Result[List[ActionConfigSchema]]:
        """Action configs for this agent plus the ones shared by every agent.

        An agent's own row replaces a shared row with the same key.
        """
        try:
            rows = (
                db.query(ActionConfig)
                .filter(
                    ActionConfig.project_id == project_id,
                    or_(ActionConfig.agent_slug == agent_slug, ActionConfig.agent_slug.is_(None)),
                )
                .order_by(ActionConfig.action_key)
                .all()
            )
        except SQLAlchemyError as e:
            db.rollback()
            return Result.fail(ErrorKind.STORE_ERROR, str(e))

        by_key: Dict[str, ActionConfig] = {}
        for row in rows:
            if row.action_key not in by_key or row.agent_slug is not None:
                by_key[row.action_key] = row

        return Result.ok(
            [
                ActionConfigSchema(
                    action_key=row.action_key,
                    is_enabled=bool(row.is_enabled),
                    requires_approval=bool(row.requires_approval),
                    risk_level=row.risk_level or "medium",
                )
                for row in by_key.values()
            ]
        )
