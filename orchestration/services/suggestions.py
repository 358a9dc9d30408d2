"""Suggestion creation for the approval workflow."""

import logging
import uuid
from typing import Any, Dict

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from orchestration.models.agent import Agent
from orchestration.models.suggestion import Suggestion
from orchestration.services.result import ErrorKind, Result

logger = logging.getLogger(__name__)


class SuggestionService:
    """Creates suggestions; accepting or rejecting them happens elsewhere."""

    def create_suggestion(
        self,
        db: Session,
        project_id: uuid.UUID,
        agent_slug: str,
        action_key: str,
        context: Dict[str, Any],
        requires_approval: bool,
    ) -> Result[str]:
        """
        Persist one suggestion.

        Args:
            db: Database session
            project_id: Project the suggestion belongs to
            agent_slug: Proposing agent
            action_key: Proposed action
            context: Decision context, stored verbatim
            requires_approval: Seeds status 'pending' (True) or 'auto_approved'

        Returns:
            Result carrying the new suggestion id
        """
        try:
            agent = db.query(Agent).filter(Agent.slug == agent_slug).first()
            if not agent:
                return Result.fail(ErrorKind.NOT_FOUND, f"Agent {agent_slug} not found")

            suggestion = Suggestion(
                project_id=project_id,
                agent_id=agent.id,
                agent_slug=agent_slug,
                suggestion_type=action_key,
                title=f"{agent_slug} suggestion: {action_key}",
                content=context,
                status="pending" if requires_approval else "auto_approved",
                context=context,
                requires_approval=requires_approval,
            )
            db.add(suggestion)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to create suggestion {action_key} for {agent_slug}: {e}")
            return Result.fail(ErrorKind.STORE_ERROR, str(e))

        return Result.ok(str(suggestion.id))
