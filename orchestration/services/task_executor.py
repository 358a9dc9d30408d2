"""Turns a positive decision into suggestion records."""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.orm import Session

from orchestration.schemas.context import AgentExecutionContext, Decision
from orchestration.services.suggestions import SuggestionService

logger = logging.getLogger(__name__)


@dataclass
class ExecutionOutcome:
    """Counters and created ids for one agent's actions."""

    actions_proposed: int = 0
    actions_executed: int = 0
    actions_approved: int = 0
    actions_rejected: int = 0
    suggestions_created: List[str] = field(default_factory=list)
    tasks_created: List[str] = field(default_factory=list)


class TaskExecutor:
    """Creates one suggestion per proposed, enabled action."""

    def __init__(self, suggestion_service: Optional[SuggestionService] = None):
        self.suggestion_service = suggestion_service or SuggestionService()

    def execute(
        self,
        db: Session,
        context: AgentExecutionContext,
        decision: Decision,
    ) -> ExecutionOutcome:
        """
        Execute a decision's suggested actions.

        Absent or disabled actions are skipped; a failed creation is logged
        and the remaining actions still run.

        Args:
            db: Database session
            context: Agent context the decision was made on
            decision: Decision to act on

        Returns:
            ExecutionOutcome
        """
        outcome = ExecutionOutcome(actions_proposed=len(decision.suggested_actions))
        agent_slug = context.agent.slug
        payload = decision.model_dump(mode="json")

        for action_key in decision.suggested_actions:
            config = context.action_config(action_key)
            if not config or not config.is_enabled:
                continue

            result = self.suggestion_service.create_suggestion(
                db,
                project_id=context.project_id,
                agent_slug=agent_slug,
                action_key=action_key,
                context=payload,
                requires_approval=config.requires_approval,
            )
            if not result.is_ok:
                logger.error(f"Could not create {action_key} suggestion for {agent_slug}: {result.message}")
                continue

            outcome.suggestions_created.append(result.value)
            outcome.actions_executed += 1
            if not config.requires_approval:
                outcome.actions_approved += 1

        logger.info(
            f"Agent {agent_slug} executed {outcome.actions_executed}/{outcome.actions_proposed} actions"
        )
        return outcome
