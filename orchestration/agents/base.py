"""Base decision agent with shared rule helpers."""

import logging
from typing import Any, Dict, Iterable, List, Set

from orchestration.schemas.context import AgentExecutionContext, Decision

logger = logging.getLogger(__name__)


class DecisionAgent:
    """Base class for all agents' "should act" rules.

    Subclasses implement ``_run`` as a pure function of the context. Each
    satisfied rule proposes one action (when it is enabled) and adds a fixed
    confidence increment on top of ``BASE_CONFIDENCE``.
    """

    BASE_CONFIDENCE = 0.5
    ACT_REASON = "Found {count} actionable items"
    IDLE_REASON = "No activity requiring attention"

    def decide(self, context: AgentExecutionContext) -> Decision:
        """
        Decide whether to act.

        Args:
            context: Agent execution context

        Returns:
            Decision with confidence clipped to [0, 1]
        """
        enabled = {ac.action_key for ac in context.enabled_actions()}
        decision = self._run(context, enabled)
        decision.confidence = max(0.0, min(1.0, decision.confidence))
        decision.should_act = len(decision.suggested_actions) > 0
        return decision

    def _run(self, context: AgentExecutionContext, enabled: Set[str]) -> Decision:
        """
        Evaluate the agent's rules (to be implemented by subclasses).

        Args:
            context: Agent execution context
            enabled: Keys of enabled actions

        Returns:
            Decision (should_act is derived afterwards)
        """
        raise NotImplementedError

    def _finish(
        self,
        suggested: List[str],
        confidence: float,
        context: Dict[str, Any],
    ) -> Decision:
        if suggested:
            reason = self.ACT_REASON.format(count=len(suggested))
        else:
            reason = self.IDLE_REASON
        return Decision(
            reason=reason,
            confidence=confidence,
            suggested_actions=suggested,
            context=context,
        )

    @staticmethod
    def _has_label(issues_by_label: Dict[str, int], keywords: Iterable[str]) -> bool:
        """Check if any issue label contains one of the keywords (case-insensitive)."""
        keywords = [k.lower() for k in keywords]
        return any(kw in label.lower() for label in issues_by_label for kw in keywords)
