"""General agent: cross-cutting housekeeping."""

from typing import Set

from orchestration.agents.base import DecisionAgent
from orchestration.schemas.context import AgentExecutionContext, Decision


class GeneralAgent(DecisionAgent):
    """Always offers a status update when that action is enabled."""

    STATUS_BOOST = 0.1

    ACT_REASON = "Found {count} general tasks to process"
    IDLE_REASON = "No general tasks requiring attention"

    def _run(self, context: AgentExecutionContext, enabled: Set[str]) -> Decision:
        suggested = []
        confidence = self.BASE_CONFIDENCE

        if "update_status" in enabled:
            suggested.append("update_status")
            confidence += self.STATUS_BOOST

        return self._finish(suggested, confidence, {})
