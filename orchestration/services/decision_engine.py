"""Per-agent "should act" dispatch."""

import logging
from typing import Dict, Optional, Type

from orchestration.agents.base import DecisionAgent
from orchestration.agents.designer import DesignerAgent
from orchestration.agents.developer import DeveloperAgent
from orchestration.agents.general import GeneralAgent
from orchestration.agents.marketer import MarketerAgent
from orchestration.agents.researcher import ResearcherAgent
from orchestration.agents.seo_writer import SeoWriterAgent
from orchestration.schemas.context import AgentExecutionContext, Decision

logger = logging.getLogger(__name__)

DEFAULT_AGENTS: Dict[str, Type[DecisionAgent]] = {
    "developer": DeveloperAgent,
    "researcher": ResearcherAgent,
    "marketer": MarketerAgent,
    "seo_writer": SeoWriterAgent,
    "seo": SeoWriterAgent,
    "designer": DesignerAgent,
    "general": GeneralAgent,
}


class DecisionEngine:
    """Routes a context to the decision agent registered for its slug."""

    NO_ACTIONS_REASON = "No actions are enabled for this agent"

    def __init__(self, agents: Optional[Dict[str, Type[DecisionAgent]]] = None):
        # Agent registry
        self.agents: Dict[str, Type[DecisionAgent]] = dict(agents or DEFAULT_AGENTS)

    def register(self, slug: str, agent_class: Type[DecisionAgent]):
        """Add or replace the decision agent for a slug."""
        self.agents[slug] = agent_class

    def decide(self, agent_slug: str, context: AgentExecutionContext) -> Decision:
        """
        Decide whether an agent should act.

        Conservative: no enabled actions or an unknown slug both mean do nothing.

        Args:
            agent_slug: Agent type
            context: Read-only agent context

        Returns:
            Decision
        """
        if not context.enabled_actions():
            return Decision(should_act=False, reason=self.NO_ACTIONS_REASON, confidence=1.0)

        agent_class = self.agents.get(agent_slug)
        if not agent_class:
            logger.warning(f"No decision agent registered for {agent_slug}")
            return Decision(
                should_act=False,
                reason=f"Unknown agent type: {agent_slug}",
                confidence=1.0,
            )

        decision = agent_class().decide(context)
        logger.info(
            f"Agent {agent_slug} decision: should_act={decision.should_act}, "
            f"confidence={decision.confidence:.2f}, actions={decision.suggested_actions}"
        )
        return decision
