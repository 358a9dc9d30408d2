"""Agent registry backed by the ai_agents table."""

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from orchestration.models.agent import Agent
from orchestration.schemas.context import AgentConfig

logger = logging.getLogger(__name__)


def _to_config(agent: Agent) -> AgentConfig:
    return AgentConfig(
        id=agent.id,
        slug=agent.slug,
        name=agent.name,
        capabilities=agent.capabilities or [],
        autonomy_level=agent.autonomy_level or "suggest",
    )


class AgentRegistry:
    """Looks up active agents by slug."""

    def get_agent(self, db: Session, slug: str) -> Optional[AgentConfig]:
        """Get an active agent, or None if it is unknown or inactive."""
        agent = (
            db.query(Agent)
            .filter(Agent.slug == slug, Agent.is_active.is_(True))
            .first()
        )
        return _to_config(agent) if agent else None

    def get_agents(self, db: Session) -> List[AgentConfig]:
        """List all active agents."""
        agents = db.query(Agent).filter(Agent.is_active.is_(True)).order_by(Agent.slug).all()
        return [_to_config(a) for a in agents]
