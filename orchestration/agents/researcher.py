"""Researcher agent: watches research-labelled issues and a weekly cadence."""

from datetime import datetime, timedelta
from typing import Set

from orchestration.agents.base import DecisionAgent
from orchestration.schemas.context import AgentExecutionContext, Decision


class ResearcherAgent(DecisionAgent):
    """Proposes research when issues ask for it, and competitor analysis weekly."""

    RESEARCH_LABELS = ("research", "spike", "investigation", "exploration")
    COMPETITOR_ANALYSIS_INTERVAL = timedelta(days=7)

    RESEARCH_BOOST = 0.3
    COMPETITOR_BOOST = 0.2

    ACT_REASON = "Found {count} research opportunities"
    IDLE_REASON = "No research tasks identified at this time"

    def _run(self, context: AgentExecutionContext, enabled: Set[str]) -> Decision:
        github = context.github_analysis
        suggested = []
        confidence = self.BASE_CONFIDENCE

        if github is not None:
            if self._has_label(github.issues_by_label, self.RESEARCH_LABELS) and "market_research" in enabled:
                suggested.append("market_research")
                confidence += self.RESEARCH_BOOST

        if "competitor_analysis" in enabled:
            last = context.recent_activity.get("last_competitor_analysis")
            if isinstance(last, str):
                last = datetime.fromisoformat(last)
            if last is None or context.now - last > self.COMPETITOR_ANALYSIS_INTERVAL:
                suggested.append("competitor_analysis")
                confidence += self.COMPETITOR_BOOST

        return self._finish(
            suggested,
            confidence,
            {"labels_seen": len(github.issues_by_label) if github is not None else 0},
        )
