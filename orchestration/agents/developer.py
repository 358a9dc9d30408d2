"""Developer agent: watches pull request and hot spot activity."""

from typing import Set

from orchestration.agents.base import DecisionAgent
from orchestration.schemas.context import AgentExecutionContext, Decision


class DeveloperAgent(DecisionAgent):
    """Proposes code analysis when PR volume or churn is high."""

    PRS_OPENED_THRESHOLD = 3
    ISSUES_OPENED_THRESHOLD = 5
    NO_DATA_CONFIDENCE = 0.9

    PR_ACTIVITY_BOOST = 0.2
    ISSUE_ACTIVITY_BOOST = 0.1
    HOTSPOT_BOOST = 0.15

    ACT_REASON = "Found {count} actionable items based on GitHub activity"
    IDLE_REASON = "No significant activity requiring developer attention"

    def _run(self, context: AgentExecutionContext, enabled: Set[str]) -> Decision:
        github = context.github_analysis
        if github is None:
            return Decision(
                reason="No GitHub data available for analysis",
                confidence=self.NO_DATA_CONFIDENCE,
            )

        suggested = []
        confidence = self.BASE_CONFIDENCE

        if github.prs_opened > self.PRS_OPENED_THRESHOLD and "analyze_code" in enabled:
            suggested.append("analyze_code")
            confidence += self.PR_ACTIVITY_BOOST

        if github.issues_opened > self.ISSUES_OPENED_THRESHOLD and "create_issue" in enabled:
            suggested.append("create_issue")
            confidence += self.ISSUE_ACTIVITY_BOOST

        if github.hot_spots and "analyze_code" in enabled:
            if "analyze_code" not in suggested:
                suggested.append("analyze_code")
            confidence += self.HOTSPOT_BOOST

        return self._finish(
            suggested,
            confidence,
            {
                "prs_opened": github.prs_opened,
                "issues_opened": github.issues_opened,
                "hot_spots": len(github.hot_spots),
            },
        )
