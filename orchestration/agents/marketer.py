"""Marketer agent: watches merge volume."""

from typing import Set

from orchestration.agents.base import DecisionAgent
from orchestration.schemas.context import AgentExecutionContext, Decision


class MarketerAgent(DecisionAgent):
    """Drafts release communication after enough merges."""

    BLOG_POST_MERGES = 5
    SOCIAL_POST_MERGES = 2

    BLOG_POST_BOOST = 0.3
    SOCIAL_POST_BOOST = 0.2

    ACT_REASON = "Found {count} marketing opportunities based on development activity"
    IDLE_REASON = "No significant activity warranting marketing content"

    def _run(self, context: AgentExecutionContext, enabled: Set[str]) -> Decision:
        github = context.github_analysis
        suggested = []
        confidence = self.BASE_CONFIDENCE

        if github is not None:
            if github.prs_merged >= self.BLOG_POST_MERGES and "draft_blog_post" in enabled:
                suggested.append("draft_blog_post")
                confidence += self.BLOG_POST_BOOST

            if github.prs_merged >= self.SOCIAL_POST_MERGES and "draft_social_post" in enabled:
                suggested.append("draft_social_post")
                confidence += self.SOCIAL_POST_BOOST

        return self._finish(
            suggested,
            confidence,
            {"prs_merged": github.prs_merged if github is not None else 0},
        )
