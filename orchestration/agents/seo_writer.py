"""SEO writer agent: watches documentation-labelled issues."""

from typing import Set

from orchestration.agents.base import DecisionAgent
from orchestration.schemas.context import AgentExecutionContext, Decision


class SeoWriterAgent(DecisionAgent):
    """Suggests meta tags and keyword research when docs change."""

    DOC_LABELS = ("docs", "documentation", "readme")

    META_BOOST = 0.25
    KEYWORD_BOOST = 0.2

    ACT_REASON = "Found {count} SEO optimization opportunities"
    IDLE_REASON = "No content changes requiring SEO attention"

    def _run(self, context: AgentExecutionContext, enabled: Set[str]) -> Decision:
        github = context.github_analysis
        suggested = []
        confidence = self.BASE_CONFIDENCE

        if github is not None and self._has_label(github.issues_by_label, self.DOC_LABELS):
            if "meta_suggestions" in enabled:
                suggested.append("meta_suggestions")
                confidence += self.META_BOOST
            if "keyword_research" in enabled:
                suggested.append("keyword_research")
                confidence += self.KEYWORD_BOOST

        return self._finish(suggested, confidence, {})
