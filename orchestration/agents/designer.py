"""Designer agent: watches UI/UX-labelled issues."""

from typing import Set

from orchestration.agents.base import DecisionAgent
from orchestration.schemas.context import AgentExecutionContext, Decision


class DesignerAgent(DecisionAgent):
    """Proposes visual and responsive audits when UI work shows up."""

    UI_LABELS = ("ui", "ux", "design", "frontend", "css", "styling")

    VISUAL_BOOST = 0.3
    RESPONSIVE_BOOST = 0.2

    ACT_REASON = "Found {count} design review opportunities"
    IDLE_REASON = "No UI/UX changes requiring design review"

    def _run(self, context: AgentExecutionContext, enabled: Set[str]) -> Decision:
        github = context.github_analysis
        suggested = []
        confidence = self.BASE_CONFIDENCE

        if github is not None and self._has_label(github.issues_by_label, self.UI_LABELS):
            if "analyze_visual" in enabled:
                suggested.append("analyze_visual")
                confidence += self.VISUAL_BOOST
            if "responsive_audit" in enabled:
                suggested.append("responsive_audit")
                confidence += self.RESPONSIVE_BOOST

        return self._finish(suggested, confidence, {})
