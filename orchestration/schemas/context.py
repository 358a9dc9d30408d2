"""Agent context and decision schemas."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class AgentConfig(BaseModel):
    """Capability/autonomy metadata supplied by the agent registry."""

    id: UUID
    slug: str
    name: str
    capabilities: List[str] = Field(default_factory=list)
    autonomy_level: str = "suggest"


class ActionConfigSchema(BaseModel):
    """Per-project enablement and risk of one action."""

    action_key: str
    is_enabled: bool
    requires_approval: bool = True
    risk_level: str = "medium"


class HotSpot(BaseModel):
    """Frequently changed file."""

    path: str
    changes: int
    risk_score: float


class GitHubAnalysis(BaseModel):
    """Repository metrics for one analysis window."""

    project_id: UUID
    period_type: str
    period_start: datetime
    period_end: datetime
    commits_count: int = 0
    commits_by_author: Dict[str, int] = Field(default_factory=dict)
    files_changed: int = 0
    lines_added: int = 0
    lines_removed: int = 0
    prs_opened: int = 0
    prs_merged: int = 0
    prs_closed: int = 0
    avg_pr_review_hours: Optional[float] = None
    avg_pr_merge_hours: Optional[float] = None
    issues_opened: int = 0
    issues_closed: int = 0
    avg_issue_resolution_hours: Optional[float] = None
    issues_by_label: Dict[str, int] = Field(default_factory=dict)
    velocity_score: Optional[float] = None
    velocity_trend: Optional[str] = None
    velocity_change_percent: Optional[float] = None
    active_contributors: int = 0
    hot_spots: List[HotSpot] = Field(default_factory=list)
    analyzed_at: datetime


class AgentExecutionContext(BaseModel):
    """Read-only snapshot one agent reasons about.

    Well-known ``recent_activity`` keys:
        suggestions_last_24h, tasks_last_24h: duplicate-work counters
        last_suggestion_at, last_task_at: newest record timestamps or None
        last_competitor_analysis: newest competitor_analysis suggestion
            (researcher cadence signal)

    Well-known ``project_context`` keys: name, description, status, has_github.
    """

    project_id: UUID
    job_id: UUID
    agent: AgentConfig
    github_analysis: Optional[GitHubAnalysis] = None
    recent_activity: Dict[str, Any] = Field(default_factory=dict)
    project_context: Dict[str, Any] = Field(default_factory=dict)
    action_configs: List[ActionConfigSchema] = Field(default_factory=list)
    now: datetime

    def enabled_actions(self) -> List[ActionConfigSchema]:
        return [ac for ac in self.action_configs if ac.is_enabled]

    def action_config(self, action_key: str) -> Optional[ActionConfigSchema]:
        for ac in self.action_configs:
            if ac.action_key == action_key:
                return ac
        return None


class Decision(BaseModel):
    """Whether an agent should act, and what it proposes."""

    should_act: bool = False
    reason: str = ""
    confidence: float = 0.0
    suggested_actions: List[str] = Field(default_factory=list)
    context: Dict[str, Any] = Field(default_factory=dict)
