"""Orchestration request/response schemas."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from orchestration.types import RiskLevel


class AgentError(BaseModel):
    """One per-agent failure inside a batch."""

    agent_slug: str
    error: str


class ExecutionLogResponse(BaseModel):
    """Execution log as exposed over the API."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    job_id: UUID
    schedule_id: Optional[UUID] = None
    agent_slug: str
    agent_name: Optional[str] = None
    phase: str
    status: str
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    should_act: bool
    do_nothing_reason: Optional[str] = None
    confidence_score: Optional[float] = None
    context_summary: Dict[str, Any] = Field(default_factory=dict)
    github_data_used: Dict[str, Any] = Field(default_factory=dict)
    actions_proposed: int = 0
    actions_executed: int = 0
    actions_approved: int = 0
    actions_rejected: int = 0
    output_data: Dict[str, Any] = Field(default_factory=dict)
    suggestions_created: List[str] = Field(default_factory=list)
    tasks_created: List[str] = Field(default_factory=list)
    error_message: Optional[str] = None


class BatchOrchestrationResult(BaseModel):
    """Outcome of one batch pass over a project."""

    job_id: UUID
    project_id: UUID
    status: str
    agents_executed: int = 0
    agents_succeeded: int = 0
    agents_failed: int = 0
    agents_skipped: int = 0
    tasks_created: int = 0
    suggestions_created: int = 0
    execution_logs: List[ExecutionLogResponse] = Field(default_factory=list)
    duration_ms: int = 0
    errors: List[AgentError] = Field(default_factory=list)


class JobResponse(BaseModel):
    """Orchestration job summary."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    project_id: Optional[UUID] = None
    job_type: str
    triggered_by: str
    triggered_by_user_id: Optional[str] = None
    status: str
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    timeout_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    agents_executed: int = 0
    agents_succeeded: int = 0
    agents_failed: int = 0
    tasks_created: int = 0
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    attempt_number: int = 1
    max_attempts: int = 3
    output_summary: Dict[str, Any] = Field(default_factory=dict)


class JobDetailResponse(JobResponse):
    """Job with its execution logs."""

    execution_logs: List[ExecutionLogResponse] = Field(default_factory=list)


class ScheduleResponse(BaseModel):
    """Schedule as exposed over the API."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    project_id: UUID
    agent_slug: str
    is_enabled: bool
    schedule_type: str
    cron_expression: Optional[str] = None
    priority: int
    run_on_days: List[int] = Field(default_factory=list)
    min_interval_minutes: int
    cooldown_after_error_minutes: int
    last_run_at: Optional[datetime] = None
    last_success_at: Optional[datetime] = None
    last_failure_at: Optional[datetime] = None
    consecutive_failures: int = 0
    total_runs: int = 0
    total_successes: int = 0
    eligible_now: bool = False


class ActionConfigResponse(BaseModel):
    """Autonomous action toggle as exposed over the API."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    project_id: UUID
    action_key: str
    action_name: Optional[str] = None
    action_category: Optional[str] = None
    agent_slug: Optional[str] = None
    is_enabled: bool
    requires_approval: bool
    risk_level: str
    date_updated: Optional[datetime] = None


class ActionConfigUpdate(BaseModel):
    """Partial update of an action toggle; omitted fields are left alone."""

    is_enabled: Optional[bool] = None
    requires_approval: Optional[bool] = None
    risk_level: Optional[RiskLevel] = None


class OrchestrationJobData(BaseModel):
    """Payload stored on a queue job."""

    project_id: UUID
    triggered_by: str = "api"
    job_type: str = "batch"
    user_id: Optional[str] = None
    priority: Optional[int] = None
    context: Dict[str, Any] = Field(default_factory=dict)


class OrchestrationJobResult(BaseModel):
    """Result stored on a finished queue job."""

    success: bool
    job_id: Optional[UUID] = None
    agents_executed: int = 0
    agents_succeeded: int = 0
    agents_failed: int = 0
    tasks_created: int = 0
    suggestions_created: int = 0
    duration_ms: int = 0
    error: Optional[str] = None


class TriggerRequest(BaseModel):
    """Manual trigger for one project."""

    project_id: UUID
    use_queue: bool = True
    priority: int = Field(default=10, ge=1, le=10)
    user_id: Optional[str] = None
    run_at: Optional[datetime] = None  # Queue only

    @field_validator("run_at")
    @classmethod
    def to_naive_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value


class TriggerResponse(BaseModel):
    """Response after a manual trigger."""

    queued: bool
    queue_job_id: Optional[str] = None
    result: Optional[BatchOrchestrationResult] = None
    message: str


class BatchAllResponse(BaseModel):
    """Response after triggering every eligible project."""

    projects_processed: int = 0
    projects_queued: int = 0
    projects_skipped: int = 0
    errors: int = 0
    job_ids: List[str] = Field(default_factory=list)


class QueueStats(BaseModel):
    """Queue counts by status."""

    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    delayed: int = 0
    total: int = 0
    paused: bool = False
    rate_limit_remaining: int = 0


class QueueJobResponse(BaseModel):
    """Queue job as exposed over the API."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    job_type: str
    status: str
    priority: int
    data: Dict[str, Any]
    attempts_made: int
    max_attempts: int
    run_after: Optional[datetime] = None
    result: Optional[Dict[str, Any]] = None
    last_error: Optional[str] = None
    created_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
