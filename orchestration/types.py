"""Orchestration type definitions."""

from enum import Enum


class JobStatus(str, Enum):
    """Orchestration job lifecycle statuses."""

    PENDING = "pending"
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    TIMEOUT = "timeout"

    @property
    def is_terminal(self) -> bool:
        """Check if this status is terminal (job won't change)."""
        return self in (
            JobStatus.COMPLETED,
            JobStatus.FAILED,
            JobStatus.CANCELLED,
            JobStatus.TIMEOUT,
        )


class ExecutionStatus(str, Enum):
    """Status of one agent attempt within a job."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"
    DO_NOTHING = "do_nothing"


class ExecutionPhase(str, Enum):
    """Phases of an agent attempt, in order."""

    ANALYZE = "analyze"
    DECIDE = "decide"
    EXECUTE = "execute"
    VERIFY = "verify"
    COMPLETE = "complete"

    @property
    def order(self) -> int:
        return list(ExecutionPhase).index(self)


class TriggerSource(str, Enum):
    """What kicked off an orchestration job."""

    CRON = "cron"
    WEBHOOK = "webhook"
    MANUAL = "manual"
    API = "api"
    SYSTEM = "system"
    RETRY_SCHEDULER = "retry_scheduler"


class JobType(str, Enum):
    """Kinds of work the queue knows how to run."""

    BATCH = "batch"
    GITHUB_ANALYSIS = "github_analysis"
    RETRY = "retry"


class QueueJobStatus(str, Enum):
    """Queue substrate statuses."""

    WAITING = "waiting"
    DELAYED = "delayed"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class RiskLevel(str, Enum):
    """Risk classification of an autonomous action."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ScheduleType(str, Enum):
    """Cadence label of a schedule."""

    HOURLY = "hourly"
    EVERY_4H = "every_4h"
    EVERY_8H = "every_8h"
    DAILY = "daily"
    WEEKLY = "weekly"
    CUSTOM = "custom"


class PeriodType(str, Enum):
    """Analysis window granularity."""

    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @classmethod
    def for_hours(cls, hours: float) -> "PeriodType":
        if hours <= 1:
            return cls.HOURLY
        if hours <= 24:
            return cls.DAILY
        if hours <= 168:
            return cls.WEEKLY
        return cls.MONTHLY

    @property
    def cache_ttl_hours(self) -> int:
        if self is PeriodType.HOURLY:
            return 1
        if self is PeriodType.DAILY:
            return 4
        return 24
