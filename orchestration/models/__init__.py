"""SQLAlchemy ORM models."""

from orchestration.models.project import Project, Task
from orchestration.models.agent import Agent
from orchestration.models.schedule import Schedule
from orchestration.models.job import Job
from orchestration.models.execution_log import ExecutionLog
from orchestration.models.action_config import ActionConfig
from orchestration.models.github_analysis import GitHubAnalysisCache
from orchestration.models.suggestion import Suggestion
from orchestration.models.queue_job import QueueJob, QueueState

__all__ = [
    "Project",
    "Task",
    "Agent",
    "Schedule",
    "Job",
    "ExecutionLog",
    "ActionConfig",
    "GitHubAnalysisCache",
    "Suggestion",
    "QueueJob",
    "QueueState",
]
