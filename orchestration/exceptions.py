"""Orchestration exception types."""


class OrchestrationError(Exception):
    """Base class for orchestration errors."""


class InvalidJobTransition(OrchestrationError):
    """Raised when a finalized job is asked to change status."""

    def __init__(self, job_id, current: str, requested: str):
        self.job_id = job_id
        self.current = current
        self.requested = requested
        super().__init__(f"Job {job_id} is already {current}, cannot move to {requested}")


class ContextBuildError(OrchestrationError):
    """Raised when the store fails while assembling an agent context."""


class ProjectNotFound(OrchestrationError):
    """Raised when a project id does not resolve."""


class GitHubNotConfigured(OrchestrationError):
    """Raised when a project has no usable GitHub integration."""
