"""All-project sweeps (batch and GitHub sync) and the cron trigger for the batch sweep."""

import logging
import uuid
from typing import List, Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy import select
from sqlalchemy.orm import Session

from orchestration.config import settings
from orchestration.database import SessionLocal
from orchestration.models.project import Project
from orchestration.models.schedule import Schedule
from orchestration.schemas.orchestration import BatchAllResponse, OrchestrationJobData
from orchestration.services.queue import LOW_PRIORITY, JobQueue
from orchestration.types import JobType, TriggerSource

logger = logging.getLogger(__name__)

BATCH_JOB_ID = "orchestration_batch_all"


def projects_with_enabled_schedules(db: Session) -> List[Project]:
    """Non-archived projects that have at least one enabled schedule."""
    scheduled = select(Schedule.project_id).where(Schedule.is_enabled.is_(True))
    return (
        db.query(Project)
        .filter(Project.id.in_(scheduled), Project.status != "archived")
        .order_by(Project.name)
        .all()
    )


def projects_with_github(db: Session) -> List[Project]:
    """Non-archived projects linked to a GitHub repository."""
    return (
        db.query(Project)
        .filter(Project.github_repo.isnot(None), Project.github_repo != "", Project.status != "archived")
        .order_by(Project.name)
        .all()
    )


def _project_ids(session_factory, select_projects) -> List[uuid.UUID]:
    db = session_factory()
    try:
        return [p.id for p in select_projects(db)]
    finally:
        db.close()


def _bulk_response(job_ids: List[Optional[str]]) -> BatchAllResponse:
    queued = [job_id for job_id in job_ids if job_id]
    return BatchAllResponse(projects_processed=len(job_ids), projects_queued=len(queued), job_ids=queued)


def enqueue_all_projects(
    queue: JobQueue,
    session_factory=SessionLocal,
    triggered_by: str = TriggerSource.CRON.value,
) -> BatchAllResponse:
    """
    Queue one batch job per eligible project, in one transaction.

    With the queue disabled (or the write failing) every project runs
    inline instead and none counts as queued.
    """
    jobs = [
        OrchestrationJobData(project_id=project_id, triggered_by=triggered_by, job_type=JobType.BATCH.value)
        for project_id in _project_ids(session_factory, projects_with_enabled_schedules)
    ]
    response = _bulk_response(queue.add_bulk_jobs(jobs))

    logger.info(
        f"Batch trigger ({triggered_by}): {response.projects_processed} projects, "
        f"{response.projects_queued} queued"
    )
    return response


def enqueue_github_sync(
    queue: JobQueue,
    session_factory=SessionLocal,
    triggered_by: str = TriggerSource.API.value,
    period_hours: Optional[int] = None,
) -> BatchAllResponse:
    """Queue a low priority GitHub analysis for every project with a repository."""
    period_hours = period_hours or settings.ANALYSIS_PERIOD_HOURS
    jobs = [
        OrchestrationJobData(
            project_id=project_id,
            triggered_by=triggered_by,
            job_type=JobType.GITHUB_ANALYSIS.value,
            priority=LOW_PRIORITY,
            context={"period_hours": period_hours},
        )
        for project_id in _project_ids(session_factory, projects_with_github)
    ]
    response = _bulk_response(queue.add_bulk_jobs(jobs))

    logger.info(
        f"GitHub sync ({triggered_by}): {response.projects_processed} projects, "
        f"{response.projects_queued} queued"
    )
    return response

class BatchScheduler:
    """Background cron scheduler for the all-projects batch trigger."""

    def __init__(self, queue: JobQueue, cron_expression: Optional[str] = None, session_factory=SessionLocal):
        self.queue = queue
        self.cron_expression = cron_expression or settings.BATCH_CRON_EXPRESSION
        self.session_factory = session_factory
        self.scheduler = BackgroundScheduler(timezone="UTC")
        self.scheduler.add_listener(self._job_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)

    def start(self):
        """Start the scheduler"""
        if self.scheduler.running:
            return
        self.scheduler.add_job(
            self.run_batch,
            trigger=CronTrigger.from_crontab(self.cron_expression, timezone="UTC"),
            id=BATCH_JOB_ID,
            name="Orchestrate all projects",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.scheduler.start()
        logger.info(f"Batch scheduler started with cron: {self.cron_expression}")

    def shutdown(self):
        """Shutdown the scheduler"""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Batch scheduler stopped")

    def next_run_time(self):
        job = self.scheduler.get_job(BATCH_JOB_ID)
        return job.next_run_time if job else None

    def run_batch(self) -> BatchAllResponse:
        logger.info("Starting scheduled batch orchestration")
        return enqueue_all_projects(self.queue, self.session_factory, TriggerSource.CRON.value)

    def _job_listener(self, event):
        """Listen to job execution events"""
        if event.exception:
            logger.error(f"Scheduled job {event.job_id} failed: {event.exception}")
        else:
            logger.info(f"Scheduled job {event.job_id} completed, next run at {self.next_run_time()}")
