"""Orchestration routes."""

import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from orchestration.database import get_db, utcnow
from orchestration.dependencies import get_coordinator, get_queue
from orchestration.exceptions import GitHubNotConfigured, ProjectNotFound
from orchestration.models.job import Job
from orchestration.models.project import Project
from orchestration.models.schedule import Schedule
from orchestration.schemas.context import GitHubAnalysis
from orchestration.schemas.orchestration import (
    BatchAllResponse,
    JobDetailResponse,
    JobResponse,
    OrchestrationJobData,
    ScheduleResponse,
    TriggerRequest,
    TriggerResponse,
)
from orchestration.services.coordinator import BatchCoordinator
from orchestration.services.eligibility import should_run_now
from orchestration.services.queue import JobQueue
from orchestration.services.scheduler import (
    enqueue_all_projects,
    enqueue_github_sync,
    projects_with_enabled_schedules,
)
from orchestration.types import JobType, TriggerSource

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orchestration", tags=["orchestration"])


@router.post("/trigger", response_model=TriggerResponse)
def trigger(
    data: TriggerRequest,
    db: Session = Depends(get_db),
    coordinator: BatchCoordinator = Depends(get_coordinator),
    queue: JobQueue = Depends(get_queue),
):
    """Run orchestration for one project, queued or directly."""
    if not db.query(Project).filter(Project.id == data.project_id).first():
        raise HTTPException(status_code=404, detail="Project not found")

    if not data.use_queue:
        result = coordinator.run_batch_orchestration(
            data.project_id,
            triggered_by=TriggerSource.MANUAL.value,
            user_id=data.user_id,
        )
        return TriggerResponse(queued=False, result=result, message=f"Orchestration {result.status}")

    job_data = OrchestrationJobData(
        project_id=data.project_id,
        triggered_by=TriggerSource.MANUAL.value,
        job_type=JobType.BATCH.value,
        user_id=data.user_id,
        priority=data.priority,
    )
    if data.run_at:
        queue_job_id = queue.schedule_job(job_data, data.run_at)
    else:
        queue_job_id = queue.add_job(job_data, priority=data.priority)
    if queue_job_id is None:
        return TriggerResponse(queued=False, message="Queue unavailable, orchestration ran directly")

    logger.info(f"Triggered orchestration for project {data.project_id} (queue job {queue_job_id})")
    return TriggerResponse(queued=True, queue_job_id=queue_job_id, message="Orchestration job queued")


@router.post("/batch", response_model=BatchAllResponse)
def trigger_all(
    use_queue: bool = True,
    db: Session = Depends(get_db),
    coordinator: BatchCoordinator = Depends(get_coordinator),
    queue: JobQueue = Depends(get_queue),
):
    """Run orchestration for every project with enabled schedules."""
    if use_queue:
        return enqueue_all_projects(queue, queue.session_factory, TriggerSource.API.value)

    response = BatchAllResponse()
    for project in projects_with_enabled_schedules(db):
        try:
            coordinator.run_batch_orchestration(project.id, triggered_by=TriggerSource.API.value)
            response.projects_processed += 1
        except Exception as e:
            logger.error(f"Orchestration failed for project {project.id}: {e}")
            response.errors += 1
    return response


@router.post("/github-sync", response_model=BatchAllResponse)
def github_sync(
    period_hours: Optional[int] = Query(default=None, ge=1, le=24 * 31),
    coordinator: BatchCoordinator = Depends(get_coordinator),
    queue: JobQueue = Depends(get_queue),
):
    """Queue a GitHub analysis for every project linked to a repository."""
    if not coordinator.github_analysis.client.is_configured():
        raise HTTPException(status_code=400, detail="GitHub token not configured")
    return enqueue_github_sync(queue, queue.session_factory, TriggerSource.API.value, period_hours)


@router.get("/jobs", response_model=List[JobResponse])
def list_jobs(
    project_id: Optional[uuid.UUID] = None,
    status: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    """List orchestration jobs, newest first."""
    query = db.query(Job)
    if project_id:
        query = query.filter(Job.project_id == project_id)
    if status:
        query = query.filter(Job.status == status)
    return query.order_by(Job.date_created.desc()).limit(limit).all()


@router.get("/jobs/{job_id}", response_model=JobDetailResponse)
def get_job(job_id: uuid.UUID, db: Session = Depends(get_db)):
    """Get a job with its execution logs."""
    job = db.query(Job).filter(Job.id == job_id).first()
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobDetailResponse.model_validate(job)


@router.get("/schedules", response_model=List[ScheduleResponse])
def list_schedules(project_id: uuid.UUID, db: Session = Depends(get_db)):
    """List a project's schedules with their current eligibility."""
    now = utcnow()
    schedules = (
        db.query(Schedule)
        .filter(Schedule.project_id == project_id)
        .order_by(Schedule.priority.desc(), Schedule.agent_slug)
        .all()
    )
    responses = []
    for schedule in schedules:
        response = ScheduleResponse.model_validate(schedule)
        response.eligible_now = bool(schedule.is_enabled) and should_run_now(schedule, now)
        responses.append(response)
    return responses


@router.get("/analysis/{project_id}", response_model=GitHubAnalysis)
def get_analysis(
    project_id: uuid.UUID,
    period_hours: int = Query(default=24, ge=1, le=24 * 31),
    refresh: bool = False,
    coordinator: BatchCoordinator = Depends(get_coordinator),
):
    """Repository velocity metrics for a project; ``refresh`` bypasses the cache."""
    try:
        return coordinator.analyze_github(project_id, period_hours, refresh=refresh)
    except ProjectNotFound:
        raise HTTPException(status_code=404, detail="Project not found")
    except GitHubNotConfigured as e:
        raise HTTPException(status_code=400, detail=str(e))
