"""Tests for the standalone worker's supervisor."""

from datetime import timedelta

from orchestration.dependencies import Services
from orchestration.models.job import Job
from orchestration.models.queue_job import QueueJob
from orchestration.services.coordinator import BatchCoordinator
from orchestration.services.github_analysis import GitHubAnalysisService
from orchestration.worker import Worker

from conftest import NOW, FakeClock, FakeGitHubClient, make_project
from test_queue import _queue


def test_supervise_once_expires_jobs_and_recovers_stalled_work(session_factory, test_db):
    """Test one supervisor pass times out overdue jobs and hands stalled queue jobs back."""
    clock = FakeClock()
    coordinator = BatchCoordinator(
        session_factory=session_factory,
        github_analysis=GitHubAnalysisService(client=FakeGitHubClient(), clock=clock),
        clock=clock,
    )
    worker = Worker(Services(coordinator=coordinator, queue=_queue(session_factory, clock=clock, stall_seconds=900)))

    project = make_project(test_db)
    overdue = Job(project_id=project.id, status="running", started_at=NOW - timedelta(hours=1),
                  timeout_at=NOW - timedelta(minutes=50))
    stalled = QueueJob(name="orchestration-batch", job_type="batch", data={"project_id": str(project.id)},
                       status="active", attempts_made=1, max_attempts=3, started_at=NOW - timedelta(hours=1))
    running = QueueJob(name="orchestration-batch", job_type="batch", data={"project_id": str(project.id)},
                       status="active", attempts_made=1, max_attempts=3, started_at=NOW - timedelta(minutes=1))
    test_db.add_all([overdue, stalled, running])
    test_db.commit()

    assert worker.supervise_once() == (1, 1)

    test_db.expire_all()
    assert test_db.get(Job, overdue.id).status == "timeout"
    assert test_db.get(QueueJob, stalled.id).status == "delayed"
    assert test_db.get(QueueJob, running.id).status == "active"
