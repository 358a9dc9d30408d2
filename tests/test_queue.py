"""Tests for the job queue."""

import uuid
from datetime import timedelta

from orchestration.models.execution_log import ExecutionLog
from orchestration.models.job import Job
from orchestration.models.queue_job import QueueJob
from orchestration.schemas.orchestration import BatchOrchestrationResult, OrchestrationJobData
from orchestration.services.coordinator import BatchCoordinator
from orchestration.services.github_analysis import GitHubAnalysisService
from orchestration.services.queue import JobQueue
from orchestration.services.rate_limiter import RateLimiter

from conftest import NOW, FakeClock, FakeGitHubClient, make_action, make_agent, make_project, make_schedule


class FakeCoordinator:
    """Records calls; raises while ``failures`` is positive."""

    def __init__(self, failures=0):
        self.failures = failures
        self.calls = []

    def run_batch_orchestration(
        self,
        project_id,
        triggered_by="system",
        user_id=None,
        job_id=None,
        job_type="batch",
        attempt_number=1,
        max_attempts=1,
    ):
        self.calls.append(
            {
                "project_id": project_id,
                "triggered_by": triggered_by,
                "job_type": job_type,
                "attempt": (attempt_number, max_attempts),
            }
        )
        if self.failures > 0:
            self.failures -= 1
            raise RuntimeError("database unavailable")
        return BatchOrchestrationResult(
            job_id=uuid.uuid4(),
            project_id=project_id,
            status="completed",
            agents_executed=1,
            agents_succeeded=1,
        )

    def analyze_github(self, project_id, period_hours=24, refresh=False):
        self.calls.append({"project_id": project_id, "analysis_hours": period_hours, "refresh": refresh})


def _queue(session_factory, coordinator=None, clock=None, **kwargs):
    return JobQueue(
        coordinator or FakeCoordinator(),
        session_factory=session_factory,
        enabled=kwargs.pop("enabled", True),
        max_attempts=kwargs.pop("max_attempts", 3),
        backoff_seconds=kwargs.pop("backoff_seconds", 30),
        rate_limiter=kwargs.pop("rate_limiter", RateLimiter(max_calls=100, time_window=60)),
        poll_interval=0,
        clock=clock or FakeClock(),
        **kwargs,
    )


def _data(project_id=None, **kwargs):
    return OrchestrationJobData(project_id=project_id or uuid.uuid4(), **kwargs)


def test_disabled_queue_runs_synchronously(session_factory, test_db):
    """Test a disabled queue runs the job inline and returns no id."""
    project = make_project(test_db)
    make_agent(test_db, "general")
    make_action(test_db, project, "update_status")
    make_schedule(test_db, project, "general")

    clock = FakeClock()
    coordinator = BatchCoordinator(
        session_factory=session_factory,
        github_analysis=GitHubAnalysisService(client=FakeGitHubClient(), clock=clock),
        clock=clock,
    )
    queue = _queue(session_factory, coordinator=coordinator, clock=clock, enabled=False)

    job_id = queue.add_job(_data(project.id, triggered_by="manual"))

    assert job_id is None
    assert test_db.query(QueueJob).count() == 0
    job = test_db.query(Job).one()
    assert job.status == "completed"
    assert job.triggered_by == "manual"
    assert test_db.query(ExecutionLog).count() == 1


def test_disabled_queue_swallows_job_errors(session_factory):
    """Test inline failures are logged, not raised, to the caller."""
    coordinator = FakeCoordinator(failures=1)
    queue = _queue(session_factory, coordinator=coordinator, enabled=False)

    assert queue.add_job(_data()) is None
    assert len(coordinator.calls) == 1


def test_claim_order_by_priority_then_age(session_factory):
    """Test higher priority jobs are claimed first, FIFO within a priority."""
    clock = FakeClock(step=timedelta(seconds=1))
    queue = _queue(session_factory, clock=clock)

    low = queue.add_job(_data(), priority=1)
    first_normal = queue.add_job(_data())
    second_normal = queue.add_job(_data())
    high = queue.add_job(_data(priority=10))

    claimed = [str(queue.claim_next()) for _ in range(4)]

    assert claimed == [high, first_normal, second_normal, low]
    assert queue.claim_next() is None


def test_successful_job_is_completed(session_factory, test_db):
    """Test a processed job stores its result."""
    coordinator = FakeCoordinator()
    queue = _queue(session_factory, coordinator=coordinator)
    job_id = queue.add_job(_data(triggered_by="cron"))

    assert queue.run_once()

    job = test_db.get(QueueJob, uuid.UUID(job_id))
    assert job.status == "completed"
    assert job.attempts_made == 1
    assert job.result["success"] is True
    assert job.finished_at is not None
    assert coordinator.calls[0]["triggered_by"] == "cron"


def test_failed_job_is_retried_with_backoff(session_factory, test_db):
    """Test failures back off exponentially and fail after max attempts."""
    clock = FakeClock()
    queue = _queue(session_factory, coordinator=FakeCoordinator(failures=5), clock=clock)
    job_id = uuid.UUID(queue.add_job(_data()))

    assert queue.run_once()
    job = test_db.get(QueueJob, job_id)
    assert job.status == "delayed"
    assert job.run_after == NOW + timedelta(seconds=30)
    assert job.last_error == "database unavailable"

    # Not yet due
    assert not queue.run_once()

    clock.advance(seconds=30)
    assert queue.run_once()
    test_db.expire_all()
    job = test_db.get(QueueJob, job_id)
    assert job.status == "delayed"
    assert job.run_after == NOW + timedelta(seconds=90)

    clock.advance(seconds=60)
    assert queue.run_once()
    test_db.expire_all()
    job = test_db.get(QueueJob, job_id)
    assert job.status == "failed"
    assert job.attempts_made == 3
    assert job.finished_at is not None


def test_backoff_delay():
    """Test the backoff doubles per attempt."""
    queue = JobQueue(FakeCoordinator(), backoff_seconds=30)

    assert [queue.backoff_delay(n) for n in (1, 2, 3)] == [30, 60, 120]


def test_retry_job_type_uses_retry_trigger(session_factory):
    """Test retry jobs are recorded as triggered by the retry scheduler."""
    coordinator = FakeCoordinator()
    queue = _queue(session_factory, coordinator=coordinator)
    queue.add_job(_data(job_type="retry", triggered_by="api"))

    queue.run_once()

    assert coordinator.calls[0]["triggered_by"] == "retry_scheduler"
    assert coordinator.calls[0]["job_type"] == "retry"


def test_github_analysis_job(session_factory):
    """Test analysis jobs call the analysis operation."""
    coordinator = FakeCoordinator()
    queue = _queue(session_factory, coordinator=coordinator)
    queue.add_job(_data(job_type="github_analysis", context={"period_hours": 168}))

    queue.run_once()

    assert coordinator.calls[0]["analysis_hours"] == 168


def test_schedule_job_is_delayed(session_factory, test_db):
    """Test scheduled jobs wait until their run time."""
    clock = FakeClock()
    queue = _queue(session_factory, clock=clock)
    job_id = queue.schedule_job(_data(), NOW + timedelta(minutes=10))

    assert test_db.get(QueueJob, uuid.UUID(job_id)).status == "delayed"
    assert queue.claim_next() is None

    clock.advance(minutes=10)
    assert str(queue.claim_next()) == job_id


def test_stats_and_cancel(session_factory):
    """Test counts by status and cancelling a waiting job."""
    queue = _queue(session_factory)
    waiting = queue.add_job(_data())
    queue.add_job(_data(), delay=60)

    stats = queue.get_stats()
    assert (stats.waiting, stats.delayed, stats.total) == (1, 1, 2)

    assert queue.cancel_job(uuid.UUID(waiting))
    assert not queue.cancel_job(uuid.UUID(waiting))
    assert queue.get_stats().waiting == 0


def test_pause_and_resume(session_factory):
    """Test a paused queue claims nothing."""
    queue = _queue(session_factory)
    queue.add_job(_data())

    queue.pause()
    assert queue.is_paused()
    assert queue.get_stats().paused
    assert not queue.run_once()

    queue.resume()
    assert queue.run_once()


def test_retry_failed_jobs(session_factory, test_db):
    """Test failed jobs can be requeued with a fresh budget."""
    queue = _queue(session_factory, coordinator=FakeCoordinator(failures=1), max_attempts=1)
    job_id = uuid.UUID(queue.add_job(_data()))
    queue.run_once()
    assert test_db.get(QueueJob, job_id).status == "failed"

    assert queue.retry_job(job_id)
    test_db.expire_all()
    job = test_db.get(QueueJob, job_id)
    assert job.status == "waiting"
    assert job.attempts_made == 0

    assert not queue.retry_job(job_id)
    assert queue.retry_all_failed() == 0
    assert queue.run_once()


def test_cleanup_keeps_failed_jobs_longer(session_factory, test_db):
    """Test cleanup removes old completed jobs before old failed ones."""
    clock = FakeClock()
    queue = _queue(session_factory, clock=clock)
    test_db.add_all(
        [
            QueueJob(name="orchestration-batch", job_type="batch", data={}, status="completed",
                     finished_at=NOW - timedelta(hours=2)),
            QueueJob(name="orchestration-batch", job_type="batch", data={}, status="failed",
                     finished_at=NOW - timedelta(hours=4)),
            QueueJob(name="orchestration-batch", job_type="batch", data={}, status="failed",
                     finished_at=NOW - timedelta(hours=1)),
        ]
    )
    test_db.commit()

    assert queue.cleanup(older_than_seconds=5400) == 2
    assert queue.get_stats().failed == 1


def test_drain_removes_pending_jobs(session_factory):
    """Test drain removes waiting and delayed jobs only."""
    queue = _queue(session_factory)
    queue.add_job(_data())
    queue.add_job(_data(), delay=60)
    queue.add_job(_data())
    queue.run_once()

    assert queue.drain() == 2
    stats = queue.get_stats()
    assert stats.completed == 1
    assert stats.total == 1


def test_bulk_jobs(session_factory):
    """Test bulk enqueue, and inline runs when the queue is disabled."""
    queue = _queue(session_factory)
    ids = queue.add_bulk_jobs([_data(), _data(priority=1)])

    assert len(ids) == 2
    assert all(ids)
    assert sorted(j.priority for j in queue.get_jobs("waiting")) == [1, 5]

    coordinator = FakeCoordinator()
    disabled = _queue(session_factory, coordinator=coordinator, enabled=False)
    assert disabled.add_bulk_jobs([_data(), _data()]) == [None, None]
    assert len(coordinator.calls) == 2


def test_pause_is_shared_between_queue_instances(session_factory):
    """Test pausing through one process stops workers of another."""
    api = _queue(session_factory)
    worker = _queue(session_factory)
    api.add_job(_data())

    api.pause()
    assert worker.is_paused()
    assert not worker.run_once()

    api.resume()
    assert worker.run_once()


def test_rate_limit_is_shared_between_queue_instances(session_factory):
    """Test job starts from every instance count against one budget."""
    clock = FakeClock()
    first = _queue(session_factory, clock=clock, rate_limiter=RateLimiter(max_calls=2, time_window=60))
    second = _queue(session_factory, clock=clock, rate_limiter=RateLimiter(max_calls=2, time_window=60))
    for _ in range(3):
        first.add_job(_data())

    assert first.run_once()
    assert second.run_once()
    assert not first.run_once()
    assert not second.run_once()
    assert first.get_stats().rate_limit_remaining == 0

    clock.advance(seconds=60)
    assert second.run_once()
    assert first.get_stats().waiting == 0


def test_stalled_job_is_recovered(session_factory, test_db):
    """Test a job whose worker died is retried instead of staying active."""
    clock = FakeClock()
    queue = _queue(session_factory, clock=clock, stall_seconds=900)
    job_id = uuid.UUID(queue.add_job(_data()))
    assert queue.claim_next() == job_id

    clock.advance(seconds=600)
    assert queue.recover_stalled() == 0

    clock.advance(seconds=301)
    assert queue.recover_stalled() == 1
    job = test_db.get(QueueJob, job_id)
    assert job.status == "delayed"
    assert job.last_error == "Worker stopped responding after 900s"

    clock.advance(seconds=30)
    assert queue.run_once()
    test_db.expire_all()
    job = test_db.get(QueueJob, job_id)
    assert job.status == "completed"
    assert job.attempts_made == 2


def test_stalled_job_fails_when_attempts_are_spent(session_factory, test_db):
    """Test a stalled final attempt fails the job."""
    clock = FakeClock()
    queue = _queue(session_factory, clock=clock, max_attempts=1, stall_seconds=900)
    job_id = uuid.UUID(queue.add_job(_data()))
    queue.claim_next()

    clock.advance(hours=1)
    queue.recover_stalled()

    assert test_db.get(QueueJob, job_id).status == "failed"


def test_late_outcome_of_recovered_attempt_is_discarded(session_factory, test_db):
    """Test a worker that finishes after its job was recovered does not overwrite it."""
    clock = FakeClock()
    queue = _queue(session_factory, clock=clock, stall_seconds=900)
    job_id = uuid.UUID(queue.add_job(_data()))
    queue.claim_next()
    clock.advance(seconds=901)
    queue.recover_stalled()

    queue.process_job(job_id)

    job = test_db.get(QueueJob, job_id)
    assert job.status == "delayed"
    assert job.result is None


def test_attempt_numbers_reach_the_coordinator(session_factory):
    """Test each run knows its attempt and the queue's attempt budget."""
    clock = FakeClock()
    coordinator = FakeCoordinator(failures=2)
    queue = _queue(session_factory, coordinator=coordinator, clock=clock, max_attempts=5, backoff_seconds=0)
    queue.add_job(_data())

    while queue.run_once():
        pass

    assert [call["attempt"] for call in coordinator.calls] == [(1, 5), (2, 5), (3, 5)]


def test_orchestration_job_records_queue_attempt(session_factory, test_db):
    """Test the orchestration job created by a retry carries the queue attempt."""
    project = make_project(test_db)
    clock = FakeClock()
    coordinator = BatchCoordinator(
        session_factory=session_factory,
        github_analysis=GitHubAnalysisService(client=FakeGitHubClient(), clock=clock),
        clock=clock,
    )
    queue = _queue(session_factory, coordinator=coordinator, clock=clock, max_attempts=5)
    queue_job = test_db.get(QueueJob, uuid.UUID(queue.add_job(_data(project.id))))
    queue_job.attempts_made = 2
    test_db.commit()

    result = queue.process_job(queue.claim_next())

    job = test_db.get(Job, result.job_id)
    assert (job.attempt_number, job.max_attempts) == (3, 5)
