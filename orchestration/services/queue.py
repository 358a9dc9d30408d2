"""Durable priority queue around the batch coordinator."""

import logging
import threading
import uuid
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from orchestration.config import settings
from orchestration.database import SessionLocal, utcnow
from orchestration.models.queue_job import QueueJob, QueueState
from orchestration.schemas.orchestration import OrchestrationJobData, OrchestrationJobResult, QueueStats
from orchestration.services.coordinator import BatchCoordinator
from orchestration.services.rate_limiter import RateLimiter
from orchestration.types import JobStatus, JobType, QueueJobStatus, TriggerSource

logger = logging.getLogger(__name__)

LOW_PRIORITY = 1


class JobQueue:
    """Priority job queue with retries, backed by the orchestration_queue table.

    Workers are threads in this process. Several processes can share the
    table: claims lock the queue-state row, which also holds the pause flag,
    and the job-start rate limit is counted from the table itself.
    """

    QUEUE_NAME = "orchestration"

    def __init__(
        self,
        coordinator: BatchCoordinator,
        session_factory=SessionLocal,
        enabled: Optional[bool] = None,
        concurrency: Optional[int] = None,
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[int] = None,
        rate_limiter: Optional[RateLimiter] = None,
        default_priority: Optional[int] = None,
        poll_interval: Optional[float] = None,
        stall_seconds: Optional[int] = None,
        clock=utcnow,
    ):
        self.coordinator = coordinator
        self.session_factory = session_factory
        self.enabled = settings.JOB_QUEUE_ENABLED if enabled is None else enabled
        self.concurrency = concurrency or settings.JOB_QUEUE_CONCURRENCY
        self.max_attempts = max_attempts or settings.JOB_MAX_ATTEMPTS
        self.backoff_seconds = settings.JOB_BACKOFF_SECONDS if backoff_seconds is None else backoff_seconds
        self.rate_limiter = rate_limiter or RateLimiter(
            max_calls=settings.JOB_RATE_LIMIT_MAX,
            time_window=settings.JOB_RATE_LIMIT_WINDOW_SECONDS,
        )
        self.default_priority = default_priority or settings.JOB_DEFAULT_PRIORITY
        self.poll_interval = settings.WORKER_POLL_INTERVAL if poll_interval is None else poll_interval
        self.stall_seconds = stall_seconds or settings.QUEUE_STALL_SECONDS
        self.clock = clock

        self._claim_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._threads: List[threading.Thread] = []

    # Enqueue

    def add_job(
        self,
        data: OrchestrationJobData,
        delay: Optional[float] = None,
        priority: Optional[int] = None,
    ) -> Optional[str]:
        """
        Enqueue an orchestration job.

        When the queue is disabled or the enqueue write fails, the job runs
        synchronously instead.

        Args:
            data: Job payload
            delay: Seconds before the job becomes claimable
            priority: 1-10, higher runs first

        Returns:
            Queue job id, or None if the job ran synchronously
        """
        if not self.enabled:
            logger.warning("Queue not enabled, running job directly")
            return self._run_synchronously(data)

        try:
            return self._insert(data, delay, priority)
        except SQLAlchemyError as e:
            logger.error(f"Failed to add job to queue, running directly: {e}")
            return self._run_synchronously(data)

    def _new_row(self, data: OrchestrationJobData, now: datetime, delay: Optional[float], priority: Optional[int]):
        delayed = bool(delay and delay > 0)
        return QueueJob(
            id=uuid.uuid4(),
            name=f"{self.QUEUE_NAME}-{data.job_type}",
            job_type=data.job_type,
            data=data.model_dump(mode="json"),
            status=QueueJobStatus.DELAYED.value if delayed else QueueJobStatus.WAITING.value,
            priority=priority or data.priority or self.default_priority,
            run_after=now + timedelta(seconds=delay) if delayed else now,
            attempts_made=0,
            max_attempts=self.max_attempts,
            created_at=now,
        )

    def _insert(self, data: OrchestrationJobData, delay: Optional[float], priority: Optional[int]) -> str:
        row = self._new_row(data, self.clock(), delay, priority)
        job_id = row.id

        db = self.session_factory()
        try:
            db.add(row)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            raise
        finally:
            db.close()

        logger.info(f"Orchestration job {job_id} queued for project {data.project_id} ({data.job_type})")
        return str(job_id)

    def _run_synchronously(self, data: OrchestrationJobData) -> None:
        try:
            self.execute(data)
        except Exception as e:
            logger.error(f"Direct job execution failed for project {data.project_id}: {e}", exc_info=True)
        return None

    def schedule_job(self, data: OrchestrationJobData, run_at: datetime) -> Optional[str]:
        """Add a job that becomes claimable at ``run_at`` (naive UTC)."""
        delay = (run_at - self.clock()).total_seconds()
        if delay <= 0:
            return self.add_job(data)
        return self.add_job(data, delay=delay)

    def add_bulk_jobs(self, jobs: List[OrchestrationJobData]) -> List[Optional[str]]:
        """
        Enqueue many jobs in one transaction.

        When the queue is disabled or the write fails, every job runs
        synchronously and its id is None.
        """
        if not self.enabled:
            logger.warning(f"Queue not enabled, running {len(jobs)} jobs directly")
            return [self._run_synchronously(data) for data in jobs]

        now = self.clock()
        rows = [self._new_row(data, now, None, None) for data in jobs]
        ids = [str(row.id) for row in rows]

        db = self.session_factory()
        try:
            db.add_all(rows)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to add bulk jobs, running directly: {e}")
            return [self._run_synchronously(data) for data in jobs]
        finally:
            db.close()

        logger.info(f"Queued {len(ids)} orchestration jobs")
        return ids

    # Processing

    def execute(
        self,
        data: OrchestrationJobData,
        attempt_number: int = 1,
        max_attempts: int = 1,
    ) -> OrchestrationJobResult:
        """Run one job payload against the coordinator."""
        if data.job_type == JobType.GITHUB_ANALYSIS.value:
            started = self.clock()
            period_hours = int(data.context.get("period_hours", settings.ANALYSIS_PERIOD_HOURS))
            self.coordinator.analyze_github(data.project_id, period_hours)
            return OrchestrationJobResult(
                success=True,
                duration_ms=int((self.clock() - started).total_seconds() * 1000),
            )

        triggered_by = data.triggered_by
        if data.job_type == JobType.RETRY.value:
            triggered_by = TriggerSource.RETRY_SCHEDULER.value

        result = self.coordinator.run_batch_orchestration(
            data.project_id,
            triggered_by=triggered_by,
            user_id=data.user_id,
            job_type=data.job_type,
            attempt_number=attempt_number,
            max_attempts=max_attempts,
        )
        return OrchestrationJobResult(
            success=result.status == JobStatus.COMPLETED.value,
            job_id=result.job_id,
            agents_executed=result.agents_executed,
            agents_succeeded=result.agents_succeeded,
            agents_failed=result.agents_failed,
            tasks_created=result.tasks_created,
            suggestions_created=result.suggestions_created,
            duration_ms=result.duration_ms,
            error=result.errors[0].error if result.errors else None,
        )

    def _lock_state(self, db: Session) -> QueueState:
        """Lock the queue-state row, creating it on first use."""
        state = db.query(QueueState).filter(QueueState.name == self.QUEUE_NAME).with_for_update().first()
        if state is None:
            state = QueueState(name=self.QUEUE_NAME, is_paused=False, updated_at=self.clock())
            db.add(state)
            db.flush()
        return state

    def claim_next(self) -> Optional[uuid.UUID]:
        """
        Mark the highest-priority due job active and return its id.

        Returns None when nothing is due, the queue is paused, or the
        job-start rate limit is used up.
        """
        with self._claim_lock:
            db = self.session_factory()
            try:
                now = self.clock()
                state = self._lock_state(db)
                if state.is_paused or not self.rate_limiter.has_capacity(db, now):
                    db.commit()
                    return None

                db.query(QueueJob).filter(
                    QueueJob.status == QueueJobStatus.DELAYED.value,
                    QueueJob.run_after <= now,
                ).update({QueueJob.status: QueueJobStatus.WAITING.value}, synchronize_session=False)

                job = (
                    db.query(QueueJob)
                    .filter(QueueJob.status == QueueJobStatus.WAITING.value, QueueJob.run_after <= now)
                    .order_by(QueueJob.priority.desc(), QueueJob.created_at)
                    .with_for_update(skip_locked=True)
                    .first()
                )
                if not job:
                    db.commit()
                    return None

                job.status = QueueJobStatus.ACTIVE.value
                job.started_at = now
                job.attempts_made = (job.attempts_made or 0) + 1
                job_id = job.id
                db.commit()
                return job_id
            finally:
                db.close()

    def process_job(self, job_id: uuid.UUID) -> Optional[OrchestrationJobResult]:
        """Run a claimed job and record its outcome."""
        db = self.session_factory()
        try:
            job = db.get(QueueJob, job_id)
            data = OrchestrationJobData(**job.data)
            attempt = job.attempts_made
            max_attempts = job.max_attempts
        finally:
            db.close()

        logger.info(f"Processing queue job {job_id} for project {data.project_id} (attempt {attempt}/{max_attempts})")

        try:
            result = self.execute(data, attempt_number=attempt, max_attempts=max_attempts)
        except Exception as e:
            logger.error(f"Queue job {job_id} failed: {e}", exc_info=True)
            self._record_failure(job_id, attempt, str(e))
            return None

        self._record_success(job_id, attempt, result)
        return result

    def _claimed(self, db: Session, job_id: uuid.UUID, attempt: int) -> Optional[QueueJob]:
        """The job row, if this attempt still holds the claim."""
        job = db.get(QueueJob, job_id, with_for_update=True)
        if job is None or job.status != QueueJobStatus.ACTIVE.value or job.attempts_made != attempt:
            logger.warning(f"Queue job {job_id} attempt {attempt} no longer holds its claim, outcome discarded")
            return None
        return job

    def _record_success(self, job_id: uuid.UUID, attempt: int, result: OrchestrationJobResult):
        db = self.session_factory()
        try:
            job = self._claimed(db, job_id, attempt)
            if job is None:
                db.rollback()
                return
            job.status = QueueJobStatus.COMPLETED.value
            job.result = result.model_dump(mode="json")
            job.finished_at = self.clock()
            db.commit()
        finally:
            db.close()
        logger.info(f"Queue job {job_id} completed")

    def _record_failure(self, job_id: uuid.UUID, attempt: int, error: str):
        db = self.session_factory()
        try:
            job = self._claimed(db, job_id, attempt)
            if job is None:
                db.rollback()
                return
            self._fail(job, error, self.clock())
            db.commit()
        finally:
            db.close()

    def _fail(self, job: QueueJob, error: str, now: datetime):
        """Back off for another attempt, or fail once the budget is spent."""
        job.last_error = error
        if job.attempts_made >= job.max_attempts:
            job.status = QueueJobStatus.FAILED.value
            job.finished_at = now
            logger.error(f"Queue job {job.id} failed after {job.attempts_made} attempts")
        else:
            backoff = self.backoff_delay(job.attempts_made)
            job.status = QueueJobStatus.DELAYED.value
            job.run_after = now + timedelta(seconds=backoff)
            logger.warning(f"Queue job {job.id} retry {job.attempts_made}/{job.max_attempts} in {backoff:.0f}s")

    def backoff_delay(self, attempts_made: int) -> float:
        """Exponential backoff: base * 2^(attempt-1)."""
        return self.backoff_seconds * (2 ** max(0, attempts_made - 1))

    def recover_stalled(self) -> int:
        """
        Hand active jobs whose worker went silent back to the retry path.

        A job counts as stalled once it has been active for longer than
        ``stall_seconds``. It is retried with backoff, or failed when its
        attempts are spent; a late outcome from the lost attempt is discarded.

        Returns:
            Number of jobs recovered
        """
        now = self.clock()
        db = self.session_factory()
        try:
            stalled = (
                db.query(QueueJob)
                .filter(
                    QueueJob.status == QueueJobStatus.ACTIVE.value,
                    QueueJob.started_at < now - timedelta(seconds=self.stall_seconds),
                )
                .with_for_update(skip_locked=True)
                .all()
            )
            for job in stalled:
                logger.warning(f"Queue job {job.id} stalled on attempt {job.attempts_made}")
                self._fail(job, f"Worker stopped responding after {self.stall_seconds}s", now)
            db.commit()
            return len(stalled)
        finally:
            db.close()

    def run_once(self) -> bool:
        """Claim and process one job. Returns False when nothing ran."""
        job_id = self.claim_next()
        if not job_id:
            return False
        self.process_job(job_id)
        return True

    def _worker_loop(self, worker_index: int):
        logger.info(f"Queue worker {worker_index} started")
        while not self._stop_event.is_set():
            try:
                ran = self.run_once()
            except Exception as e:
                logger.error(f"Queue worker {worker_index} error: {e}", exc_info=True)
                ran = False
            if not ran:
                self._stop_event.wait(self.poll_interval)
        logger.info(f"Queue worker {worker_index} stopped")

    def start(self):
        """Start the worker threads."""
        if not self.enabled:
            logger.warning("Queue not enabled, workers not started")
            return
        if self._threads:
            return
        self._stop_event.clear()
        for i in range(self.concurrency):
            thread = threading.Thread(target=self._worker_loop, args=(i,), daemon=True, name=f"queue-worker-{i}")
            thread.start()
            self._threads.append(thread)
        logger.info(f"Started {self.concurrency} queue workers")

    def stop(self, timeout: float = 10):
        """Signal workers to stop and wait for them."""
        self._stop_event.set()
        for thread in self._threads:
            thread.join(timeout=timeout)
        self._threads = []
        logger.info("Queue workers stopped")

    # Management

    def get_stats(self) -> QueueStats:
        db = self.session_factory()
        try:
            rows = db.query(QueueJob.status, func.count(QueueJob.id)).group_by(QueueJob.status).all()
            remaining = self.rate_limiter.get_remaining_calls(db, self.clock())
        finally:
            db.close()
        counts: Dict[str, int] = {status: count for status, count in rows}
        stats = QueueStats(
            waiting=counts.get(QueueJobStatus.WAITING.value, 0),
            active=counts.get(QueueJobStatus.ACTIVE.value, 0),
            completed=counts.get(QueueJobStatus.COMPLETED.value, 0),
            failed=counts.get(QueueJobStatus.FAILED.value, 0),
            delayed=counts.get(QueueJobStatus.DELAYED.value, 0),
            paused=self.is_paused(),
            rate_limit_remaining=remaining,
        )
        stats.total = stats.waiting + stats.active + stats.completed + stats.failed + stats.delayed
        return stats

    def get_jobs(self, status: str = QueueJobStatus.WAITING.value, limit: int = 50) -> List[QueueJob]:
        """List jobs in one status, newest first."""
        db = self.session_factory()
        try:
            jobs = (
                db.query(QueueJob)
                .filter(QueueJob.status == QueueJobStatus(status).value)
                .order_by(QueueJob.created_at.desc())
                .limit(limit)
                .all()
            )
            db.expunge_all()
            return jobs
        finally:
            db.close()

    def retry_job(self, job_id: uuid.UUID) -> bool:
        """Requeue a failed job with a fresh attempt budget."""
        db = self.session_factory()
        try:
            job = db.get(QueueJob, job_id)
            if not job or job.status != QueueJobStatus.FAILED.value:
                return False
            self._requeue(job)
            db.commit()
        finally:
            db.close()
        logger.info(f"Queue job {job_id} retried")
        return True

    def retry_all_failed(self) -> int:
        db = self.session_factory()
        try:
            jobs = db.query(QueueJob).filter(QueueJob.status == QueueJobStatus.FAILED.value).all()
            for job in jobs:
                self._requeue(job)
            db.commit()
        finally:
            db.close()
        logger.info(f"Retried {len(jobs)} failed jobs")
        return len(jobs)

    def _requeue(self, job: QueueJob):
        job.status = QueueJobStatus.WAITING.value
        job.attempts_made = 0
        job.run_after = self.clock()
        job.finished_at = None
        job.started_at = None

    def cancel_job(self, job_id: uuid.UUID) -> bool:
        """Remove a job that has not started yet."""
        db = self.session_factory()
        try:
            job = db.get(QueueJob, job_id)
            if not job or job.status not in (QueueJobStatus.WAITING.value, QueueJobStatus.DELAYED.value):
                return False
            db.delete(job)
            db.commit()
        finally:
            db.close()
        logger.info(f"Queue job {job_id} cancelled")
        return True

    def _set_paused(self, paused: bool):
        db = self.session_factory()
        try:
            state = self._lock_state(db)
            state.is_paused = paused
            state.updated_at = self.clock()
            db.commit()
        finally:
            db.close()

    def pause(self):
        """Stop every worker process from claiming jobs."""
        self._set_paused(True)
        logger.info("Queue paused")

    def resume(self):
        self._set_paused(False)
        logger.info("Queue resumed")

    def is_paused(self) -> bool:
        db = self.session_factory()
        try:
            state = db.get(QueueState, self.QUEUE_NAME)
            return bool(state and state.is_paused)
        finally:
            db.close()

    def cleanup(self, older_than_seconds: Optional[int] = None) -> int:
        """Delete finished jobs; failed ones are kept twice as long."""
        if older_than_seconds is None:
            older_than_seconds = settings.QUEUE_COMPLETED_RETENTION_SECONDS
        now = self.clock()
        db = self.session_factory()
        try:
            completed = (
                db.query(QueueJob)
                .filter(
                    QueueJob.status == QueueJobStatus.COMPLETED.value,
                    QueueJob.finished_at < now - timedelta(seconds=older_than_seconds),
                )
                .delete(synchronize_session=False)
            )
            failed = (
                db.query(QueueJob)
                .filter(
                    QueueJob.status == QueueJobStatus.FAILED.value,
                    QueueJob.finished_at < now - timedelta(seconds=older_than_seconds * 2),
                )
                .delete(synchronize_session=False)
            )
            db.commit()
        finally:
            db.close()
        logger.info(f"Queue cleaned: {completed} completed, {failed} failed")
        return completed + failed

    def drain(self) -> int:
        """Remove every job that has not started yet."""
        db = self.session_factory()
        try:
            removed = (
                db.query(QueueJob)
                .filter(QueueJob.status.in_([QueueJobStatus.WAITING.value, QueueJobStatus.DELAYED.value]))
                .delete(synchronize_session=False)
            )
            db.commit()
        finally:
            db.close()
        logger.info(f"Queue drained: {removed} jobs removed")
        return removed
