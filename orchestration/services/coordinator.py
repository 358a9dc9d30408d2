"""Batch coordinator: one orchestration pass over a project's schedules."""

import logging
import uuid
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from orchestration.config import settings
from orchestration.database import SessionLocal, utcnow
from orchestration.exceptions import ContextBuildError, GitHubNotConfigured, ProjectNotFound
from orchestration.models.execution_log import ExecutionLog
from orchestration.models.job import Job
from orchestration.models.schedule import Schedule
from orchestration.schemas.context import AgentConfig, AgentExecutionContext, GitHubAnalysis
from orchestration.schemas.orchestration import AgentError, BatchOrchestrationResult, ExecutionLogResponse
from orchestration.services.agent_registry import AgentRegistry
from orchestration.services.context_builder import ContextBuilder
from orchestration.services.decision_engine import DecisionEngine
from orchestration.services.eligibility import ineligibility_reason
from orchestration.services.github_analysis import GitHubAnalysisService
from orchestration.services.task_executor import TaskExecutor
from orchestration.types import ExecutionPhase, ExecutionStatus, JobStatus, JobType, TriggerSource

logger = logging.getLogger(__name__)

SUCCESS_STATUSES = (ExecutionStatus.COMPLETED.value, ExecutionStatus.DO_NOTHING.value)


def _elapsed_ms(start: datetime, end: datetime) -> int:
    return int((end - start).total_seconds() * 1000)


class BatchCoordinator:
    """Runs every eligible agent schedule of a project and records the outcome."""

    JOB_ERROR_CODE = "BATCH_ORCHESTRATION_FAILED"
    ALL_AGENTS_FAILED_CODE = "ALL_AGENTS_FAILED"
    TIMEOUT_ERROR_CODE = "JOB_TIMEOUT"

    def __init__(
        self,
        session_factory=SessionLocal,
        agent_registry: Optional[AgentRegistry] = None,
        context_builder: Optional[ContextBuilder] = None,
        decision_engine: Optional[DecisionEngine] = None,
        task_executor: Optional[TaskExecutor] = None,
        github_analysis: Optional[GitHubAnalysisService] = None,
        clock=utcnow,
        job_timeout_seconds: Optional[int] = None,
        analysis_period_hours: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.agent_registry = agent_registry or AgentRegistry()
        self.context_builder = context_builder or ContextBuilder(clock=clock)
        self.decision_engine = decision_engine or DecisionEngine()
        self.task_executor = task_executor or TaskExecutor()
        self.github_analysis = github_analysis or GitHubAnalysisService(clock=clock)
        self.clock = clock
        self.job_timeout = timedelta(seconds=job_timeout_seconds or settings.JOB_TIMEOUT_SECONDS)
        self.analysis_period_hours = analysis_period_hours or settings.ANALYSIS_PERIOD_HOURS

    # Batch orchestration

    def run_batch_orchestration(
        self,
        project_id: uuid.UUID,
        triggered_by: str = TriggerSource.SYSTEM.value,
        user_id: Optional[str] = None,
        job_id: Optional[uuid.UUID] = None,
        job_type: str = JobType.BATCH.value,
        attempt_number: int = 1,
        max_attempts: int = 1,
    ) -> BatchOrchestrationResult:
        """
        Run all eligible schedules of a project once.

        Per-agent failures are recorded and do not stop the batch. Any other
        failure finalizes the job as failed and is re-raised so the queue can
        retry it.

        Args:
            project_id: Project to orchestrate
            triggered_by: Trigger source
            user_id: User who triggered the run, if any
            job_id: Adopt a pre-created job instead of creating one
            job_type: Recorded job type
            attempt_number: Queue attempt this run belongs to
            max_attempts: Attempt budget of the queue job

        Returns:
            BatchOrchestrationResult
        """
        db = self.session_factory()
        try:
            job = self._start_job(
                db, project_id, triggered_by, user_id, job_id, job_type, attempt_number, max_attempts
            )
            job_id = job.id
            try:
                return self._run(db, job, project_id)
            except Exception as e:
                db.rollback()
                logger.error(f"Batch orchestration failed for job {job_id}: {e}", exc_info=True)
                job = db.get(Job, job_id)
                if job and not job.is_finalized:
                    job.finalize(
                        JobStatus.FAILED,
                        self.clock(),
                        error_message=str(e),
                        error_code=self.JOB_ERROR_CODE,
                    )
                    db.commit()
                raise
        finally:
            db.close()

    def _start_job(
        self,
        db: Session,
        project_id: uuid.UUID,
        triggered_by: str,
        user_id: Optional[str],
        job_id: Optional[uuid.UUID],
        job_type: str,
        attempt_number: int,
        max_attempts: int,
    ) -> Job:
        now = self.clock()
        job = db.get(Job, job_id) if job_id else None
        if job is None:
            job = Job(
                project_id=project_id,
                job_type=job_type,
                triggered_by=TriggerSource(triggered_by).value,
                triggered_by_user_id=user_id,
                scheduled_at=now,
                input_params={"project_id": str(project_id), "triggered_by": triggered_by, "user_id": user_id},
            )
            if job_id:
                job.id = job_id
            db.add(job)

        job.status = JobStatus.RUNNING.value
        job.attempt_number = attempt_number
        job.max_attempts = max_attempts
        job.started_at = now
        job.timeout_at = now + self.job_timeout
        db.commit()
        logger.info(f"Started orchestration job {job.id} for project {project_id} (triggered by {triggered_by})")
        return job

    def _run(self, db: Session, job: Job, project_id: uuid.UUID) -> BatchOrchestrationResult:
        schedules = (
            db.query(Schedule)
            .filter(Schedule.project_id == project_id, Schedule.is_enabled.is_(True))
            .order_by(Schedule.priority.desc(), Schedule.date_created)
            .all()
        )

        result = BatchOrchestrationResult(job_id=job.id, project_id=project_id, status=JobStatus.RUNNING.value)

        if not schedules:
            logger.info(f"No enabled schedules for project {project_id}")
            return self._finish(
                db,
                job,
                result,
                deadline_exceeded=False,
                message="No enabled schedules for this project",
            )

        github = self._shared_analysis(db, project_id)
        deadline_exceeded = False

        for index, schedule in enumerate(schedules):
            now = self.clock()
            if job.timeout_at and now >= job.timeout_at:
                remaining = len(schedules) - index
                logger.warning(f"Job {job.id} passed its deadline, skipping {remaining} remaining schedules")
                result.agents_skipped += remaining
                deadline_exceeded = True
                break

            reason = ineligibility_reason(schedule, now)
            if reason:
                logger.debug(f"Schedule {schedule.id} ({schedule.agent_slug}) not eligible: {reason}")
                result.agents_skipped += 1
                continue

            agent = self.agent_registry.get_agent(db, schedule.agent_slug)
            if not agent:
                logger.warning(f"Agent {schedule.agent_slug} not found, skipping schedule {schedule.id}")
                result.agents_skipped += 1
                continue

            schedule_id = schedule.id
            try:
                action_configs = self.context_builder.get_action_configs(db, project_id, agent.slug)
                if action_configs.is_error:
                    raise ContextBuildError(f"Action configs unavailable: {action_configs.message}")
                context = self.context_builder.build(db, project_id, job.id, agent, github, action_configs.value)
                log = self.execute_agent_task(db, job.id, schedule_id, context)
            except Exception as e:
                db.rollback()
                logger.error(f"Agent {agent.slug} failed before its attempt completed: {e}", exc_info=True)
                log = self._record_failed_attempt(db, job.id, schedule_id, project_id, agent, str(e), now)

            self._record_attempt(db, schedule_id, log, result)

        return self._finish(db, job, result, deadline_exceeded=deadline_exceeded)

    def _record_attempt(
        self,
        db: Session,
        schedule_id: uuid.UUID,
        log: ExecutionLog,
        result: BatchOrchestrationResult,
    ):
        now = self.clock()

        result.agents_executed += 1
        if log.status in SUCCESS_STATUSES:
            result.agents_succeeded += 1
            db.execute(Schedule.success_update(schedule_id, now))
        else:
            result.agents_failed += 1
            db.execute(Schedule.failure_update(schedule_id, now))
            result.errors.append(AgentError(agent_slug=log.agent_slug, error=log.error_message or "Unknown error"))

        suggestions = list(log.suggestions_created or [])
        tasks = list(log.tasks_created or [])
        result.suggestions_created += len(suggestions)
        result.tasks_created += len(suggestions) + len(tasks)
        result.execution_logs.append(ExecutionLogResponse.model_validate(log))

        db.commit()

    def _finish(
        self,
        db: Session,
        job: Job,
        result: BatchOrchestrationResult,
        deadline_exceeded: bool,
        message: Optional[str] = None,
    ) -> BatchOrchestrationResult:
        now = self.clock()
        all_failed = result.agents_failed > 0 and result.agents_succeeded == 0
        status = JobStatus.FAILED if all_failed else JobStatus.COMPLETED

        job.agents_executed = result.agents_executed
        job.agents_succeeded = result.agents_succeeded
        job.agents_failed = result.agents_failed
        job.tasks_created = result.tasks_created
        summary = {
            "agents_skipped": result.agents_skipped,
            "suggestions_created": result.suggestions_created,
            "errors": [e.model_dump() for e in result.errors],
            "deadline_exceeded": deadline_exceeded,
        }
        if message:
            summary["message"] = message
        job.output_summary = summary

        if all_failed:
            job.finalize(status, now, error_message="All agents failed", error_code=self.ALL_AGENTS_FAILED_CODE)
        else:
            job.finalize(status, now)
        db.commit()

        result.status = status.value
        result.duration_ms = job.duration_ms or 0
        logger.info(
            f"Job {job.id} {status.value}: {result.agents_succeeded}/{result.agents_executed} agents succeeded, "
            f"{result.agents_skipped} skipped, {result.suggestions_created} suggestions"
        )
        return result

    def _shared_analysis(self, db: Session, project_id: uuid.UUID) -> Optional[GitHubAnalysis]:
        """Best-effort GitHub analysis shared by every agent in the batch."""
        try:
            return self.github_analysis.analyze(db, project_id, self.analysis_period_hours)
        except (GitHubNotConfigured, ProjectNotFound) as e:
            logger.info(f"Continuing without GitHub data: {e}")
        except Exception as e:
            db.rollback()
            logger.warning(f"GitHub analysis failed for project {project_id}, continuing without: {e}")
        return None

    # Agent task

    def execute_agent_task(
        self,
        db: Session,
        job_id: uuid.UUID,
        schedule_id: Optional[uuid.UUID],
        context: AgentExecutionContext,
    ) -> ExecutionLog:
        """
        Run one agent through analyze, decide, execute, verify, complete.

        The log is persisted once, at the end, whatever the outcome.

        Args:
            db: Database session
            job_id: Owning job
            schedule_id: Schedule being attempted
            context: Agent context

        Returns:
            Persisted ExecutionLog
        """
        started = self.clock()
        agent = context.agent
        log = ExecutionLog(
            id=uuid.uuid4(),
            job_id=job_id,
            schedule_id=schedule_id,
            project_id=context.project_id,
            agent_id=agent.id,
            agent_slug=agent.slug,
            agent_name=agent.name,
            phase=ExecutionPhase.ANALYZE.value,
            status=ExecutionStatus.RUNNING.value,
            started_at=started,
            should_act=True,
            actions_proposed=0,
            actions_executed=0,
            actions_approved=0,
            actions_rejected=0,
            suggestions_created=[],
            tasks_created=[],
        )

        try:
            log.context_summary = {
                "project_id": str(context.project_id),
                "agent_slug": agent.slug,
                "has_github_data": context.github_analysis is not None,
                "action_config_count": len(context.action_configs),
                "enabled_action_count": len(context.enabled_actions()),
            }
            if context.github_analysis:
                github = context.github_analysis
                log.github_data_used = {
                    "period_type": github.period_type,
                    "velocity_score": github.velocity_score,
                    "prs_opened": github.prs_opened,
                    "issues_opened": github.issues_opened,
                }

            log.phase = ExecutionPhase.DECIDE.value
            decision = self.decision_engine.decide(agent.slug, context)
            log.should_act = decision.should_act
            log.confidence_score = decision.confidence

            if not decision.should_act:
                log.do_nothing_reason = decision.reason
                log.phase = ExecutionPhase.COMPLETE.value
                log.status = ExecutionStatus.DO_NOTHING.value
            else:
                log.actions_proposed = len(decision.suggested_actions)

                log.phase = ExecutionPhase.EXECUTE.value
                outcome = self.task_executor.execute(db, context, decision)

                log.phase = ExecutionPhase.VERIFY.value
                log.actions_executed = outcome.actions_executed
                log.actions_approved = outcome.actions_approved
                log.actions_rejected = outcome.actions_rejected
                log.suggestions_created = list(outcome.suggestions_created)
                log.tasks_created = list(outcome.tasks_created)
                log.output_data = {
                    "reason": decision.reason,
                    "suggested_actions": decision.suggested_actions,
                    "suggestions_created": len(outcome.suggestions_created),
                    "tasks_created": len(outcome.tasks_created),
                    "actions_executed": outcome.actions_executed,
                }

                log.phase = ExecutionPhase.COMPLETE.value
                log.status = ExecutionStatus.COMPLETED.value
        except Exception as e:
            db.rollback()
            logger.error(f"Agent {agent.slug} failed in phase {log.phase}: {e}", exc_info=True)
            log.status = ExecutionStatus.FAILED.value
            log.error_message = str(e)

        finished = self.clock()
        log.completed_at = finished
        log.duration_ms = _elapsed_ms(started, finished)
        db.add(log)
        db.commit()
        return log

    def _record_failed_attempt(
        self,
        db: Session,
        job_id: uuid.UUID,
        schedule_id: uuid.UUID,
        project_id: uuid.UUID,
        agent: AgentConfig,
        error: str,
        started: datetime,
    ) -> ExecutionLog:
        finished = self.clock()
        log = ExecutionLog(
            id=uuid.uuid4(),
            job_id=job_id,
            schedule_id=schedule_id,
            project_id=project_id,
            agent_id=agent.id,
            agent_slug=agent.slug,
            agent_name=agent.name,
            phase=ExecutionPhase.ANALYZE.value,
            status=ExecutionStatus.FAILED.value,
            started_at=started,
            completed_at=finished,
            duration_ms=_elapsed_ms(started, finished),
            should_act=True,
            suggestions_created=[],
            tasks_created=[],
            error_message=error,
        )
        db.add(log)
        db.commit()
        return log

    # Supervisor and analysis

    def expire_overdue_jobs(self, now: Optional[datetime] = None) -> int:
        """Move running jobs past their deadline to 'timeout'."""
        now = now or self.clock()
        db = self.session_factory()
        try:
            overdue: List[Job] = (
                db.query(Job)
                .filter(Job.status == JobStatus.RUNNING.value, Job.timeout_at < now)
                .all()
            )
            for job in overdue:
                job.finalize(
                    JobStatus.TIMEOUT,
                    now,
                    error_message="Job exceeded its timeout",
                    error_code=self.TIMEOUT_ERROR_CODE,
                )
                logger.warning(f"Job {job.id} timed out")
            db.commit()
            return len(overdue)
        finally:
            db.close()

    def analyze_github(self, project_id: uuid.UUID, period_hours: int = 24, refresh: bool = False) -> GitHubAnalysis:
        """
        Repository metrics for a project.

        With ``refresh`` the project's cached windows are marked stale first,
        so the metrics are fetched again.

        Raises:
            ProjectNotFound: Unknown project
            GitHubNotConfigured: No repository or token
        """
        db = self.session_factory()
        try:
            if refresh:
                self.github_analysis.invalidate(db, project_id)
            return self.github_analysis.analyze(db, project_id, period_hours)
        finally:
            db.close()
