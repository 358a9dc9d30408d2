"""Tests for the batch coordinator."""

import uuid
from datetime import timedelta

import pytest

from orchestration.agents.base import DecisionAgent
from orchestration.models.execution_log import ExecutionLog
from orchestration.models.job import Job
from orchestration.models.schedule import Schedule
from orchestration.models.suggestion import Suggestion
from orchestration.services.context_builder import ContextBuilder
from orchestration.services.coordinator import BatchCoordinator
from orchestration.services.decision_engine import DecisionEngine
from orchestration.services.github_analysis import GitHubAnalysisService
from orchestration.services.result import ErrorKind, Result

from conftest import NOW, FakeClock, FakeGitHubClient, make_action, make_agent, make_project, make_schedule


class ExplodingAgent(DecisionAgent):
    def _run(self, context, enabled):
        raise RuntimeError("model unavailable")


def _coordinator(session_factory, clock=None, engine=None, github_client=None, **kwargs):
    clock = clock or FakeClock()
    return BatchCoordinator(
        session_factory=session_factory,
        decision_engine=engine or DecisionEngine(),
        github_analysis=GitHubAnalysisService(client=github_client or FakeGitHubClient(), clock=clock),
        clock=clock,
        **kwargs,
    )


def test_no_enabled_schedules(session_factory, test_db):
    """Test a project without enabled schedules completes with zero counters."""
    project = make_project(test_db)
    make_agent(test_db, "developer")
    make_schedule(test_db, project, "developer", is_enabled=False)

    result = _coordinator(session_factory).run_batch_orchestration(project.id, triggered_by="manual")

    assert result.status == "completed"
    assert result.agents_executed == 0
    assert result.execution_logs == []

    job = test_db.get(Job, result.job_id)
    assert job.status == "completed"
    assert job.completed_at is not None
    assert job.output_summary["message"] == "No enabled schedules for this project"
    assert test_db.query(ExecutionLog).count() == 0


def test_one_success_one_failure_completes(session_factory, test_db):
    """Test a mixed batch is completed and counters add up."""
    project = make_project(test_db)
    make_agent(test_db, "general")
    make_agent(test_db, "developer")
    make_action(test_db, project, "update_status")
    make_action(test_db, project, "analyze_code", agent_slug="developer")
    general = make_schedule(test_db, project, "general", priority=8)
    developer = make_schedule(test_db, project, "developer", priority=3)

    engine = DecisionEngine()
    engine.register("developer", ExplodingAgent)

    result = _coordinator(session_factory, engine=engine).run_batch_orchestration(project.id)

    assert result.status == "completed"
    assert result.agents_executed == 2
    assert result.agents_succeeded == 1
    assert result.agents_failed == 1
    assert result.agents_executed == result.agents_succeeded + result.agents_failed
    assert result.suggestions_created == 1
    assert result.tasks_created == 1
    assert [e.agent_slug for e in result.errors] == ["developer"]
    assert [log.agent_slug for log in result.execution_logs] == ["general", "developer"]

    test_db.expire_all()
    assert test_db.get(Schedule, general.id).consecutive_failures == 0
    assert test_db.get(Schedule, general.id).total_successes == 1
    assert test_db.get(Schedule, developer.id).consecutive_failures == 1
    assert test_db.get(Schedule, developer.id).last_failure_at is not None

    failed_log = test_db.query(ExecutionLog).filter(ExecutionLog.agent_slug == "developer").one()
    assert failed_log.status == "failed"
    assert failed_log.error_message == "model unavailable"

    job = test_db.get(Job, result.job_id)
    assert job.agents_failed == 1
    assert job.tasks_created == 1


def test_all_agents_failed_marks_job_failed(session_factory, test_db):
    """Test a batch where every agent fails is failed."""
    project = make_project(test_db)
    make_agent(test_db, "developer")
    make_action(test_db, project, "analyze_code")
    make_schedule(test_db, project, "developer")

    engine = DecisionEngine()
    engine.register("developer", ExplodingAgent)

    result = _coordinator(session_factory, engine=engine).run_batch_orchestration(project.id)

    assert result.status == "failed"
    assert test_db.get(Job, result.job_id).error_code == "ALL_AGENTS_FAILED"


def test_do_nothing_logs(session_factory, test_db):
    """Test agents with nothing to do log do_nothing and count as success."""
    project = make_project(test_db)
    make_agent(test_db, "developer")
    make_action(test_db, project, "analyze_code")
    make_schedule(test_db, project, "developer")

    result = _coordinator(session_factory).run_batch_orchestration(project.id)

    assert result.status == "completed"
    assert result.agents_succeeded == 1

    log = test_db.query(ExecutionLog).one()
    assert log.status == "do_nothing"
    assert log.phase == "complete"
    assert log.should_act is False
    assert log.actions_executed == 0
    assert log.do_nothing_reason == "No GitHub data available for analysis"


def test_completed_log_has_complete_phase(session_factory, test_db):
    """Test a log that acted ends in the complete phase with its suggestions."""
    project = make_project(test_db)
    make_agent(test_db, "general")
    make_action(test_db, project, "update_status", requires_approval=False)
    make_schedule(test_db, project, "general")

    _coordinator(session_factory).run_batch_orchestration(project.id)

    log = test_db.query(ExecutionLog).one()
    suggestion = test_db.query(Suggestion).one()
    assert log.status == "completed"
    assert log.phase == "complete"
    assert log.should_act is True
    assert log.do_nothing_reason is None
    assert log.actions_approved == 1
    assert log.suggestions_created == [str(suggestion.id)]


def test_ineligible_and_unknown_agents_are_skipped(session_factory, test_db):
    """Test ineligible schedules and unregistered agents are skipped."""
    project = make_project(test_db)
    make_agent(test_db, "general")
    make_action(test_db, project, "update_status")
    make_schedule(test_db, project, "general", last_run_at=NOW - timedelta(minutes=5))
    make_schedule(test_db, project, "ghost")

    result = _coordinator(session_factory).run_batch_orchestration(project.id)

    assert result.agents_skipped == 2
    assert result.agents_executed == 0
    assert test_db.query(ExecutionLog).count() == 0


def test_deadline_skips_remaining_schedules(session_factory, test_db):
    """Test schedules after the job deadline are skipped."""
    project = make_project(test_db)
    make_agent(test_db, "general")
    make_action(test_db, project, "update_status")
    make_schedule(test_db, project, "general")
    make_schedule(test_db, project, "general", priority=9)

    clock = FakeClock(step=timedelta(seconds=5))
    coordinator = _coordinator(session_factory, clock=clock, job_timeout_seconds=1)

    result = coordinator.run_batch_orchestration(project.id)

    assert result.agents_skipped == 2
    assert result.agents_executed == 0
    assert test_db.get(Job, result.job_id).output_summary["deadline_exceeded"] is True


def test_shared_github_analysis_is_fetched_once(session_factory, test_db):
    """Test GitHub data is gathered once and reaches every agent."""
    project = make_project(test_db, github_repo="acme/app")
    make_agent(test_db, "developer")
    make_agent(test_db, "marketer")
    make_action(test_db, project, "analyze_code", agent_slug="developer")
    make_action(test_db, project, "draft_social_post", agent_slug="marketer")
    make_schedule(test_db, project, "developer")
    make_schedule(test_db, project, "marketer")

    pulls = [
        {
            "number": n,
            "user": "dev",
            "created_at": NOW - timedelta(hours=3),
            "merged_at": NOW - timedelta(hours=1),
            "closed_at": NOW - timedelta(hours=1),
            "additions": 10,
            "deletions": 2,
            "files": ["app.py"],
        }
        for n in range(5)
    ]
    client = FakeGitHubClient(activity={"issues": [], "pulls": pulls})

    result = _coordinator(session_factory, github_client=client).run_batch_orchestration(project.id)

    assert len(client.calls) == 1
    assert result.agents_succeeded == 2
    assert result.suggestions_created == 2
    logs = test_db.query(ExecutionLog).all()
    assert all(log.github_data_used["prs_opened"] == 5 for log in logs)


def test_github_failure_is_not_fatal(session_factory, test_db):
    """Test a failing metrics source is treated as no data."""
    project = make_project(test_db, github_repo="acme/app")
    make_agent(test_db, "general")
    make_action(test_db, project, "update_status")
    make_schedule(test_db, project, "general")

    client = FakeGitHubClient(error=RuntimeError("rate limited"))
    result = _coordinator(session_factory, github_client=client).run_batch_orchestration(project.id)

    assert result.status == "completed"
    assert result.agents_succeeded == 1


def test_job_level_failure_is_recorded_and_reraised(session_factory, test_db):
    """Test unexpected errors fail the job and propagate."""
    project = make_project(test_db)
    make_agent(test_db, "general")
    make_schedule(test_db, project, "general")

    class BrokenBuilder(ContextBuilder):
        def get_action_configs(self, db, project_id, agent_slug):
            return Result.ok([])

    coordinator = _coordinator(session_factory, context_builder=BrokenBuilder())

    def broken_record(*args, **kwargs):
        raise RuntimeError("store went away")

    coordinator._record_attempt = broken_record

    with pytest.raises(RuntimeError):
        coordinator.run_batch_orchestration(project.id)

    job = test_db.query(Job).one()
    assert job.status == "failed"
    assert job.error_code == "BATCH_ORCHESTRATION_FAILED"
    assert job.error_message == "store went away"


def test_context_failure_persists_failed_log(session_factory, test_db):
    """Test a failure before the attempt still leaves a failed log."""
    project = make_project(test_db)
    make_agent(test_db, "general")
    make_schedule(test_db, project, "general")

    class FailingBuilder(ContextBuilder):
        def get_action_configs(self, db, project_id, agent_slug):
            raise RuntimeError("configs unavailable")

    result = _coordinator(session_factory, context_builder=FailingBuilder()).run_batch_orchestration(project.id)

    assert result.agents_failed == 1
    log = test_db.query(ExecutionLog).one()
    assert log.status == "failed"
    assert log.error_message == "configs unavailable"
    assert log.should_act is True
    assert log.do_nothing_reason is None


def test_action_config_store_error_fails_the_attempt(session_factory, test_db):
    """Test an unreadable action config store fails only that agent's attempt."""
    project = make_project(test_db)
    make_agent(test_db, "general")
    general = make_schedule(test_db, project, "general")

    class UnreadableBuilder(ContextBuilder):
        def get_action_configs(self, db, project_id, agent_slug):
            return Result.fail(ErrorKind.STORE_ERROR, "connection reset")

    result = _coordinator(session_factory, context_builder=UnreadableBuilder()).run_batch_orchestration(project.id)

    assert result.status == "failed"
    log = test_db.query(ExecutionLog).one()
    assert log.error_message == "Action configs unavailable: connection reset"
    assert log.should_act is True
    test_db.expire_all()
    assert test_db.get(Schedule, general.id).consecutive_failures == 1


def test_job_records_attempt_numbers(session_factory, test_db):
    """Test the job carries the attempt it belongs to; direct runs get a budget of one."""
    project = make_project(test_db)
    coordinator = _coordinator(session_factory)

    retried = coordinator.run_batch_orchestration(project.id, attempt_number=3, max_attempts=5)
    direct = coordinator.run_batch_orchestration(project.id)

    retried_job = test_db.get(Job, retried.job_id)
    direct_job = test_db.get(Job, direct.job_id)
    assert (retried_job.attempt_number, retried_job.max_attempts) == (3, 5)
    assert (direct_job.attempt_number, direct_job.max_attempts) == (1, 1)


def test_adopts_pending_job(session_factory, test_db):
    """Test a pre-created pending job is reused."""
    project = make_project(test_db)
    job = Job(project_id=project.id, status="pending", triggered_by="api")
    test_db.add(job)
    test_db.commit()

    result = _coordinator(session_factory).run_batch_orchestration(project.id, job_id=job.id)

    assert result.job_id == job.id
    test_db.expire_all()
    assert test_db.get(Job, job.id).status == "completed"


def test_expire_overdue_jobs(session_factory, test_db):
    """Test running jobs past their deadline time out."""
    project = make_project(test_db)
    overdue = Job(project_id=project.id, status="running", started_at=NOW, timeout_at=NOW + timedelta(minutes=10))
    fresh = Job(project_id=project.id, status="running", started_at=NOW, timeout_at=NOW + timedelta(hours=2))
    test_db.add_all([overdue, fresh])
    test_db.commit()

    expired = _coordinator(session_factory).expire_overdue_jobs(NOW + timedelta(hours=1))

    assert expired == 1
    test_db.expire_all()
    assert test_db.get(Job, overdue.id).status == "timeout"
    assert test_db.get(Job, fresh.id).status == "running"


def test_analyze_github_refresh_refetches(session_factory, test_db):
    """Test a refresh marks the cache stale and fetches again."""
    project = make_project(test_db, github_repo="acme/app")
    client = FakeGitHubClient()
    coordinator = _coordinator(session_factory, github_client=client)

    coordinator.analyze_github(project.id)
    coordinator.analyze_github(project.id)
    assert len(client.calls) == 1

    coordinator.analyze_github(project.id, refresh=True)
    assert len(client.calls) == 2


def test_analyze_github_not_configured(session_factory, test_db):
    """Test analysis requires a repository."""
    from orchestration.exceptions import GitHubNotConfigured, ProjectNotFound

    project = make_project(test_db)
    coordinator = _coordinator(session_factory)

    with pytest.raises(GitHubNotConfigured):
        coordinator.analyze_github(project.id)
    with pytest.raises(ProjectNotFound):
        coordinator.analyze_github(uuid.uuid4())
