"""Tests for the context builder."""

import uuid
from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from orchestration.exceptions import ContextBuildError
from orchestration.models.project import Task
from orchestration.models.suggestion import Suggestion
from orchestration.schemas.context import AgentConfig
from orchestration.services.context_builder import ContextBuilder

from conftest import NOW, FakeClock, make_action, make_agent, make_project


def _agent_config(agent):
    return AgentConfig(id=agent.id, slug=agent.slug, name=agent.name)


def test_recent_activity_counts_last_24h(test_db):
    """Test suggestion and task counters only include the last 24 hours."""
    project = make_project(test_db, github_repo="acme/app")
    agent = make_agent(test_db, "researcher")
    test_db.add_all(
        [
            Suggestion(
                project_id=project.id,
                agent_id=agent.id,
                suggestion_type="competitor_analysis",
                title="old",
                date_created=NOW - timedelta(days=3),
            ),
            Suggestion(
                project_id=project.id,
                agent_id=agent.id,
                suggestion_type="market_research",
                title="new",
                date_created=NOW - timedelta(hours=2),
            ),
            Task(project_id=project.id, title="todo", date_created=NOW - timedelta(hours=1)),
        ]
    )
    test_db.commit()

    context = ContextBuilder(clock=FakeClock()).build(
        test_db, project.id, uuid.uuid4(), _agent_config(agent), None, []
    )

    assert context.now == NOW
    assert context.recent_activity["suggestions_last_24h"] == 1
    assert context.recent_activity["tasks_last_24h"] == 1
    assert context.recent_activity["last_suggestion_at"] == NOW - timedelta(hours=2)
    assert context.recent_activity["last_competitor_analysis"] == NOW - timedelta(days=3)
    assert context.project_context == {
        "name": "Acme",
        "description": "Acme project",
        "status": "active",
        "has_github": True,
    }


def test_missing_project_gives_empty_metadata(test_db):
    """Test a missing project is absence, not an error."""
    agent = make_agent(test_db, "general")

    context = ContextBuilder(clock=FakeClock()).build(
        test_db, uuid.uuid4(), uuid.uuid4(), _agent_config(agent), None, []
    )

    assert context.project_context == {}
    assert context.recent_activity["suggestions_last_24h"] == 0


def test_store_error_raises(test_db, monkeypatch):
    """Test a store failure surfaces as ContextBuildError."""
    agent = make_agent(test_db, "general")
    builder = ContextBuilder(clock=FakeClock())

    def broken_query(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("connection lost"))

    monkeypatch.setattr(test_db, "query", broken_query)

    with pytest.raises(ContextBuildError):
        builder.build(test_db, uuid.uuid4(), uuid.uuid4(), _agent_config(agent), None, [])


def test_action_configs_include_shared_actions(test_db):
    """Test agent-specific and cross-agent configs are both returned."""
    project = make_project(test_db)
    make_action(test_db, project, "analyze_code", agent_slug="developer")
    make_action(test_db, project, "update_status", agent_slug=None, is_enabled=False)
    make_action(test_db, project, "draft_blog_post", agent_slug="marketer")

    result = ContextBuilder().get_action_configs(test_db, project.id, "developer")

    assert result.is_ok
    assert [c.action_key for c in result.value] == ["analyze_code", "update_status"]
    assert [c.is_enabled for c in result.value] == [True, False]


def test_agent_specific_action_config_overrides_shared(test_db):
    """Test an agent's own row wins over a shared row with the same key."""
    project = make_project(test_db)
    make_action(test_db, project, "create_issue", agent_slug="developer", is_enabled=False)
    make_action(test_db, project, "create_issue", agent_slug=None, is_enabled=True)
    make_action(test_db, project, "create_issue", agent_slug="researcher", is_enabled=True)

    developer = ContextBuilder().get_action_configs(test_db, project.id, "developer").value
    marketer = ContextBuilder().get_action_configs(test_db, project.id, "marketer").value

    assert [(c.action_key, c.is_enabled) for c in developer] == [("create_issue", False)]
    assert [(c.action_key, c.is_enabled) for c in marketer] == [("create_issue", True)]
