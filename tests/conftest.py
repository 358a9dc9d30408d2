"""Pytest configuration and fixtures."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import orchestration.models  # noqa: F401
from orchestration.database import Base
from orchestration.models.action_config import ActionConfig
from orchestration.models.agent import Agent
from orchestration.models.project import Project
from orchestration.models.schedule import Schedule

# Wednesday
NOW = datetime(2026, 1, 14, 12, 0, 0)


class FakeClock:
    """Callable clock; advances by ``step`` on every call."""

    def __init__(self, now=NOW, step=timedelta(0)):
        self.now = now
        self.step = step

    def __call__(self):
        current = self.now
        self.now = self.now + self.step
        return current

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class FakeGitHubClient:
    """Stands in for the GitHub REST client."""

    def __init__(self, activity=None, configured=True, error=None):
        self.activity = activity or {"issues": [], "pulls": []}
        self.configured = configured
        self.error = error
        self.calls = []

    def is_configured(self):
        return self.configured

    def fetch_activity(self, repo, since, until):
        self.calls.append((repo, since, until))
        if self.error:
            raise self.error
        return self.activity


@pytest.fixture(scope="function")
def session_factory():
    """In-memory SQLite shared by every session of one test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    yield TestingSessionLocal

    engine.dispose()


@pytest.fixture(scope="function")
def test_db(session_factory):
    """Create a test database session for each test."""
    db = session_factory()

    yield db

    db.close()


def make_project(db, name="Acme", github_repo=None, status="active"):
    project = Project(name=name, description=f"{name} project", status=status, github_repo=github_repo)
    db.add(project)
    db.commit()
    return project


def make_agent(db, slug, name=None, is_active=True):
    agent = Agent(slug=slug, name=name or slug.title(), capabilities=[], is_active=is_active)
    db.add(agent)
    db.commit()
    return agent


def make_schedule(db, project, agent_slug, **kwargs):
    schedule = Schedule(project_id=project.id, agent_slug=agent_slug, **kwargs)
    db.add(schedule)
    db.commit()
    return schedule


def make_action(db, project, action_key, agent_slug=None, is_enabled=True, requires_approval=True):
    config = ActionConfig(
        project_id=project.id,
        action_key=action_key,
        action_name=action_key.replace("_", " ").title(),
        agent_slug=agent_slug,
        is_enabled=is_enabled,
        requires_approval=requires_approval,
        risk_level="low",
    )
    db.add(config)
    db.commit()
    return config
