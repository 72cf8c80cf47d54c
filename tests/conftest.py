"""Shared fixtures for content pipeline metrics tests."""

import sys
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from pipeline_metrics.models import Person, Project, RawIssue, WorkflowState

NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


def make_issue(
    issue_id: str = "issue-1",
    state: str | None = "In Progress",
    due: date | None = None,
    created: datetime | None = None,
    assignee: str | None = None,
    project: str | None = None,
    title: str | None = None,
) -> RawIssue:
    return RawIssue(
        id=issue_id,
        title=title or f"Article {issue_id}",
        due_date=due,
        created_at=created or NOW - timedelta(days=3),
        state=WorkflowState(id=f"state-{state}", name=state, type="started") if state is not None else None,
        assignee=Person(id=f"user-{assignee}", name=assignee) if assignee else None,
        project=Project(id=f"project-{project}", name=project) if project else None,
    )


def days_from_now(days: int) -> date:
    return (NOW + timedelta(days=days)).date()


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def sample_issues():
    """A small workspace covering every category and both date windows."""
    return [
        make_issue("a1", "Published", due=days_from_now(-5), assignee="Sarah Johnson", project="Blog",
                   created=datetime(2025, 12, 3, tzinfo=timezone.utc)),
        make_issue("a2", "Editor Review", due=days_from_now(3), assignee="Mike Chen", project="Guides"),
        make_issue("a3", "Backlog", due=days_from_now(40), assignee="Sarah Johnson", project="Blog"),
        make_issue("a4", "Canceled", assignee="Lisa Patel"),
        make_issue("a5", "In Progress", due=days_from_now(-2), assignee="Mike Chen"),
        make_issue("a6", "Final Review", due=days_from_now(-1), project="Guides"),
    ]
