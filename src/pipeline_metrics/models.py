"""Domain models for content pipeline metrics.

Source records model only the subset of Linear payload fields needed for
metric computation. Metric snapshots are frozen so a cached snapshot can be
handed to the presentation layer without copying.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True, slots=True)
class Workspace:
    """A configured Linear workspace, or the ``all`` aggregate view."""

    id: str
    name: str


@dataclass(frozen=True, slots=True)
class WorkflowState:
    """A named stage in a workspace's issue lifecycle."""

    id: str
    name: str
    type: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Person:
    """A resolved issue assignee."""

    id: str
    name: str


@dataclass(frozen=True, slots=True)
class Project:
    """A resolved issue project."""

    id: str
    name: str


@dataclass(frozen=True, slots=True)
class IssueNode:
    """An issue as listed by Linear, with references not yet resolved."""

    id: str
    title: str
    due_date: Optional[date]
    created_at: datetime
    state_id: Optional[str]
    assignee_id: Optional[str]
    project_id: Optional[str]


@dataclass(frozen=True, slots=True)
class RawIssue:
    """An issue with its state, assignee and project fully resolved."""

    id: str
    title: str
    due_date: Optional[date]
    created_at: datetime
    state: Optional[WorkflowState] = None
    assignee: Optional[Person] = None
    project: Optional[Project] = None

    @property
    def state_name(self) -> Optional[str]:
        return self.state.name if self.state is not None else None


@dataclass(frozen=True, slots=True)
class Author:
    """Leaderboard entry. The display name doubles as the identifier."""

    id: str
    name: str
    content_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "contentCount": self.content_count}


@dataclass(frozen=True, slots=True)
class ContentItem:
    """A piece of content listed in the upcoming or overdue tables."""

    id: str
    title: str
    status: str
    due_date: Optional[date]
    assignee: Optional[str]
    project: Optional[str]
    workspace: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "status": self.status,
            "dueDate": self.due_date.isoformat() if self.due_date else None,
            "assignee": self.assignee,
            "project": self.project,
        }
        if self.workspace is not None:
            payload["workspace"] = self.workspace
        return payload


@dataclass(frozen=True, slots=True)
class MonthlyContent:
    """Planned vs. completed content for one calendar month."""

    month: str
    planned: int
    completed: int

    def to_dict(self) -> Dict[str, Any]:
        return {"month": self.month, "planned": self.planned, "completed": self.completed}


@dataclass(frozen=True, slots=True)
class WorkflowStateCount:
    """Histogram bucket keyed by raw workflow state name."""

    name: str
    count: int

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "count": self.count}


@dataclass(frozen=True, slots=True)
class ContentMetrics:
    """Aggregate metrics snapshot for one workspace or the aggregate view.

    ``completed + in_progress + backlog`` equals ``total`` because canceled
    issues are counted as backlog.
    """

    total: int = 0
    completed: int = 0
    in_progress: int = 0
    backlog: int = 0
    completion_rate: float = 0.0
    authors: Tuple[Author, ...] = ()
    projects: Tuple[str, ...] = ()
    monthly_growth: Tuple[MonthlyContent, ...] = ()
    upcoming_content: Tuple[ContentItem, ...] = ()
    overdue_content: Tuple[ContentItem, ...] = ()
    workflow_states: Tuple[WorkflowStateCount, ...] = ()

    @classmethod
    def empty(cls) -> "ContentMetrics":
        return cls()

    def tagged(self, workspace_id: str) -> "ContentMetrics":
        """Return a copy whose content items record their source workspace."""
        return replace(
            self,
            upcoming_content=tuple(replace(item, workspace=workspace_id) for item in self.upcoming_content),
            overdue_content=tuple(replace(item, workspace=workspace_id) for item in self.overdue_content),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Render the snapshot in the shape consumed by the dashboard."""
        return {
            "total": self.total,
            "completed": self.completed,
            "inProgress": self.in_progress,
            "backlog": self.backlog,
            "completionRate": self.completion_rate,
            "authors": [author.to_dict() for author in self.authors],
            "projects": list(self.projects),
            "monthlyGrowth": [month.to_dict() for month in self.monthly_growth],
            "upcomingContent": [item.to_dict() for item in self.upcoming_content],
            "overdueContent": [item.to_dict() for item in self.overdue_content],
            "workflowStates": [state.to_dict() for state in self.workflow_states],
        }
