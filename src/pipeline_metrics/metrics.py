"""Content metric computation for a single workspace.

This module turns a resolved issue list into a ``ContentMetrics`` snapshot:
- status counts and completion rate
- author leaderboard and project list
- monthly planned/completed growth by creation month
- upcoming and overdue content by due date
- workflow state histogram
"""

from __future__ import annotations

import logging
from collections import Counter
from datetime import date, datetime, time, timedelta, timezone
from typing import TYPE_CHECKING, Dict, Iterable, List, Sequence

from .classifier import StateCategory, classify
from .errors import RateLimitError, SourceRateLimitError
from .models import (
    Author,
    ContentItem,
    ContentMetrics,
    MonthlyContent,
    RawIssue,
    WorkflowStateCount,
)

if TYPE_CHECKING:
    from .source import IssueSourceAdapter

logger = logging.getLogger(__name__)

UNKNOWN_STATUS = "Unknown"
PUBLISHED_STATE = "Published"
# Matched literally, not through the classifier.
OVERDUE_EXCLUDED_STATES = frozenset({"Published", "Final Review"})


def completion_rate(completed: int, total: int) -> float:
    """Return ``completed / total`` as a percentage, ``0.0`` for no issues."""
    if total <= 0:
        return 0.0
    return completed / total * 100


def due_datetime(due_date: date) -> datetime:
    """Interpret a timeless due date as UTC midnight."""
    return datetime.combine(due_date, time.min, tzinfo=timezone.utc)


def month_key(created_at: datetime) -> str:
    """Return the ISO timestamp of the UTC month containing ``created_at``."""
    utc_value = created_at.astimezone(timezone.utc)
    return datetime(utc_value.year, utc_value.month, 1, tzinfo=timezone.utc).isoformat()


def to_content_item(issue: RawIssue) -> ContentItem:
    return ContentItem(
        id=issue.id,
        title=issue.title,
        status=issue.state_name or UNKNOWN_STATUS,
        due_date=issue.due_date,
        assignee=issue.assignee.name if issue.assignee and issue.assignee.name else None,
        project=issue.project.name if issue.project and issue.project.name else None,
    )


def rank_authors(issues: Iterable[RawIssue]) -> List[Author]:
    """Count issues per assignee name, busiest first, ties in encounter order."""
    counts: Counter = Counter()
    for issue in issues:
        if issue.assignee is not None and issue.assignee.name:
            counts[issue.assignee.name] += 1

    return [
        Author(id=name, name=name, content_count=count)
        for name, count in sorted(counts.items(), key=lambda entry: -entry[1])
    ]


def collect_projects(issues: Iterable[RawIssue]) -> List[str]:
    names: Dict[str, None] = {}
    for issue in issues:
        if issue.project is not None and issue.project.name:
            names.setdefault(issue.project.name, None)
    return list(names)


def monthly_growth(issues: Iterable[RawIssue]) -> List[MonthlyContent]:
    """Bucket issues by creation month.

    ``completed`` matches the ``Published`` state name exactly, so a renamed
    or differently cased state will not be counted.
    """
    planned: Counter = Counter()
    completed: Counter = Counter()
    for issue in issues:
        key = month_key(issue.created_at)
        planned[key] += 1
        if issue.state_name == PUBLISHED_STATE:
            completed[key] += 1

    return [
        MonthlyContent(month=key, planned=planned[key], completed=completed[key])
        for key in sorted(planned)
    ]


def upcoming_content(
    issues: Iterable[RawIssue],
    now: datetime,
    window: timedelta,
) -> List[ContentItem]:
    """List unfinished issues due strictly between ``now`` and ``now + window``."""
    horizon = now + window
    upcoming = [
        issue
        for issue in issues
        if issue.due_date is not None
        and now < due_datetime(issue.due_date) < horizon
        and classify(issue.state_name) is not StateCategory.COMPLETED
    ]
    upcoming.sort(key=lambda issue: issue.due_date)
    return [to_content_item(issue) for issue in upcoming]


def overdue_content(issues: Iterable[RawIssue], now: datetime) -> List[ContentItem]:
    """List issues due before ``now`` that are not published or in final review."""
    overdue = [
        issue
        for issue in issues
        if issue.due_date is not None
        and due_datetime(issue.due_date) < now
        and issue.state_name not in OVERDUE_EXCLUDED_STATES
    ]
    overdue.sort(key=lambda issue: issue.due_date)
    return [to_content_item(issue) for issue in overdue]


def workflow_state_histogram(issues: Iterable[RawIssue]) -> List[WorkflowStateCount]:
    counts: Counter = Counter(issue.state_name or UNKNOWN_STATUS for issue in issues)
    return [
        WorkflowStateCount(name=name, count=count)
        for name, count in sorted(counts.items(), key=lambda entry: -entry[1])
    ]


def compute_metrics(
    issues: Sequence[RawIssue],
    now: datetime,
    upcoming_window_days: int = 30,
) -> ContentMetrics:
    """Compute the content metrics snapshot for one workspace.

    Business logic:
    - ``backlog`` counts canceled issues as well as backlog ones.
    - Upcoming and overdue windows are measured against the injected ``now``.
    - The input order is kept wherever ties need breaking.

    Args:
        issues: Fully resolved issues in source order.
        now: Timezone-aware reference time.
        upcoming_window_days: Length of the upcoming window in days.

    Returns:
        A fresh ``ContentMetrics`` snapshot.
    """
    categories = Counter(classify(issue.state_name) for issue in issues)
    total = len(issues)
    completed = categories[StateCategory.COMPLETED]
    in_progress = categories[StateCategory.IN_PROGRESS]
    backlog = categories[StateCategory.BACKLOG] + categories[StateCategory.CANCELED]

    metrics = ContentMetrics(
        total=total,
        completed=completed,
        in_progress=in_progress,
        backlog=backlog,
        completion_rate=completion_rate(completed, total),
        authors=tuple(rank_authors(issues)),
        projects=tuple(collect_projects(issues)),
        monthly_growth=tuple(monthly_growth(issues)),
        upcoming_content=tuple(upcoming_content(issues, now, timedelta(days=upcoming_window_days))),
        overdue_content=tuple(overdue_content(issues, now)),
        workflow_states=tuple(workflow_state_histogram(issues)),
    )

    logger.debug(
        "Computed content metrics",
        extra={
            "issues_total": total,
            "completed": completed,
            "in_progress": in_progress,
            "backlog": backlog,
            "canceled": categories[StateCategory.CANCELED],
        },
    )
    return metrics


async def fetch_workspace_metrics(
    adapter: "IssueSourceAdapter",
    workspace_id: str,
    now: datetime,
    upcoming_window_days: int = 30,
) -> ContentMetrics:
    """Fetch a workspace's issues and compute its metrics.

    Raises:
        RateLimitError: If Linear rate limited any request for this workspace.
    """
    try:
        issues = await adapter.fetch_issues(workspace_id)
    except SourceRateLimitError as exc:
        logger.warning("Linear rate limit reached", extra={"workspace_id": workspace_id})
        raise RateLimitError() from exc

    return compute_metrics(issues, now, upcoming_window_days=upcoming_window_days)
