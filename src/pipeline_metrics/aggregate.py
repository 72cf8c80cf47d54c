"""Cross-workspace aggregation of content metrics.

Workspaces finish fetching in arbitrary order, so ``combine`` must give the
same answer however its inputs are ordered or grouped. Merging two or more
snapshots therefore uses a canonical order that depends only on the merged
values: equal counts by name, projects by name, content items by due date,
workspace and id. A single non-empty snapshot is returned as is, keeping the
encounter-order ties of ``compute_metrics`` for one workspace.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime
from typing import Dict, List, Optional, Sequence, Tuple

from .errors import RateLimitError
from .metrics import completion_rate, fetch_workspace_metrics
from .models import Author, ContentItem, ContentMetrics, MonthlyContent, WorkflowStateCount
from .source import IssueSourceAdapter
from .workspaces import WorkspaceRegistry

logger = logging.getLogger(__name__)


def _merge_counts(entries: Sequence[Sequence[Tuple[str, int]]]) -> List[Tuple[str, int]]:
    """Sum counts by name and sort descending by count, then by name."""
    totals: Dict[str, int] = {}
    for source in entries:
        for name, count in source:
            totals[name] = totals.get(name, 0) + count
    return sorted(totals.items(), key=lambda entry: (-entry[1], entry[0]))


def _merge_projects(sources: Sequence[Sequence[str]]) -> List[str]:
    return sorted({name for source in sources for name in source})


def _merge_items(sources: Sequence[Sequence[ContentItem]]) -> List[ContentItem]:
    """Concatenate content items, ascending by due date."""
    items = [item for source in sources for item in source]
    return sorted(items, key=lambda item: (item.due_date or date.max, item.workspace or "", item.id))


def combine(metrics_list: Sequence[ContentMetrics]) -> ContentMetrics:
    """Combine per-workspace snapshots into one aggregate snapshot.

    - Scalar counts are summed and the completion rate is recomputed from
      the sums, never averaged.
    - Authors and workflow states are merged by name, projects by union,
      months by key.
    - Upcoming and overdue items are concatenated, ascending by due date.

    Empty snapshots contribute nothing. With no input left the result is
    ``ContentMetrics.empty()``; with exactly one it is that snapshot.
    """
    empty = ContentMetrics.empty()
    metrics_list = [metrics for metrics in metrics_list if metrics != empty]
    if not metrics_list:
        return empty
    if len(metrics_list) == 1:
        return metrics_list[0]

    total = sum(metrics.total for metrics in metrics_list)
    completed = sum(metrics.completed for metrics in metrics_list)

    authors = _merge_counts(
        [[(author.name, author.content_count) for author in metrics.authors] for metrics in metrics_list]
    )
    states = _merge_counts(
        [[(state.name, state.count) for state in metrics.workflow_states] for metrics in metrics_list]
    )

    months: Dict[str, List[int]] = {}
    for metrics in metrics_list:
        for entry in metrics.monthly_growth:
            bucket = months.setdefault(entry.month, [0, 0])
            bucket[0] += entry.planned
            bucket[1] += entry.completed

    return ContentMetrics(
        total=total,
        completed=completed,
        in_progress=sum(metrics.in_progress for metrics in metrics_list),
        backlog=sum(metrics.backlog for metrics in metrics_list),
        completion_rate=completion_rate(completed, total),
        authors=tuple(Author(id=name, name=name, content_count=count) for name, count in authors),
        projects=tuple(_merge_projects([metrics.projects for metrics in metrics_list])),
        monthly_growth=tuple(
            MonthlyContent(month=month, planned=planned, completed=done)
            for month, (planned, done) in sorted(months.items())
        ),
        upcoming_content=tuple(_merge_items([metrics.upcoming_content for metrics in metrics_list])),
        overdue_content=tuple(_merge_items([metrics.overdue_content for metrics in metrics_list])),
        workflow_states=tuple(WorkflowStateCount(name=name, count=count) for name, count in states),
    )


async def fetch_aggregate_metrics(
    adapter: IssueSourceAdapter,
    registry: WorkspaceRegistry,
    now: datetime,
    upcoming_window_days: int = 30,
) -> ContentMetrics:
    """Fetch every active workspace concurrently and combine the results.

    A workspace that fails for any reason other than rate limiting is logged
    and left out of the aggregate. If any workspace was rate limited the
    ``RateLimitError`` is raised once all siblings have finished.

    Raises:
        RateLimitError: If at least one workspace was rate limited.
    """
    workspaces = registry.active_workspaces()
    results = await asyncio.gather(
        *(
            fetch_workspace_metrics(adapter, workspace.id, now, upcoming_window_days=upcoming_window_days)
            for workspace in workspaces
        ),
        return_exceptions=True,
    )

    collected: List[ContentMetrics] = []
    rate_limited: Optional[RateLimitError] = None
    for workspace, result in zip(workspaces, results):
        if isinstance(result, RateLimitError):
            rate_limited = rate_limited or result
        elif isinstance(result, Exception):
            logger.warning(
                "Skipping workspace in aggregate view: %s",
                result,
                extra={"workspace_id": workspace.id, "error_type": type(result).__name__},
            )
        elif isinstance(result, BaseException):
            raise result
        else:
            collected.append(result.tagged(workspace.id))

    if rate_limited is not None:
        raise rate_limited

    logger.info(
        "Combined workspace metrics",
        extra={"workspaces_total": len(workspaces), "workspaces_combined": len(collected)},
    )
    return combine(collected)
