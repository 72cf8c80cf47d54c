"""Formatting helpers for content pipeline reports.

This module provides utilities for:
- Formatting completion rates and month keys for display.
- Building a human-readable report of a metrics snapshot.
- Serializing a snapshot to JSON for other tools.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import List, Optional, Sequence

from .models import ContentItem, ContentMetrics


def format_rate(rate: float) -> str:
    """Format a completion percentage with one decimal place."""
    return f"{rate:.1f}%"


def format_month(month: str) -> str:
    """Format an ISO month-start timestamp as ``Mon YYYY``.

    Unparseable values are returned unchanged.
    """
    try:
        return datetime.fromisoformat(month).strftime("%b %Y")
    except ValueError:
        return month


def format_timestamp(value: Optional[datetime]) -> str:
    if value is None:
        return "never"
    return value.strftime("%Y-%m-%d %H:%M UTC")


def _item_lines(items: Sequence[ContentItem], limit: int) -> List[str]:
    if not items:
        return ["   (none)"]

    lines = []
    for item in items[:limit]:
        due = item.due_date.isoformat() if item.due_date else "n/a"
        owner = item.assignee or "Unassigned"
        suffix = f" [{item.workspace}]" if item.workspace else ""
        lines.append(f"   {due}  {item.title} ({item.status}, {owner}){suffix}")
    if len(items) > limit:
        lines.append(f"   ... and {len(items) - limit} more")
    return lines


def generate_report(
    workspace_name: str,
    metrics: ContentMetrics,
    last_updated: Optional[datetime] = None,
    limit: int = 10,
) -> str:
    """Generate a human-readable content pipeline report.

    Args:
        workspace_name: Display name of the workspace or aggregate view.
        metrics: Snapshot to render.
        last_updated: When the snapshot was fetched.
        limit: Maximum rows shown per list section.

    Returns:
        Formatted multi-line text report.
    """
    lines = [
        f"Workspace: {workspace_name}",
        "Content Pipeline Report",
        f"Last updated: {format_timestamp(last_updated)}",
        "",
        "1) Overview",
        f"   Total: {metrics.total}",
        f"   Published: {metrics.completed}",
        f"   In progress: {metrics.in_progress}",
        f"   Backlog: {metrics.backlog}",
        f"   Completion rate: {format_rate(metrics.completion_rate)}",
        "",
        "2) Authors",
    ]
    if metrics.authors:
        lines.extend(f"   {author.name}: {author.content_count}" for author in metrics.authors[:limit])
    else:
        lines.append("   (none)")

    lines.extend(["", "3) Monthly Growth"])
    if metrics.monthly_growth:
        lines.extend(
            f"   {format_month(entry.month)}: planned {entry.planned}, completed {entry.completed}"
            for entry in metrics.monthly_growth
        )
    else:
        lines.append("   (none)")

    lines.extend(["", "4) Upcoming Content"])
    lines.extend(_item_lines(metrics.upcoming_content, limit))
    lines.extend(["", "5) Overdue Content"])
    lines.extend(_item_lines(metrics.overdue_content, limit))

    lines.extend(["", "6) Workflow States"])
    if metrics.workflow_states:
        lines.extend(f"   {state.name}: {state.count}" for state in metrics.workflow_states)
    else:
        lines.append("   (none)")

    if metrics.projects:
        lines.extend(["", f"Projects: {', '.join(metrics.projects)}"])

    return "\n".join(lines)


def generate_json(workspace_id: str, metrics: ContentMetrics, last_updated: Optional[datetime] = None) -> str:
    payload = {
        "workspace": workspace_id,
        "lastUpdated": last_updated.isoformat() if last_updated else None,
        "metrics": metrics.to_dict(),
    }
    return json.dumps(payload, indent=2)
