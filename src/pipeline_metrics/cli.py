"""Command-line argument parsing for the content pipeline metrics report."""

from __future__ import annotations

import argparse
from typing import Optional, Sequence


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments for a metrics report.

    Returns:
        Parsed CLI arguments containing the workspace id, output format,
        and logging verbosity.
    """
    parser = argparse.ArgumentParser(
        prog="content-pipeline-metrics",
        description=(
            "Report content pipeline metrics (status counts, authors, monthly "
            "growth, upcoming and overdue content) from Linear workspaces."
        ),
    )

    parser.add_argument(
        "--workspace",
        default="all",
        help="Workspace id to report on, or 'all' for every workspace (default: all).",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the metrics snapshot as JSON instead of a text report.",
    )
    parser.add_argument(
        "--list-workspaces",
        action="store_true",
        help="List configured workspaces and exit.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )

    return parser.parse_args(argv)
