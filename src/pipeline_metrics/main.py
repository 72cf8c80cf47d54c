"""Application entry point for the content pipeline metrics report."""

from __future__ import annotations

import asyncio
import logging
import sys
from datetime import timedelta
from typing import Optional, Sequence

from .cli import parse_args
from .config import Config, load_config
from .errors import ApiError, AuthenticationError, ConfigurationError
from .refresh import DashboardSnapshot, MetricsController
from .report import generate_json, generate_report
from .source import IssueSourceAdapter
from .workspaces import WorkspaceRegistry, is_aggregate

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_UNEXPECTED = 1
EXIT_CONFIGURATION = 2
EXIT_AUTHENTICATION = 3
EXIT_API = 4


def build_controller(config: Config) -> MetricsController:
    """Wire registry, adapter and controller from configuration."""
    registry = WorkspaceRegistry.from_config(config)
    adapter = IssueSourceAdapter(
        registry,
        max_workers=config.max_workers,
        page_size=config.page_size,
        timeout_seconds=config.timeout_seconds,
    )
    return MetricsController(
        adapter,
        registry,
        refresh_interval=timedelta(seconds=config.refresh_interval_seconds),
        rate_limit_cooldown=timedelta(seconds=config.rate_limit_cooldown_seconds),
        upcoming_window_days=config.upcoming_window_days,
    )


async def _refresh(controller: MetricsController, workspace_id: str) -> DashboardSnapshot:
    try:
        return await controller.refresh(workspace_id, force=True)
    finally:
        controller.adapter.shutdown()


def orchestrate_metrics_report(argv: Optional[Sequence[str]] = None) -> int:
    """Run one report and map failures to process exit codes."""
    try:
        args = parse_args(argv)
        logging.basicConfig(
            level=logging.DEBUG if args.verbose else logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

        config = load_config()
        controller = build_controller(config)

        if args.list_workspaces:
            active = {workspace.id for workspace in controller.registry.active_workspaces()}
            for workspace in controller.registry.list_workspaces():
                marker = "" if is_aggregate(workspace.id) or workspace.id in active else " (no API key)"
                print(f"{workspace.id}\t{workspace.name}{marker}")
            controller.adapter.shutdown()
            return EXIT_OK

        workspace = controller.registry.get(args.workspace)
        print(f"Fetching content metrics for '{workspace.name}'...")
        snapshot = asyncio.run(_refresh(controller, workspace.id))

        if snapshot.error:
            print(f"ERROR: {snapshot.error}", file=sys.stderr)
            return EXIT_API
        if snapshot.metrics is None:
            print("ERROR: Could not fetch metrics; see log output for details.", file=sys.stderr)
            return EXIT_API

        if args.json:
            print(generate_json(workspace.id, snapshot.metrics, snapshot.last_updated))
        else:
            print(generate_report(workspace.name, snapshot.metrics, snapshot.last_updated))
        return EXIT_OK
    except ConfigurationError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_CONFIGURATION
    except AuthenticationError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_AUTHENTICATION
    except ApiError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_API
    except Exception:
        logger.exception("Unexpected failure while generating the metrics report")
        return EXIT_UNEXPECTED


def main() -> None:
    raise SystemExit(orchestrate_metrics_report())


if __name__ == "__main__":
    main()
