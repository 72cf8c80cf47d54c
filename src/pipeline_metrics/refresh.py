"""Cached, throttled metric refreshes for the dashboard.

Each workspace id (including ``all``) moves through a small state machine::

    EMPTY -> LOADING -> READY
    READY -> LOADING -> READY | ERROR
    ERROR -> READY (cool-down elapsed, stale data kept)

Overlapping refreshes of one workspace are not serialized; whichever fetch
finishes last wins the cache slot.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, FrozenSet, Optional

from .aggregate import fetch_aggregate_metrics
from .errors import ConfigurationError, InvalidTransitionError, RateLimitError
from .metrics import fetch_workspace_metrics
from .models import ContentMetrics
from .source import IssueSourceAdapter
from .workspaces import WorkspaceRegistry, is_aggregate

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_INTERVAL = timedelta(hours=1)
DEFAULT_RATE_LIMIT_COOLDOWN = timedelta(hours=1)


class RefreshStatus(str, enum.Enum):
    EMPTY = "empty"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


TRANSITIONS: Dict[RefreshStatus, FrozenSet[RefreshStatus]] = {
    RefreshStatus.EMPTY: frozenset({RefreshStatus.LOADING}),
    # LOADING -> LOADING is an overlapping refresh of the same workspace.
    RefreshStatus.LOADING: frozenset(
        {RefreshStatus.LOADING, RefreshStatus.READY, RefreshStatus.ERROR, RefreshStatus.EMPTY}
    ),
    RefreshStatus.READY: frozenset({RefreshStatus.LOADING}),
    RefreshStatus.ERROR: frozenset({RefreshStatus.LOADING, RefreshStatus.READY, RefreshStatus.EMPTY}),
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CacheEntry:
    """Immutable cached snapshot for one workspace."""

    metrics: ContentMetrics
    fetched_at: datetime


@dataclass(frozen=True)
class DashboardSnapshot:
    """Everything the presentation layer needs for one workspace."""

    workspace_id: str
    status: RefreshStatus
    metrics: Optional[ContentMetrics]
    loading: bool
    error: Optional[str]
    last_updated: Optional[datetime]


class _WorkspaceState:
    def __init__(self) -> None:
        self.status = RefreshStatus.EMPTY
        self.entry: Optional[CacheEntry] = None
        self.error: Optional[str] = None
        self.throttled_until: Optional[datetime] = None
        self.in_flight = 0


class MetricsController:
    """Serves cached metrics and refetches them when stale or forced."""

    def __init__(
        self,
        adapter: IssueSourceAdapter,
        registry: WorkspaceRegistry,
        refresh_interval: timedelta = DEFAULT_REFRESH_INTERVAL,
        rate_limit_cooldown: timedelta = DEFAULT_RATE_LIMIT_COOLDOWN,
        upcoming_window_days: int = 30,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.adapter = adapter
        self.registry = registry
        self.refresh_interval = refresh_interval
        self.rate_limit_cooldown = rate_limit_cooldown
        self.upcoming_window_days = upcoming_window_days
        self._clock = clock
        self._states: Dict[str, _WorkspaceState] = {}

        workspaces = registry.list_workspaces()
        self.selected_workspace: Optional[str] = workspaces[0].id if workspaces else None

    def select_workspace(self, workspace_id: str) -> None:
        self.registry.get(workspace_id)
        self.selected_workspace = workspace_id

    def _state(self, workspace_id: str) -> _WorkspaceState:
        state = self._states.get(workspace_id)
        if state is None:
            state = self._states[workspace_id] = _WorkspaceState()
        return state

    def _transition(self, workspace_id: str, state: _WorkspaceState, target: RefreshStatus) -> None:
        if target not in TRANSITIONS[state.status]:
            raise InvalidTransitionError(
                f"Cannot move workspace '{workspace_id}' from {state.status.value} to {target.value}."
            )
        logger.debug(
            "Refresh state change",
            extra={"workspace_id": workspace_id, "from": state.status.value, "to": target.value},
        )
        state.status = target

    def _settle(self, workspace_id: str, state: _WorkspaceState) -> None:
        """Leave LOADING once the last in-flight refresh has finished."""
        if state.in_flight > 0 or state.status is not RefreshStatus.LOADING:
            return
        if state.error is not None:
            target = RefreshStatus.ERROR
        elif state.entry is not None:
            target = RefreshStatus.READY
        else:
            target = RefreshStatus.EMPTY
        self._transition(workspace_id, state, target)

    def _expire_cooldown(self, workspace_id: str, state: _WorkspaceState, now: datetime) -> None:
        if state.throttled_until is None or now < state.throttled_until:
            return
        state.throttled_until = None
        if state.status is RefreshStatus.ERROR:
            state.error = None
            self._transition(
                workspace_id,
                state,
                RefreshStatus.READY if state.entry is not None else RefreshStatus.EMPTY,
            )

    def _is_fresh(self, state: _WorkspaceState, now: datetime) -> bool:
        if state.throttled_until is not None and now < state.throttled_until:
            return True
        return state.entry is not None and now - state.entry.fetched_at < self.refresh_interval

    async def _fetch(self, workspace_id: str, now: datetime) -> ContentMetrics:
        if is_aggregate(workspace_id):
            return await fetch_aggregate_metrics(
                self.adapter, self.registry, now, upcoming_window_days=self.upcoming_window_days
            )
        return await fetch_workspace_metrics(
            self.adapter, workspace_id, now, upcoming_window_days=self.upcoming_window_days
        )

    async def refresh(self, workspace_id: Optional[str] = None, force: bool = False) -> DashboardSnapshot:
        """Refresh metrics for a workspace, serving the cache when it is fresh.

        Rate limit failures are reported through ``DashboardSnapshot.error``
        and throttle further non-forced refreshes for the cool-down period.
        Any other failure is logged and the last good data is kept.

        Args:
            workspace_id: Workspace to refresh; defaults to the selected one.
            force: Fetch even when the cached snapshot is still fresh.
        """
        workspace_id = workspace_id or self.selected_workspace
        if workspace_id is None:
            raise ConfigurationError("No workspace selected.")
        self.registry.get(workspace_id)

        state = self._state(workspace_id)
        now = self._clock()
        self._expire_cooldown(workspace_id, state, now)

        if not force and self._is_fresh(state, now):
            logger.debug("Serving cached metrics", extra={"workspace_id": workspace_id})
            return self.snapshot(workspace_id)

        self._transition(workspace_id, state, RefreshStatus.LOADING)
        state.in_flight += 1
        try:
            metrics = await self._fetch(workspace_id, now)
        except RateLimitError as exc:
            state.error = exc.message
            state.throttled_until = self._clock() + self.rate_limit_cooldown
            logger.warning(
                "Refresh rate limited",
                extra={"workspace_id": workspace_id, "throttled_until": state.throttled_until.isoformat()},
            )
        except Exception:
            logger.exception("Refresh failed, keeping previous metrics", extra={"workspace_id": workspace_id})
        else:
            state.entry = CacheEntry(metrics=metrics, fetched_at=self._clock())
            state.error = None
            state.throttled_until = None
            logger.info(
                "Refreshed metrics",
                extra={"workspace_id": workspace_id, "issues_total": metrics.total},
            )
        finally:
            state.in_flight -= 1
            self._settle(workspace_id, state)

        return self.snapshot(workspace_id)

    def dismiss_error(self, workspace_id: Optional[str] = None) -> None:
        """Hide the rate limit message; the cool-down itself stays in force."""
        workspace_id = workspace_id or self.selected_workspace
        state = self._states.get(workspace_id) if workspace_id else None
        if state is None or state.error is None:
            return
        state.error = None
        if state.status is RefreshStatus.ERROR:
            self._transition(
                workspace_id,
                state,
                RefreshStatus.READY if state.entry is not None else RefreshStatus.EMPTY,
            )

    def snapshot(self, workspace_id: Optional[str] = None) -> DashboardSnapshot:
        """Current view of a workspace; an elapsed cool-down is cleared first."""
        workspace_id = workspace_id or self.selected_workspace
        if workspace_id is None:
            raise ConfigurationError("No workspace selected.")
        state = self._states.get(workspace_id)
        if state is None:
            state = _WorkspaceState()
        else:
            self._expire_cooldown(workspace_id, state, self._clock())
        return DashboardSnapshot(
            workspace_id=workspace_id,
            status=state.status,
            metrics=state.entry.metrics if state.entry else None,
            loading=state.status is RefreshStatus.LOADING,
            error=state.error,
            last_updated=state.entry.fetched_at if state.entry else None,
        )
