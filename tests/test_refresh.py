"""Tests for the cached refresh controller and its state machine."""

import asyncio
import sys
from datetime import timedelta
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from conftest import NOW, make_issue

from pipeline_metrics.errors import ApiError, ConfigurationError, InvalidTransitionError, RateLimitError
from pipeline_metrics.metrics import compute_metrics
from pipeline_metrics.refresh import MetricsController, RefreshStatus
from pipeline_metrics.workspaces import WorkspaceRegistry


class FakeClock:
    def __init__(self):
        self.now = NOW

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry():
    return WorkspaceRegistry(["cloudinary", "jozu"], {"cloudinary": "k1", "jozu": "k2"})


@pytest.fixture
def metrics():
    return compute_metrics([make_issue("i1", "Published")], NOW)


def _controller(monkeypatch, registry, clock, workspace_fetch=None, aggregate_fetch=None):
    workspace_fetch = workspace_fetch or AsyncMock()
    aggregate_fetch = aggregate_fetch or AsyncMock()
    monkeypatch.setattr("pipeline_metrics.refresh.fetch_workspace_metrics", workspace_fetch)
    monkeypatch.setattr("pipeline_metrics.refresh.fetch_aggregate_metrics", aggregate_fetch)
    return MetricsController(Mock(), registry, clock=clock)


def test_controller_starts_empty_with_aggregate_selected(monkeypatch, registry, clock):
    """Verify a new controller selects the aggregate view and has no data."""
    controller = _controller(monkeypatch, registry, clock)

    snapshot = controller.snapshot()

    assert controller.selected_workspace == "all"
    assert snapshot.status is RefreshStatus.EMPTY
    assert snapshot.metrics is None
    assert snapshot.loading is False
    assert snapshot.error is None
    assert snapshot.last_updated is None


@pytest.mark.asyncio
async def test_refresh_twice_within_interval_fetches_once(monkeypatch, registry, clock, metrics):
    """Verify a second non-forced refresh inside the interval is served from cache."""
    fetch = AsyncMock(return_value=metrics)
    controller = _controller(monkeypatch, registry, clock, workspace_fetch=fetch)

    first = await controller.refresh("jozu")
    clock.advance(minutes=59)
    second = await controller.refresh("jozu")

    assert fetch.await_count == 1
    assert first.status is RefreshStatus.READY
    assert second.metrics == metrics
    assert second.last_updated == NOW


@pytest.mark.asyncio
async def test_refresh_after_interval_refetches(monkeypatch, registry, clock, metrics):
    """Verify stale cache entries are refetched."""
    fetch = AsyncMock(return_value=metrics)
    controller = _controller(monkeypatch, registry, clock, workspace_fetch=fetch)

    await controller.refresh("jozu")
    clock.advance(hours=1)
    snapshot = await controller.refresh("jozu")

    assert fetch.await_count == 2
    assert snapshot.last_updated == NOW + timedelta(hours=1)


@pytest.mark.asyncio
async def test_forced_refresh_always_fetches(monkeypatch, registry, clock, metrics):
    """Verify force=True bypasses a fresh cache entry."""
    fetch = AsyncMock(return_value=metrics)
    controller = _controller(monkeypatch, registry, clock, workspace_fetch=fetch)

    await controller.refresh("jozu")
    await controller.refresh("jozu", force=True)

    assert fetch.await_count == 2


@pytest.mark.asyncio
async def test_refresh_all_uses_aggregate_fan_out(monkeypatch, registry, clock, metrics):
    """Verify the aggregate workspace goes through the fan-out path."""
    workspace_fetch = AsyncMock()
    aggregate_fetch = AsyncMock(return_value=metrics)
    controller = _controller(monkeypatch, registry, clock, workspace_fetch, aggregate_fetch)

    snapshot = await controller.refresh()

    aggregate_fetch.assert_awaited_once()
    workspace_fetch.assert_not_awaited()
    assert snapshot.workspace_id == "all"
    assert snapshot.metrics == metrics


@pytest.mark.asyncio
async def test_cache_is_partitioned_by_workspace(monkeypatch, registry, clock, metrics):
    """Verify each workspace keeps its own cache entry."""
    fetch = AsyncMock(return_value=metrics)
    controller = _controller(monkeypatch, registry, clock, workspace_fetch=fetch)

    await controller.refresh("jozu")
    await controller.refresh("cloudinary")

    assert fetch.await_count == 2
    assert controller.snapshot("all").status is RefreshStatus.EMPTY


@pytest.mark.asyncio
async def test_rate_limit_sets_error_and_throttles(monkeypatch, registry, clock, metrics):
    """Verify a rate limit surfaces an error and blocks non-forced refetches."""
    fetch = AsyncMock(side_effect=[metrics, RateLimitError()])
    controller = _controller(monkeypatch, registry, clock, workspace_fetch=fetch)

    await controller.refresh("jozu")
    clock.advance(hours=2)
    limited = await controller.refresh("jozu")
    clock.advance(minutes=30)
    throttled = await controller.refresh("jozu")

    assert fetch.await_count == 2
    assert limited.status is RefreshStatus.ERROR
    assert limited.error == RateLimitError.DEFAULT_MESSAGE
    assert limited.metrics == metrics
    assert limited.loading is False
    assert throttled.status is RefreshStatus.ERROR


@pytest.mark.asyncio
async def test_rate_limit_cooldown_returns_to_ready(monkeypatch, registry, clock, metrics):
    """Verify the error clears after the cool-down and stale data is retained."""
    fetch = AsyncMock(side_effect=[metrics, RateLimitError(), metrics])
    controller = _controller(monkeypatch, registry, clock, workspace_fetch=fetch)

    await controller.refresh("jozu")
    clock.advance(hours=2)
    await controller.refresh("jozu")
    clock.advance(minutes=59)
    assert controller.snapshot("jozu").status is RefreshStatus.ERROR
    clock.advance(minutes=1)

    snapshot = controller.snapshot("jozu")
    assert fetch.await_count == 2
    assert snapshot.status is RefreshStatus.READY
    assert snapshot.error is None
    assert snapshot.metrics == metrics

    refreshed = await controller.refresh("jozu")

    assert fetch.await_count == 3
    assert refreshed.status is RefreshStatus.READY
    assert refreshed.error is None


@pytest.mark.asyncio
async def test_rate_limit_on_first_load_without_cache(monkeypatch, registry, clock):
    """Verify a first-load rate limit leaves no data and still throttles."""
    fetch = AsyncMock(side_effect=RateLimitError())
    controller = _controller(monkeypatch, registry, clock, workspace_fetch=fetch)

    first = await controller.refresh("jozu")
    second = await controller.refresh("jozu")

    assert fetch.await_count == 1
    assert first.metrics is None
    assert second.error is not None


@pytest.mark.asyncio
async def test_forced_refresh_ignores_rate_limit_cooldown(monkeypatch, registry, clock, metrics):
    """Verify a forced refresh fetches even while throttled."""
    fetch = AsyncMock(side_effect=[RateLimitError(), metrics])
    controller = _controller(monkeypatch, registry, clock, workspace_fetch=fetch)

    await controller.refresh("jozu")
    snapshot = await controller.refresh("jozu", force=True)

    assert fetch.await_count == 2
    assert snapshot.status is RefreshStatus.READY
    assert snapshot.error is None


@pytest.mark.asyncio
async def test_generic_error_is_swallowed_and_keeps_previous_data(monkeypatch, registry, clock, metrics):
    """Verify non rate-limit failures are logged without surfacing an error."""
    fetch = AsyncMock(side_effect=[metrics, ApiError("network down")])
    controller = _controller(monkeypatch, registry, clock, workspace_fetch=fetch)

    await controller.refresh("jozu")
    snapshot = await controller.refresh("jozu", force=True)

    assert snapshot.status is RefreshStatus.READY
    assert snapshot.error is None
    assert snapshot.metrics == metrics
    assert snapshot.loading is False


@pytest.mark.asyncio
async def test_generic_error_on_first_load_returns_to_empty(monkeypatch, registry, clock):
    """Verify a failed first load leaves the workspace empty and refetchable."""
    fetch = AsyncMock(side_effect=ApiError("network down"))
    controller = _controller(monkeypatch, registry, clock, workspace_fetch=fetch)

    await controller.refresh("jozu")
    snapshot = await controller.refresh("jozu")

    assert fetch.await_count == 2
    assert snapshot.status is RefreshStatus.EMPTY
    assert snapshot.error is None


@pytest.mark.asyncio
async def test_refresh_reports_loading_while_in_flight(monkeypatch, registry, clock, metrics):
    """Verify the loading flag is set during a fetch and cleared afterwards."""
    release = asyncio.Event()
    seen = []

    async def _fetch(adapter, workspace_id, now, upcoming_window_days=30):
        seen.append(controller.snapshot(workspace_id).loading)
        await release.wait()
        return metrics

    controller = _controller(monkeypatch, registry, clock, workspace_fetch=_fetch)

    task = asyncio.ensure_future(controller.refresh("jozu"))
    await asyncio.sleep(0)
    assert controller.snapshot("jozu").status is RefreshStatus.LOADING
    release.set()
    snapshot = await task

    assert seen == [True]
    assert snapshot.loading is False


@pytest.mark.asyncio
async def test_dismiss_error_keeps_cooldown(monkeypatch, registry, clock, metrics):
    """Verify dismissing the banner clears the message without allowing a refetch."""
    fetch = AsyncMock(side_effect=[metrics, RateLimitError()])
    controller = _controller(monkeypatch, registry, clock, workspace_fetch=fetch)
    controller.select_workspace("jozu")

    await controller.refresh()
    await controller.refresh(force=True)
    controller.dismiss_error()
    snapshot = await controller.refresh()

    assert fetch.await_count == 2
    assert snapshot.error is None
    assert snapshot.status is RefreshStatus.READY


def test_select_unknown_workspace_raises(monkeypatch, registry, clock):
    """Verify selecting an unconfigured workspace is rejected."""
    controller = _controller(monkeypatch, registry, clock)

    with pytest.raises(ConfigurationError):
        controller.select_workspace("missing")


def test_illegal_transition_raises(monkeypatch, registry, clock):
    """Verify the transition table rejects moves it does not list."""
    controller = _controller(monkeypatch, registry, clock)
    state = controller._state("jozu")

    with pytest.raises(InvalidTransitionError):
        controller._transition("jozu", state, RefreshStatus.READY)
