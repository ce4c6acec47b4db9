"""
Tests for status and metrics polling.
"""

import asyncio

import pytest

from conftest import GatedBackend
from pipeline_session.context import SessionContext
from pipeline_session.errors import ErrorSink
from pipeline_session.exceptions import BackendError
from pipeline_session.models import PipelineMetrics, PipelineState, PipelineStatus
from pipeline_session.polling import PollingLoop, PollingScheduler

INTERVAL = 0.01


class Counter:
    """Fetch function counting its calls; fails on the listed calls."""

    def __init__(self, fail_on: tuple[int, ...] = ()) -> None:
        self.calls = 0
        self.fail_on = fail_on

    async def __call__(self) -> int:
        self.calls += 1
        if self.calls in self.fail_on:
            raise BackendError(f"fetch {self.calls} failed")
        return self.calls


class TestPollingLoop:
    """Tests for a single polling loop."""

    @pytest.mark.asyncio
    async def test_publishes_periodically(self) -> None:
        """Test that the loop keeps fetching and publishing."""
        published = []
        loop = PollingLoop("status", Counter(), published.append, ErrorSink(), INTERVAL)

        loop.start()
        assert loop.running
        await asyncio.sleep(INTERVAL * 10)
        await loop.stop()

        assert len(published) >= 3
        assert published == sorted(published)

    @pytest.mark.asyncio
    async def test_waits_before_first_fetch(self) -> None:
        """Test that the first fetch happens one interval after start."""
        fetch = Counter()
        loop = PollingLoop("status", fetch, lambda value: None, ErrorSink(), 1.0)

        loop.start()
        await asyncio.sleep(0.01)
        await loop.stop()

        assert fetch.calls == 0

    @pytest.mark.asyncio
    async def test_failure_recorded_and_loop_continues(self) -> None:
        """Test that a failed fetch does not stop polling."""
        errors = ErrorSink()
        published = []
        loop = PollingLoop("metrics", Counter(fail_on=(1,)), published.append, errors, INTERVAL)

        loop.start()
        await asyncio.sleep(INTERVAL * 10)
        await loop.stop()

        assert errors.latest.operation == "fetch pipeline metrics"
        assert 1 not in published
        assert len(published) >= 1

    @pytest.mark.asyncio
    async def test_no_fetch_after_stop(self) -> None:
        """Test that stopping ends all fetching."""
        fetch = Counter()
        loop = PollingLoop("status", fetch, lambda value: None, ErrorSink(), INTERVAL)

        loop.start()
        await asyncio.sleep(INTERVAL * 5)
        await loop.stop()
        calls = fetch.calls
        await asyncio.sleep(INTERVAL * 5)

        assert fetch.calls == calls
        assert loop.destroyed
        assert not loop.running

    @pytest.mark.asyncio
    async def test_result_after_stop_discarded(self) -> None:
        """Test that a fetch outstanding at teardown publishes nothing."""
        gate = asyncio.Event()
        published = []

        async def slow_fetch() -> str:
            await gate.wait()
            return "late"

        loop = PollingLoop("status", slow_fetch, published.append, ErrorSink(), INTERVAL)
        loop.start()
        await asyncio.sleep(INTERVAL * 3)
        await loop.stop()
        gate.set()
        await asyncio.sleep(INTERVAL)

        assert published == []

    @pytest.mark.asyncio
    async def test_start_twice_raises(self) -> None:
        loop = PollingLoop("status", Counter(), lambda value: None, ErrorSink(), INTERVAL)
        loop.start()
        with pytest.raises(RuntimeError, match="already running"):
            loop.start()
        await loop.stop()

    @pytest.mark.asyncio
    async def test_restart_after_stop_raises(self) -> None:
        loop = PollingLoop("status", Counter(), lambda value: None, ErrorSink(), INTERVAL)
        loop.start()
        await loop.stop()
        with pytest.raises(RuntimeError, match="was stopped"):
            loop.start()


class TestPollingScheduler:
    """Tests for the status and metrics scheduler."""

    @pytest.fixture
    def backend(self) -> GatedBackend:
        return GatedBackend(
            status=PipelineStatus(name="pipeline", state=PipelineState.RUNNING),
            metrics=PipelineMetrics(meters={"pipeline.batchCount.meter": {"count": 1}}),
        )

    @pytest.mark.asyncio
    async def test_publishes_into_context(self, backend: GatedBackend) -> None:
        """Test that both snapshots are published to the shared context."""
        context = SessionContext()
        scheduler = PollingScheduler(backend, context, INTERVAL)

        scheduler.start()
        await asyncio.sleep(INTERVAL * 5)
        await scheduler.stop()

        assert context.status.state == PipelineState.RUNNING
        assert "pipeline.batchCount.meter" in context.metrics.meters
        assert scheduler.destroyed

    @pytest.mark.asyncio
    async def test_pause_freezes_metrics(self, backend: GatedBackend) -> None:
        """Test that pausing keeps status flowing but holds metrics."""
        context = SessionContext()
        scheduler = PollingScheduler(backend, context, INTERVAL)
        scheduler.pause()

        scheduler.start()
        await asyncio.sleep(INTERVAL * 5)
        assert context.status is not None
        assert context.metrics is None

        scheduler.resume()
        await asyncio.sleep(INTERVAL * 5)
        await scheduler.stop()
        assert context.metrics is not None

    @pytest.mark.asyncio
    async def test_status_listeners_notified(self, backend: GatedBackend) -> None:
        """Test that status changes reach context listeners."""
        context = SessionContext()
        seen = []
        context.on_status_changed(seen.append)
        scheduler = PollingScheduler(backend, context, INTERVAL)

        scheduler.start()
        await asyncio.sleep(INTERVAL * 5)
        await scheduler.stop()

        assert seen
        assert seen[-1].name == "pipeline"
