"""
Self-rescheduling polling loops for pipeline status and metrics.

Each loop waits one interval, fetches, publishes the result and waits
again. A failed fetch is recorded and the loop keeps going; there is no
backoff. Stopping a loop cancels the outstanding wait or fetch, and a result
that arrives after teardown is discarded.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable

from .backends.base import PipelineBackend
from .context import SessionContext
from .errors import ErrorSink
from .models import PipelineMetrics

logger = logging.getLogger(__name__)


class PollingLoop:
    """
    One periodic fetch loop.

    Only one loop task runs at a time; ``stop`` is final.
    """

    def __init__(
        self,
        name: str,
        fetch: Callable[[], Awaitable[Any]],
        publish: Callable[[Any], None],
        errors: ErrorSink,
        interval: float = 2.0,
    ) -> None:
        """
        Initialize a polling loop.

        Args:
            name: Name used in logs and error records
            fetch: Coroutine function returning the next value
            publish: Called with each fetched value
            errors: Sink for fetch failures
            interval: Seconds to wait before each fetch
        """
        self.name = name
        self._fetch = fetch
        self._publish = publish
        self._errors = errors
        self._interval = interval
        self._destroyed = False
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def start(self) -> None:
        """
        Start the loop.

        Raises:
            RuntimeError: If the loop is already running or was stopped
        """
        if self._destroyed:
            raise RuntimeError(f"Polling loop '{self.name}' was stopped")
        if self.running:
            raise RuntimeError(f"Polling loop '{self.name}' already running")

        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info(f"Started {self.name} polling (interval: {self._interval}s)")

    async def stop(self) -> None:
        """Stop the loop and wait for its task to finish."""
        self._destroyed = True
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
        logger.info(f"Stopped {self.name} polling")

    async def _run(self) -> None:
        try:
            while not self._destroyed:
                await asyncio.sleep(self._interval)
                if self._destroyed:
                    break

                try:
                    result = await self._fetch()
                except Exception as e:
                    if self._destroyed:
                        break
                    self._errors.record(e, f"fetch pipeline {self.name}")
                    continue

                if self._destroyed:
                    break
                logger.debug(f"Fetched pipeline {self.name}")
                self._publish(result)
        except asyncio.CancelledError:
            logger.debug(f"{self.name.capitalize()} polling cancelled")
            raise


class PollingScheduler:
    """
    Runs the status and metrics loops for a session.

    Pausing affects metrics only: fetching continues, but the shared metrics
    snapshot is frozen until monitoring resumes.
    """

    def __init__(
        self,
        backend: PipelineBackend,
        context: SessionContext,
        interval: float = 2.0,
    ) -> None:
        self._context = context
        self._paused = False
        self.status_loop = PollingLoop(
            "status",
            backend.get_pipeline_status,
            context.set_status,
            context.errors,
            interval,
        )
        self.metrics_loop = PollingLoop(
            "metrics",
            backend.get_pipeline_metrics,
            self._publish_metrics,
            context.errors,
            interval,
        )

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def destroyed(self) -> bool:
        return self.status_loop.destroyed and self.metrics_loop.destroyed

    def pause(self) -> None:
        self._paused = True

    def resume(self) -> None:
        self._paused = False

    def start(self) -> None:
        """Start both loops."""
        self.status_loop.start()
        self.metrics_loop.start()

    async def stop(self) -> None:
        """Stop both loops; no fetch is issued afterwards."""
        await asyncio.gather(self.status_loop.stop(), self.metrics_loop.stop())

    def _publish_metrics(self, metrics: PipelineMetrics) -> None:
        if self._paused:
            logger.debug("Monitoring paused, metrics snapshot kept")
            return
        self._context.set_metrics(metrics)
