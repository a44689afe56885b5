"""Periodic session cleanup job.

The job is an ordinary object constructed with the lifecycle service it
drives; the application starts it in its lifespan and stops it on shutdown.
Nothing about it is global, so tests can run it in isolation.
"""

import asyncio
from typing import Optional

from structlog import get_logger

from sessionguard.domain.services.auth.session import SessionLifecycleService
from sessionguard.domain.value_objects.session_info import CleanupResult

logger = get_logger(__name__)


class SessionCleanupJob:
    """Runs `SessionLifecycleService.run_scheduled_cleanup` every ``interval_seconds``.

    Args:
        lifecycle_service: Service performing the cleanup pass.
        interval_seconds: Delay between passes.
        run_on_start: Run one pass immediately when started.
    """

    def __init__(
        self,
        lifecycle_service: SessionLifecycleService,
        interval_seconds: float,
        run_on_start: bool = False,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._lifecycle = lifecycle_service
        self._interval = interval_seconds
        self._run_on_start = run_on_start
        self._task: Optional[asyncio.Task] = None
        self._stopping: Optional[asyncio.Event] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the job on the running event loop; a no-op if already running."""
        if self.is_running:
            return
        self._stopping = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name="session-cleanup")
        logger.info("Session cleanup job started", interval_seconds=self._interval)

    async def stop(self) -> None:
        """Stop the job and wait for an in-flight pass to finish."""
        if self._task is None:
            return
        self._stopping.set()
        try:
            await self._task
        finally:
            self._task = None
        logger.info("Session cleanup job stopped")

    async def run_once(self) -> Optional[CleanupResult]:
        return await self._lifecycle.run_scheduled_cleanup()

    async def _run(self) -> None:
        if self._run_on_start:
            await self.run_once()
        while not self._stopping.is_set():
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self._interval)
            except asyncio.TimeoutError:
                await self.run_once()
