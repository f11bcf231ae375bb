"""
Seat sampler daemon.

Runs every scheduler stage as its own cancellable periodic task on one event
loop. A stage failure is logged and the next firing proceeds normally. On
SIGINT/SIGTERM a running stage gets a grace period to finish, then the
buffer is flushed and providers and store are closed.
"""

import asyncio
import logging
import signal
from functools import partial
from typing import Any
from typing import Awaitable
from typing import Callable
from typing import List
from typing import Optional

from seat_sampler.scheduler import SchedulerContext
from seat_sampler.scheduler import flush
from seat_sampler.scheduler import housekeeping
from seat_sampler.scheduler import resolve_assignments
from seat_sampler.scheduler import sync
from seat_sampler.scheduler import tick

logger = logging.getLogger(__name__)

Stage = Callable[[SchedulerContext], Awaitable[Any]]


class SeatsDaemon:
    """
    Periodic runner for sync, tick, flush, resolution and housekeeping.

    Args:
        ctx: Scheduler context shared by all stages
    """

    def __init__(self, ctx: SchedulerContext) -> None:
        self.ctx = ctx
        self._tasks: List[asyncio.Task] = []
        self._stop_event = asyncio.Event()
        self._stopped = False

    @property
    def schedule(self) -> List[tuple]:
        """``(name, stage, interval_seconds)`` for every periodic stage."""
        s = self.ctx.settings
        return [
            ("sync", sync, s.resync_minutes * 60),
            ("tick", tick, s.tick_seconds),
            ("flush", partial(flush, force=False), s.flush_minutes * 60),
            ("resolution", resolve_assignments, s.resolution_interval_hours * 3600),
            ("housekeeping", housekeeping, s.housekeeping_minutes * 60),
        ]

    async def run_stage(self, name: str, stage: Stage) -> Optional[Any]:
        """Run one stage, logging instead of raising on failure."""
        try:
            return await stage(self.ctx)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"[{name}] stage failed: {e}")
            return None

    async def _periodic(self, name: str, stage: Stage, interval: float) -> None:
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
                return
            except asyncio.TimeoutError:
                pass
            await self.run_stage(name, stage)

    async def start(self) -> None:
        """Run the initial sync and start the periodic tasks."""
        await self.run_stage("sync", sync)
        for name, stage, interval in self.schedule:
            task = asyncio.create_task(self._periodic(name, stage, interval), name=f"seat_sampler.{name}")
            self._tasks.append(task)
        logger.info(f"Daemon started with providers {self.ctx.providers.tags}")

    def request_stop(self) -> None:
        self._stop_event.set()

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_stop)
            except (NotImplementedError, RuntimeError):
                logger.debug(f"Signal handler for {sig.name} not supported on this platform")

    async def run(self) -> None:
        """Run until a stop is requested, then shut down cleanly."""
        self._install_signal_handlers()
        try:
            await self.start()
            await self._stop_event.wait()
        finally:
            await self.stop()

    async def _drain_tasks(self, grace: float) -> None:
        """
        Wait for periodic tasks to leave their current firing.

        Idle tasks return as soon as the stop event is set; a stage still
        running after ``grace`` seconds is cancelled.
        """
        if not self._tasks:
            return
        _, pending = await asyncio.wait(self._tasks, timeout=grace)
        for task in pending:
            logger.warning(f"{task.get_name()} still running after {grace}s, cancelling")
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

    async def stop(self) -> None:
        """Let running stages finish, flush the buffer, close providers and store."""
        if self._stopped:
            return
        self._stopped = True
        self._stop_event.set()

        await self._drain_tasks(self.ctx.settings.shutdown_grace_seconds)

        result = await self.run_stage("flush", partial(flush, force=True))
        if result is not None:
            logger.info(f"Final flush wrote {result.written}, skipped {result.skipped}")

        await self.ctx.providers.close()
        await self.ctx.db.close()
        logger.info("Daemon stopped")
