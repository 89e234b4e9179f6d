"""
Queue reaper.
Periodically returns messages whose claim outlived the visibility timeout
to the pending pool, recovering work of crashed or hung consumers.
"""

import asyncio
import signal
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Optional, Sequence

from starlette.concurrency import run_in_threadpool

from src.core.utils import Clock, get_logger, utc_now
from src.modules.queue.services.queue_service import QueueService

logger = get_logger(__name__)


@dataclass
class ReaperMetrics:
    """Metrics for the reaper."""

    total_cycles: int = 0
    messages_requeued: int = 0
    errors: int = 0
    started_at: Optional[datetime] = None
    last_sweep_at: Optional[datetime] = None


class QueueReaper:
    """
    Recurring sweep over PROCESSING messages.

    Runs on a fixed period regardless of load. ``clock`` and ``sleep`` are
    injectable so the loop can be driven with simulated time.
    """

    def __init__(
        self,
        queue_service: QueueService,
        interval_seconds: float = 10,
        visibility_timeout_seconds: int = 30,
        queues: Optional[Sequence[str]] = None,
        clock: Clock = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be greater than zero")
        self.queue_service = queue_service
        self.interval_seconds = interval_seconds
        self.visibility_timeout_seconds = visibility_timeout_seconds
        # None or empty sweeps every queue
        self.queues = list(queues) if queues else None
        self.clock = clock
        self.sleep = sleep
        self.running = False
        self.metrics = ReaperMetrics()

    async def sweep(self) -> int:
        """Run one sweep. Returns the number of requeued messages."""
        requeued = await run_in_threadpool(
            self.queue_service.requeue_stale_in,
            self.queues,
            self.visibility_timeout_seconds,
        )
        self.metrics.messages_requeued += requeued
        self.metrics.last_sweep_at = self.clock()
        return requeued

    async def start(self):
        """Start the reaper loop."""
        self.running = True
        self.metrics.started_at = self.clock()

        logger.info(
            "Starting queue reaper",
            interval=self.interval_seconds,
            visibility_timeout=self.visibility_timeout_seconds,
            queues=self.queues or "*",
        )

        try:
            while self.running:
                cycle_start = self.clock()
                self.metrics.total_cycles += 1

                try:
                    await self.sweep()
                except Exception as e:
                    self.metrics.errors += 1
                    logger.error("Reaper sweep failed", error=str(e), cycle=self.metrics.total_cycles)

                elapsed = (self.clock() - cycle_start).total_seconds()
                sleep_time = max(0, self.interval_seconds - elapsed)

                if self.running:
                    await self.sleep(sleep_time)
        finally:
            self.running = False
            logger.info("Queue reaper stopped")

    async def stop(self):
        """Graceful shutdown."""
        logger.info("Reaper shutdown requested")
        self.running = False


async def main_async():
    """Entry point."""
    import argparse

    from src.core.config import settings
    from src.core.di.container import Container
    from src.core.observability import setup_observability

    parser = argparse.ArgumentParser(description="Requeue messages whose visibility timeout expired")
    parser.add_argument("--interval", type=float, default=settings.queue.reaper_interval_seconds)
    parser.add_argument("--timeout", type=int, default=settings.queue.visibility_timeout_seconds)
    parser.add_argument(
        "--queue",
        action="append",
        dest="queues",
        help="Queue to sweep (repeatable, default: all queues)",
    )
    args = parser.parse_args()

    setup_observability()
    container = Container()

    reaper = container.queue_reaper(
        interval_seconds=args.interval,
        visibility_timeout_seconds=args.timeout,
        queues=args.queues or settings.queue.reaper_queues,
    )

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, lambda: asyncio.create_task(reaper.stop()))
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass

    await reaper.start()


def main():
    try:
        asyncio.run(main_async())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
