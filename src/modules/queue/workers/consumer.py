import asyncio
from typing import Any, Awaitable, Callable

from starlette.concurrency import run_in_threadpool

from src.core.utils import get_logger
from src.modules.queue.services.queue_service import QueueService

logger = get_logger(__name__)

Handler = Callable[[Any], Awaitable[None]]


class QueueConsumer:
    """
    Polling consumer for one queue.

    Each message is acknowledged with ``complete`` after the handler
    returns, or dead-lettered with ``fail`` if the handler raises. There is
    no in-process retry: a consumer that dies mid-message leaves the claim
    to expire, and the reaper makes the message available again.
    """

    def __init__(
        self,
        queue_service: QueueService,
        queue: str,
        handler: Handler,
        poll_interval_seconds: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.queue_service = queue_service
        self.queue = queue
        self.handler = handler
        self.poll_interval_seconds = poll_interval_seconds
        self.sleep = sleep
        self.running = False

    async def process_one(self) -> bool:
        """
        Process a single message from the queue.
        Returns True if a message was processed, False if queue was empty.
        """
        message = await run_in_threadpool(self.queue_service.receive, self.queue)
        if not message:
            return False

        logger.info(
            "Processing message",
            queue=self.queue,
            message_id=message.id,
            attempts=message.attempts,
        )
        try:
            await self.handler(message.payload)
        except Exception as e:
            logger.error(
                "Handler failed, dead-lettering message",
                queue=self.queue,
                message_id=message.id,
                error=str(e),
            )
            await run_in_threadpool(self.queue_service.fail, message.id)
            return True

        await run_in_threadpool(self.queue_service.complete, message.id)
        return True

    async def start(self):
        """Start the consumer loop (runs until stopped or cancelled)."""
        self.running = True
        logger.info("Starting queue consumer", queue=self.queue)
        try:
            while self.running:
                processed = await self.process_one()
                if not processed and self.running:
                    await self.sleep(self.poll_interval_seconds)
        except asyncio.CancelledError:
            logger.info("Consumer cancelled", queue=self.queue)
            raise
        finally:
            self.running = False
            logger.info("Queue consumer stopped", queue=self.queue)

    async def stop(self):
        self.running = False
