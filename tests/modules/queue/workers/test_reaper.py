import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from src.core.utils.exceptions import StorageError
from src.modules.queue.enums.message_status import QueueMessageStatus
from src.modules.queue.repositories.impl.sqlite.queue_repository import \
    SqliteQueueRepository
from src.modules.queue.services.queue_service import QueueService
from src.modules.queue.workers.reaper import QueueReaper


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


class TestQueueReaper(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.mock_queue_service = MagicMock(spec=QueueService)
        self.mock_queue_service.requeue_stale_in.return_value = 0
        self.clock = FakeClock()
        self.sleeps = []
        self.reaper = QueueReaper(
            queue_service=self.mock_queue_service,
            interval_seconds=10,
            visibility_timeout_seconds=30,
            clock=self.clock,
            sleep=self._sleep,
        )

    async def _sleep(self, seconds):
        self.sleeps.append(seconds)
        self.clock.advance(seconds)
        if len(self.sleeps) >= 3:
            await self.reaper.stop()

    async def test_initialization(self):
        self.assertEqual(self.reaper.interval_seconds, 10)
        self.assertEqual(self.reaper.visibility_timeout_seconds, 30)
        self.assertIsNone(self.reaper.queues)
        self.assertEqual(self.reaper.metrics.total_cycles, 0)
        self.assertFalse(self.reaper.running)

    async def test_invalid_interval(self):
        with self.assertRaises(ValueError):
            QueueReaper(queue_service=self.mock_queue_service, interval_seconds=0)

    async def test_empty_queue_list_sweeps_everything(self):
        reaper = QueueReaper(queue_service=self.mock_queue_service, queues=[])
        self.assertIsNone(reaper.queues)

    async def test_sweep(self):
        self.mock_queue_service.requeue_stale_in.return_value = 4

        result = await self.reaper.sweep()

        self.assertEqual(result, 4)
        self.mock_queue_service.requeue_stale_in.assert_called_once_with(None, 30)
        self.assertEqual(self.reaper.metrics.messages_requeued, 4)
        self.assertEqual(self.reaper.metrics.last_sweep_at, self.clock.now)

    async def test_sweep_selected_queues(self):
        reaper = QueueReaper(
            queue_service=self.mock_queue_service,
            visibility_timeout_seconds=45,
            queues=("emails", "sms"),
        )

        await reaper.sweep()

        self.mock_queue_service.requeue_stale_in.assert_called_once_with(["emails", "sms"], 45)

    async def test_loop_runs_on_fixed_period(self):
        await self.reaper.start()

        self.assertEqual(self.reaper.metrics.total_cycles, 3)
        self.assertEqual(self.mock_queue_service.requeue_stale_in.call_count, 3)
        self.assertEqual(self.sleeps, [10, 10, 10])
        self.assertFalse(self.reaper.running)

    async def test_loop_subtracts_sweep_duration(self):
        def slow_sweep(queues, timeout):
            self.clock.advance(4)
            return 0

        self.mock_queue_service.requeue_stale_in.side_effect = slow_sweep

        await self.reaper.start()

        self.assertEqual(self.sleeps, [6, 6, 6])

    async def test_loop_survives_sweep_errors(self):
        self.mock_queue_service.requeue_stale_in.side_effect = [
            StorageError("connection refused"),
            2,
            1,
        ]

        await self.reaper.start()

        self.assertEqual(self.reaper.metrics.total_cycles, 3)
        self.assertEqual(self.reaper.metrics.errors, 1)
        self.assertEqual(self.reaper.metrics.messages_requeued, 3)


@pytest.mark.asyncio
async def test_reaper_recovers_abandoned_claim(tmp_path):
    clock = FakeClock()
    repository = SqliteQueueRepository(db_path=str(tmp_path / "queue.db"), clock=clock)
    service = QueueService(repository, visibility_timeout_seconds=30)

    message_id = service.send("emails", {"to": "user@example.com"})
    claimed = service.receive("emails")
    assert claimed.id == message_id
    # The consumer crashes here: neither complete nor fail is called

    sweeps = []

    async def fake_sleep(seconds):
        sweeps.append(clock.now)
        clock.advance(seconds)
        if service.stats("emails").counts["pending"] == 1:
            await reaper.stop()

    reaper = QueueReaper(
        queue_service=service,
        interval_seconds=10,
        visibility_timeout_seconds=30,
        clock=clock,
        sleep=fake_sleep,
    )

    await reaper.start()

    # Sweeps at t=0..30 find nothing, t=40 is past the 30s timeout
    assert reaper.metrics.total_cycles == 5
    assert reaper.metrics.messages_requeued == 1

    redelivered = service.receive("emails")
    assert redelivered.id == message_id
    assert redelivered.attempts == 2
    assert redelivered.status == QueueMessageStatus.PROCESSING
