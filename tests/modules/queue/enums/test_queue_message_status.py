import pytest

from src.modules.queue.enums.message_status import QueueMessageStatus


class TestQueueMessageStatus:

    def test_values(self):
        assert [s.value for s in QueueMessageStatus] == [
            "pending",
            "processing",
            "completed",
            "failed",
        ]

    def test_terminal_statuses(self):
        assert QueueMessageStatus.COMPLETED.is_terminal()
        assert QueueMessageStatus.FAILED.is_terminal()
        assert not QueueMessageStatus.PENDING.is_terminal()
        assert not QueueMessageStatus.PROCESSING.is_terminal()

    @pytest.mark.parametrize(
        "source,target",
        [
            (QueueMessageStatus.PENDING, QueueMessageStatus.PROCESSING),
            (QueueMessageStatus.PROCESSING, QueueMessageStatus.COMPLETED),
            (QueueMessageStatus.PROCESSING, QueueMessageStatus.FAILED),
            (QueueMessageStatus.PROCESSING, QueueMessageStatus.PENDING),
        ],
    )
    def test_allowed_transitions(self, source, target):
        assert source.can_transition_to(target)

    @pytest.mark.parametrize(
        "source,target",
        [
            (QueueMessageStatus.PENDING, QueueMessageStatus.COMPLETED),
            (QueueMessageStatus.PENDING, QueueMessageStatus.FAILED),
            (QueueMessageStatus.COMPLETED, QueueMessageStatus.PENDING),
            (QueueMessageStatus.COMPLETED, QueueMessageStatus.FAILED),
            (QueueMessageStatus.FAILED, QueueMessageStatus.PENDING),
            (QueueMessageStatus.FAILED, QueueMessageStatus.COMPLETED),
        ],
    )
    def test_forbidden_transitions(self, source, target):
        assert not source.can_transition_to(target)

    def test_is_str(self):
        assert QueueMessageStatus("processing") == "processing"
