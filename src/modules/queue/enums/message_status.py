"""
Queue message status enumeration.

This module defines the lifecycle states of a queued message and the
transitions allowed between them.
"""

from enum import Enum


class QueueMessageStatus(str, Enum):
    """
    Enum for queue message status.

    - PENDING: Waiting to be claimed by a consumer
    - PROCESSING: Claimed by a consumer, invisible to other receivers
    - COMPLETED: Acknowledged by the consumer (terminal)
    - FAILED: Dead-lettered by the consumer (terminal)

    A PROCESSING message goes back to PENDING only when the reaper finds
    its claim older than the visibility timeout.
    """

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @classmethod
    def terminal_statuses(cls):
        """Statuses a message never leaves."""
        return [cls.COMPLETED, cls.FAILED]

    def is_terminal(self) -> bool:
        return self in self.terminal_statuses()

    def can_transition_to(self, target: "QueueMessageStatus") -> bool:
        return target in _TRANSITIONS[self]


_TRANSITIONS = {
    QueueMessageStatus.PENDING: {QueueMessageStatus.PROCESSING},
    QueueMessageStatus.PROCESSING: {
        QueueMessageStatus.COMPLETED,
        QueueMessageStatus.FAILED,
        QueueMessageStatus.PENDING,
    },
    QueueMessageStatus.COMPLETED: set(),
    QueueMessageStatus.FAILED: set(),
}
