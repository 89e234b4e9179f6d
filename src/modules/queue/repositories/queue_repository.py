from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from src.modules.queue.enums.message_status import QueueMessageStatus
from src.modules.queue.models.queue_message import QueueMessage


class QueueRepository(ABC):
    """
    Storage contract for the message queue.

    Every method is a single atomic unit against the storage engine and
    re-reads authoritative state; implementations keep no message state in
    memory. Driver failures are raised as ``StorageError``.
    """

    @abstractmethod
    def send(self, queue: str, payload: Any) -> int:
        """
        Insert a pending message.
        Returns the new message ID.
        """
        pass

    @abstractmethod
    def receive(self, queue: str) -> Optional[QueueMessage]:
        """
        Claim the oldest unlocked pending message of the queue.

        The claimed row becomes PROCESSING, its attempts are incremented and
        processed_at is set to now. Two concurrent callers never claim the
        same row.
        Returns None if nothing can be claimed.
        """
        pass

    @abstractmethod
    def complete(self, message_id: int) -> bool:
        """
        Move a PROCESSING message to COMPLETED.
        Returns False if the message is unknown or not PROCESSING.
        """
        pass

    @abstractmethod
    def fail(self, message_id: int) -> bool:
        """
        Move a PROCESSING message to FAILED (dead-letter).
        Returns False if the message is unknown or not PROCESSING.
        """
        pass

    @abstractmethod
    def requeue_stale(
        self, timeout_seconds: int, queues: Optional[Sequence[str]] = None
    ) -> int:
        """
        Return PROCESSING messages claimed more than ``timeout_seconds`` ago
        to PENDING and clear their processed_at.
        ``queues=None`` covers every queue.
        Returns the number of requeued messages.
        """
        pass

    @abstractmethod
    def count_by_status(self, queue: str) -> Dict[str, int]:
        """Count messages of a queue grouped by status (absent statuses omitted)."""
        pass

    @abstractmethod
    def list_messages(
        self,
        queue: str,
        status: Optional[QueueMessageStatus] = None,
        limit: int = 20,
    ) -> List[QueueMessage]:
        """List messages of a queue, oldest first, optionally by status."""
        pass
