"""
Queue Service module.
"""
import json
from typing import Any, List, Optional, Sequence

from src.core.utils import get_logger
from src.core.utils.exceptions import ValidationError
from src.modules.queue.enums.message_status import QueueMessageStatus
from src.modules.queue.models.queue_message import QueueMessage, QueueStats
from src.modules.queue.repositories.queue_repository import QueueRepository

logger = get_logger(__name__)

QUEUE_NAME_MAX_LENGTH = 100
# message_queue.id is a BIGSERIAL
MESSAGE_ID_MAX = 2**63 - 1


def _contains_nul(value: Any) -> bool:
    """True if any string in a JSON value (keys included) holds a NUL character."""
    if isinstance(value, str):
        return "\x00" in value
    if isinstance(value, dict):
        return any(_contains_nul(k) or _contains_nul(v) for k, v in value.items())
    if isinstance(value, (list, tuple)):
        return any(_contains_nul(v) for v in value)
    return False


class QueueService:
    """
    Facade over the queue repository used by the HTTP layer and workers.

    Requests are validated here, before storage is touched. Storage
    failures propagate as ``StorageError`` and are never retried.
    """

    def __init__(
        self,
        repository: QueueRepository,
        visibility_timeout_seconds: int = 30,
        list_max_limit: int = 1000,
    ):
        """
        Initialize QueueService.

        Args:
            repository: QueueRepository implementation
            visibility_timeout_seconds: Default claim lifetime used by requeue_stale
            list_max_limit: Upper bound for list_messages
        """
        self.repository = repository
        self.visibility_timeout_seconds = visibility_timeout_seconds
        self.list_max_limit = list_max_limit

    @staticmethod
    def _validate_queue(queue: Optional[str]) -> str:
        if queue is None or not str(queue).strip():
            raise ValidationError("Queue name must not be empty")
        queue = str(queue).strip()
        if len(queue) > QUEUE_NAME_MAX_LENGTH:
            raise ValidationError(
                f"Queue name must be at most {QUEUE_NAME_MAX_LENGTH} characters"
            )
        return queue

    @staticmethod
    def _is_message_id(message_id: int) -> bool:
        # Ids outside the column range cannot exist
        return 1 <= message_id <= MESSAGE_ID_MAX

    def send(self, queue: str, payload: Any) -> int:
        """
        Enqueue a message.

        Args:
            queue: Queue name
            payload: Any JSON-serializable value

        Returns:
            ID of the new message

        Raises:
            ValidationError: If the queue name or payload is invalid
        """
        queue = self._validate_queue(queue)
        try:
            json.dumps(payload, allow_nan=False)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Payload is not valid JSON: {e}") from e
        # Postgres JSONB cannot store \u0000
        if _contains_nul(payload):
            raise ValidationError("Payload must not contain NUL characters")

        message_id = self.repository.send(queue, payload)
        logger.info("Message sent", queue=queue, message_id=message_id)
        return message_id

    def receive(self, queue: str) -> Optional[QueueMessage]:
        """
        Claim the next message of a queue.

        Returns:
            The claimed message (PROCESSING), or None if nothing is available
        """
        queue = self._validate_queue(queue)
        message = self.repository.receive(queue)
        if message:
            logger.info(
                "Message received",
                queue=queue,
                message_id=message.id,
                attempts=message.attempts,
            )
        return message

    def complete(self, message_id: int) -> bool:
        """Acknowledge a claimed message. False if it was not PROCESSING."""
        if not self._is_message_id(message_id):
            logger.warning("Message id out of range, complete ignored", message_id=message_id)
            return False
        completed = self.repository.complete(message_id)
        if completed:
            logger.info("Message completed", message_id=message_id)
        else:
            logger.warning("Message not in processing, complete ignored", message_id=message_id)
        return completed

    def fail(self, message_id: int) -> bool:
        """Dead-letter a claimed message. False if it was not PROCESSING."""
        if not self._is_message_id(message_id):
            logger.warning("Message id out of range, fail ignored", message_id=message_id)
            return False
        failed = self.repository.fail(message_id)
        if failed:
            logger.info("Message failed", message_id=message_id)
        else:
            logger.warning("Message not in processing, fail ignored", message_id=message_id)
        return failed

    def requeue_stale(
        self,
        queue: Optional[str] = None,
        timeout_seconds: Optional[int] = None,
    ) -> int:
        """
        Return expired claims to PENDING.

        Args:
            queue: Queue to sweep, or None for every queue
            timeout_seconds: Visibility timeout, defaults to the configured one

        Returns:
            Number of requeued messages
        """
        queues: Optional[Sequence[str]] = None
        if queue is not None:
            queues = [self._validate_queue(queue)]
        return self.requeue_stale_in(queues, timeout_seconds)

    def requeue_stale_in(
        self,
        queues: Optional[Sequence[str]],
        timeout_seconds: Optional[int] = None,
    ) -> int:
        """Same as requeue_stale for a set of queues (None = every queue)."""
        timeout = (
            self.visibility_timeout_seconds if timeout_seconds is None else timeout_seconds
        )
        if timeout <= 0:
            raise ValidationError("Visibility timeout must be greater than zero")

        requeued = self.repository.requeue_stale(timeout, queues)
        if requeued:
            logger.info(
                "Requeued stale messages (visibility timeout expired)",
                count=requeued,
                queues=queues or "*",
                timeout_seconds=timeout,
            )
        return requeued

    def stats(self, queue: str) -> QueueStats:
        """Message counts of a queue by status, zero-filled."""
        queue = self._validate_queue(queue)
        found = self.repository.count_by_status(queue)
        counts = {s.value: int(found.get(s.value, 0)) for s in QueueMessageStatus}
        return QueueStats(queue=queue, counts=counts, total=sum(counts.values()))

    def list_messages(
        self, queue: str, status: Optional[str] = None, limit: int = 20
    ) -> List[QueueMessage]:
        """
        Browse messages of a queue, oldest first.

        Args:
            queue: Queue name
            status: Optional status filter (blank means no filter)
            limit: Maximum number of messages

        Raises:
            ValidationError: If the status is unknown or the limit out of range
        """
        queue = self._validate_queue(queue)

        status_filter = None
        if status is not None and status.strip():
            try:
                status_filter = QueueMessageStatus(status.strip().lower())
            except ValueError as e:
                allowed = ", ".join(s.value for s in QueueMessageStatus)
                raise ValidationError(
                    f"Unknown status '{status}', expected one of: {allowed}"
                ) from e

        if limit < 1 or limit > self.list_max_limit:
            raise ValidationError(
                f"Limit must be between 1 and {self.list_max_limit}"
            )

        return self.repository.list_messages(queue, status_filter, limit)
