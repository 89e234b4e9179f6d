from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from src.modules.queue.enums.message_status import QueueMessageStatus


class QueueMessage(BaseModel):
    """
    A unit of work stored in the message_queue table.
    """

    id: int
    queue: str
    payload: Any = None
    status: QueueMessageStatus = QueueMessageStatus.PENDING
    attempts: int = 0
    created_at: datetime
    processed_at: Optional[datetime] = None

    # Rows come in snake_case, the HTTP contract is camelCase
    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class QueueStats(BaseModel):
    """Message counts of one queue grouped by status."""

    queue: str
    counts: dict[str, int]
    total: int
