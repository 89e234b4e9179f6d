from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class SendMessageDTO(BaseModel):
    """DTO for enqueuing a message."""

    payload: Any = Field(default_factory=dict)


class SendMessageResponseDTO(BaseModel):
    """Response returned after a message was enqueued."""

    message_id: int
    queue: str
    status: str = "sent"

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CompleteMessageResponseDTO(BaseModel):
    completed: bool
    message_id: int

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FailMessageResponseDTO(BaseModel):
    failed: bool
    message_id: int

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
