"""
API routes for the Postgres-backed message queue.

``FOR UPDATE SKIP LOCKED`` lets concurrent workers dequeue without blocking
each other; a claim that is not resolved within the visibility timeout is
returned to the queue by the reaper.
"""

from typing import List, Optional

from dependency_injector.wiring import Provide, inject
from fastapi import APIRouter, Body, Depends, Query, Response, status

from src.core.config import settings
from src.core.di.container import Container
from src.modules.queue.dtos.queue_dto import (CompleteMessageResponseDTO,
                                              FailMessageResponseDTO,
                                              SendMessageDTO,
                                              SendMessageResponseDTO)
from src.modules.queue.models.queue_message import QueueMessage, QueueStats
from src.modules.queue.services.queue_service import QueueService

router = APIRouter(prefix="/queue", tags=["Message Queue"])


# Registered before the /{queue}/... routes so "complete" and "fail" are
# never taken for queue names
@router.post("/complete/{message_id:int}", response_model=CompleteMessageResponseDTO)
@inject
def complete_message(
    message_id: int,
    queue_service: QueueService = Depends(Provide[Container.queue_service]),
):
    """Mark a claimed message as completed (like SQS DeleteMessage)."""
    completed = queue_service.complete(message_id)
    return CompleteMessageResponseDTO(completed=completed, message_id=message_id)


@router.post("/fail/{message_id:int}", response_model=FailMessageResponseDTO)
@inject
def fail_message(
    message_id: int,
    queue_service: QueueService = Depends(Provide[Container.queue_service]),
):
    """Mark a claimed message as failed (dead-letter)."""
    failed = queue_service.fail(message_id)
    return FailMessageResponseDTO(failed=failed, message_id=message_id)


@router.post("/{queue}/send", response_model=SendMessageResponseDTO)
@inject
def send_message(
    queue: str,
    data: Optional[SendMessageDTO] = Body(
        default=None,
        examples=[{"payload": {"to": "user@example.com", "subject": "Welcome!"}}],
    ),
    queue_service: QueueService = Depends(Provide[Container.queue_service]),
):
    """Enqueue a message (like RabbitMQ basic_publish or SQS SendMessage)."""
    payload = data.payload if data is not None else {}
    message_id = queue_service.send(queue, payload)
    # Same name the message was stored under
    return SendMessageResponseDTO(message_id=message_id, queue=queue.strip())


@router.post(
    "/{queue}/receive",
    response_model=QueueMessage,
    responses={204: {"description": "No message available"}},
)
@inject
def receive_message(
    queue: str,
    queue_service: QueueService = Depends(Provide[Container.queue_service]),
):
    """
    Claim one message (like SQS ReceiveMessage).
    Safe for concurrent workers; returns 204 when the queue has nothing to claim.
    """
    message = queue_service.receive(queue)
    if message is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return message


@router.get("/{queue}/stats", response_model=QueueStats)
@inject
def queue_stats(
    queue: str,
    queue_service: QueueService = Depends(Provide[Container.queue_service]),
):
    """Message count grouped by status."""
    return queue_service.stats(queue)


@router.get("/{queue}/messages", response_model=List[QueueMessage])
@inject
def list_messages(
    queue: str,
    status_filter: Optional[str] = Query(
        None, alias="status", description="Filter by status", examples=["pending"]
    ),
    limit: int = Query(
        settings.queue.list_default_limit,
        ge=1,
        le=settings.queue.list_max_limit,
        description="Max results",
    ),
    queue_service: QueueService = Depends(Provide[Container.queue_service]),
):
    """Browse messages in a queue, optionally filtering by status."""
    return queue_service.list_messages(queue, status=status_filter, limit=limit)
