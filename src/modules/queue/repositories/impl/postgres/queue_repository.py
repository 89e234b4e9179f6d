from typing import Any, Dict, List, Optional, Sequence

from psycopg2 import sql
from psycopg2.extras import Json

from src.core.database.postgres_repository import PostgresRepository
from src.core.database.postgres_session import PostgresDatabase
from src.core.utils import get_logger
from src.modules.queue.enums.message_status import QueueMessageStatus
from src.modules.queue.models.queue_message import QueueMessage
from src.modules.queue.repositories.queue_repository import QueueRepository

logger = get_logger(__name__)

MESSAGE_COLUMNS = sql.SQL(
    "id, queue, payload, status, attempts, created_at, processed_at"
)


class PostgresQueueRepository(PostgresRepository[QueueMessage], QueueRepository):
    """
    Message queue on a Postgres table.

    Claims use ``FOR UPDATE SKIP LOCKED``: concurrent receivers lock
    different rows and never wait for each other. State changes are guarded
    by the current status in the WHERE clause, so an invalid transition
    matches no row.
    """

    def __init__(self, db: PostgresDatabase):
        super().__init__(db, "message_queue", QueueMessage)

    def send(self, queue: str, payload: Any) -> int:
        query = sql.SQL(
            "INSERT INTO {} (queue, payload, status) "
            "VALUES (%s, %s, %s) "
            "RETURNING id"
        ).format(self.table_identifier)

        row = self._execute_query(
            query,
            (queue, Json(payload), QueueMessageStatus.PENDING.value),
            fetch_one=True,
            commit=True,
            operation="send",
        )
        return row["id"]

    def receive(self, queue: str) -> Optional[QueueMessage]:
        query = sql.SQL(
            "UPDATE {table} "
            "SET status = %s, attempts = attempts + 1, processed_at = NOW() "
            "WHERE id = ("
            "  SELECT id FROM {table} "
            "  WHERE queue = %s AND status = %s "
            "  ORDER BY created_at, id "
            "  LIMIT 1 "
            "  FOR UPDATE SKIP LOCKED"
            ") "
            "RETURNING {columns}"
        ).format(table=self.table_identifier, columns=MESSAGE_COLUMNS)

        row = self._execute_query(
            query,
            (
                QueueMessageStatus.PROCESSING.value,
                queue,
                QueueMessageStatus.PENDING.value,
            ),
            fetch_one=True,
            commit=True,
            operation="receive",
        )
        return self.model_class(**row) if row else None

    def _resolve(self, message_id: int, target: QueueMessageStatus, operation: str) -> bool:
        query = sql.SQL(
            "UPDATE {} SET status = %s, processed_at = NOW() "
            "WHERE id = %s AND status = %s"
        ).format(self.table_identifier)

        rowcount = self._execute_query(
            query,
            (target.value, message_id, QueueMessageStatus.PROCESSING.value),
            commit=True,
            operation=operation,
        )
        return rowcount > 0

    def complete(self, message_id: int) -> bool:
        return self._resolve(message_id, QueueMessageStatus.COMPLETED, "complete")

    def fail(self, message_id: int) -> bool:
        return self._resolve(message_id, QueueMessageStatus.FAILED, "fail")

    def requeue_stale(
        self, timeout_seconds: int, queues: Optional[Sequence[str]] = None
    ) -> int:
        # Plain row locks: waits for an in-flight claim/ack on the same row
        # and re-checks the status before updating it
        query = sql.SQL(
            "UPDATE {} SET status = %s, processed_at = NULL "
            "WHERE status = %s "
            "AND processed_at < NOW() - make_interval(secs => %s)"
        ).format(self.table_identifier)
        params: list = [
            QueueMessageStatus.PENDING.value,
            QueueMessageStatus.PROCESSING.value,
            timeout_seconds,
        ]

        if queues is not None:
            query += sql.SQL(" AND queue = ANY(%s)")
            params.append(list(queues))

        return self._execute_query(
            query, tuple(params), commit=True, operation="requeue_stale"
        )

    def count_by_status(self, queue: str) -> Dict[str, int]:
        query = sql.SQL(
            "SELECT status, COUNT(*) AS count FROM {} "
            "WHERE queue = %s "
            "GROUP BY status "
            "ORDER BY status"
        ).format(self.table_identifier)

        rows = self._execute_query(
            query, (queue,), fetch_all=True, operation="count_by_status"
        )
        return {row["status"]: row["count"] for row in rows}

    def list_messages(
        self,
        queue: str,
        status: Optional[QueueMessageStatus] = None,
        limit: int = 20,
    ) -> List[QueueMessage]:
        query = sql.SQL("SELECT {} FROM {} WHERE queue = %s").format(
            MESSAGE_COLUMNS, self.table_identifier
        )
        params: list = [queue]

        if status is not None:
            query += sql.SQL(" AND status = %s")
            params.append(status.value)

        query += sql.SQL(" ORDER BY created_at, id LIMIT %s")
        params.append(limit)

        rows = self._execute_query(
            query, tuple(params), fetch_all=True, operation="list_messages"
        )
        return [self.model_class(**r) for r in rows]
