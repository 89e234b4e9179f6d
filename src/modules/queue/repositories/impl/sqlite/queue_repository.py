import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Dict, Iterator, List, Optional, Sequence

from src.core.utils import Clock, get_logger, utc_now
from src.core.utils.exceptions import StorageError
from src.modules.queue.enums.message_status import QueueMessageStatus
from src.modules.queue.models.queue_message import QueueMessage
from src.modules.queue.repositories.queue_repository import QueueRepository

logger = get_logger(__name__)


class SqliteQueueRepository(QueueRepository):
    """
    Sqlite implementation of the queue repository.
    Suitable for development and single-host deployments.

    Sqlite has no SKIP LOCKED. Writers take the database write lock up front
    (BEGIN IMMEDIATE), which makes read-then-claim atomic, and the claim
    UPDATE is still guarded by ``status = 'pending'`` so a row is never
    claimed twice. Concurrent receivers wait on the write lock for at most
    ``timeout`` seconds instead of skipping rows.

    Timestamps come from the injected clock, so tests can move time forward
    instead of sleeping.
    """

    def __init__(self, db_path: str = "queue.db", clock: Clock = utc_now, timeout: float = 5.0):
        self.db_path = db_path
        self.clock = clock
        self.timeout = timeout
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=self.timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _transaction(
        self, operation: str, immediate: bool = False
    ) -> Iterator[sqlite3.Connection]:
        """Run a block in one transaction; driver errors become StorageError."""
        try:
            conn = self._get_conn()
        except sqlite3.Error as e:
            raise StorageError(
                f"Could not open queue database: {e}", operation=operation
            ) from e
        try:
            conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
            yield conn
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            conn.rollback()
            logger.error(
                "Error executing query on message_queue", operation=operation, error=str(e)
            )
            raise StorageError(
                f"Query on message_queue failed: {e}", operation=operation
            ) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self):
        """Initialize the queue table."""
        with self._transaction("init", immediate=True) as conn:
            conn.execute("""
            CREATE TABLE IF NOT EXISTS message_queue (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                queue TEXT NOT NULL,
                payload TEXT NOT NULL DEFAULT '{}',
                status TEXT NOT NULL DEFAULT 'pending'
                    CHECK (status IN ('pending', 'processing', 'completed', 'failed')),
                attempts INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                processed_at TEXT
            )
            """)
            conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_mq_queue_status
            ON message_queue (queue, status, created_at)
            """)
            conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_mq_processing
            ON message_queue (status, processed_at)
            WHERE status = 'processing'
            """)

    def _now(self) -> str:
        return self.clock().isoformat(timespec="microseconds")

    @staticmethod
    def _to_message(row: sqlite3.Row) -> QueueMessage:
        return QueueMessage(
            id=row["id"],
            queue=row["queue"],
            payload=json.loads(row["payload"]),
            status=row["status"],
            attempts=row["attempts"],
            created_at=datetime.fromisoformat(row["created_at"]),
            processed_at=(
                datetime.fromisoformat(row["processed_at"])
                if row["processed_at"]
                else None
            ),
        )

    def send(self, queue: str, payload: Any) -> int:
        with self._transaction("send", immediate=True) as conn:
            cursor = conn.execute(
                """
                INSERT INTO message_queue (queue, payload, status, attempts, created_at)
                VALUES (?, ?, ?, 0, ?)
                """,
                (queue, json.dumps(payload), QueueMessageStatus.PENDING.value, self._now()),
            )
            return cursor.lastrowid

    def receive(self, queue: str) -> Optional[QueueMessage]:
        with self._transaction("receive", immediate=True) as conn:
            candidate = conn.execute(
                """
                SELECT id FROM message_queue
                WHERE queue = ? AND status = ?
                ORDER BY created_at, id
                LIMIT 1
                """,
                (queue, QueueMessageStatus.PENDING.value),
            ).fetchone()
            if candidate is None:
                return None

            claimed = conn.execute(
                """
                UPDATE message_queue
                SET status = ?, attempts = attempts + 1, processed_at = ?
                WHERE id = ? AND status = ?
                """,
                (
                    QueueMessageStatus.PROCESSING.value,
                    self._now(),
                    candidate["id"],
                    QueueMessageStatus.PENDING.value,
                ),
            ).rowcount
            if not claimed:
                return None

            row = conn.execute(
                "SELECT * FROM message_queue WHERE id = ?", (candidate["id"],)
            ).fetchone()
            return self._to_message(row)

    def _resolve(self, message_id: int, target: QueueMessageStatus, operation: str) -> bool:
        with self._transaction(operation, immediate=True) as conn:
            cursor = conn.execute(
                """
                UPDATE message_queue SET status = ?, processed_at = ?
                WHERE id = ? AND status = ?
                """,
                (target.value, self._now(), message_id, QueueMessageStatus.PROCESSING.value),
            )
            return cursor.rowcount > 0

    def complete(self, message_id: int) -> bool:
        return self._resolve(message_id, QueueMessageStatus.COMPLETED, "complete")

    def fail(self, message_id: int) -> bool:
        return self._resolve(message_id, QueueMessageStatus.FAILED, "fail")

    def requeue_stale(
        self, timeout_seconds: int, queues: Optional[Sequence[str]] = None
    ) -> int:
        cutoff = (
            self.clock() - timedelta(seconds=timeout_seconds)
        ).isoformat(timespec="microseconds")
        query = """
            UPDATE message_queue SET status = ?, processed_at = NULL
            WHERE status = ? AND processed_at < ?
        """
        params: list = [
            QueueMessageStatus.PENDING.value,
            QueueMessageStatus.PROCESSING.value,
            cutoff,
        ]

        if queues is not None:
            if not queues:
                return 0
            query += f" AND queue IN ({', '.join('?' for _ in queues)})"
            params.extend(queues)

        with self._transaction("requeue_stale", immediate=True) as conn:
            return conn.execute(query, tuple(params)).rowcount

    def count_by_status(self, queue: str) -> Dict[str, int]:
        with self._transaction("count_by_status") as conn:
            rows = conn.execute(
                """
                SELECT status, COUNT(*) AS count FROM message_queue
                WHERE queue = ?
                GROUP BY status
                ORDER BY status
                """,
                (queue,),
            ).fetchall()
        return {row["status"]: row["count"] for row in rows}

    def list_messages(
        self,
        queue: str,
        status: Optional[QueueMessageStatus] = None,
        limit: int = 20,
    ) -> List[QueueMessage]:
        query = "SELECT * FROM message_queue WHERE queue = ?"
        params: list = [queue]

        if status is not None:
            query += " AND status = ?"
            params.append(status.value)

        query += " ORDER BY created_at, id LIMIT ?"
        params.append(limit)

        with self._transaction("list_messages") as conn:
            rows = conn.execute(query, tuple(params)).fetchall()
        return [self._to_message(r) for r in rows]
