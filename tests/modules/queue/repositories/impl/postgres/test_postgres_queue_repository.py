from datetime import datetime, timezone
from unittest.mock import MagicMock

import psycopg2
import pytest
from psycopg2.extras import Json

from src.core.utils.exceptions import StorageError
from src.modules.queue.enums.message_status import QueueMessageStatus
from src.modules.queue.models.queue_message import QueueMessage
from src.modules.queue.repositories.impl.postgres.queue_repository import \
    PostgresQueueRepository


class TestPostgresQueueRepository:
    @pytest.fixture
    def mock_db(self):
        db = MagicMock()
        conn = MagicMock()
        db.connection.return_value.__enter__.return_value = conn
        cursor = MagicMock()
        conn.cursor.return_value = cursor
        return db

    @pytest.fixture
    def repository(self, mock_db):
        return PostgresQueueRepository(mock_db)

    @pytest.fixture
    def mock_row(self):
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        return {
            "id": 7,
            "queue": "emails",
            "payload": {"to": "user@example.com"},
            "status": "processing",
            "attempts": 1,
            "created_at": now,
            "processed_at": now,
        }

    @staticmethod
    def _cursor(mock_db):
        return mock_db.connection.return_value.__enter__.return_value.cursor.return_value

    @staticmethod
    def _conn(mock_db):
        return mock_db.connection.return_value.__enter__.return_value

    @staticmethod
    def _executed(cursor):
        query, params = cursor.execute.call_args[0]
        return repr(query), params

    def test_send(self, repository, mock_db):
        cursor = self._cursor(mock_db)
        cursor.fetchone.return_value = {"id": 11}

        result = repository.send("emails", {"subject": "Welcome!"})

        assert result == 11
        query, params = self._executed(cursor)
        assert "INSERT INTO" in query
        assert "RETURNING id" in query
        assert params[0] == "emails"
        assert isinstance(params[1], Json)
        assert params[1].adapted == {"subject": "Welcome!"}
        assert params[2] == "pending"
        self._conn(mock_db).commit.assert_called_once()

    def test_receive_claims_with_skip_locked(self, repository, mock_db, mock_row):
        cursor = self._cursor(mock_db)
        cursor.fetchone.return_value = mock_row

        result = repository.receive("emails")

        assert isinstance(result, QueueMessage)
        assert result.id == 7
        assert result.status == QueueMessageStatus.PROCESSING
        assert result.attempts == 1

        query, params = self._executed(cursor)
        assert "FOR UPDATE SKIP LOCKED" in query
        assert "attempts = attempts + 1" in query
        assert "ORDER BY created_at, id" in query
        assert params == ("processing", "emails", "pending")
        self._conn(mock_db).commit.assert_called_once()

    def test_receive_empty(self, repository, mock_db):
        cursor = self._cursor(mock_db)
        cursor.fetchone.return_value = None

        assert repository.receive("emails") is None

    def test_complete(self, repository, mock_db):
        cursor = self._cursor(mock_db)
        cursor.rowcount = 1

        assert repository.complete(7) is True

        query, params = self._executed(cursor)
        assert "WHERE id = %s AND status = %s" in query
        assert params == ("completed", 7, "processing")

    def test_complete_not_processing(self, repository, mock_db):
        cursor = self._cursor(mock_db)
        cursor.rowcount = 0

        assert repository.complete(7) is False

    def test_fail(self, repository, mock_db):
        cursor = self._cursor(mock_db)
        cursor.rowcount = 1

        assert repository.fail(7) is True

        _, params = self._executed(cursor)
        assert params == ("failed", 7, "processing")

    def test_requeue_stale_all_queues(self, repository, mock_db):
        cursor = self._cursor(mock_db)
        cursor.rowcount = 4

        assert repository.requeue_stale(30) == 4

        query, params = self._executed(cursor)
        assert "make_interval(secs => %s)" in query
        assert "ANY" not in query
        assert params == ("pending", "processing", 30)

    def test_requeue_stale_selected_queues(self, repository, mock_db):
        cursor = self._cursor(mock_db)
        cursor.rowcount = 1

        assert repository.requeue_stale(60, ("emails", "sms")) == 1

        query, params = self._executed(cursor)
        assert "queue = ANY(%s)" in query
        assert params == ("pending", "processing", 60, ["emails", "sms"])

    def test_count_by_status(self, repository, mock_db):
        cursor = self._cursor(mock_db)
        cursor.fetchall.return_value = [
            {"status": "completed", "count": 5},
            {"status": "pending", "count": 2},
        ]

        result = repository.count_by_status("emails")

        assert result == {"completed": 5, "pending": 2}
        # Read-only statement: the implicit transaction is not committed
        self._conn(mock_db).commit.assert_not_called()
        self._conn(mock_db).rollback.assert_called_once()

    def test_list_messages_with_status(self, repository, mock_db, mock_row):
        cursor = self._cursor(mock_db)
        cursor.fetchall.return_value = [mock_row]

        result = repository.list_messages("emails", QueueMessageStatus.PROCESSING, 5)

        assert len(result) == 1
        assert result[0].payload == {"to": "user@example.com"}
        query, params = self._executed(cursor)
        assert "AND status = %s" in query
        assert params == ("emails", "processing", 5)

    def test_list_messages_without_status(self, repository, mock_db):
        cursor = self._cursor(mock_db)
        cursor.fetchall.return_value = []

        assert repository.list_messages("emails") == []
        query, params = self._executed(cursor)
        assert "AND status" not in query
        assert params == ("emails", 20)

    def test_driver_error_becomes_storage_error(self, repository, mock_db):
        cursor = self._cursor(mock_db)
        cursor.execute.side_effect = psycopg2.OperationalError("server closed the connection")

        with pytest.raises(StorageError) as exc:
            repository.send("emails", {})

        assert exc.value.operation == "send"

        self._conn(mock_db).rollback.assert_called_once()
        self._conn(mock_db).commit.assert_not_called()

    def test_storage_error_names_operation(self, repository, mock_db):
        cursor = self._cursor(mock_db)
        cursor.execute.side_effect = psycopg2.OperationalError("server closed the connection")

        for operation, call in (
            ("receive", lambda: repository.receive("emails")),
            ("complete", lambda: repository.complete(1)),
            ("fail", lambda: repository.fail(1)),
            ("requeue_stale", lambda: repository.requeue_stale(30)),
            ("count_by_status", lambda: repository.count_by_status("emails")),
            ("list_messages", lambda: repository.list_messages("emails")),
        ):
            with pytest.raises(StorageError) as exc:
                call()
            assert exc.value.operation == operation
