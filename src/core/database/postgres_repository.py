"""
Base class for PostgreSQL repositories using raw SQL (psycopg2).
"""

from typing import Any, Generic, Type, TypeVar

import psycopg2
from psycopg2 import sql
from psycopg2.extras import RealDictCursor

from src.core.database.postgres_session import PostgresDatabase
from src.core.utils import get_logger
from src.core.utils.exceptions import StorageError

logger = get_logger(__name__)

T = TypeVar("T")  # Pydantic Model


class PostgresRepository(Generic[T]):
    """
    Raw SQL repository over a psycopg2 connection pool.

    Every statement runs in its own transaction: it is committed when
    ``commit`` is set and rolled back on error, so a failed statement never
    leaves partial state behind. Driver errors surface as ``StorageError``.
    """

    def __init__(self, db: PostgresDatabase, table_name: str, model_class: Type[T]):
        """
        Initialize Postgres Raw repository.

        Args:
            db: PostgresDatabase instance (pool/connection manager)
            table_name: Name of the database table (supports "schema.table" format)
            model_class: Pydantic model class (for return types)
        """
        self.db = db
        self.table_name = table_name
        self.model_class = model_class

        if "." in table_name:
            schema, table = table_name.split(".", 1)
            self.table_identifier = sql.Identifier(schema, table)
        else:
            self.table_identifier = sql.Identifier(table_name)

    def _execute_query(
        self,
        query: sql.Composable,
        params: tuple = None,
        fetch_one: bool = False,
        fetch_all: bool = False,
        commit: bool = False,
        operation: str = None,
    ) -> Any:
        """Helper to execute queries with cursor management.

        ``operation`` names the caller in the StorageError raised on driver errors.
        """
        try:
            with self.db.connection() as conn:
                cursor = conn.cursor(cursor_factory=RealDictCursor)
                try:
                    cursor.execute(query, params)

                    if fetch_one:
                        result = cursor.fetchone()
                    elif fetch_all:
                        result = cursor.fetchall()
                    else:
                        result = cursor.rowcount

                    if commit:
                        conn.commit()
                    else:
                        # Close the implicit read transaction before returning to the pool
                        conn.rollback()
                    return result

                except Exception:
                    conn.rollback()
                    raise
                finally:
                    cursor.close()
        except psycopg2.Error as e:
            logger.error(
                f"Error executing query on {self.table_name}",
                operation=operation,
                error=str(e),
            )
            raise StorageError(
                f"Query on {self.table_name} failed: {e}", operation=operation
            ) from e
