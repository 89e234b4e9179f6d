"""
Dependency Injection Container.
"""

from dependency_injector import containers, providers

from src.core.config.settings import settings
from src.core.database.postgres_session import PostgresDatabase
from src.modules.queue.repositories.impl.postgres.queue_repository import \
    PostgresQueueRepository
from src.modules.queue.repositories.impl.sqlite.queue_repository import \
    SqliteQueueRepository
from src.modules.queue.services.queue_service import QueueService
from src.modules.queue.workers.consumer import QueueConsumer
from src.modules.queue.workers.reaper import QueueReaper


class Container(containers.DeclarativeContainer):
    """
    Dependency Injection Container.

    This container manages the lifecycle of all application components
    (services, repositories, database connections, workers).
    """

    # Wiring configuration
    wiring_config = containers.WiringConfiguration(
        modules=[
            "src.modules.queue.api.v1.queue",
        ]
    )

    # Database
    db_backend = providers.Object(settings.database.backend)

    postgres_db = providers.Singleton(
        PostgresDatabase,
        dsn=settings.database.url,
        minconn=settings.database.pool_min_conn,
        maxconn=settings.database.pool_max_conn,
    )

    # Repositories
    queue_repository = providers.Selector(
        db_backend,
        postgres=providers.Factory(PostgresQueueRepository, db=postgres_db),
        # One file per process, the schema is created on first use
        sqlite=providers.Singleton(
            SqliteQueueRepository, db_path=settings.database.sqlite_path
        ),
    )

    # Services
    queue_service = providers.Factory(
        QueueService,
        repository=queue_repository,
        visibility_timeout_seconds=settings.queue.visibility_timeout_seconds,
        list_max_limit=settings.queue.list_max_limit,
    )

    # Workers
    queue_reaper = providers.Factory(
        QueueReaper,
        queue_service=queue_service,
        interval_seconds=settings.queue.reaper_interval_seconds,
        visibility_timeout_seconds=settings.queue.visibility_timeout_seconds,
        queues=settings.queue.reaper_queues,
    )

    # queue and handler are given by the caller
    queue_consumer = providers.Factory(
        QueueConsumer,
        queue_service=queue_service,
        poll_interval_seconds=settings.queue.consumer_poll_interval_seconds,
    )
