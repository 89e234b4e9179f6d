"""
Main FastAPI application.
"""

import asyncio
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.openapi.docs import get_redoc_html
from fastapi.middleware.cors import CORSMiddleware

from .core.config import settings
from .core.di.container import Container
from .core.utils import configure_logging, get_logger
from .core.observability import setup_observability
from .core.api.exception_handlers import setup_exception_handlers
from .modules.queue.api import router as queue_router

configure_logging()
logger = get_logger(__name__)

# Initialize DI Container
container = Container()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    Runs the queue reaper in-process unless background tasks are disabled.
    """
    # Startup
    logger.info("Starting Postgres Queue API application")
    logger.info(
        "API configured",
        host=settings.api.host,
        port=settings.api.port,
        backend=settings.database.backend,
    )

    reaper = None
    reaper_task = None
    if settings.toggle.enable_background_tasks:
        reaper = app.container.queue_reaper()
        reaper_task = asyncio.create_task(reaper.start())

    yield

    # Shutdown
    logger.info("Shutting down Postgres Queue API application")
    if reaper is not None:
        await reaper.stop()
        reaper_task.cancel()
        try:
            await reaper_task
        except asyncio.CancelledError:
            pass


# Create FastAPI app
is_production = settings.api.environment == "production"

app = FastAPI(
    title="Postgres Queue API",
    description="Message queue on Postgres using FOR UPDATE SKIP LOCKED",
    version="1.0.0",
    lifespan=lifespan,
    debug=settings.api.debug,
    docs_url=None if is_production else "/docs",
    redoc_url=None,  # Disable default Redoc to use custom CDN
    openapi_url=None if is_production else "/openapi.json",
)

# Setup Observability
setup_observability(app)

# Setup Exception Handlers
setup_exception_handlers(app)

# Attach container to app
app.container = container

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(queue_router.router)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "Postgres Queue API",
        "version": "1.0.0",
        "pattern": "FOR UPDATE SKIP LOCKED",
        "docs": None if is_production else "/docs",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "pg-queue-api"}


if not is_production:
    @app.get("/redoc", include_in_schema=False)
    async def redoc_html():
        """Redoc documentation."""
        return get_redoc_html(
            openapi_url=app.openapi_url,
            title=app.title + " - ReDoc",
            redoc_js_url="https://unpkg.com/redoc@latest/bundles/redoc.standalone.js",
        )


if __name__ == "__main__":
    load_dotenv()
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host=settings.api.host,
        port=settings.api.port,
        reload=settings.api.debug,
    )
