import os
import sys
import tempfile

# Set required environment variables for testing
# These must be set before importing any module that instantiates Settings

os.environ.setdefault("API_ENVIRONMENT", "development")
os.environ.setdefault("DATABASE_BACKEND", "sqlite")
os.environ.setdefault(
    "DATABASE_SQLITE_PATH", os.path.join(tempfile.mkdtemp(), "test_queue.db")
)
# The API tests use TestClient without the lifespan; keep the reaper out anyway
os.environ.setdefault("TOGGLE_ENABLE_BACKGROUND_TASKS", "false")
os.environ.pop("OTEL_EXPORTER_OTLP_ENDPOINT", None)

# Ensure project root is in pythonpath
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
