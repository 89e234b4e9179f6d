"""Utilities package."""

from .helpers import Clock, utc_now
from .logging import configure_logging, get_logger

__all__ = ["Clock", "utc_now", "configure_logging", "get_logger"]
