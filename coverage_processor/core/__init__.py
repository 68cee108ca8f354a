"""Configuration and logging shared by every pipeline step."""

from coverage_processor.core.config import Settings, get_settings
from coverage_processor.core.logging import configure_structlog

__all__ = ["Settings", "get_settings", "configure_structlog"]
