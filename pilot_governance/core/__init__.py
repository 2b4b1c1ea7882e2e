"""Configuration, logging setup and Logfire monitoring."""

from .config import Settings, get_settings
from .logging_config import get_logger, setup_logging

__all__ = ["Settings", "get_settings", "get_logger", "setup_logging"]
