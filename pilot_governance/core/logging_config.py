"""
Logging Configuration Module.

Centralized logging configuration for the governance pipeline. Nothing is
configured at import time; ``setup_logging`` is called by whoever owns the
process (``build_gateway_from_settings`` does it for you).

Features:
- Configurable log levels per module
- Console and optional file logging
- Simple, detailed and JSON line formats
"""

import logging
from pathlib import Path
from typing import Optional

SIMPLE_FORMAT = "%(levelname)s - %(name)s - %(message)s"

DETAILED_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(funcName)s() - %(message)s"

JSON_FORMAT = (
    '{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", '
    '"module": "%(filename)s", "function": "%(funcName)s", "line": %(lineno)d, '
    '"message": "%(message)s"}'
)

LOG_FILE_NAME = "pilot_governance.log"

# Per-package levels applied on every setup
MODULE_LOG_LEVELS = {
    # Gates
    "pilot_governance.safety": "INFO",
    "pilot_governance.economics": "INFO",
    "pilot_governance.irreversibility": "INFO",
    "pilot_governance.stewardship": "INFO",
    # Runtime and ledgers
    "pilot_governance.tooling": "INFO",
    "pilot_governance.ledger": "INFO",
    "pilot_governance.gateway": "DEBUG",
    "pilot_governance.evaluation": "INFO",
    "pilot_governance.repos": "INFO",
    # Third-party
    "sqlalchemy": "WARNING",
    "sqlalchemy.engine": "WARNING",
    "sqlalchemy.pool": "WARNING",
    "aiosqlite": "WARNING",
    "asyncio": "WARNING",
}

_FORMATS = {"simple": SIMPLE_FORMAT, "detailed": DETAILED_FORMAT, "json": JSON_FORMAT}


def setup_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    enable_file: bool = False,
    log_file_dir: str = "logs",
) -> None:
    """
    Configure logging for the application.

    Args:
        log_level: Console log level (DEBUG, INFO, WARNING, ERROR, CRITICAL). Defaults to INFO.
        log_format: Format name (simple, detailed, json). Defaults to detailed.
        enable_file: Whether to also write DEBUG and above to ``log_file_dir``.
        log_file_dir: Directory for the log file; created if missing.
    """
    level = (log_level or "INFO").upper()
    fmt = log_format or "detailed"

    formatter = logging.Formatter(_FORMATS.get(fmt, DETAILED_FORMAT), datefmt="%Y-%m-%d %H:%M:%S")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    for existing in list(root_logger.handlers):
        root_logger.removeHandler(existing)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if enable_file:
        Path(log_file_dir).mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(Path(log_file_dir) / LOG_FILE_NAME)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    for module_name, module_level in MODULE_LOG_LEVELS.items():
        logging.getLogger(module_name).setLevel(module_level)

    root_logger.info("Logging configured: level=%s, format=%s, file_logging=%s", level, fmt, enable_file)


def get_logger(name: str) -> logging.Logger:
    """Return the logger for ``name`` (usually ``__name__``)."""
    return logging.getLogger(name)
