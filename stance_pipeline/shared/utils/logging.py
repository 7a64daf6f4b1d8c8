"""Shared logging configuration for all pipeline stages.

This module provides consistent logging setup across ingest, cluster and
generate, plus the trace-bound structured logger handed to stage logic.
"""

from __future__ import annotations
import json
import logging
import os
import sys
from typing import Any, Dict, Optional


def setup_logging(
    level: Optional[str] = None,
    format_string: Optional[str] = None,
    include_timestamp: bool = True
) -> None:
    """Configure root logger with console handler.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
               If None, reads from LOG_LEVEL env var or defaults to INFO.
        format_string: Custom format string. If None, uses default format.
        include_timestamp: Whether to include timestamp in log messages.

    Example:
        >>> setup_logging(level="DEBUG")
        >>> logger = logging.getLogger(__name__)
        >>> logger.debug("Debug message")
    """
    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO").upper()

    if format_string is None:
        if include_timestamp:
            format_string = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
        else:
            format_string = "[%(levelname)s] %(name)s: %(message)s"

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=format_string,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        force=True  # Override any existing configuration
    )

    # Set third-party loggers to WARNING to reduce noise
    for logger_name in ["urllib3", "httpx", "httpcore", "openai"]:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """Get a logger instance with optional custom level.

    Args:
        name: Logger name (typically __name__)
        level: Optional logging level override

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    if level:
        logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    return logger


class StageLogger:
    """
    Structured logger bound to one stage invocation.

    Every line carries the stage name and trace id so HTTP responses,
    metrics rows and logs can be correlated.
    """

    def __init__(self, logger_name: str, func: str, trace_id: Optional[str] = None):
        """
        Initialize structured logger.

        Args:
            logger_name: Name of the logger
            func: Stage name (ingest, cluster, generate)
            trace_id: Invocation trace id, if one has been assigned
        """
        self.logger = logging.getLogger(logger_name)
        self.func = func
        self.trace_id = trace_id

    def bind(self, trace_id: str) -> "StageLogger":
        """Return a copy of this logger bound to ``trace_id``."""
        return StageLogger(self.logger.name, self.func, trace_id)

    def log(self, level: str, message: str, **extra: Any) -> None:
        """Log ``message`` at a named level ("debug", "info", "warn", "error")."""
        numeric = _LEVELS.get(level.lower(), logging.INFO)
        log_data: Dict[str, Any] = {
            "func": self.func,
            "traceId": self.trace_id,
            **extra,
        }

        # Filter out None values
        log_data = {k: v for k, v in log_data.items() if v is not None}

        self.logger.log(numeric, f"{message} | {json.dumps(log_data, default=str)}")

    def debug(self, message: str, **extra: Any) -> None:
        self.log("debug", message, **extra)

    def info(self, message: str, **extra: Any) -> None:
        self.log("info", message, **extra)

    def warning(self, message: str, **extra: Any) -> None:
        self.log("warn", message, **extra)

    def error(self, message: str, **extra: Any) -> None:
        self.log("error", message, **extra)

    def __call__(self, level: str, message: str, **extra: Any) -> None:
        self.log(level, message, **extra)


_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}
