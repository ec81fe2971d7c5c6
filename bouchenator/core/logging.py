"""
Structured logging configuration for Bouchenator.

Provides consistent, structured logging with correlation IDs and rich formatting.
"""

import logging
import sys
import time
import uuid
from typing import Optional

import structlog
from rich.console import Console
from rich.logging import RichHandler

# Global correlation ID for request tracing
_correlation_id: Optional[str] = None


def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    """Set a correlation ID for the current execution context."""
    global _correlation_id
    _correlation_id = correlation_id or str(uuid.uuid4())[:8]
    return _correlation_id


def get_correlation_id() -> Optional[str]:
    """Get the current correlation ID."""
    return _correlation_id


def add_correlation_id(logger, method_name, event_dict):
    """Add correlation ID to log entries."""
    if _correlation_id:
        event_dict["correlation_id"] = _correlation_id
    return event_dict


def setup_logging(debug: bool = False, rich_output: bool = True) -> None:
    """
    Configure structured logging for the application.

    Args:
        debug: Enable debug level logging
        rich_output: Use rich formatting for console output
    """

    processors = [
        structlog.contextvars.merge_contextvars,
        add_correlation_id,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="ISO"),
        structlog.dev.set_exc_info,
    ]

    if rich_output:
        # Rich console output for development
        console = Console(stderr=True, force_terminal=True)
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.rich_traceback
            )
        )
        logging.basicConfig(
            level=logging.DEBUG if debug else logging.INFO,
            format="%(message)s",
            datefmt="[%X]",
            handlers=[RichHandler(console=console, show_path=False)]
        )
    else:
        # JSON output for production
        processors.append(structlog.processors.JSONRenderer())
        logging.basicConfig(
            level=logging.DEBUG if debug else logging.INFO,
            format="%(message)s",
            stream=sys.stdout
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if debug else logging.INFO
        ),
        logger_factory=structlog.WriteLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a logger instance with the given name."""
    return structlog.get_logger(name)


class JobLogger:
    """
    Per-job pipeline logger.

    Binds a short job id to every event and offers a compact duration helper
    so step logs read as ``step=pages duration=812ms ...``.
    """

    def __init__(self, job_id: str):
        self.job_id = job_id
        self._log = structlog.get_logger("analyze").bind(job=job_id[:8])

    @staticmethod
    def ms(t0: float) -> str:
        """Format the time since ``t0`` (a ``time.perf_counter`` value) as ``123ms``."""
        return f"{round((time.perf_counter() - t0) * 1000)}ms"

    def start(self, step: str) -> None:
        self._log.info("step_started", step=step)

    def info(self, step: str, message: str, **fields) -> None:
        self._log.info("step_completed", step=step, detail=message, **fields)

    def warn(self, step: str, message: str, **fields) -> None:
        self._log.warning("step_degraded", step=step, detail=message, **fields)

    def error(self, step: str, message: str, **fields) -> None:
        self._log.error("step_failed", step=step, detail=message, **fields)
