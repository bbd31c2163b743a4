"""
Structured Logging
==================

JSON-structured logging with correlation ID tracking.

Provides:
- Structured JSON logs (parseable by log aggregators)
- Correlation ID for request tracing
- Contextual loggers for modules

Usage:
    from civic_sla.shared.infrastructure.logging import get_logger

    logger = get_logger(__name__)
    logger.info("Issue escalated", extra={"issue_id": issue.id})
"""

import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger

# Set per request by CorrelationIDMiddleware
correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

_SENSITIVE_KEYS = ("password", "token", "api_key", "webhook_url")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    Custom JSON formatter with additional fields.

    Adds:
    - timestamp in ISO format
    - correlation_id when available
    - Environment info
    """

    def __init__(self, *args: Any, environment: str = "unknown", **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.environment = environment

    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        if not log_record.get("timestamp"):
            log_record["timestamp"] = datetime.now(timezone.utc).isoformat()

        # Explicit extra wins over the request context
        if hasattr(record, "correlation_id"):
            log_record["correlation_id"] = record.correlation_id
        else:
            correlation_id = correlation_id_var.get()
            if correlation_id:
                log_record["correlation_id"] = correlation_id

        log_record["environment"] = self.environment

        for key, value in list(log_record.items()):
            if isinstance(value, str) and any(s in key.lower() for s in _SENSITIVE_KEYS):
                log_record[key] = "***REDACTED***"


def setup_logging(
    level: str = "INFO",
    environment: str = "development",
) -> None:
    """
    Configure structured JSON logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        environment: Environment name for log context
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))

    formatter = CustomJsonFormatter(
        "%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        environment=environment,
    )

    handler.setFormatter(formatter)
    root_logger.addHandler(handler)

    # Silence noisy loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    logging.getLogger("watchdog").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance with the given name.

    Args:
        name: Logger name (typically __name__ of the module)

    Returns:
        logging.Logger: Configured logger instance
    """
    return logging.getLogger(name)
