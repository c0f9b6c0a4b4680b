"""
Structured Logging Configuration Module

Loan operations log one JSON object per line. Context about who did what to
which loan travels as attributes on the LogRecord and is written next to the
message; empty context fields are left out of the output.
"""

import logging
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional


CONTEXT_FIELDS = ("user_id", "action", "resource", "extra")
TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """Render a record and its loan context as a single JSON line"""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "message": record.getMessage(),
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                entry[field] = value

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def setup_logging(level: str = "INFO", logger_name: str = "loan_ledger",
                  log_format: str = "json") -> logging.Logger:
    """
    Configure the package logger with a single stream handler.

    Calling it again replaces the handler, so the level and format can be
    changed at runtime.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        logger_name: Logger to configure
        log_format: "json" for structured lines, anything else for plain text

    Returns:
        The configured logger
    """
    logger = logging.getLogger(logger_name)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler()
    formatter = JSONFormatter() if log_format == "json" else logging.Formatter(TEXT_FORMAT)
    handler.setFormatter(formatter)

    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper()))
    logger.propagate = False
    return logger


def get_logger(name: str = "loan_ledger") -> logging.Logger:
    return logging.getLogger(name)


def log_action(logger: logging.Logger, level: str, message: str,
               user_id: Optional[str] = None, action: Optional[str] = None,
               resource: Optional[str] = None, extra: Optional[dict] = None) -> None:
    """
    Log a loan operation with its context.

    Args:
        logger: Logger to write to
        level: Level name, case-insensitive
        message: Human readable summary
        user_id: Owner performing the operation
        action: Operation name, e.g. "register_payment"
        resource: Affected resource, e.g. "loan:<id>"
        extra: Operation-specific values
    """
    context = {
        "user_id": user_id,
        "action": action,
        "resource": resource,
        "extra": extra,
    }
    logger.log(
        getattr(logging, level.upper()), message,
        extra={key: value for key, value in context.items() if value},
        stacklevel=2
    )
