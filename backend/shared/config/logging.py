"""
Structured logging for the order agent.

Production writes one JSON object per line; development writes coloured,
human-readable lines. Keyword arguments given to the logger methods become
structured fields, and every record carries the request id and masked sender
of the conversation turn that produced it (see shared.infrastructure.correlation).

Usage:
    from shared.config.logging import get_logger, mask_phone
    logger = get_logger(__name__)

    logger.info("Order persisted", order_id="12345678", total_cents=24000)
    logger.error("Failed to send reply", exc_info=True)
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from shared.config.settings import settings

# Third-party loggers that are too chatty at INFO
QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
}


def mask_phone(phone: str | None) -> str:
    """
    Mask a sender phone number for logging.

    "919876543210" becomes "91******3210"; masking an already masked number
    returns it unchanged.
    """
    if not phone:
        return "<no-sender>"
    if len(phone) <= 6:
        return phone[:1] + "***"
    return f"{phone[:2]}{'*' * (len(phone) - 6)}{phone[-4:]}"


def _turn_context(record: logging.LogRecord) -> dict[str, str]:
    """request_id / sender of the record, without placeholder values."""
    context = {}
    for key in ("request_id", "sender"):
        value = getattr(record, key, None)
        if value and value != "-":
            context[key] = value
    return context


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_turn_context(record),
        }
        fields = getattr(record, "fields", None)
        if fields:
            entry["data"] = fields
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        if settings.debug:
            entry["source"] = f"{record.filename}:{record.lineno}"
        return json.dumps(entry, default=str)


class DevelopmentFormatter(logging.Formatter):
    """Coloured single-line output for local runs."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"
    DIM = "\033[2m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname, self.RESET)
        context = _turn_context(record)
        tags = " ".join(
            filter(None, [context.get("request_id", "")[:8], context.get("sender", "")])
        )
        prefix = f"{self.DIM}[{tags}]{self.RESET} " if tags else ""

        line = (
            f"{color}{datetime.now():%H:%M:%S} {record.levelname:8}{self.RESET} "
            f"{prefix}{record.name}: {record.getMessage()}"
        )
        fields = getattr(record, "fields", None)
        if fields:
            line += " (" + ", ".join(f"{key}={value}" for key, value in fields.items()) + ")"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class StructuredLogger(logging.Logger):
    """Logger whose level methods take structured fields as keyword arguments."""

    def _emit(self, level: int, msg: str, args: tuple, exc_info: Any = None, **fields: Any) -> None:
        if self.isEnabledFor(level):
            self._log(level, msg, args, exc_info=exc_info, extra={"fields": fields or None})

    def debug(self, msg: str, *args: Any, **fields: Any) -> None:
        self._emit(logging.DEBUG, msg, args, **fields)

    def info(self, msg: str, *args: Any, **fields: Any) -> None:
        self._emit(logging.INFO, msg, args, **fields)

    def warning(self, msg: str, *args: Any, **fields: Any) -> None:
        self._emit(logging.WARNING, msg, args, **fields)

    def error(self, msg: str, *args: Any, **fields: Any) -> None:
        self._emit(logging.ERROR, msg, args, **fields)

    def critical(self, msg: str, *args: Any, **fields: Any) -> None:
        self._emit(logging.CRITICAL, msg, args, **fields)


logging.setLoggerClass(StructuredLogger)


def setup_logging() -> None:
    """Install the stdout handler on the root logger. Called once from the lifespan."""
    from shared.infrastructure.correlation import CorrelationIdFilter

    level = logging.DEBUG if settings.debug else logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(CorrelationIdFilter())
    handler.setFormatter(
        StructuredFormatter() if settings.environment == "production" else DevelopmentFormatter()
    )

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(handler)

    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)


def get_logger(name: str) -> StructuredLogger:
    return logging.getLogger(name)  # type: ignore


app_logger = get_logger("order_agent")
