"""
Centralized structured logging for the KDS backend.
Uses Python's standard logging with JSON formatting for production.

Every record carries the current correlation id: the X-Request-ID of an
HTTP request, or the id of the polling cycle that emitted it. The KDS
identifiers (queue, screen, order) are promoted to top-level fields so a
single order can be followed across cycles.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from shared.config.settings import settings


# Keyword context promoted out of "data" in JSON output, in this order
CONTEXT_KEYS = ("queue_id", "screen_id", "order_id")


def _split_context(data: dict[str, Any] | None) -> tuple[dict[str, Any], dict[str, Any]]:
    if not data:
        return {}, {}
    context = {k: data[k] for k in CONTEXT_KEYS if data.get(k) is not None}
    rest = {k: v for k, v in data.items() if k not in context}
    return context, rest


class StructuredFormatter(logging.Formatter):
    """One JSON object per line for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        context, data = _split_context(getattr(record, "extra_data", None))

        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            **context,
        }

        correlation_id = getattr(record, "correlation_id", "-")
        if correlation_id != "-":
            entry["correlation_id"] = correlation_id
        if data:
            entry["data"] = data
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        if settings.debug:
            entry["at"] = f"{record.pathname}:{record.lineno} in {record.funcName}"

        return json.dumps(entry, default=str)


class DevelopmentFormatter(logging.Formatter):
    """Colored single-line output for the terminal."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"
    DIM = "\033[2m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, self.RESET)
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]
        context, data = _split_context(getattr(record, "extra_data", None))

        parts = [f"{color}{clock} {record.levelname[:4]}{self.RESET}"]

        correlation_id = getattr(record, "correlation_id", "-")
        if correlation_id != "-":
            parts.append(f"{self.DIM}{correlation_id[:15]}{self.RESET}")

        parts.append(f"{record.name}:")
        if context:
            # q=1 s=3 o=12
            parts.append(" ".join(f"{key[0]}={value}" for key, value in context.items()))
        parts.append(record.getMessage())

        line = " ".join(parts)
        if data:
            line += f"{self.DIM} {data}{self.RESET}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class StructuredLogger(logging.Logger):
    """
    Logger accepting keyword context on every level method:

        logger.info("Order finished", order_id=12, screen_id=3)

    Keywords the standard library understands (exc_info, stack_info,
    stacklevel, extra) keep their usual meaning; the rest land in
    record.extra_data.
    """

    def _log(
        self,
        level: int,
        msg: object,
        args: Any,
        exc_info: Any = None,
        extra: dict | None = None,
        stack_info: bool = False,
        stacklevel: int = 1,
        **data: Any,
    ) -> None:
        extra = dict(extra or {})
        extra["extra_data"] = data or None
        super()._log(
            level,
            msg,
            args,
            exc_info=exc_info,
            extra=extra,
            stack_info=stack_info,
            # Skip this frame when resolving the caller
            stacklevel=stacklevel + 1,
        )


logging.setLoggerClass(StructuredLogger)


def setup_logging() -> None:
    """
    Configure the root logger. Call once at startup (API lifespan, CLI).
    """
    # Deferred: shared.infrastructure imports this module
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

    for noisy, noisy_level in (
        ("uvicorn.access", logging.WARNING),
        ("httpx", logging.WARNING),
        ("httpcore", logging.WARNING),
        ("sqlalchemy.engine", logging.WARNING),
    ):
        logging.getLogger(noisy).setLevel(noisy_level)


def get_logger(name: str) -> StructuredLogger:
    """
    Get a structured logger.

    Usage:
        logger = get_logger(__name__)
        logger.error("Failed to assign order", order_id=12, exc_info=True)
    """
    return logging.getLogger(name)  # type: ignore[return-value]


def short_id(value: int | str | None) -> str:
    """Last four characters of an id, for one-line distribution summaries."""
    if value is None:
        return "-"
    return str(value)[-4:]


# Pre-configured loggers
kds_logger = get_logger("kds_api")
balancer_logger = get_logger("kds_api.balancer")
order_logger = get_logger("kds_api.orders")
screen_logger = get_logger("kds_api.screens")
polling_logger = get_logger("kds_api.polling")
