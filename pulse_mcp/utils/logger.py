"""
Logging for the Pulse MCP servers.

Every server talks MCP over stdio, so log output goes to stderr only. The
correlation id of the running tool call lives in a context variable, so
concurrent calls each stamp their own id on the lines they log.
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Iterator, Optional

from ..core.config import MonitoringConfig

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(correlation_id)s] - %(message)s"

NO_CORRELATION = "none"

_current_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

# Attributes every LogRecord has; anything else came in through ``extra=``.
_STANDARD_FIELDS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message", "asctime", "taskName", "correlation_id",
}


class CorrelationFilter(logging.Filter):
    """
    Stamps records with the correlation id of the current context, falling
    back to the id the logger was created with.
    """

    def __init__(self, correlation_id: Optional[str] = None):
        super().__init__()
        self._correlation_id = correlation_id or NO_CORRELATION

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "correlation_id", None) is None:
            record.correlation_id = _current_correlation_id.get() or self._correlation_id
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line, with ``extra=`` fields merged in"""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", NO_CORRELATION),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        payload.update(
            (key, value) for key, value in record.__dict__.items() if key not in _STANDARD_FIELDS
        )
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _make_handler(monitoring: MonitoringConfig, correlation_id: Optional[str]) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    if monitoring.log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))
    handler.addFilter(CorrelationFilter(correlation_id))
    return handler


def get_logger(name: str, correlation_id: Optional[str] = None) -> logging.Logger:
    """
    Return the named logger, attaching the stderr handler on first use.

    Level and output format come from LOG_LEVEL and LOG_FORMAT. Later calls
    with the same name return the logger untouched.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    monitoring = MonitoringConfig.from_environment()
    level = logging.getLevelName(monitoring.log_level)
    logger.setLevel(level if isinstance(level, int) else logging.INFO)
    logger.addHandler(_make_handler(monitoring, correlation_id))
    logger.propagate = False
    return logger


def _correlation_filters(logger: logging.Logger) -> Iterator[CorrelationFilter]:
    for handler in logger.handlers:
        yield from (f for f in handler.filters if isinstance(f, CorrelationFilter))


def set_correlation_id(logger: logging.Logger, correlation_id: str) -> None:
    """Change the fallback id used outside any ``with_correlation_id`` block"""
    for correlation_filter in _correlation_filters(logger):
        correlation_filter._correlation_id = correlation_id


class LoggerContext:
    """Sets the correlation id for the current task until the ``with`` block ends"""

    def __init__(self, logger: logging.Logger, correlation_id: str):
        self.logger = logger
        self.correlation_id = correlation_id
        self._token = None

    def __enter__(self) -> logging.Logger:
        self._token = _current_correlation_id.set(self.correlation_id)
        return self.logger

    def __exit__(self, exc_type, exc_val, exc_tb):
        _current_correlation_id.reset(self._token)
        self._token = None


def with_correlation_id(logger: logging.Logger, correlation_id: str) -> LoggerContext:
    return LoggerContext(logger, correlation_id)
