"""Structured JSON logging for discovery and collection runs.

Outputs one JSON object per line so runs can be followed per source,
per domain and per stage in a log aggregator.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional


STANDARD_FIELDS = [
    "run_id", "source_id", "domain", "feed_url", "feed_type",
    "stage", "duration_ms", "status", "confidence", "events",
]

_RESERVED_ATTRS = {
    'name', 'msg', 'args', 'created', 'filename', 'funcName',
    'levelname', 'levelno', 'lineno', 'module', 'msecs',
    'pathname', 'process', 'processName', 'relativeCreated',
    'stack_info', 'exc_info', 'exc_text', 'thread', 'threadName',
    'message', 'asctime', 'taskName',
}


class JSONFormatter(logging.Formatter):
    """Format log records as JSON with structured fields."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for field in STANDARD_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_obj[field] = value

        if record.exc_info:
            log_obj["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info),
            }

        # Anything else passed via extra=
        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key.startswith('_') or key in STANDARD_FIELDS:
                continue
            log_obj[key] = value

        return json.dumps(log_obj, default=str, ensure_ascii=False)


class StructuredLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that adds structured context to all log messages."""

    def __init__(self, logger: logging.Logger, extra: Optional[dict] = None):
        super().__init__(logger, extra or {})

    def process(self, msg, kwargs):
        extra = kwargs.get('extra', {})
        extra.update(self.extra)
        kwargs['extra'] = extra
        return msg, kwargs

    def with_context(self, **context) -> 'StructuredLoggerAdapter':
        """Create a new adapter with additional context."""
        new_extra = {**self.extra, **context}
        return StructuredLoggerAdapter(self.logger, new_extra)


def setup_json_logging(level: str = "INFO"):
    """
    Configure root logger for JSON output.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    # Every probe is an HTTP request; keep the client libraries quiet
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def setup_text_logging(level: str = "INFO"):
    """Configure plain-text logging for local runs."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def get_structured_logger(name: str, **context) -> StructuredLoggerAdapter:
    """
    Get a structured logger with optional context.

    Args:
        name: Logger name
        **context: Default context fields (run_id, source_id, etc.)

    Returns:
        StructuredLoggerAdapter with context
    """
    logger = logging.getLogger(name)
    return StructuredLoggerAdapter(logger, context)


def source_logger(
    run_id: str,
    source_id: str,
    feed_type: Optional[str] = None,
) -> StructuredLoggerAdapter:
    """Create a logger pre-configured for one source within a collection run."""
    return get_structured_logger(
        "civic_feeds.collection",
        run_id=run_id,
        source_id=source_id,
        feed_type=feed_type,
    )
