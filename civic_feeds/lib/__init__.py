"""Library utilities for the civic feeds worker."""

from .json_logger import (
    JSONFormatter,
    StructuredLoggerAdapter,
    setup_json_logging,
    setup_text_logging,
    get_structured_logger,
    source_logger,
)
from .run_context import RunContext

__all__ = [
    # JSON logging
    "JSONFormatter",
    "StructuredLoggerAdapter",
    "setup_json_logging",
    "setup_text_logging",
    "get_structured_logger",
    "source_logger",
    # Cancellation
    "RunContext",
]
