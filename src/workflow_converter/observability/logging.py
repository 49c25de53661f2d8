"""Structured JSON logging with conversion context."""
import logging
import sys
from typing import Any

from pythonjsonlogger import jsonlogger

from workflow_converter.config import get_settings

CONTEXT_FIELDS = ("conversion_id", "workflow_name", "node_id", "node_type")


class ConversionContextFilter(logging.Filter):
    """Add conversion context to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Add default context fields if not present."""
        for name in CONTEXT_FIELDS:
            if not hasattr(record, name):
                setattr(record, name, None)
        return True


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with standardized field names."""

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        """Add custom fields to the log record."""
        super().add_fields(log_record, record, message_dict)

        if "timestamp" not in log_record:
            log_record["timestamp"] = self.formatTime(record, self.datefmt)

        log_record["level"] = record.levelname
        log_record["logger"] = record.name

        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value:
                log_record[name] = value


def setup_logging() -> None:
    """Configure logging for the converter and its CLI."""
    settings = get_settings()

    handler = logging.StreamHandler(sys.stderr)

    if settings.log_format == "json":
        formatter: logging.Formatter = CustomJsonFormatter(
            "%(timestamp)s %(level)s %(name)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )
    else:
        formatter = logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )
    handler.setFormatter(formatter)
    handler.addFilter(ConversionContextFilter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(settings.log_level.upper())

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


class ContextAdapter(logging.LoggerAdapter):
    """LoggerAdapter that merges per-call ``extra`` over the adapter's own."""

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        kwargs["extra"] = {**(self.extra or {}), **(kwargs.get("extra") or {})}
        return msg, kwargs


def get_logger(name: str) -> logging.LoggerAdapter:
    """
    Get a logger with conversion context support.

    Args:
        name: Logger name (typically __name__)

    Returns:
        LoggerAdapter that can accept conversion context in extra dict
    """
    logger = logging.getLogger(name)
    return ContextAdapter(logger, extra={})


def with_conversion_context(
    conversion_id: str | None = None,
    workflow_name: str | None = None,
    node_id: str | None = None,
    node_type: str | None = None,
    **kwargs: Any,
) -> dict[str, Any]:
    """
    Create an extra dict with conversion context for logging.

    Args:
        conversion_id: Identifier of the running conversion
        workflow_name: Name of the workflow being converted
        node_id: Node the message concerns
        node_type: Type of that node
        **kwargs: Additional context fields

    Returns:
        Dict to pass as extra parameter to logger methods
    """
    extra = kwargs.copy()
    if conversion_id:
        extra["conversion_id"] = conversion_id
    if workflow_name:
        extra["workflow_name"] = workflow_name
    if node_id:
        extra["node_id"] = node_id
    if node_type:
        extra["node_type"] = node_type
    return extra
