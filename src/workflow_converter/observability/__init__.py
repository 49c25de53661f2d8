"""Observability package."""
from workflow_converter.observability.logging import (
    get_logger,
    setup_logging,
    with_conversion_context,
)

__all__ = ["get_logger", "setup_logging", "with_conversion_context"]
