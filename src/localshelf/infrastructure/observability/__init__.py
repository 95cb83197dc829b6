"""Observability infrastructure: logging setup and message templates."""

from localshelf.infrastructure.observability.log_messages import LogMessages, LogTemplate
from localshelf.infrastructure.observability.logging import (
    configure_logging,
    get_correlation_id,
    set_correlation_id,
)

__all__ = [
    "LogMessages",
    "LogTemplate",
    "configure_logging",
    "get_correlation_id",
    "set_correlation_id",
]
