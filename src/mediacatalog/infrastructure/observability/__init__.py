"""Observability infrastructure for structured logging."""

from mediacatalog.infrastructure.observability.logger_template import (
    get_module_logger,
    log_operation,
    log_slow_operation,
)
from mediacatalog.infrastructure.observability.logging import (
    configure_logging,
    get_correlation_id,
    set_correlation_id,
)

__all__ = [
    "configure_logging",
    "get_correlation_id",
    "get_module_logger",
    "log_operation",
    "log_slow_operation",
    "set_correlation_id",
]
