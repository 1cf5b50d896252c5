"""Domain exceptions."""

from typing import Any


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    # Hey future me, we store message as an attribute so code can inspect it without parsing
    # str(exception). Don't raise this directly - use a specific subclass so callers can catch
    # precisely.
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class ValidationException(DomainException):
    """Raised when input fails validation (e.g. rating outside 1..5)."""

    pass


class ScanStateError(DomainException):
    """Raised when a scan step is called out of order (e.g. complete_scan before begin_scan)."""

    pass


class ConfigurationError(DomainException):
    """Application misconfiguration.

    Raised at startup when the live database schema does not match the ORM
    mapping, so rows can't be mapped by column name safely.
    """

    pass


# Listen up, this is THE correctness alarm for chunked writes! If we ask the DB to mark 45k
# paths present and only 44,998 rows change, the input had duplicates or paths that were never
# inserted. NEVER swallow this - the scan orchestrator decides whether to abort or rescan.
class BatchSizeMismatchError(DomainException):
    """Aggregated affected-row count of a chunked operation differs from the expected count."""

    def __init__(self, operation: str, expected: int, actual: int) -> None:
        super().__init__(
            f"{operation}: expected {expected} affected rows, got {actual}"
        )
        self.operation = operation
        self.expected = expected
        self.actual = actual


__all__ = [
    "BatchSizeMismatchError",
    "ConfigurationError",
    "DomainException",
    "ScanStateError",
    "ValidationException",
]
