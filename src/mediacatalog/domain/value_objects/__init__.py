"""Domain value objects."""

from mediacatalog.domain.value_objects.search_criteria import (
    RandomSearchCriteria,
    RowAnnotations,
)

__all__ = ["RandomSearchCriteria", "RowAnnotations"]
