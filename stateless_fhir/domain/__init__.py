"""Domain layer for stateless-fhir.

This module contains the document and record models, the schema registry and
the error taxonomy. Nothing here touches a file, a database or the clock.
"""

from .documents import (
    RawDocument,
    ValidationResult,
    ClassifiedResource,
    BundleEntry,
    ResourceInstance,
)
from .records import (
    FieldError,
    ProjectedRecord,
    DocumentOutcome,
    ClassificationSummary,
    ResourceTypeCount,
    AverageStatistic,
)
from .schema import FieldMapping, ResourceSchema, SchemaRegistry

__all__ = [
    "RawDocument",
    "ValidationResult",
    "ClassifiedResource",
    "BundleEntry",
    "ResourceInstance",
    "FieldError",
    "ProjectedRecord",
    "DocumentOutcome",
    "ClassificationSummary",
    "ResourceTypeCount",
    "AverageStatistic",
    "FieldMapping",
    "ResourceSchema",
    "SchemaRegistry",
]
