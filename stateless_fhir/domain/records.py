"""Projection output models.

ProjectedRecord is the typed, relational-style row the engine produces for
each resource instance. Summary models describe the aggregates computed over
those rows. All models are immutable; derived columns are added by building
a new record, never by mutating one in place.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from stateless_fhir.domain.documents import ClassifiedResource, ResourceInstance, ValidationResult
from stateless_fhir.domain.enums import FieldErrorReason


class FieldError(BaseModel):
    """Field-level error flag attached to a record.

    Parameters:
        column: Output column the error applies to
        path: Path expression of the mapping
        reason: absent or coercion
        message: Human-readable explanation
    """

    column: str
    path: str
    reason: FieldErrorReason
    message: str

    model_config = ConfigDict(frozen=True)


class ProjectedRecord(BaseModel):
    """Typed record projected from one resource instance.

    Parameters:
        resource_type: Resource type of the source instance
        source_id: Identifier of the originating RawDocument
        bundle_id: Parent bundle id (None for singletons)
        entry_index: Position in the parent bundle (None for singletons)
        explode_index: Element index for exploded mappings (None otherwise)
        schema_applied: False for minimal pass-through records
        values: Column name to typed scalar, in schema order (absent = None)
        errors: Field-level error flags
    """

    resource_type: str
    source_id: str
    bundle_id: Optional[str] = None
    entry_index: Optional[int] = None
    explode_index: Optional[int] = None
    schema_applied: bool = True
    values: dict[str, Any] = Field(default_factory=dict)
    errors: tuple[FieldError, ...] = ()

    model_config = ConfigDict(frozen=True)

    @property
    def is_valid(self) -> bool:
        """True when no field carries an error flag."""
        return not self.errors

    @property
    def instance_key(self) -> tuple[str, Optional[int]]:
        """Key of the ResourceInstance this record was projected from."""
        return (self.source_id, self.entry_index)

    def get(self, column: str, default: Any = None) -> Any:
        return self.values.get(column, default)

    def with_values(self, extra: dict[str, Any]) -> 'ProjectedRecord':
        """Return a copy with ``extra`` columns added (or replaced)."""
        return self.model_copy(update={"values": {**self.values, **extra}})

    def to_row(self) -> dict[str, Any]:
        """Flatten into a single dict suitable for a DataFrame row."""
        row = {
            "resource_type": self.resource_type,
            "bundle_id": self.bundle_id,
            "source_id": self.source_id,
        }
        row.update(self.values)
        return row


class DocumentOutcome(BaseModel):
    """Everything one RawDocument produced in a pipeline pass.

    Parameters:
        validation: Result of the validation gate
        classified: Classified resource (None unless a FHIR candidate)
        instances: Resource instances derived from the document
        records: Projected records, in instance order
        skipped_entries: Bundle entries excluded for lacking a typed resource
    """

    validation: ValidationResult
    classified: Optional[ClassifiedResource] = None
    instances: tuple[ResourceInstance, ...] = ()
    records: tuple[ProjectedRecord, ...] = ()
    skipped_entries: int = 0

    model_config = ConfigDict(frozen=True)

    @property
    def source_id(self) -> str:
        return self.validation.document_id


class ClassificationSummary(BaseModel):
    """Counts from the classification pass.

    ``fhir_bundle_candidates`` counts every valid JSON object with an array
    ``entry``, typed or not, so it can exceed the bundles among candidates.
    """

    total: int = 0
    valid_json: int = 0
    invalid_json: int = 0
    fhir_candidates: int = 0
    fhir_bundle_candidates: int = 0
    ambiguous_candidates: int = 0

    model_config = ConfigDict(frozen=True)


class ResourceTypeCount(BaseModel):
    """Number of resource instances of one type."""

    resource_type: str
    total_resource_count: int

    model_config = ConfigDict(frozen=True)

    def as_tuple(self) -> tuple[str, int]:
        return (self.resource_type, self.total_resource_count)


class AverageStatistic(BaseModel):
    """Average of one column over the records of one resource type.

    ``value`` is None when no record carries a non-null value.
    """

    resource_type: Optional[str] = None
    column: str
    value: Optional[float] = None
    sample_size: int = 0

    model_config = ConfigDict(frozen=True)
