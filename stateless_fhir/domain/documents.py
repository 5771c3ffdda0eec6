"""Document Models - from raw payload to resource instance.

These models describe a document's journey through the first three stages
of the engine: validation, classification and bundle unnesting. They are
immutable; every stage derives a new model from the previous one and never
writes back into the source document.

Architecture:
    - Pure domain models with zero infrastructure dependencies
    - Parsed JSON is carried as plain Python values (dict/list/str/...)
    - Traceability: every model keeps the ``source_id`` of its RawDocument
"""

from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from stateless_fhir.domain.enums import ValidationStatus


class RawDocument(BaseModel):
    """A document as supplied by the external store.

    Parameters:
        id: Stable source identifier (row id, file path, ...)
        payload: Untouched content, text or bytes
    """

    id: str = Field(..., description="Stable source identifier")
    payload: Union[str, bytes] = Field(..., description="Raw content as stored")

    model_config = ConfigDict(frozen=True)


class ValidationResult(BaseModel):
    """Tag assigned to a RawDocument by the validator.

    Parameters:
        document_id: Identifier of the validated document
        status: invalid, valid_non_fhir or fhir_candidate
        content: Parsed JSON (None when invalid)
        resource_type: Resource-type marker (only for candidates)
        error: Parse error message (only when invalid)
        has_entry_array: Whether the parsed value is an object whose ``entry``
            is an array, with or without a resource-type marker
    """

    document_id: str
    status: ValidationStatus
    content: Any = None
    resource_type: Optional[str] = None
    error: Optional[str] = None
    has_entry_array: bool = False

    model_config = ConfigDict(frozen=True)

    @property
    def is_valid_json(self) -> bool:
        return self.status != ValidationStatus.INVALID

    @property
    def is_candidate(self) -> bool:
        return self.status == ValidationStatus.FHIR_CANDIDATE


class ClassifiedResource(BaseModel):
    """A FHIR candidate with its type and bundle shape determined.

    Invariant: ``is_bundle`` is True iff ``content["entry"]`` is a JSON array.

    Parameters:
        source_id: Identifier of the originating RawDocument
        resource_type: Declared resourceType
        resource_id: The document's own ``id`` (bundle id for bundles)
        is_bundle: Whether the document exposes an array-valued ``entry``
        content: Parsed document
        ambiguity: Warning message when the shape is neither a clean
            singleton nor a clean bundle
    """

    source_id: str
    resource_type: str
    resource_id: Optional[str] = None
    is_bundle: bool = False
    content: Any = None
    ambiguity: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class ResourceInstance(BaseModel):
    """The unit fed to the Projector.

    Singletons and bundle entries are normalized to this one shape.

    Parameters:
        resource_type: The instance's own resourceType
        bundle_id: Id of the parent bundle, None for singletons
        source_id: Identifier of the originating RawDocument
        entry_index: Position in the parent's entry array, None for singletons
        payload: The resource object itself
    """

    resource_type: str
    bundle_id: Optional[str] = None
    source_id: str
    entry_index: Optional[int] = None
    payload: Any = None

    model_config = ConfigDict(frozen=True)

    @property
    def log_context(self) -> dict:
        """Context attributes for log records about this instance."""
        return {
            "source_id": self.source_id,
            "resource_type": self.resource_type,
            "entry_index": self.entry_index,
        }


class BundleEntry(BaseModel):
    """One element of a bundle's entry collection.

    ``bundle_id`` is a weak back-reference used for lookup only.

    Parameters:
        bundle_id: Id of the parent bundle (may be None)
        source_id: Identifier of the originating RawDocument
        entry_index: Position in the parent's entry array
        resource_type: resourceType of the embedded resource
        payload: The embedded ``resource`` object
    """

    bundle_id: Optional[str] = None
    source_id: str
    entry_index: int
    resource_type: str
    payload: Any = None

    model_config = ConfigDict(frozen=True)

    def to_instance(self) -> ResourceInstance:
        """Normalize this entry into a ResourceInstance."""
        return ResourceInstance(
            resource_type=self.resource_type,
            bundle_id=self.bundle_id,
            source_id=self.source_id,
            entry_index=self.entry_index,
            payload=self.payload,
        )
