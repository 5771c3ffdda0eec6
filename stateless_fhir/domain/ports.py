"""Domain Ports - Abstract Contracts and Error Taxonomy.

This module defines the Port interfaces (abstract contracts) that document
source adapters must implement, the Result type used to report per-document
outcomes without exceptions, and the exception hierarchy of the engine.

Architecture:
    - Pure abstract interfaces with zero infrastructure dependencies
    - Adapters (DuckDB resource table, JSON files, etc.) implement these ports
    - Domain Core is isolated from storage specifics
    - Iterator pattern enables streaming over arbitrarily large stores

Error Model:
    - Malformed documents and malformed fields are data, not faults. They are
      counted or attached to records and never abort a run.
    - Only a malformed schema registry entry is fatal, and only at startup.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterator, Optional, Generic, TypeVar, Union

from stateless_fhir.domain.documents import RawDocument

# Type variable for Result generic
T = TypeVar('T')


# ============================================================================
# Result Type for Success/Failure Communication
# ============================================================================

@dataclass(frozen=True)
class Result(Generic[T]):
    """Result type for communicating success or failure without exceptions.

    The pipeline wraps every document in a Result so that one document
    failing in an unexpected way never stops the remaining corpus.

    Attributes:
        success: True if the operation succeeded, False otherwise
        value: The successful result value (only present if success=True)
        error: Error information (only present if success=False)
        error_type: Type of error (ParseError, FieldCoercionError, etc.)
        error_details: Additional error context (source_id, entry_index, etc.)

    Example:
        ```python
        result = Result.success_result(outcome)
        if result.success:
            consume(result.value)

        result = Result.failure_result(
            FieldCoercionError("not a date", column="birth_date"),
            error_details={"source_id": "doc-17"}
        )
        if not result.success:
            log_error(result.error, result.error_details)
        ```
    """

    success: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    error_details: Optional[dict] = None

    @classmethod
    def success_result(cls, value: T) -> 'Result[T]':
        """Create a successful result.

        Parameters:
            value: The successful result value

        Returns:
            Result: Success result with the value
        """
        return cls(
            success=True,
            value=value,
            error=None,
            error_type=None,
            error_details=None
        )

    @classmethod
    def failure_result(
        cls,
        error: Union[str, Exception],
        error_type: Optional[str] = None,
        error_details: Optional[dict] = None
    ) -> 'Result[T]':
        """Create a failure result.

        Parameters:
            error: Error message or exception
            error_type: Type of error (e.g., "ParseError", "FieldCoercionError")
            error_details: Additional context (source_id, column, etc.)

        Returns:
            Result: Failure result with error information
        """
        error_message = str(error) if isinstance(error, Exception) else error
        error_type_name = error_type or (type(error).__name__ if isinstance(error, Exception) else "UnknownError")

        return cls(
            success=False,
            value=None,
            error=error_message,
            error_type=error_type_name,
            error_details=error_details or {}
        )

    def is_success(self) -> bool:
        """Check if result is successful."""
        return self.success

    def is_failure(self) -> bool:
        """Check if result is a failure."""
        return not self.success


# ============================================================================
# Custom Exception Hierarchy
# ============================================================================

class ProjectionEngineError(Exception):
    """Base exception for all engine errors."""
    pass


class ParseError(ProjectionEngineError):
    """Raised when a payload is not well-formed JSON.

    Non-fatal: the document is tallied as invalid and excluded downstream.

    Attributes:
        source_id: Identifier of the document that failed to parse
    """

    def __init__(self, message: str, source_id: Optional[str] = None):
        super().__init__(message)
        self.source_id = source_id


class ClassificationAmbiguous(ProjectionEngineError):
    """Raised when a candidate is neither a clean singleton nor a clean bundle.

    Non-fatal: the document is treated as a non-bundle and the message is
    surfaced to the caller on the classified resource.

    Attributes:
        source_id: Identifier of the ambiguous document
        resource_type: Declared resource type of the document
    """

    def __init__(self, message: str, source_id: Optional[str] = None, resource_type: Optional[str] = None):
        super().__init__(message)
        self.source_id = source_id
        self.resource_type = resource_type


class FieldCoercionError(ProjectionEngineError):
    """Raised when a mapped value cannot be coerced to its declared kind.

    Field-level: caught by the Projector and attached to the record.

    Attributes:
        column: Output column being projected
        value_kind: Declared kind of the column
        value: The offending value (may be truncated)
    """

    def __init__(self, message: str, column: Optional[str] = None, value_kind: Optional[str] = None, value=None):
        super().__init__(message)
        self.column = column
        self.value_kind = value_kind
        self.value = value


class SchemaNotFound(ProjectionEngineError):
    """Raised when no schema is registered for a resource type.

    Non-fatal: the Projector either skips the instance or emits a minimal
    record, depending on the configured pass-through policy.

    Attributes:
        resource_type: The unsupported resource type
    """

    def __init__(self, message: str, resource_type: Optional[str] = None):
        super().__init__(message)
        self.resource_type = resource_type


class SchemaConfigurationError(ProjectionEngineError):
    """Raised when a schema registry entry is malformed.

    This is the only fatal condition: it cannot be isolated to a single
    document, so it is raised while the registry is being built.

    Attributes:
        resource_type: Resource type whose schema is malformed (if known)
        details: Validation messages
    """

    def __init__(self, message: str, resource_type: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message)
        self.resource_type = resource_type
        self.details = details or {}


class DocumentSourceError(ProjectionEngineError):
    """Raised when a document source fails while being read.

    Attributes:
        operation: The operation that failed (connect, query, read, etc.)
        details: Additional error context
    """

    def __init__(self, message: str, operation: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message)
        self.operation = operation
        self.details = details or {}


class SourceNotFoundError(DocumentSourceError):
    """Raised when the source cannot be found or accessed.

    Attributes:
        source: The source identifier that was not found
    """

    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message, operation="open", details={"source": source})
        self.source = source


class UnsupportedSourceError(DocumentSourceError):
    """Raised when no adapter can read the given source.

    Attributes:
        source: The source identifier that is unsupported
        adapter: The adapter that cannot handle the source
    """

    def __init__(self, message: str, source: Optional[str] = None, adapter: Optional[str] = None):
        super().__init__(message, operation="open", details={"source": source, "adapter": adapter})
        self.source = source
        self.adapter = adapter


# ============================================================================
# Document Source Port
# ============================================================================

class DocumentSourcePort(ABC):
    """Abstract contract for raw document sources.

    This port defines how the engine wants to receive documents, regardless
    of whether they sit in a generic resource table, in files, or elsewhere.

    Key Principles:
        - Streaming: Yields documents one-by-one to bound memory
        - Opaque: Payloads are passed through untouched; validation is the
          engine's job, not the source's
        - Stable identity: Every document carries an identifier that is
          stable across runs

    Example Usage:
        ```python
        source = get_source("clinical.duckdb")
        report = FHIRPipeline().run(source.documents())
        ```
    """

    @abstractmethod
    def documents(self) -> Iterator[RawDocument]:
        """Yield raw documents from the source in a stable order.

        Yields:
            RawDocument: Identifier plus untouched payload

        Raises:
            SourceNotFoundError: If the source cannot be opened
            DocumentSourceError: If reading fails midway
        """
        pass

    @abstractmethod
    def can_read(self, source: str) -> bool:
        """Check if this adapter can handle the given source.

        Parameters:
            source: Source identifier to check

        Returns:
            bool: True if this adapter can handle the source, False otherwise
        """
        pass

    def get_source_info(self) -> Optional[dict]:
        """Get metadata about the source (optional, adapter-specific).

        Returns:
            Optional[dict]: Metadata dictionary or None if unavailable
        """
        return None

    def __iter__(self) -> Iterator[RawDocument]:
        return self.documents()
