"""Closed enumerations shared across the engine.

Every enumeration here is closed on purpose: schema entries are checked
against them when the registry is built, so an unknown kind or policy fails
at startup instead of surfacing halfway through a corpus.
"""

from enum import Enum


class ValidationStatus(str, Enum):
    """Outcome of the document validation gate."""
    INVALID = "invalid"
    VALID_NON_FHIR = "valid_non_fhir"
    FHIR_CANDIDATE = "fhir_candidate"


class ValueKind(str, Enum):
    """Declared type of a projected column."""
    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"
    DATE = "date"
    BOOLEAN = "boolean"
    # Objects/arrays rendered as compact JSON text, scalars passed through
    JSON = "json"


class DefaultPolicy(str, Enum):
    """What to do when a mapped path is absent."""
    NULL_IF_ABSENT = "null_if_absent"
    ERROR_IF_ABSENT = "error_if_absent"


class ArrayPolicy(str, Enum):
    """How a mapping treats arrays it meets without an explicit index."""
    STRICT = "strict"
    FIRST = "first"
    EXPLODE = "explode"


class FieldErrorReason(str, Enum):
    """Why a field carries an error flag."""
    ABSENT = "absent"
    COERCION = "coercion"


class UnsupportedResourcePolicy(str, Enum):
    """What the Projector emits for a resource type with no schema."""
    SKIP = "skip"
    MINIMAL = "minimal"
