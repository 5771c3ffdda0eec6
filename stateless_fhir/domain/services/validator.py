"""Document Validation Service.

First gate of the engine: decides whether a raw payload is well-formed JSON
and, if so, whether it carries a FHIR resource-type marker.

Security Impact:
    - Payloads are untrusted; parsing is the only thing done to them here
    - Non-standard constants (NaN, Infinity) are rejected so that nothing
      downstream ever sees a non-finite number
    - Never raises for malformed input: bad documents become data, not faults

Architecture:
    - Pure domain service with no infrastructure dependencies
    - Uses the standard ``json`` decoder; the parsed value is the tagged view
      every later stage reads from
"""

import json
import logging
from typing import Any

from stateless_fhir.domain.documents import RawDocument, ValidationResult
from stateless_fhir.domain.enums import ValidationStatus
from stateless_fhir.domain.ports import ParseError

logger = logging.getLogger(__name__)

RESOURCE_TYPE_KEY = "resourceType"
ENTRY_KEY = "entry"


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-standard JSON constant {name}")


def parse_payload(document: RawDocument) -> Any:
    """Parse a document payload as strict JSON.

    Parameters:
        document: Raw document to parse

    Returns:
        The parsed JSON value

    Raises:
        ParseError: If the payload is not UTF-8 or not well-formed JSON
    """
    payload = document.payload
    if isinstance(payload, bytes):
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ParseError(f"Payload is not valid UTF-8: {str(e)}", source_id=document.id)

    try:
        return json.loads(payload, parse_constant=_reject_constant)
    except (ValueError, RecursionError) as e:
        # JSONDecodeError is a ValueError subclass
        raise ParseError(f"Payload is not well-formed JSON: {str(e)}", source_id=document.id)


class DocumentValidator:
    """Tags raw documents as invalid, valid non-FHIR, or FHIR candidates.

    Example Usage:
        ```python
        validator = DocumentValidator()
        result = validator.validate(RawDocument(id="1", payload='{"resourceType": "Patient"}'))
        assert result.is_candidate
        ```
    """

    def validate(self, document: RawDocument) -> ValidationResult:
        """Validate one raw document.

        Parameters:
            document: Raw document as read from the store

        Returns:
            ValidationResult: Status plus parsed content (when valid)
        """
        try:
            content = parse_payload(document)
        except ParseError as e:
            logger.debug(f"Document {document.id} is not valid JSON: {str(e)}", extra={"source_id": document.id})
            return ValidationResult(
                document_id=document.id,
                status=ValidationStatus.INVALID,
                error=str(e),
            )

        if not isinstance(content, dict):
            return ValidationResult(
                document_id=document.id,
                status=ValidationStatus.VALID_NON_FHIR,
                content=content,
            )

        has_entry_array = isinstance(content.get(ENTRY_KEY), list)
        marker = content.get(RESOURCE_TYPE_KEY)
        if marker is None:
            return ValidationResult(
                document_id=document.id,
                status=ValidationStatus.VALID_NON_FHIR,
                content=content,
                has_entry_array=has_entry_array,
            )

        if not isinstance(marker, str):
            marker = json.dumps(marker, separators=(",", ":"))

        return ValidationResult(
            document_id=document.id,
            status=ValidationStatus.FHIR_CANDIDATE,
            content=content,
            resource_type=marker,
            has_entry_array=has_entry_array,
        )
