"""Resource Classification Service.

Decides whether a FHIR candidate is a singleton resource or a bundle and
extracts its declared type and id.

A document is a bundle exactly when its ``entry`` key holds a JSON array.
Shapes that fit neither case cleanly (an ``entry`` that is not an array, or
a ``Bundle`` with no entry array) are flagged as ambiguous, logged, and then
treated as singletons. Ambiguity never stops a run.
"""

import json
import logging
from typing import Any, Optional

from stateless_fhir.domain.documents import ClassifiedResource, ValidationResult
from stateless_fhir.domain.ports import ClassificationAmbiguous
from stateless_fhir.domain.services.validator import ENTRY_KEY

logger = logging.getLogger(__name__)

BUNDLE_TYPE = "Bundle"


def scalar_id(value: Any) -> Optional[str]:
    """Render a resource ``id`` as text (None when absent or null)."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"))


class ResourceClassifier:
    """Classifies FHIR candidates into singletons and bundles."""

    def classify(self, validation: ValidationResult) -> ClassifiedResource:
        """Classify a validated FHIR candidate.

        Parameters:
            validation: Result of the validator, must be a FHIR candidate

        Returns:
            ClassifiedResource: Type, id and bundle shape of the document

        Raises:
            ValueError: If ``validation`` is not a FHIR candidate
        """
        if not validation.is_candidate:
            raise ValueError(
                f"Document {validation.document_id} is not a FHIR candidate "
                f"(status: {validation.status.value})"
            )

        content = validation.content
        resource_type = validation.resource_type
        entry = content.get(ENTRY_KEY)
        is_bundle = isinstance(entry, list)

        ambiguity = None
        try:
            self._check_shape(validation.document_id, resource_type, content, is_bundle)
        except ClassificationAmbiguous as e:
            ambiguity = str(e)
            logger.warning(
                f"Ambiguous document {validation.document_id}: {ambiguity}",
                extra={"source_id": validation.document_id, "resource_type": resource_type},
            )

        return ClassifiedResource(
            source_id=validation.document_id,
            resource_type=resource_type,
            resource_id=scalar_id(content.get("id")),
            is_bundle=is_bundle,
            content=content,
            ambiguity=ambiguity,
        )

    @staticmethod
    def _check_shape(source_id: str, resource_type: str, content: dict, is_bundle: bool) -> None:
        if ENTRY_KEY in content and not is_bundle:
            raise ClassificationAmbiguous(
                f"'{ENTRY_KEY}' is present but is not an array; treating as a non-bundle",
                source_id=source_id,
                resource_type=resource_type,
            )
        if resource_type == BUNDLE_TYPE and not is_bundle:
            raise ClassificationAmbiguous(
                f"{BUNDLE_TYPE} declares no '{ENTRY_KEY}' array; treating as a non-bundle",
                source_id=source_id,
                resource_type=resource_type,
            )
