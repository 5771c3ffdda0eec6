"""Schema-driven Projection Service.

Maps one ResourceInstance to typed ProjectedRecords by walking the field
mappings of its resource type's schema.

Projection is total: every mapping produces a value or a null, and a record
is always emitted for a supported instance. Missing and malformed fields are
recorded as FieldErrors on the record (only for required columns) rather
than raised.

Explode semantics:
    When a schema declares explode mappings, the shared anchor array is
    resolved once and one record is emitted per element, with the
    non-exploded columns repeated on each. An absent or empty anchor still
    yields a single record whose exploded columns are null.
"""

import logging
from typing import Any, Iterable, Optional

from stateless_fhir.domain.coercion import coerce_value
from stateless_fhir.domain.documents import ResourceInstance
from stateless_fhir.domain.enums import FieldErrorReason, UnsupportedResourcePolicy
from stateless_fhir.domain.json_path import MISSING
from stateless_fhir.domain.ports import FieldCoercionError, SchemaNotFound
from stateless_fhir.domain.records import FieldError, ProjectedRecord
from stateless_fhir.domain.schema import FieldMapping, ResourceSchema, SchemaRegistry

logger = logging.getLogger(__name__)


class Projector:
    """Projects resource instances into typed records.

    Example Usage:
        ```python
        projector = Projector(SchemaRegistry.default())
        records = projector.project_instance(instance)
        ```
    """

    def __init__(
        self,
        registry: Optional[SchemaRegistry] = None,
        unsupported: UnsupportedResourcePolicy = UnsupportedResourcePolicy.SKIP,
    ):
        """Initialize the projector.

        Parameters:
            registry: Schema registry (defaults to the built-in schemas)
            unsupported: What to emit for instances with no registered schema
        """
        self.registry = registry if registry is not None else SchemaRegistry.default()
        self.unsupported = UnsupportedResourcePolicy(unsupported)

    def project_instance(self, instance: ResourceInstance) -> list[ProjectedRecord]:
        """Project an instance using the schema registered for its type."""
        return self.project(instance, self.registry.lookup(instance.resource_type))

    def project(self, instance: ResourceInstance, schema: Optional[ResourceSchema]) -> list[ProjectedRecord]:
        """Project one instance according to ``schema``.

        Parameters:
            instance: Resource instance to project
            schema: Schema to apply, None for an unsupported type

        Returns:
            list[ProjectedRecord]: One record, one per exploded element, or
            none for an unsupported type under the skip policy
        """
        if schema is None:
            return self._pass_through(instance)

        anchor = schema.explode_anchor
        if anchor is None:
            return [self._build_record(instance, schema.mappings)]

        elements = anchor.resolve(instance.payload)
        if not isinstance(elements, list) or not elements:
            return [self._build_record(instance, schema.mappings, element=MISSING)]

        return [
            self._build_record(instance, schema.mappings, element=element, explode_index=index)
            for index, element in enumerate(elements)
        ]

    def _pass_through(self, instance: ResourceInstance) -> list[ProjectedRecord]:
        error = SchemaNotFound(
            f"No schema registered for resource type '{instance.resource_type}'",
            resource_type=instance.resource_type,
        )
        if self.unsupported == UnsupportedResourcePolicy.SKIP:
            logger.debug(f"Skipping instance from {instance.source_id}: {str(error)}", extra=instance.log_context)
            return []

        logger.debug(f"Emitting minimal record for {instance.source_id}: {str(error)}", extra=instance.log_context)
        return [ProjectedRecord(
            resource_type=instance.resource_type,
            source_id=instance.source_id,
            bundle_id=instance.bundle_id,
            entry_index=instance.entry_index,
            schema_applied=False,
        )]

    def _build_record(
        self,
        instance: ResourceInstance,
        mappings: Iterable[FieldMapping],
        element: Any = None,
        explode_index: Optional[int] = None,
    ) -> ProjectedRecord:
        values: dict[str, Any] = {}
        errors: list[FieldError] = []
        context = instance.log_context

        for mapping in mappings:
            raw = self._resolve(mapping, instance.payload, element)
            value, error = self._typed_value(mapping, raw, context)
            values[mapping.column] = value
            if error is not None:
                errors.append(error)

        if errors:
            logger.debug(
                f"Record for {instance.resource_type} from {instance.source_id} "
                f"(entry {instance.entry_index}) has {len(errors)} field error(s)",
                extra=context,
            )

        return ProjectedRecord(
            resource_type=instance.resource_type,
            source_id=instance.source_id,
            bundle_id=instance.bundle_id,
            entry_index=instance.entry_index,
            explode_index=explode_index,
            values=values,
            errors=tuple(errors),
        )

    @staticmethod
    def _resolve(mapping: FieldMapping, payload: Any, element: Any) -> Any:
        if not mapping.is_exploded:
            return mapping.parsed_path.resolve(payload, mapping.array)

        if element is MISSING:
            return MISSING
        suffix = mapping.parsed_path.split_at_wildcard()[1]
        if not suffix.segments:
            return MISSING if element is None else element
        return suffix.resolve(element)

    @staticmethod
    def _typed_value(
        mapping: FieldMapping,
        raw: Any,
        log_context: Optional[dict] = None,
    ) -> tuple[Any, Optional[FieldError]]:
        if raw is MISSING:
            if not mapping.is_required:
                return None, None
            return None, FieldError(
                column=mapping.column,
                path=mapping.path,
                reason=FieldErrorReason.ABSENT,
                message=f"Required path '{mapping.path}' is absent",
            )

        try:
            return coerce_value(raw, mapping.kind, column=mapping.column), None
        except FieldCoercionError as e:
            logger.debug(f"Column '{mapping.column}': {str(e)}", extra=log_context)
            if not mapping.is_required:
                return None, None
            return None, FieldError(
                column=mapping.column,
                path=mapping.path,
                reason=FieldErrorReason.COERCION,
                message=str(e),
            )
