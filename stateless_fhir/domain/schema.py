"""Schema Registry - declarative field mappings keyed by resource type.

A ResourceSchema is an ordered list of FieldMappings, each declaring how to
pull one scalar out of a nested resource payload. The registry maps resource
types to schemas and is built once, validated eagerly, and never mutated
afterwards, so it can be shared across worker threads without locking.

Adding a resource type means adding a table entry, not code:

    ```python
    registry = SchemaRegistry.from_table({
        "Observation": [
            {"column": "id", "path": "id", "default": "error_if_absent"},
            {"column": "value", "path": "valueQuantity.value", "kind": "float"},
        ],
    })
    ```

Any malformed entry raises SchemaConfigurationError while the registry is
being built. That is the only fatal error in the engine.
"""

import json
import logging
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any, Iterable, Iterator, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from stateless_fhir.domain.enums import ArrayPolicy, DefaultPolicy, ValueKind
from stateless_fhir.domain.json_path import JsonPath
from stateless_fhir.domain.ports import SchemaConfigurationError, SchemaNotFound

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1024)
def _parse_path(expression: str) -> JsonPath:
    return JsonPath.parse(expression)


class FieldMapping(BaseModel):
    """How to pull one output column from a resource payload.

    Parameters:
        column: Output column name
        path: Path expression relative to the resource (see json_path)
        kind: Declared value kind
        default: Policy when the path is absent
        array: Policy for un-indexed arrays; ``explode`` requires exactly one
            ``[*]`` in the path and ``[*]`` is only allowed with ``explode``
    """

    column: str = Field(..., min_length=1)
    path: str
    kind: ValueKind = ValueKind.STRING
    default: DefaultPolicy = DefaultPolicy.NULL_IF_ABSENT
    array: ArrayPolicy = ArrayPolicy.STRICT

    model_config = ConfigDict(frozen=True, extra="forbid")

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        """Reject unparseable path expressions at build time."""
        JsonPath.parse(v)
        return v

    @model_validator(mode="after")
    def validate_array_policy(self) -> 'FieldMapping':
        """Tie the ``[*]`` wildcard to the explode policy."""
        wildcards = self.parsed_path.wildcard_count
        if self.array == ArrayPolicy.EXPLODE and wildcards != 1:
            raise ValueError(
                f"Column '{self.column}': explode mappings need exactly one '[*]' in the path"
            )
        if self.array != ArrayPolicy.EXPLODE and wildcards:
            raise ValueError(
                f"Column '{self.column}': '[*]' is only allowed with the explode array policy"
            )
        return self

    @property
    def parsed_path(self) -> JsonPath:
        return _parse_path(self.path)

    @property
    def is_exploded(self) -> bool:
        return self.array == ArrayPolicy.EXPLODE

    @property
    def is_required(self) -> bool:
        return self.default == DefaultPolicy.ERROR_IF_ABSENT


class ResourceSchema(BaseModel):
    """Ordered field mappings for one resource type.

    Invariants:
        - Column names are unique
        - All explode mappings share one anchor (the path before ``[*]``),
          so each exploded element becomes exactly one output row
    """

    resource_type: str = Field(..., min_length=1)
    mappings: tuple[FieldMapping, ...]

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def validate_fields(self) -> 'ResourceSchema':
        if not self.mappings:
            raise ValueError(f"Schema for '{self.resource_type}' declares no fields")

        seen: set[str] = set()
        for mapping in self.mappings:
            if mapping.column in seen:
                raise ValueError(
                    f"Schema for '{self.resource_type}' declares column '{mapping.column}' twice"
                )
            seen.add(mapping.column)

        anchors = {
            mapping.parsed_path.split_at_wildcard()[0].segments
            for mapping in self.mappings
            if mapping.is_exploded
        }
        if len(anchors) > 1:
            raise ValueError(
                f"Schema for '{self.resource_type}' explodes more than one array; "
                "all explode mappings must share the same anchor"
            )
        return self

    @property
    def columns(self) -> list[str]:
        return [mapping.column for mapping in self.mappings]

    @property
    def explode_anchor(self) -> Optional[JsonPath]:
        """The array path exploded by this schema, if any."""
        for mapping in self.mappings:
            if mapping.is_exploded:
                return mapping.parsed_path.split_at_wildcard()[0]
        return None


SchemaTable = Mapping[str, Iterable[Union[FieldMapping, Mapping[str, Any]]]]


class SchemaRegistry:
    """Immutable registry of resource schemas.

    Example Usage:
        ```python
        registry = SchemaRegistry.default()
        schema = registry.lookup("Patient")
        if schema is None:
            ...  # pass through unprojected
        ```
    """

    def __init__(self, schemas: Iterable[ResourceSchema] = ()):
        """Initialize the registry.

        Parameters:
            schemas: Validated schemas; later entries replace earlier ones
                     with the same resource type
        """
        table: dict[str, ResourceSchema] = {}
        for schema in schemas:
            table[schema.resource_type] = schema
        self._schemas: Mapping[str, ResourceSchema] = MappingProxyType(table)

    @classmethod
    def from_table(cls, table: SchemaTable, base: Optional['SchemaRegistry'] = None) -> 'SchemaRegistry':
        """Build a registry from a plain ``resource_type -> mappings`` table.

        Parameters:
            table: Mapping of resource type to a sequence of FieldMappings or
                   FieldMapping-shaped dicts
            base: Optional registry whose schemas are kept unless overridden

        Returns:
            SchemaRegistry: Validated registry

        Raises:
            SchemaConfigurationError: If any entry is malformed
        """
        if not isinstance(table, Mapping):
            raise SchemaConfigurationError("Schema table must be a mapping of resource type to fields")

        schemas = list(base._schemas.values()) if base is not None else []
        for resource_type, fields in table.items():
            if isinstance(fields, (str, bytes)) or not isinstance(fields, Iterable):
                raise SchemaConfigurationError(
                    f"Fields for '{resource_type}' must be a list of mappings",
                    resource_type=resource_type,
                )
            try:
                schemas.append(ResourceSchema(resource_type=resource_type, mappings=tuple(fields)))
            except PydanticValidationError as e:
                raise SchemaConfigurationError(
                    f"Invalid schema for '{resource_type}': {e.error_count()} error(s)",
                    resource_type=resource_type,
                    details={"errors": [err["msg"] for err in e.errors()]},
                )

        registry = cls(schemas)
        logger.debug(f"Schema registry built with types: {registry.supported_types()}")
        return registry

    @classmethod
    def default(cls) -> 'SchemaRegistry':
        """Registry holding the built-in schemas."""
        from stateless_fhir.domain.builtin_schemas import BUILTIN_SCHEMA_TABLE
        return cls.from_table(BUILTIN_SCHEMA_TABLE)

    @classmethod
    def from_file(cls, path: Union[str, Path], include_builtin: bool = True) -> 'SchemaRegistry':
        """Build a registry from a JSON schema file.

        The file holds the same shape as ``from_table``. With
        ``include_builtin`` its entries are merged over the built-in table.

        Raises:
            SchemaConfigurationError: If the file is missing, not JSON, or
                                      contains a malformed entry
        """
        schema_path = Path(path)
        if not schema_path.exists():
            raise SchemaConfigurationError(f"Schema file not found: {schema_path}")
        try:
            with open(schema_path, 'r', encoding='utf-8') as f:
                table = json.load(f)
        except json.JSONDecodeError as e:
            raise SchemaConfigurationError(f"Invalid JSON in schema file {schema_path}: {str(e)}")

        base = cls.default() if include_builtin else None
        registry = cls.from_table(table, base=base)
        logger.info(f"Loaded schema file {schema_path} ({len(table)} resource type(s))")
        return registry

    def lookup(self, resource_type: str) -> Optional[ResourceSchema]:
        """Return the schema for ``resource_type``, or None if unsupported."""
        return self._schemas.get(resource_type)

    def require(self, resource_type: str) -> ResourceSchema:
        """Return the schema for ``resource_type``.

        Raises:
            SchemaNotFound: If no schema is registered
        """
        schema = self._schemas.get(resource_type)
        if schema is None:
            raise SchemaNotFound(
                f"No schema registered for resource type '{resource_type}'",
                resource_type=resource_type,
            )
        return schema

    def supported_types(self) -> list[str]:
        return sorted(self._schemas)

    def __contains__(self, resource_type: object) -> bool:
        return resource_type in self._schemas

    def __len__(self) -> int:
        return len(self._schemas)

    def __iter__(self) -> Iterator[ResourceSchema]:
        return iter(self._schemas.values())
