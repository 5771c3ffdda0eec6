"""Path expressions over parsed JSON documents.

Parsed documents are plain Python values: dict (object), list (array), str,
int/float (number), bool and None (null). This module gives a tagged view of
those values and a small path language to address nested scalars without
ever raising on document shape. Malformed documents are the common case, so
every accessor answers ``MISSING`` instead of throwing.

Path grammar:
    path     := ['$' ['.']] key-step ('.' key-step)*
    key-step := key ('[' (digits | '*') ']')*
    key      := one or more characters other than '.', '[' and ']'

Examples::

    name[0].given[0]
    $.resource.birthDate
    extension[0].lineage meta data[0].url
    code.coding[*].code          (explode anchor: code.coding)

Only path *syntax* errors raise (``ValueError``), and those surface while the
schema registry is built, never while documents are being projected.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from stateless_fhir.domain.enums import ArrayPolicy


class JsonType(str, Enum):
    """JSON type tag of a parsed value."""
    OBJECT = "object"
    ARRAY = "array"
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    NULL = "null"


def json_type(value: Any) -> Optional[JsonType]:
    """Return the JSON type tag of a parsed value (None for non-JSON values)."""
    if value is None:
        return JsonType.NULL
    # bool before number: bool is an int subclass
    if isinstance(value, bool):
        return JsonType.BOOLEAN
    if isinstance(value, (int, float)):
        return JsonType.NUMBER
    if isinstance(value, str):
        return JsonType.STRING
    if isinstance(value, dict):
        return JsonType.OBJECT
    if isinstance(value, list):
        return JsonType.ARRAY
    return None


class _Missing:
    """Sentinel for a path that does not resolve."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()


@dataclass(frozen=True)
class PathSegment:
    """One step of a path: a key, a numeric index, or the ``[*]`` wildcard."""

    key: Optional[str] = None
    index: Optional[int] = None
    wildcard: bool = False

    def render(self) -> str:
        if self.key is not None:
            return self.key
        if self.wildcard:
            return "[*]"
        return f"[{self.index}]"


_TOKEN_RE = re.compile(
    r"(?P<key>[^.\[\]]+)"
    r"|\[(?P<index>\d+|\*)\]"
    r"|(?P<dot>\.)"
    r"|(?P<bad>.)"
)


def _render(segments: tuple[PathSegment, ...]) -> str:
    parts: list[str] = []
    for segment in segments:
        if segment.key is not None and parts:
            parts.append(".")
        parts.append(segment.render())
    return "".join(parts)


@dataclass(frozen=True)
class JsonPath:
    """A parsed, immutable path expression."""

    expression: str
    segments: tuple[PathSegment, ...]

    @classmethod
    def parse(cls, expression: str) -> 'JsonPath':
        """Parse a path expression.

        Parameters:
            expression: Path text, e.g. ``address[0].line[0]``

        Returns:
            JsonPath: Parsed path

        Raises:
            ValueError: If the expression is not a well-formed path
        """
        if not isinstance(expression, str) or not expression.strip():
            raise ValueError("Path expression must be a non-empty string")

        text = expression
        if text.startswith("$"):
            text = text[1:]
            if text.startswith("."):
                text = text[1:]
        if not text:
            raise ValueError(f"Path '{expression}' does not address any key")

        segments: list[PathSegment] = []
        expect_key = True
        for match in _TOKEN_RE.finditer(text):
            if match.group("key") is not None:
                if not expect_key:
                    raise ValueError(
                        f"Missing '.' before key '{match.group('key')}' in path '{expression}'"
                    )
                segments.append(PathSegment(key=match.group("key")))
                expect_key = False
            elif match.group("index") is not None:
                if expect_key:
                    raise ValueError(f"Index must follow a key in path '{expression}'")
                index = match.group("index")
                if index == "*":
                    segments.append(PathSegment(wildcard=True))
                else:
                    segments.append(PathSegment(index=int(index)))
            elif match.group("dot") is not None:
                if expect_key:
                    raise ValueError(f"Empty key in path '{expression}'")
                expect_key = True
            else:
                raise ValueError(
                    f"Unexpected character {match.group('bad')!r} at position "
                    f"{match.start()} in path '{expression}'"
                )

        if expect_key:
            raise ValueError(f"Path '{expression}' ends with '.'")

        return cls(expression=expression, segments=tuple(segments))

    @property
    def wildcard_count(self) -> int:
        return sum(1 for segment in self.segments if segment.wildcard)

    def split_at_wildcard(self) -> tuple['JsonPath', 'JsonPath']:
        """Split an explode path into (anchor, suffix) around its ``[*]``.

        The suffix may be empty, in which case it resolves to the element
        itself.

        Raises:
            ValueError: If the path does not contain exactly one wildcard
        """
        if self.wildcard_count != 1:
            raise ValueError(f"Path '{self.expression}' must contain exactly one '[*]'")
        position = next(i for i, segment in enumerate(self.segments) if segment.wildcard)
        anchor = self.segments[:position]
        suffix = self.segments[position + 1:]
        return (
            JsonPath(expression=_render(anchor), segments=anchor),
            JsonPath(expression=_render(suffix), segments=suffix),
        )

    def resolve(self, document: Any, array_policy: ArrayPolicy = ArrayPolicy.STRICT) -> Any:
        """Resolve the path against a parsed document.

        Never raises on document shape: a missing key, an out-of-range index,
        a key applied to a non-object, an index applied to a non-array and a
        JSON null all answer ``MISSING``.

        Under ``ArrayPolicy.FIRST`` any array met where a key is expected, or
        at the end of the path, collapses to its first element. Under the
        other policies such arrays are never traversed.

        Parameters:
            document: Parsed JSON value
            array_policy: How to treat un-indexed arrays

        Returns:
            The resolved value, or MISSING
        """
        collapse = array_policy == ArrayPolicy.FIRST
        current = document
        for segment in self.segments:
            if segment.wildcard:
                raise ValueError(
                    f"Path '{self.expression}' contains '[*]'; split it before resolving"
                )
            if segment.key is not None:
                if collapse and isinstance(current, list):
                    if not current:
                        return MISSING
                    current = current[0]
                if not isinstance(current, dict) or segment.key not in current:
                    return MISSING
                current = current[segment.key]
            else:
                if not isinstance(current, list) or segment.index >= len(current):
                    return MISSING
                current = current[segment.index]

        if collapse and isinstance(current, list):
            if not current:
                return MISSING
            current = current[0]
        if current is None:
            return MISSING
        return current

    def __str__(self) -> str:
        return self.expression
