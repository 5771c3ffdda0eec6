"""Value coercion from parsed JSON scalars to declared column kinds.

Coercion is lossless when the JSON type already matches the declared kind.
Anything that cannot be coerced raises FieldCoercionError, which the
Projector turns into a null value (and, under error-if-absent, a field-level
error flag). Nothing here ever aborts a run.
"""

import json
import math
import re
from datetime import date, datetime, time, timedelta
from typing import Any, Optional

from stateless_fhir.domain.enums import ValueKind
from stateless_fhir.domain.ports import FieldCoercionError

# FHIR date / dateTime with at least day precision. Partial dates (YYYY,
# YYYY-MM) are not calendar dates and fail, as SQLite DATE() does.
_DATE_RE = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})"
    r"(?:T(\d{2}):(\d{2})(?::\d{2}(?:\.\d+)?)?(?:Z|([+-])(\d{2}):(\d{2}))?)?$"
)
_INTEGER_RE = re.compile(r"^[+-]?\d+$")
_MAX_ERROR_VALUE_LENGTH = 80


def _preview(value: Any) -> str:
    text = repr(value)
    if len(text) > _MAX_ERROR_VALUE_LENGTH:
        return text[:_MAX_ERROR_VALUE_LENGTH] + "..."
    return text


def _fail(value: Any, kind: ValueKind, column: Optional[str], reason: str) -> FieldCoercionError:
    return FieldCoercionError(
        f"Cannot coerce {_preview(value)} to {kind.value}: {reason}",
        column=column,
        value_kind=kind.value,
        value=_preview(value),
    )


def parse_date(text: str) -> date:
    """Parse a FHIR date or dateTime string into a calendar date.

    A dateTime with a numeric offset is shifted to UTC before the time part
    is dropped, so ``2020-01-01T01:00:00+05:00`` is ``2019-12-31``.

    Raises:
        ValueError: If the text is not a day-precision date/dateTime
    """
    match = _DATE_RE.match(text.strip())
    if not match:
        raise ValueError(f"not a calendar date: {text!r}")
    year, month, day, hour, minute, sign, offset_hours, offset_minutes = match.groups()
    parsed = date(int(year), int(month), int(day))
    if sign is None:
        return parsed

    local = datetime.combine(parsed, time(int(hour), int(minute)))
    offset = timedelta(hours=int(offset_hours), minutes=int(offset_minutes))
    try:
        utc = local - offset if sign == "+" else local + offset
    except OverflowError:
        raise ValueError(f"date out of range after UTC shift: {text!r}")
    return utc.date()


def coerce_value(value: Any, kind: ValueKind, column: Optional[str] = None) -> Any:
    """Coerce a present (non-null) JSON value to ``kind``.

    Parameters:
        value: Parsed JSON value, never None/MISSING
        kind: Declared column kind
        column: Column name, for error context

    Returns:
        The typed value

    Raises:
        FieldCoercionError: If the value cannot be represented as ``kind``
    """
    if kind == ValueKind.JSON:
        if isinstance(value, (dict, list)):
            return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
        return value

    if isinstance(value, (dict, list)):
        raise _fail(value, kind, column, f"expected a scalar, found {type(value).__name__}")

    if kind == ValueKind.STRING:
        if isinstance(value, str):
            return value
        # numbers and booleans keep their JSON spelling
        return json.dumps(value)

    if kind == ValueKind.BOOLEAN:
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in ("true", "false"):
            return value.strip().lower() == "true"
        raise _fail(value, kind, column, "expected true or false")

    if kind == ValueKind.INTEGER:
        if isinstance(value, bool):
            raise _fail(value, kind, column, "booleans are not integers")
        if isinstance(value, int):
            return value
        if isinstance(value, float):
            if math.isfinite(value) and value.is_integer():
                return int(value)
            raise _fail(value, kind, column, "number has a fractional part")
        if isinstance(value, str) and _INTEGER_RE.match(value.strip()):
            return int(value.strip())
        raise _fail(value, kind, column, "not an integer")

    if kind == ValueKind.FLOAT:
        if isinstance(value, bool):
            raise _fail(value, kind, column, "booleans are not numbers")
        if isinstance(value, (int, float)):
            return float(value)
        if isinstance(value, str):
            try:
                number = float(value.strip())
            except ValueError:
                raise _fail(value, kind, column, "not a number")
            if not math.isfinite(number):
                raise _fail(value, kind, column, "not a finite number")
            return number
        raise _fail(value, kind, column, "not a number")

    if kind == ValueKind.DATE:
        if not isinstance(value, str):
            raise _fail(value, kind, column, "dates must be text")
        try:
            return parse_date(value)
        except ValueError as e:
            raise _fail(value, kind, column, str(e))

    raise _fail(value, kind, column, "unknown kind")
