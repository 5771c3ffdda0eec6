"""Derived Fields - computed columns added after projection.

Derived columns are declared in a table keyed by resource type, the same
way field mappings are, so adding one is a table entry rather than a code
path. The reference time is always supplied by the caller; nothing here
reads the clock, which keeps results reproducible.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence, Union

from stateless_fhir.domain.coercion import parse_date
from stateless_fhir.domain.records import ProjectedRecord

logger = logging.getLogger(__name__)

DAYS_PER_YEAR = 365.25

Now = Union[date, datetime]


@dataclass(frozen=True)
class DerivedField:
    """A computed column.

    Attributes:
        column: Name of the column to add
        function: Callable ``(record, now) -> value``; returns None when the
                  inputs it needs are absent
    """

    column: str
    function: Callable[[ProjectedRecord, Now], Any]


def _as_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return parse_date(value)
        except ValueError:
            return None
    return None


def _naive_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def age_in_years(birth_date: Any, now: Now) -> Optional[float]:
    """Fractional age in 365.25-day years.

    Parameters:
        birth_date: A date, or a date/dateTime string
        now: Reference date or datetime; a datetime keeps the fraction of
             the current day, measured in UTC

    Returns:
        Optional[float]: Age in years, or None when ``birth_date`` is
        absent or not a calendar date
    """
    born = _as_date(birth_date)
    if born is None:
        return None

    if isinstance(now, datetime):
        elapsed = _naive_utc(now) - datetime.combine(born, time())
        days = elapsed.total_seconds() / 86400
    else:
        days = (now - born).days
    return days / DAYS_PER_YEAR


def _patient_age(record: ProjectedRecord, now: Now) -> Optional[float]:
    return age_in_years(record.get("birth_date"), now)


DERIVED_FIELDS: Mapping[str, Sequence[DerivedField]] = {
    "Patient": (DerivedField(column="age", function=_patient_age),),
}


def apply_derived_fields(
    records: Iterable[ProjectedRecord],
    now: Now,
    derived: Optional[Mapping[str, Sequence[DerivedField]]] = None,
) -> list[ProjectedRecord]:
    """Return copies of ``records`` with derived columns added.

    Records whose type has no derived fields, and minimal pass-through
    records, are returned unchanged.

    Parameters:
        records: Projected records
        now: Caller-supplied reference time
        derived: Derived-field table (defaults to DERIVED_FIELDS)

    Returns:
        list[ProjectedRecord]: Records in input order
    """
    table = DERIVED_FIELDS if derived is None else derived
    result = []
    for record in records:
        fields = table.get(record.resource_type, ())
        if not fields or not record.schema_applied:
            result.append(record)
            continue
        extra = {field.column: field.function(record, now) for field in fields}
        result.append(record.with_values(extra))
    return result
