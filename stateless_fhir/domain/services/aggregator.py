"""Aggregation Service.

Computes summaries over projected records and classification outcomes:
per-type resource counts, column averages, the classification summary, and
tabular frames for downstream analysis.

Architecture:
    - Pure domain service, reads records and never mutates them
    - Uses pandas for grouping and tabular output
    - Counts are over distinct resource instances, so exploded rows count once
"""

import logging
from typing import Iterable, Optional, Sequence, Union

import pandas as pd

from stateless_fhir.domain.documents import ResourceInstance
from stateless_fhir.domain.records import (
    AverageStatistic,
    ClassificationSummary,
    DocumentOutcome,
    ProjectedRecord,
    ResourceTypeCount,
)
from stateless_fhir.domain.services.derived_fields import Now, age_in_years

logger = logging.getLogger(__name__)

PATIENT_TYPE = "Patient"
RECORD_KEY_COLUMNS = ["resource_type", "bundle_id", "source_id"]

Countable = Union[ProjectedRecord, ResourceInstance]


def count_by_resource_type(
    items: Iterable[Countable],
    bundled_only: bool = False,
    resource_type: Optional[str] = None,
) -> list[ResourceTypeCount]:
    """Count distinct resource instances per type.

    Parameters:
        items: ProjectedRecords or ResourceInstances
        bundled_only: Only count instances that came from a bundle entry
        resource_type: Only count this type

    Returns:
        list[ResourceTypeCount]: Sorted by count descending, then type
    """
    rows = [
        {
            "resource_type": item.resource_type,
            "source_id": item.source_id,
            "entry_index": -1 if item.entry_index is None else item.entry_index,
        }
        for item in items
        if (not bundled_only or item.entry_index is not None)
        and (resource_type is None or item.resource_type == resource_type)
    ]
    if not rows:
        return []

    df = pd.DataFrame(rows).drop_duplicates()
    counts = (
        df.groupby("resource_type").size()
        .reset_index(name="total_resource_count")
        .sort_values(["total_resource_count", "resource_type"], ascending=[False, True])
    )
    return [
        ResourceTypeCount(resource_type=row.resource_type, total_resource_count=int(row.total_resource_count))
        for row in counts.itertuples(index=False)
    ]


def _numeric(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def average(
    records: Iterable[ProjectedRecord],
    column: str,
    resource_type: Optional[str] = None,
) -> AverageStatistic:
    """Average a numeric column, ignoring nulls.

    Parameters:
        records: Projected records
        column: Column to average
        resource_type: Only consider records of this type

    Returns:
        AverageStatistic: ``value`` is None when no record has a number
    """
    values = [
        record.get(column)
        for record in records
        if (resource_type is None or record.resource_type == resource_type)
        and _numeric(record.get(column))
    ]
    if not values:
        return AverageStatistic(resource_type=resource_type, column=column)

    mean = pd.Series(values, dtype="float64").mean()
    return AverageStatistic(
        resource_type=resource_type,
        column=column,
        value=float(mean),
        sample_size=len(values),
    )


def average_patient_age(records: Iterable[ProjectedRecord], now: Now) -> AverageStatistic:
    """Average Patient age in 365.25-day years at ``now``.

    Each Patient instance counts once. Patients without a usable birth
    date are ignored; with none at all the value is None.
    """
    ages = {}
    for record in records:
        if record.resource_type != PATIENT_TYPE or record.instance_key in ages:
            continue
        ages[record.instance_key] = age_in_years(record.get("birth_date"), now)

    aged = [
        ProjectedRecord(resource_type=PATIENT_TYPE, source_id=key[0], entry_index=key[1], values={"age": age})
        for key, age in ages.items()
    ]
    return average(aged, "age", resource_type=PATIENT_TYPE)


def classification_summary(outcomes: Iterable[DocumentOutcome]) -> ClassificationSummary:
    """Summarize validation and classification over a document set."""
    counts = {
        "total": 0,
        "valid_json": 0,
        "invalid_json": 0,
        "fhir_candidates": 0,
        "fhir_bundle_candidates": 0,
        "ambiguous_candidates": 0,
    }
    for outcome in outcomes:
        counts["total"] += 1
        if not outcome.validation.is_valid_json:
            counts["invalid_json"] += 1
            continue
        counts["valid_json"] += 1
        if outcome.validation.is_candidate:
            counts["fhir_candidates"] += 1
        classified = outcome.classified
        # any object with an entry array counts, typed or not
        if outcome.validation.has_entry_array or (classified is not None and classified.is_bundle):
            counts["fhir_bundle_candidates"] += 1
        if classified is not None and classified.ambiguity is not None:
            counts["ambiguous_candidates"] += 1
    return ClassificationSummary(**counts)


def to_dataframe(records: Iterable[ProjectedRecord], columns: Optional[Sequence[str]] = None) -> pd.DataFrame:
    """Build a DataFrame with one row per record.

    Parameters:
        records: Projected records
        columns: Value columns to keep, in order (missing ones become null);
                 defaults to every column seen

    Returns:
        pd.DataFrame: ``resource_type``, ``bundle_id``, ``source_id`` and
        then the value columns
    """
    rows = [record.to_row() for record in records]
    df = pd.DataFrame(rows)

    if columns is None:
        value_columns = [c for c in df.columns if c not in RECORD_KEY_COLUMNS]
    else:
        value_columns = [c for c in columns if c not in RECORD_KEY_COLUMNS]
    return df.reindex(columns=RECORD_KEY_COLUMNS + value_columns)
