"""Projection Pipeline - validate, classify, unnest, project, aggregate.

This module wires the domain services into a single pass over a document
collection and collects the results into a PipelineReport.

Security Impact:
    - Every document is processed inside its own try/except; a document that
      breaks the engine in an unexpected way becomes a failure Result and is
      logged, and the run continues
    - Payload contents are never logged, only document identifiers

Architecture:
    - Orchestration only: all decisions live in the domain services
    - Documents are processed in batches; with ``max_workers > 1`` a batch is
      mapped over a thread pool, and output order always matches input order
    - The schema registry is immutable and shared by all workers
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from itertools import islice
from typing import Iterable, Iterator, Optional

import pandas as pd

from stateless_fhir.domain.documents import RawDocument, ResourceInstance
from stateless_fhir.domain.enums import UnsupportedResourcePolicy
from stateless_fhir.domain.ports import Result
from stateless_fhir.domain.records import (
    AverageStatistic,
    ClassificationSummary,
    DocumentOutcome,
    ProjectedRecord,
    ResourceTypeCount,
)
from stateless_fhir.domain.schema import SchemaRegistry
from stateless_fhir.domain.services import (
    BundleUnnester,
    DocumentValidator,
    Projector,
    ResourceClassifier,
    apply_derived_fields,
)
from stateless_fhir.domain.services import aggregator
from stateless_fhir.domain.services.derived_fields import Now
from stateless_fhir.infrastructure.config_manager import EngineConfig

logger = logging.getLogger(__name__)


@dataclass
class PipelineReport:
    """Everything a pipeline run produced.

    Attributes:
        summary: Validation and classification counts
        records: Projected records grouped by resource type, in input order
        instances: Resource instances seen (payloads dropped)
        invalid_document_ids: Documents that were not well-formed JSON
        failed_document_ids: Documents that raised unexpectedly
        skipped_entries: Bundle entries excluded for lacking a typed resource
        field_error_count: Field-level error flags across all records
    """

    summary: ClassificationSummary = field(default_factory=ClassificationSummary)
    records: dict[str, list[ProjectedRecord]] = field(default_factory=dict)
    instances: list[ResourceInstance] = field(default_factory=list)
    invalid_document_ids: list[str] = field(default_factory=list)
    failed_document_ids: list[str] = field(default_factory=list)
    skipped_entries: int = 0
    field_error_count: int = 0

    def all_records(self) -> list[ProjectedRecord]:
        return [record for records in self.records.values() for record in records]

    def resource_counts(self) -> list[ResourceTypeCount]:
        """Instance counts per type, singletons and bundle entries alike."""
        return aggregator.count_by_resource_type(self.instances)

    def bundle_resource_summary(self) -> list[ResourceTypeCount]:
        """Instance counts per type over bundle entries only."""
        return aggregator.count_by_resource_type(self.instances, bundled_only=True)

    def average_patient_age(self, now: Now) -> AverageStatistic:
        return aggregator.average_patient_age(self.records.get(aggregator.PATIENT_TYPE, []), now)

    def to_dataframe(self, resource_type: str) -> pd.DataFrame:
        """Records of one type as a DataFrame (empty if none)."""
        return aggregator.to_dataframe(self.records.get(resource_type, []))


def _without_payloads(outcome: DocumentOutcome) -> DocumentOutcome:
    # keep statuses and flags for the summary, drop parsed content
    classified = outcome.classified
    if classified is not None:
        classified = classified.model_copy(update={"content": None})
    return DocumentOutcome(
        validation=outcome.validation.model_copy(update={"content": None}),
        classified=classified,
        skipped_entries=outcome.skipped_entries,
    )


class FHIRPipeline:
    """Runs raw documents through the projection engine.

    Example Usage:
        ```python
        pipeline = FHIRPipeline(max_workers=4)
        report = pipeline.run(get_source("resource-surveillance.duckdb"))
        print(report.summary)
        print(report.bundle_resource_summary())
        ```
    """

    def __init__(
        self,
        registry: Optional[SchemaRegistry] = None,
        unsupported: UnsupportedResourcePolicy = UnsupportedResourcePolicy.SKIP,
        max_workers: int = 1,
        batch_size: int = 500,
    ):
        """Initialize the pipeline.

        Parameters:
            registry: Schema registry (defaults to the built-in schemas)
            unsupported: Pass-through policy for types with no schema
            max_workers: Worker threads per batch (1 = sequential)
            batch_size: Documents handed to the worker pool at a time

        Raises:
            ValueError: If max_workers or batch_size is below 1
        """
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        self.validator = DocumentValidator()
        self.classifier = ResourceClassifier()
        self.unnester = BundleUnnester()
        self.projector = Projector(registry, unsupported=unsupported)
        self.max_workers = max_workers
        self.batch_size = batch_size

    @classmethod
    def from_config(cls, engine_config: Optional[EngineConfig] = None) -> 'FHIRPipeline':
        """Build a pipeline from an EngineConfig (defaults if None).

        Raises:
            SchemaConfigurationError: If the schema override file is malformed
        """
        config = engine_config or EngineConfig()
        if config.schema_path:
            registry = SchemaRegistry.from_file(config.schema_path)
        else:
            registry = SchemaRegistry.default()
        return cls(
            registry=registry,
            unsupported=config.unsupported_resources,
            max_workers=config.max_workers,
            batch_size=config.batch_size,
        )

    @property
    def registry(self) -> SchemaRegistry:
        return self.projector.registry

    def process_document(self, document: RawDocument) -> DocumentOutcome:
        """Run one document through validation, classification and projection."""
        validation = self.validator.validate(document)
        if not validation.is_candidate:
            return DocumentOutcome(validation=validation)

        classified = self.classifier.classify(validation)
        skipped = 0
        if classified.is_bundle:
            entries = self.unnester.unnest(classified)
            instances = tuple(entry.to_instance() for entry in entries)
            skipped = entries.skipped_count()
        else:
            instances = tuple(self.unnester.instances(classified))

        records = []
        for instance in instances:
            records.extend(self.projector.project_instance(instance))

        return DocumentOutcome(
            validation=validation,
            classified=classified,
            instances=instances,
            records=tuple(records),
            skipped_entries=skipped,
        )

    def _process_safely(self, document: RawDocument) -> Result[DocumentOutcome]:
        try:
            return Result.success_result(self.process_document(document))
        except Exception as e:
            logger.error(
                f"Unexpected error processing document {document.id}: {str(e)}",
                exc_info=True,
                extra={"source_id": document.id},
            )
            return Result.failure_result(e, error_details={"source_id": document.id})

    def _batches(self, documents: Iterable[RawDocument]) -> Iterator[list[RawDocument]]:
        iterator = iter(documents)
        while True:
            batch = list(islice(iterator, self.batch_size))
            if not batch:
                return
            yield batch

    def iter_results(self, documents: Iterable[RawDocument]) -> Iterator[Result[DocumentOutcome]]:
        """Yield one Result per document, in input order.

        Parameters:
            documents: RawDocuments or a DocumentSourcePort

        Yields:
            Result[DocumentOutcome]: Success with the outcome, or failure with
            ``error_details["source_id"]`` for an unexpected fault
        """
        if self.max_workers == 1:
            for batch in self._batches(documents):
                for document in batch:
                    yield self._process_safely(document)
            return

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="document-worker") as executor:
            for batch in self._batches(documents):
                yield from executor.map(self._process_safely, batch)

    def iter_outcomes(self, documents: Iterable[RawDocument]) -> Iterator[DocumentOutcome]:
        """Yield the outcome of every document that processed cleanly."""
        for result in self.iter_results(documents):
            if result.is_success():
                yield result.value

    def run(self, documents: Iterable[RawDocument], now: Optional[Now] = None) -> PipelineReport:
        """Process a document collection and collect a report.

        Parameters:
            documents: RawDocuments or a DocumentSourcePort
            now: Reference time for derived fields; when None, derived
                 columns are not added to the records

        Returns:
            PipelineReport: Summary, records and exclusions of the run
        """
        report = PipelineReport()
        outcomes = []

        for result in self.iter_results(documents):
            if result.is_failure():
                report.failed_document_ids.append(result.error_details.get("source_id"))
                continue

            outcome = result.value
            outcomes.append(_without_payloads(outcome))
            if not outcome.validation.is_valid_json:
                report.invalid_document_ids.append(outcome.source_id)

            report.skipped_entries += outcome.skipped_entries
            report.instances.extend(
                instance.model_copy(update={"payload": None}) for instance in outcome.instances
            )
            records = apply_derived_fields(outcome.records, now) if now is not None else outcome.records
            for record in records:
                report.records.setdefault(record.resource_type, []).append(record)
                report.field_error_count += len(record.errors)

        report.summary = aggregator.classification_summary(outcomes)
        logger.info(
            f"Pipeline run complete: {report.summary.total} document(s), "
            f"{report.summary.invalid_json} invalid, "
            f"{report.summary.fhir_candidates} FHIR candidate(s) "
            f"({report.summary.fhir_bundle_candidates} bundle(s)), "
            f"{len(report.instances)} instance(s), "
            f"{sum(len(r) for r in report.records.values())} record(s), "
            f"{report.skipped_entries} skipped entries, "
            f"{len(report.failed_document_ids)} failure(s)"
        )
        return report
