"""End-to-end tests for FHIRPipeline and PipelineReport.

Covers the documented scenarios: bundled and singleton Patients, invalid
payloads, per-type counts across bundles, and the average-age edge case.
"""

import json
import logging
from datetime import date

import duckdb
import pytest

from conftest import REFERENCE_DATE, bundle, make_document
from stateless_fhir.adapters.sources import DuckDBDocumentSource
from stateless_fhir.domain.documents import RawDocument
from stateless_fhir.domain.enums import UnsupportedResourcePolicy, ValidationStatus
from stateless_fhir.domain.ports import SchemaConfigurationError
from stateless_fhir.domain.schema import SchemaRegistry
from stateless_fhir.infrastructure.config_manager import EngineConfig
from stateless_fhir.pipeline import FHIRPipeline, PipelineReport


class TestScenarios:
    """Behaviour on the reference documents."""

    def test_bundled_patient(self, pipeline, patient_bundle_document):
        """Bundle b1 with Patient p1 yields one linked Patient record."""
        report = pipeline.run([patient_bundle_document])

        (record,) = report.records["Patient"]
        assert record.get("patient_id") == "p1"
        assert record.get("birth_date") == date(1990, 1, 1)
        assert record.bundle_id == "b1"
        assert report.summary.fhir_bundle_candidates == 1

    def test_singleton_patient(self, pipeline):
        """A bare Patient is a non-bundle with one mostly-null record."""
        report = pipeline.run([make_document("d", {"resourceType": "Patient", "id": "p2"})])

        (record,) = report.records["Patient"]
        assert record.get("patient_id") == "p2"
        assert all(v is None for c, v in record.values.items() if c != "patient_id")
        assert report.summary.fhir_candidates == 1
        assert report.summary.fhir_bundle_candidates == 0

    def test_invalid_payload(self, pipeline):
        """'not json' is counted only as invalid."""
        report = pipeline.run([RawDocument(id="bad", payload="not json")])

        assert report.summary.total == 1
        assert report.summary.invalid_json == 1
        assert report.summary.valid_json == 0
        assert report.summary.fhir_candidates == 0
        assert report.invalid_document_ids == ["bad"]
        assert report.records == {}

    def test_untyped_bundle_counted(self, pipeline):
        """A document with an entry array but no resourceType is a bundle candidate only."""
        payload = '{"entry":[{"resource":{"resourceType":"Patient","id":"x"}}]}'

        report = pipeline.run([RawDocument(id="1", payload=payload)])

        assert report.summary.fhir_candidates == 0
        assert report.summary.fhir_bundle_candidates == 1
        assert report.records == {}

    def test_two_bundles_counts(self, pipeline, condition_resource, encounter_resource):
        """Two bundles with a Condition and an Encounter each."""
        documents = [
            make_document("d1", bundle("b1", condition_resource, encounter_resource)),
            make_document("d2", bundle("b2", condition_resource, encounter_resource)),
        ]

        report = pipeline.run(documents)

        assert [c.as_tuple() for c in report.bundle_resource_summary()] == [("Condition", 2), ("Encounter", 2)]

    def test_average_age_without_birth_dates(self, pipeline):
        """No birth dates means an absent average, not zero or an error."""
        report = pipeline.run([make_document("d", {"resourceType": "Patient", "id": "p"})])

        assert report.average_patient_age(REFERENCE_DATE).value is None

    def test_average_age(self, pipeline, patient_bundle_document):
        """Average age over the bundled Patient."""
        report = pipeline.run([patient_bundle_document])

        statistic = report.average_patient_age(REFERENCE_DATE)

        assert statistic.value == pytest.approx((REFERENCE_DATE - date(1990, 1, 1)).days / 365.25)
        assert statistic.sample_size == 1


class TestMixedCorpus:
    """Malformed documents never corrupt or stop a run."""

    @pytest.fixture
    def corpus(self, patient_resource, condition_resource):
        return [
            RawDocument(id="1", payload="not json"),
            RawDocument(id="2", payload="[1, 2]"),
            make_document("3", {"resourceType": "Patient", "id": "p2"}),
            make_document("4", bundle("b1", patient_resource, condition_resource)),
            make_document("5", {"resourceType": "Bundle", "id": "b2", "entry": [{"fullUrl": "x"}, "junk"]}),
            make_document("6", {"resourceType": "Bundle", "entry": {"resource": {}}}),
            make_document("7", {"resourceType": "Observation", "id": "o1"}),
            make_document("8", {"resourceType": "Patient", "birthDate": "1980-06-15"}),
        ]

    def test_summary(self, pipeline, corpus):
        """Each document is counted exactly once in the right buckets."""
        summary = pipeline.run(corpus).summary

        assert summary.total == 8
        assert summary.invalid_json == 1
        assert summary.valid_json == 7
        assert summary.fhir_candidates == 6
        assert summary.fhir_bundle_candidates == 2
        assert summary.ambiguous_candidates == 1

    def test_records_and_exclusions(self, pipeline, corpus):
        """Records, skipped entries and field errors are reported."""
        report = pipeline.run(corpus)

        assert [r.get("patient_id") for r in report.records["Patient"]] == ["p2", "p1", None]
        assert len(report.records["Condition"]) == 1
        assert "Observation" not in report.records
        assert report.skipped_entries == 2
        assert report.field_error_count == 1
        assert report.failed_document_ids == []

    def test_resource_counts_include_unsupported(self, pipeline, corpus):
        """Instance counts cover every type, projected or not."""
        counts = dict(c.as_tuple() for c in pipeline.run(corpus).resource_counts())

        assert counts == {"Patient": 3, "Condition": 1, "Bundle": 1, "Observation": 1}

    def test_minimal_policy(self, registry, corpus):
        """Unsupported types can be kept as bare records."""
        pipeline = FHIRPipeline(registry=registry, unsupported=UnsupportedResourcePolicy.MINIMAL)

        report = pipeline.run(corpus)

        (observation,) = report.records["Observation"]
        assert observation.schema_applied is False

    def test_parallel_matches_sequential(self, registry, corpus):
        """A worker pool gives the same records in the same order."""
        sequential = FHIRPipeline(registry=registry).run(corpus)
        parallel = FHIRPipeline(registry=registry, max_workers=4, batch_size=3).run(corpus)

        assert parallel.records == sequential.records
        assert parallel.summary == sequential.summary

    def test_derived_fields_with_now(self, pipeline, corpus):
        """Passing now adds the Patient age column."""
        report = pipeline.run(corpus, now=REFERENCE_DATE)

        ages = [r.get("age") for r in report.records["Patient"]]
        assert ages[0] is None
        assert ages[2] == pytest.approx((REFERENCE_DATE - date(1980, 6, 15)).days / 365.25)

    def test_dataframe(self, pipeline, corpus):
        """Records of one type convert to a DataFrame."""
        df = pipeline.run(corpus).to_dataframe("Patient")

        assert len(df) == 3
        assert list(df.columns[:3]) == ["resource_type", "bundle_id", "source_id"]
        assert list(df["source_id"]) == ["3", "4", "8"]


class TestIteration:
    """Streaming interfaces."""

    def test_outcomes_in_input_order(self, registry):
        """Outcomes keep input order under a worker pool."""
        documents = [make_document(str(i), {"resourceType": "Patient", "id": f"p{i}"}) for i in range(25)]
        pipeline = FHIRPipeline(registry=registry, max_workers=3, batch_size=4)

        outcomes = list(pipeline.iter_outcomes(documents))

        assert [o.source_id for o in outcomes] == [str(i) for i in range(25)]

    def test_outcome_contents(self, pipeline, patient_bundle_document):
        """An outcome carries every stage's output."""
        outcome = pipeline.process_document(patient_bundle_document)

        assert outcome.validation.status == ValidationStatus.FHIR_CANDIDATE
        assert outcome.classified.is_bundle
        assert len(outcome.instances) == 1
        assert outcome.records[0].get("patient_id") == "p1"

    def test_unexpected_failure_is_isolated(self, pipeline, monkeypatch, caplog):
        """A document that raises becomes a failure Result and the run continues."""
        original = pipeline.projector.project_instance

        def flaky(instance):
            if instance.payload.get("id") == "boom":
                raise RuntimeError("unexpected")
            return original(instance)

        monkeypatch.setattr(pipeline.projector, "project_instance", flaky)
        documents = [
            make_document("a", {"resourceType": "Patient", "id": "boom"}),
            make_document("b", {"resourceType": "Patient", "id": "ok"}),
        ]

        with caplog.at_level(logging.ERROR):
            results = list(pipeline.iter_results(documents))
            report = pipeline.run(documents)

        assert results[0].is_failure()
        assert results[0].error_type == "RuntimeError"
        assert results[0].error_details == {"source_id": "a"}
        assert results[1].is_success()
        assert report.failed_document_ids == ["a"]
        assert [r.get("patient_id") for r in report.records["Patient"]] == ["ok"]
        assert any("Unexpected error processing document a" in m for m in caplog.messages)

    def test_reads_from_a_source(self, registry):
        """A DocumentSourcePort can be passed straight to run()."""
        conn = duckdb.connect(":memory:")
        conn.execute("CREATE TABLE uniform_resource (uniform_resource_id VARCHAR, content VARCHAR)")
        conn.execute(
            "INSERT INTO uniform_resource VALUES (?, ?), (?, ?)",
            ["1", json.dumps({"resourceType": "Patient", "id": "p1"}), "2", "not json"],
        )

        report = FHIRPipeline(registry=registry).run(DuckDBDocumentSource(connection=conn))

        assert report.summary.total == 2
        assert report.invalid_document_ids == ["2"]
        conn.close()

    def test_null_identifier_row_does_not_stop_the_run(self, registry):
        """Rows after a NULL identifier are still processed."""
        conn = duckdb.connect(":memory:")
        conn.execute("CREATE TABLE uniform_resource (uniform_resource_id VARCHAR, content VARCHAR)")
        conn.executemany(
            "INSERT INTO uniform_resource VALUES (?, ?)",
            [(doc_id, json.dumps({"resourceType": "Patient", "id": patient_id}))
             for doc_id, patient_id in [("a", "p1"), (None, "p2"), ("c", "p3")]],
        )

        report = FHIRPipeline(registry=registry).run(DuckDBDocumentSource(connection=conn))

        assert report.summary.total == 3
        assert [r.get("patient_id") for r in report.records["Patient"]] == ["p1", "p3", "p2"]
        assert report.records["Patient"][2].source_id == "uniform_resource#row3"
        conn.close()


class TestConstruction:
    """Building pipelines."""

    @pytest.mark.parametrize("kwargs", [{"max_workers": 0}, {"batch_size": 0}])
    def test_invalid_sizes(self, kwargs):
        """Worker and batch counts must be positive."""
        with pytest.raises(ValueError):
            FHIRPipeline(**kwargs)

    def test_from_default_config(self):
        """The default config uses the built-in registry."""
        pipeline = FHIRPipeline.from_config()

        assert pipeline.registry.supported_types() == SchemaRegistry.default().supported_types()
        assert pipeline.max_workers == 1

    def test_from_config_with_schema_file(self, tmp_path):
        """A schema override file extends the registry."""
        schema_file = tmp_path / "schemas.json"
        schema_file.write_text(json.dumps({"Observation": [{"column": "id", "path": "id"}]}))

        pipeline = FHIRPipeline.from_config(EngineConfig(
            schema_path=str(schema_file),
            max_workers=2,
            unsupported_resources="minimal",
        ))

        assert "Observation" in pipeline.registry
        assert pipeline.max_workers == 2
        assert pipeline.projector.unsupported == UnsupportedResourcePolicy.MINIMAL

    def test_from_config_with_bad_schema_file(self, tmp_path):
        """A malformed override file stops startup."""
        schema_file = tmp_path / "schemas.json"
        schema_file.write_text(json.dumps({"Observation": [{"column": "id", "path": "id["}]}))

        with pytest.raises(SchemaConfigurationError):
            FHIRPipeline.from_config(EngineConfig(schema_path=str(schema_file)))

    def test_empty_report(self):
        """A fresh report has no records and zero counts."""
        report = PipelineReport()

        assert report.all_records() == []
        assert report.bundle_resource_summary() == []
        assert report.summary.total == 0
