"""Shared fixtures for the stateless-fhir test suite.

Documents are built in memory as dicts and serialized, so every test states
exactly which shape it feeds the engine.
"""

import json
from datetime import date

import pytest

from stateless_fhir.domain.documents import RawDocument
from stateless_fhir.domain.schema import SchemaRegistry
from stateless_fhir.pipeline import FHIRPipeline

REFERENCE_DATE = date(2024, 1, 1)


def make_document(document_id: str, content) -> RawDocument:
    """Serialize ``content`` into a RawDocument."""
    return RawDocument(id=document_id, payload=json.dumps(content))


def bundle(bundle_id, *resources) -> dict:
    """A Bundle with one ``entry[n].resource`` per resource."""
    content = {"resourceType": "Bundle", "type": "collection", "entry": [{"resource": r} for r in resources]}
    if bundle_id is not None:
        content["id"] = bundle_id
    return content


@pytest.fixture
def registry():
    """Registry with the built-in schemas."""
    return SchemaRegistry.default()


@pytest.fixture
def pipeline(registry):
    """Sequential pipeline over the built-in schemas."""
    return FHIRPipeline(registry=registry)


@pytest.fixture
def patient_resource():
    """A fully populated Patient resource."""
    return {
        "resourceType": "Patient",
        "id": "p1",
        "name": [{"family": "Doe", "given": ["Jane", "Q"]}],
        "gender": "female",
        "birthDate": "1990-01-01",
        "address": [{
            "line": ["1 Main St", "Apt 2"],
            "city": "Springfield",
            "state": "IL",
            "postalCode": "62701",
            "country": "US",
        }],
    }


@pytest.fixture
def condition_resource():
    """A Condition resource with code, subject and encounter."""
    return {
        "resourceType": "Condition",
        "id": "c1",
        "meta": {"lastUpdated": "2023-05-01T10:00:00Z"},
        "code": {"coding": [{"system": "http://snomed.info/sct", "code": "44054006", "display": "Diabetes"}]},
        "subject": {"reference": "Patient/p1", "display": "Jane Doe"},
        "encounter": {"reference": "Encounter/e1"},
        "onsetDateTime": "2020-03-04",
        "category": [{"coding": [{"code": "problem-list-item", "system": "http://terminology.hl7.org/CodeSystem/condition-category"}]}],
    }


@pytest.fixture
def encounter_resource():
    """An Encounter resource with type, class and period."""
    return {
        "resourceType": "Encounter",
        "id": "e1",
        "status": "finished",
        "class": {"system": "http://terminology.hl7.org/CodeSystem/v3-ActCode", "code": "AMB", "display": "ambulatory"},
        "type": [{"coding": [{"system": "http://snomed.info/sct", "code": "185349003", "display": "Check up"}]}],
        "period": {"start": "2023-05-01T09:00:00Z", "end": "2023-05-01T09:30:00Z"},
        "subject": {"reference": "Patient/p1"},
        "location": [{"location": {"reference": "Location/l1", "display": "Clinic"}}],
    }


@pytest.fixture
def patient_bundle_document(patient_resource):
    """Bundle ``b1`` holding one Patient ``p1``."""
    return make_document("doc-b1", bundle("b1", patient_resource))
