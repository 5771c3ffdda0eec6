"""Domain Services.

This package contains the stages of the projection engine. Each service is
stateless and safe to share across worker threads.
"""

from stateless_fhir.domain.services.validator import DocumentValidator
from stateless_fhir.domain.services.classifier import ResourceClassifier
from stateless_fhir.domain.services.unnester import BundleEntries, BundleUnnester
from stateless_fhir.domain.services.projector import Projector
from stateless_fhir.domain.services.derived_fields import DerivedField, apply_derived_fields

__all__ = [
    'DocumentValidator',
    'ResourceClassifier',
    'BundleEntries',
    'BundleUnnester',
    'Projector',
    'DerivedField',
    'apply_derived_fields',
]
