"""Bundle Unnesting Service.

Turns a classified document into the resource instances it contains: a
singleton yields itself, a bundle yields one instance per usable entry.

Entries are read from ``entry[n].resource``. Entries that are not objects,
have no ``resource`` object, or whose resource has no ``resourceType`` are
skipped and counted. Nested bundles are not recursed into; they surface as
instances of type ``Bundle``.
"""

import logging
from typing import Iterator, Optional

from stateless_fhir.domain.documents import BundleEntry, ClassifiedResource, ResourceInstance
from stateless_fhir.domain.services.classifier import ENTRY_KEY, scalar_id
from stateless_fhir.domain.services.validator import RESOURCE_TYPE_KEY

logger = logging.getLogger(__name__)

RESOURCE_KEY = "resource"


def _entry_skip_reason(entry) -> Optional[str]:
    if not isinstance(entry, dict):
        return "entry is not an object"
    resource = entry.get(RESOURCE_KEY)
    if not isinstance(resource, dict):
        return f"entry has no '{RESOURCE_KEY}' object"
    if resource.get(RESOURCE_TYPE_KEY) is None:
        return f"embedded resource has no '{RESOURCE_TYPE_KEY}'"
    return None


class BundleEntries:
    """Lazy, re-iterable view over the usable entries of one bundle.

    Each iteration re-derives the entries from the parent's content in
    source array order, so the view holds no state of its own.
    """

    def __init__(self, bundle: ClassifiedResource):
        self._bundle = bundle

    @property
    def bundle_id(self) -> Optional[str]:
        return self._bundle.resource_id

    def _raw_entries(self) -> list:
        entries = self._bundle.content.get(ENTRY_KEY) if self._bundle.is_bundle else None
        return entries if isinstance(entries, list) else []

    def __iter__(self) -> Iterator[BundleEntry]:
        for index, entry in enumerate(self._raw_entries()):
            reason = _entry_skip_reason(entry)
            if reason is not None:
                logger.debug(
                    f"Skipping entry {index} of bundle {self.bundle_id!r} "
                    f"(source {self._bundle.source_id}): {reason}",
                    extra={"source_id": self._bundle.source_id, "entry_index": index},
                )
                continue

            resource = entry[RESOURCE_KEY]
            resource_type = resource[RESOURCE_TYPE_KEY]
            yield BundleEntry(
                bundle_id=self.bundle_id,
                source_id=self._bundle.source_id,
                entry_index=index,
                resource_type=resource_type if isinstance(resource_type, str) else scalar_id(resource_type),
                payload=resource,
            )

    def skipped_count(self) -> int:
        """Number of entries excluded for lacking a typed resource."""
        return sum(1 for entry in self._raw_entries() if _entry_skip_reason(entry) is not None)

    def __len__(self) -> int:
        return len(self._raw_entries()) - self.skipped_count()


class BundleUnnester:
    """Normalizes singletons and bundle entries into ResourceInstances.

    Example Usage:
        ```python
        unnester = BundleUnnester()
        for instance in unnester.instances(classified):
            projector.project_instance(instance)
        ```
    """

    def unnest(self, classified: ClassifiedResource) -> BundleEntries:
        """Return the entries of a bundle (empty for a non-bundle)."""
        return BundleEntries(classified)

    def instances(self, classified: ClassifiedResource) -> Iterator[ResourceInstance]:
        """Yield the resource instances a classified document contains.

        Parameters:
            classified: Output of the classifier

        Yields:
            ResourceInstance: The singleton itself, or one per bundle entry
        """
        if not classified.is_bundle:
            yield ResourceInstance(
                resource_type=classified.resource_type,
                source_id=classified.source_id,
                payload=classified.content,
            )
            return

        for entry in self.unnest(classified):
            yield entry.to_instance()
