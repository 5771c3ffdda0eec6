"""stateless-fhir: schema-driven projection of FHIR documents into typed records.

Reads raw JSON documents from a generic resource store, validates and
classifies them, unnests bundles, and projects each resource instance into a
typed record using a declarative per-type schema table.
"""

__version__ = "0.1.0"
