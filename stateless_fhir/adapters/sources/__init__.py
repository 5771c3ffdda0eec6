"""Document source adapters for stateless-fhir.

This module contains the adapters that implement the DocumentSourcePort
interface for reading raw documents from a store (DuckDB resource table,
JSON files, etc.).
"""

from pathlib import Path

from stateless_fhir.adapters.sources.duckdb_source import DUCKDB_EXTENSIONS, DuckDBDocumentSource
from stateless_fhir.adapters.sources.json_file_source import JSON_EXTENSIONS, JSONFileSource
from stateless_fhir.domain.ports import DocumentSourcePort, UnsupportedSourceError

__all__ = ["DuckDBDocumentSource", "JSONFileSource", "get_source"]


def get_source(source: str, **kwargs) -> DocumentSourcePort:
    """Factory function to get the appropriate document source for a path.

    Parameters:
        source: Database file, JSON file, or directory of JSON files
        **kwargs: Additional arguments passed to the adapter constructor
            - For DuckDB: table, id_column, content_column, fetch_size
            - For JSON files: max_document_size

    Returns:
        DocumentSourcePort: Appropriate adapter instance

    Raises:
        UnsupportedSourceError: If no adapter can handle the source

    Example Usage:
        ```python
        source = get_source("resource-surveillance.duckdb", table="uniform_resource")
        source = get_source("bundles/")
        ```
    """
    source_path = Path(source)
    extension = source_path.suffix.lower()

    if source == ":memory:" or extension in DUCKDB_EXTENSIONS:
        adapter_class = DuckDBDocumentSource
        try:
            return adapter_class(db_path=source, **kwargs)
        except (TypeError, ValueError) as e:
            raise UnsupportedSourceError(
                f"Failed to create DuckDB source: {str(e)}",
                source=source,
                adapter=adapter_class.__name__
            )

    if extension in JSON_EXTENSIONS or source_path.is_dir():
        adapter_class = JSONFileSource
        try:
            return adapter_class(source, **kwargs)
        except TypeError as e:
            raise UnsupportedSourceError(
                f"Failed to create JSON source: {str(e)}",
                source=source,
                adapter=adapter_class.__name__
            )

    raise UnsupportedSourceError(
        f"No adapter found for source: {source}. Supported formats: DuckDB, JSON, JSON Lines",
        source=source
    )
