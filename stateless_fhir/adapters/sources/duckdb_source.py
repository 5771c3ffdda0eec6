"""DuckDB Document Source Adapter.

This adapter implements the DocumentSourcePort contract for a generic
resource table in DuckDB: one row per stored document, an identifier column
and a ``content`` column holding the untouched payload.

Security Impact:
    - Table and column names are validated as plain SQL identifiers before
      being interpolated into the query
    - Payloads are read as-is; nothing is parsed or written here
    - The connection is opened read-only for on-disk databases

Architecture:
    - Implements DocumentSourcePort (Hexagonal Architecture)
    - Isolated from domain core - only depends on ports and models
    - Streams rows with ``fetchmany`` so large tables never sit in memory
"""

import logging
from pathlib import Path
from typing import Iterator, Optional, Union

import duckdb

from stateless_fhir.domain.documents import RawDocument
from stateless_fhir.domain.ports import DocumentSourceError, DocumentSourcePort, SourceNotFoundError
from stateless_fhir.infrastructure.config_manager import StoreConfig, validate_sql_identifier

logger = logging.getLogger(__name__)

DUCKDB_EXTENSIONS = ('.duckdb', '.db')


class DuckDBDocumentSource(DocumentSourcePort):
    """Reads raw documents from a generic resource table in DuckDB.

    Parameters:
        store_config: StoreConfig from the configuration manager (preferred)
        db_path: Path to the DuckDB database file, or ':memory:'
        table: Table holding one document per row
        id_column: Column with the stable document identifier
        content_column: Column with the raw payload
        fetch_size: Rows fetched per round trip
        connection: An existing connection to read from (tests, in-memory data)

    Example Usage:
        ```python
        source = DuckDBDocumentSource(db_path="resource-surveillance.duckdb")
        for document in source.documents():
            ...
        ```
    """

    def __init__(
        self,
        store_config: Optional[StoreConfig] = None,
        db_path: Optional[str] = None,
        table: str = "uniform_resource",
        id_column: str = "uniform_resource_id",
        content_column: str = "content",
        fetch_size: int = 1000,
        connection: Optional[duckdb.DuckDBPyConnection] = None,
    ):
        if store_config is not None:
            db_path = store_config.db_path
            table = store_config.table
            id_column = store_config.id_column
            content_column = store_config.content_column

        self.db_path = db_path or ":memory:"
        self.table = validate_sql_identifier(table, "table name")
        self.id_column = validate_sql_identifier(id_column, "column name")
        self.content_column = validate_sql_identifier(content_column, "column name")
        if fetch_size < 1:
            raise ValueError("fetch_size must be at least 1")
        self.fetch_size = fetch_size

        self._connection = connection
        self._owns_connection = connection is None

    def can_read(self, source: str) -> bool:
        """Check if ``source`` names a DuckDB database file."""
        if not source:
            return False
        return source == ":memory:" or Path(source).suffix.lower() in DUCKDB_EXTENSIONS

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        """Get or create the DuckDB connection.

        Raises:
            SourceNotFoundError: If the database cannot be opened
        """
        if self._connection is None:
            if self.db_path != ":memory:" and not Path(self.db_path).exists():
                raise SourceNotFoundError(f"DuckDB database not found: {self.db_path}", source=self.db_path)
            try:
                read_only = self.db_path != ":memory:"
                self._connection = duckdb.connect(self.db_path, read_only=read_only)
                logger.info(f"Connected to DuckDB database: {self.db_path}")
            except duckdb.Error as e:
                raise SourceNotFoundError(
                    f"Failed to connect to DuckDB: {str(e)}",
                    source=self.db_path,
                )
        return self._connection

    def documents(self) -> Iterator[RawDocument]:
        """Yield one RawDocument per row, ordered by identifier.

        Rows with a NULL identifier sort last and get the id
        ``<table>#row<n>``, where n is the 1-based row position.

        Raises:
            SourceNotFoundError: If the database cannot be opened
            DocumentSourceError: If the query fails
        """
        conn = self._get_connection()
        query = (
            f"SELECT CAST({self.id_column} AS VARCHAR), {self.content_column} "
            f"FROM {self.table} ORDER BY {self.id_column} NULLS LAST"
        )
        try:
            cursor = conn.cursor()
            cursor.execute(query)
        except duckdb.Error as e:
            raise DocumentSourceError(
                f"Failed to query {self.table}: {str(e)}",
                operation="query",
                details={"db_path": self.db_path, "table": self.table},
            )

        count = 0
        try:
            while True:
                try:
                    rows = cursor.fetchmany(self.fetch_size)
                except duckdb.Error as e:
                    raise DocumentSourceError(
                        f"Failed to read from {self.table}: {str(e)}",
                        operation="read",
                        details={"db_path": self.db_path, "table": self.table, "rows_read": count},
                    )
                if not rows:
                    break
                for document_id, content in rows:
                    count += 1
                    if document_id is None:
                        document_id = f"{self.table}#row{count}"
                        logger.warning(
                            f"Row {count} of {self.table} has a NULL {self.id_column}; using id {document_id}",
                            extra={"source_id": document_id},
                        )
                    yield RawDocument(id=document_id, payload=self._payload(content))
        finally:
            cursor.close()

        logger.info(f"Read {count} document(s) from {self.table}")

    @staticmethod
    def _payload(content) -> Union[str, bytes]:
        # NULL content is kept as an empty payload so it is tallied as invalid
        if content is None:
            return ""
        if isinstance(content, (bytes, bytearray, memoryview)):
            return bytes(content)
        return content if isinstance(content, str) else str(content)

    def get_source_info(self) -> Optional[dict]:
        """Row count and location of the resource table."""
        try:
            conn = self._get_connection()
            (rows,) = conn.execute(f"SELECT COUNT(*) FROM {self.table}").fetchone()
        except (duckdb.Error, DocumentSourceError) as e:
            logger.warning(f"Could not read source info for {self.table}: {str(e)}")
            return None
        return {
            'format': 'duckdb',
            'db_path': self.db_path,
            'table': self.table,
            'documents': rows,
        }

    def close(self) -> None:
        """Close the connection if this source opened it."""
        if self._connection is not None and self._owns_connection:
            try:
                self._connection.close()
                logger.info("Closed DuckDB connection")
            except duckdb.Error as e:
                logger.warning(f"Error closing connection: {str(e)}")
        self._connection = None

    def __enter__(self) -> 'DuckDBDocumentSource':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
