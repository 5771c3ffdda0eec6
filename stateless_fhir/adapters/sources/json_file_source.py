"""JSON File Document Source Adapter.

This adapter implements the DocumentSourcePort contract for documents kept
as files: a ``.json`` file holds one document, a ``.jsonl`` / ``.ndjson``
file holds one document per line, and a directory holds any mix of those.

Architecture:
    - Implements DocumentSourcePort (Hexagonal Architecture)
    - Payloads are passed through as text; a file that is not JSON is still
      yielded and later tallied as invalid by the validator
    - Line-delimited files are streamed line by line
"""

import logging
from pathlib import Path
from typing import Iterator, Optional, Union

from stateless_fhir.domain.documents import RawDocument
from stateless_fhir.domain.ports import DocumentSourceError, DocumentSourcePort, SourceNotFoundError

logger = logging.getLogger(__name__)

SINGLE_DOCUMENT_EXTENSIONS = ('.json',)
LINE_DELIMITED_EXTENSIONS = ('.jsonl', '.ndjson')
JSON_EXTENSIONS = SINGLE_DOCUMENT_EXTENSIONS + LINE_DELIMITED_EXTENSIONS


class JSONFileSource(DocumentSourcePort):
    """Reads raw documents from JSON / JSON Lines files.

    Document identifiers are the file path for ``.json`` files and
    ``path:line`` (1-based) for line-delimited files.

    Parameters:
        path: A file, or a directory scanned (non-recursively) in sorted order
        max_document_size: Size in bytes above which a warning is logged

    Example Usage:
        ```python
        source = JSONFileSource("exports/")
        report = FHIRPipeline().run(source)
        ```
    """

    def __init__(self, path: Union[str, Path], max_document_size: int = 10 * 1024 * 1024):
        self.path = Path(path)
        self.max_document_size = max_document_size

    def can_read(self, source: str) -> bool:
        """Check if ``source`` is a JSON-family file or a directory."""
        if not source:
            return False
        source_path = Path(source)
        return source_path.suffix.lower() in JSON_EXTENSIONS or source_path.is_dir()

    def _files(self) -> list[Path]:
        if not self.path.exists():
            raise SourceNotFoundError(f"JSON source not found: {self.path}", source=str(self.path))
        if self.path.is_dir():
            return sorted(
                p for p in self.path.iterdir()
                if p.is_file() and p.suffix.lower() in JSON_EXTENSIONS
            )
        return [self.path]

    def documents(self) -> Iterator[RawDocument]:
        """Yield documents file by file, in sorted path order.

        Raises:
            SourceNotFoundError: If the path does not exist
            DocumentSourceError: If a file cannot be read
        """
        count = 0
        for file_path in self._files():
            try:
                if file_path.suffix.lower() in LINE_DELIMITED_EXTENSIONS:
                    documents = self._read_lines(file_path)
                else:
                    documents = self._read_single(file_path)
                for document in documents:
                    count += 1
                    yield document
            except OSError as e:
                raise DocumentSourceError(
                    f"Cannot read JSON source {file_path}: {str(e)}",
                    operation="read",
                    details={"source": str(file_path)},
                )
        logger.info(f"Read {count} document(s) from {self.path}")

    def _read_single(self, file_path: Path) -> Iterator[RawDocument]:
        size = file_path.stat().st_size
        if size > self.max_document_size:
            logger.warning(f"Large JSON document detected: {file_path} ({size} bytes)")
        yield RawDocument(id=str(file_path), payload=file_path.read_bytes())

    def _read_lines(self, file_path: Path) -> Iterator[RawDocument]:
        with open(file_path, 'rb') as f:
            for line_number, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                if len(line) > self.max_document_size:
                    logger.warning(f"Large JSON document detected: {file_path}:{line_number} ({len(line)} bytes)")
                yield RawDocument(id=f"{file_path}:{line_number}", payload=line.rstrip(b"\r\n"))

    def get_source_info(self) -> Optional[dict]:
        """Metadata about the file or directory."""
        try:
            files = self._files()
            return {
                'format': 'json',
                'path': str(self.path),
                'files': len(files),
                'size': sum(f.stat().st_size for f in files),
                'encoding': 'utf-8',
            }
        except (OSError, SourceNotFoundError):
            return None
