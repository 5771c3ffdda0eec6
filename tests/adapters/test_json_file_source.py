"""Tests for JSONFileSource."""

import json

import pytest

from stateless_fhir.adapters.sources import JSONFileSource, get_source
from stateless_fhir.domain.ports import SourceNotFoundError


class TestSingleDocumentFiles:
    """A .json file is one document."""

    def test_json_file(self, tmp_path):
        """The whole file is the payload and the path is the id."""
        path = tmp_path / "patient.json"
        path.write_text(json.dumps({"resourceType": "Patient", "id": "p1"}))

        (document,) = list(JSONFileSource(path).documents())

        assert document.id == str(path)
        assert json.loads(document.payload) == {"resourceType": "Patient", "id": "p1"}

    def test_malformed_file_still_yielded(self, tmp_path):
        """Validation is not the source's job."""
        path = tmp_path / "broken.json"
        path.write_text("{not json")

        (document,) = list(JSONFileSource(path).documents())

        assert document.payload == b"{not json"


class TestLineDelimitedFiles:
    """A .jsonl / .ndjson file is one document per line."""

    def test_one_document_per_line(self, tmp_path):
        """Blank lines are skipped; ids carry the line number."""
        path = tmp_path / "docs.ndjson"
        path.write_text('{"resourceType": "Patient"}\n\nnot json\n{"a": 1}\n')

        documents = list(JSONFileSource(path).documents())

        assert [d.id for d in documents] == [f"{path}:1", f"{path}:3", f"{path}:4"]
        assert documents[1].payload == b"not json"

    def test_crlf_line_endings(self, tmp_path):
        """Line terminators are stripped."""
        path = tmp_path / "docs.jsonl"
        path.write_bytes(b'{"a": 1}\r\n{"b": 2}\r\n')

        assert [d.payload for d in JSONFileSource(path).documents()] == [b'{"a": 1}', b'{"b": 2}']


class TestDirectories:
    """Directories are read in sorted order."""

    def test_directory_sorted(self, tmp_path):
        """Only JSON-family files are read, sorted by name."""
        (tmp_path / "b.json").write_text("{}")
        (tmp_path / "a.jsonl").write_text("[]\n[]\n")
        (tmp_path / "notes.txt").write_text("ignored")

        documents = list(JSONFileSource(tmp_path).documents())

        assert [d.id for d in documents] == [
            f"{tmp_path / 'a.jsonl'}:1",
            f"{tmp_path / 'a.jsonl'}:2",
            str(tmp_path / "b.json"),
        ]

    def test_source_info(self, tmp_path):
        """Source info reports the files found."""
        (tmp_path / "a.json").write_text("{}")

        info = JSONFileSource(tmp_path).get_source_info()

        assert info["files"] == 1
        assert info["format"] == "json"


class TestErrors:
    """Missing paths."""

    def test_missing_path(self, tmp_path):
        """A path that does not exist raises SourceNotFoundError."""
        with pytest.raises(SourceNotFoundError):
            list(JSONFileSource(tmp_path / "missing.json").documents())

    def test_missing_path_info(self, tmp_path):
        """Source info is None for a missing path."""
        assert JSONFileSource(tmp_path / "missing.json").get_source_info() is None


class TestFactory:
    """get_source picks the file adapter for JSON and directories."""

    @pytest.mark.parametrize("name", ["a.json", "a.jsonl", "a.ndjson", "a.JSON"])
    def test_json_family(self, name):
        """JSON-family extensions map to JSONFileSource."""
        assert isinstance(get_source(name), JSONFileSource)

    def test_directory(self, tmp_path):
        """Directories map to JSONFileSource."""
        assert isinstance(get_source(str(tmp_path)), JSONFileSource)

    def test_can_read(self, tmp_path):
        """can_read accepts JSON files and directories only."""
        source = JSONFileSource(tmp_path)

        assert source.can_read("x.ndjson") is True
        assert source.can_read(str(tmp_path)) is True
        assert source.can_read("x.csv") is False
