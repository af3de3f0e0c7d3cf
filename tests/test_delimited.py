"""
Unit Tests for Delimited-File Reading

Tests column mapping (exact aliases, locale keywords), per-row outcomes and
the streaming reader.
"""

import io

import pytest

from rag_knowledge_base.core import ValidationError
from rag_knowledge_base.ingestion import (
    BatchImportOptions,
    iter_delimited,
    map_row,
    parse_import_options,
)


def _read(text, **options):
    return list(iter_delimited(io.StringIO(text), BatchImportOptions(**options)))


# ---------------------------------------------------------------------------
# COLUMN MAPPING
# ---------------------------------------------------------------------------


class TestMapRow:
    """Single-row mapping to a Document."""

    def test_exact_aliases(self):
        doc = map_row({"title": "Cats", "content": "Cats are pets.", "tag": "animal"})

        assert doc.title == "Cats"
        assert doc.content == "Cats are pets."
        assert doc.metadata == {"tag": "animal"}

    def test_alias_priority(self):
        doc = map_row({"body": "from body", "text": "from text"})
        assert doc.content == "from text"

    def test_empty_alias_falls_through(self):
        doc = map_row({"content": "", "description": "fallback"})
        assert doc.content == "fallback"

    def test_german_headers(self):
        doc = map_row({"Bezeichnung": "Hund", "Beschreibung": "Hunde sind treu."})

        assert doc.content == "Hunde sind treu."
        assert doc.title == "Hund"
        assert doc.metadata == {}

    def test_keyword_containment(self):
        doc = map_row({"Produkttitel": "Lamp", "Produkttext": "A bright lamp."})
        assert doc.content == "A bright lamp."
        assert doc.title == "Lamp"

    def test_case_and_whitespace_insensitive_headers(self):
        doc = map_row({"  CONTENT ": "x", " Title": "t"})
        assert doc.content == "x"
        assert doc.title == "t"

    def test_bom_on_first_header(self):
        doc = map_row({"\ufefftitle": "T", "content": "c"})
        assert doc.title == "T"

    def test_missing_content_raises(self):
        with pytest.raises(ValidationError, match="Content field is required"):
            map_row({"title": "only a title"})

    def test_missing_content_skipped_without_validation(self):
        assert map_row({"title": "only a title"}, validate_text=False) is None

    def test_empty_metadata_values_dropped(self):
        doc = map_row({"content": "c", "a": "1", "b": "  "})
        assert doc.metadata == {"a": "1"}


# ---------------------------------------------------------------------------
# STREAMING READER
# ---------------------------------------------------------------------------


class TestIterDelimited:
    """Row outcomes from a text stream or a path."""

    def test_beschreibung_file(self):
        outcomes = _read("Name;Beschreibung\nKatze;Katzen sind Haustiere.\n", delimiter=";")

        assert len(outcomes) == 1
        assert outcomes[0].document.content == "Katzen sind Haustiere."
        assert outcomes[0].document.title == "Katze"

    def test_invalid_rows_become_errors(self):
        outcomes = _read("title,content\nA,first\nB,\nC,third\n")

        assert [o.document is not None for o in outcomes] == [True, False, True]
        assert outcomes[1].label == "Line 3"
        assert "Content field is required" in outcomes[1].error

    def test_invalid_rows_skipped_without_validation(self):
        outcomes = _read("title,content\nA,first\nB,\n", validate_text=False)
        assert len(outcomes) == 1

    def test_blank_rows_skipped(self):
        outcomes = _read("title,content\nA,first\n,\nC,third\n")
        assert len(outcomes) == 2
        assert all(o.error is None for o in outcomes)

    def test_blank_rows_reported_when_not_skipped(self):
        outcomes = _read("title,content\nA,first\n,\n", skip_empty_lines=False)
        assert outcomes[1].error is not None

    def test_tab_delimiter(self):
        outcomes = _read("text\ttopic\nhello\tgreeting\n", delimiter="\t")
        assert outcomes[0].document.metadata == {"topic": "greeting"}

    def test_path_source_with_encoding(self, tmp_path):
        path = tmp_path / "data.csv"
        path.write_text("titel,inhalt\nÄpfel,Äpfel sind rot.\n", encoding="latin-1")

        outcomes = list(iter_delimited(path, BatchImportOptions(encoding="latin-1")))
        assert outcomes[0].document.title == "Äpfel"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ValidationError, match="File not found"):
            list(iter_delimited(tmp_path / "nope.csv", BatchImportOptions()))

    def test_wrong_encoding(self, tmp_path):
        path = tmp_path / "data.csv"
        path.write_bytes("content\nÄpfel\n".encode("latin-1"))

        with pytest.raises(ValidationError, match="Could not decode"):
            list(iter_delimited(path, BatchImportOptions()))

    def test_reads_lazily(self):
        stream = io.StringIO("content\n" + "".join(f"row {i}\n" for i in range(1000)))
        first = next(iter_delimited(stream, BatchImportOptions()))

        assert first.document.content == "row 0"
        assert stream.tell() < len(stream.getvalue())


class TestImportOptions:
    """BatchImportOptions validation."""

    def test_defaults(self):
        options = BatchImportOptions()
        assert options.delimiter == ","
        assert options.encoding == "utf-8"
        assert options.validate_text is True
        assert options.skip_empty_lines is True

    def test_multi_char_delimiter_rejected(self):
        with pytest.raises(ValidationError):
            parse_import_options(delimiter=";;")
