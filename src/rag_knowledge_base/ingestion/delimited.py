"""
Delimited-file source for batch import.

Rows are read lazily and mapped to Documents without any configuration:

- content: first non-empty exact alias (content, text, description, body),
  otherwise the first column whose header CONTAINS a content word in one
  of the supported locales (e.g. "Beschreibung", "Inhalt", "Produkttext")
- title: same scheme with (title, name, subject) and locale title words
- every other non-empty column becomes metadata

Each row yields a RowOutcome: a Document, a per-row error, or neither
(a row skipped on purpose, which is not counted).
"""

from __future__ import annotations

import csv
import io
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Iterator, Union

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from rag_knowledge_base.core.errors import ValidationError
from rag_knowledge_base.retrieval.document import Document

logger = logging.getLogger(__name__)

CONTENT_ALIASES = ("content", "text", "description", "body")
CONTENT_KEYWORDS = (
    "content",
    "text",
    "beschreibung",
    "inhalt",
    "texte",
    "contenu",
    "contenido",
    "descripcion",
)

TITLE_ALIASES = ("title", "name", "subject")
TITLE_KEYWORDS = (
    "title",
    "name",
    "titel",
    "bezeichnung",
    "betreff",
    "titre",
    "titulo",
    "nombre",
)

Source = Union[str, Path, IO[str]]


class BatchImportOptions(BaseModel):
    """Options for import_delimited()."""

    delimiter: str = Field(default=",", min_length=1, max_length=1)
    encoding: str = "utf-8"
    validate_text: bool = True
    skip_empty_lines: bool = True


def parse_import_options(**kwargs) -> BatchImportOptions:
    try:
        return BatchImportOptions(**kwargs)
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid import options: {exc}") from exc


@dataclass
class RowOutcome:
    """What one source row turned into."""

    label: str
    document: Document | None = None
    error: str | None = None


# ---------------------------------------------------------------------------
# COLUMN MAPPING
# ---------------------------------------------------------------------------


def _normalize_header(header: str) -> str:
    return header.replace("\ufeff", "").strip().casefold()


def _resolve_column(
    headers: list[str],
    aliases: tuple[str, ...],
    keywords: tuple[str, ...],
    row: dict[str, str],
) -> str | None:
    """Pick the column to read a field from, or None."""
    normalized = {_normalize_header(h): h for h in headers}

    for alias in aliases:
        header = normalized.get(alias)
        if header is not None and (row.get(header) or "").strip():
            return header

    for header in headers:
        key = _normalize_header(header)
        if any(word in key for word in keywords) and (row.get(header) or "").strip():
            return header
    return None


def map_row(row: dict[str, str], validate_text: bool = True) -> Document | None:
    """
    Turn one parsed row into a Document.

    Raises ValidationError when content is missing and validate_text is on;
    returns None when it is missing and validate_text is off.
    """
    headers = [h for h in row if h is not None]

    content_col = _resolve_column(headers, CONTENT_ALIASES, CONTENT_KEYWORDS, row)
    remaining = [h for h in headers if h != content_col]
    title_col = _resolve_column(remaining, TITLE_ALIASES, TITLE_KEYWORDS, row)

    content = (row.get(content_col) or "").strip() if content_col else ""
    if not content:
        if validate_text:
            raise ValidationError("Content field is required but missing or empty")
        return None

    title = (row.get(title_col) or "").strip() if title_col else ""

    metadata = {
        header.replace("\ufeff", "").strip(): value.strip()
        for header, value in row.items()
        if header is not None
        and header not in (content_col, title_col)
        and isinstance(value, str)
        and value.strip()
    }
    return Document(content=content, title=title or None, metadata=metadata)


# ---------------------------------------------------------------------------
# STREAMING READER
# ---------------------------------------------------------------------------


@contextmanager
def _open_source(source: Source, encoding: str) -> Iterator[IO[str]]:
    if isinstance(source, (str, Path)):
        path = Path(source)
        if not path.exists():
            raise ValidationError(f"File not found: {path}")
        with path.open("r", encoding=encoding, newline="") as handle:
            yield handle
    elif isinstance(source, io.TextIOBase) or hasattr(source, "read"):
        yield source
    else:
        raise ValidationError(f"Unsupported import source: {type(source).__name__}")


def _is_blank_row(row: dict) -> bool:
    return all(not (value or "").strip() for value in row.values() if isinstance(value, str))


def iter_delimited(source: Source, options: BatchImportOptions) -> Iterator[RowOutcome]:
    """
    Yield one RowOutcome per data row, reading the source lazily.

    A malformed file (csv.Error) stops iteration with ValidationError after
    the rows read so far have been yielded.
    """
    with _open_source(source, options.encoding) as handle:
        reader = csv.DictReader(handle, delimiter=options.delimiter)
        try:
            for row in reader:
                label = f"Line {reader.line_num}"
                if options.skip_empty_lines and _is_blank_row(row):
                    continue
                try:
                    document = map_row(row, validate_text=options.validate_text)
                except ValidationError as exc:
                    yield RowOutcome(label=label, error=str(exc))
                    continue
                if document is not None:
                    yield RowOutcome(label=label, document=document)
        except csv.Error as exc:
            raise ValidationError(f"CSV parsing error at line {reader.line_num}: {exc}") from exc
        except UnicodeDecodeError as exc:
            raise ValidationError(
                f"Could not decode source as {options.encoding}: {exc}"
            ) from exc
