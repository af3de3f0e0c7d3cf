"""
Ingestion module - single adds and chunked batch imports.

This module provides:
- IngestionPipeline: validate -> embed -> persist, one transaction per chunk
- BatchImportOptions: options for delimited-file imports
- iter_delimited() / map_row(): delimited rows to Documents
"""

from rag_knowledge_base.ingestion.delimited import (
    BatchImportOptions,
    RowOutcome,
    Source,
    iter_delimited,
    map_row,
    parse_import_options,
    CONTENT_ALIASES,
    CONTENT_KEYWORDS,
    TITLE_ALIASES,
    TITLE_KEYWORDS,
)
from rag_knowledge_base.ingestion.pipeline import IngestionPipeline, DEFAULT_CHUNK_SIZE

__all__ = [
    "IngestionPipeline",
    "DEFAULT_CHUNK_SIZE",
    "BatchImportOptions",
    "RowOutcome",
    "Source",
    "iter_delimited",
    "map_row",
    "parse_import_options",
    "CONTENT_ALIASES",
    "CONTENT_KEYWORDS",
    "TITLE_ALIASES",
    "TITLE_KEYWORDS",
]
