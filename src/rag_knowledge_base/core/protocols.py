"""
Core protocols defining contracts for the entire system.

All infrastructure components implement these protocols,
enabling dependency injection and easy testing.

PATTERN:
- Protocol defines the contract
- Multiple implementations possible (local / remote, postgres / memory)
- Factory functions for instantiation
- Test doubles for fast unit tests
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol, Sequence, runtime_checkable

import numpy as np

if TYPE_CHECKING:
    from rag_knowledge_base.retrieval.document import Document


# Errors listed in ImportResult.errors are capped; counts are not.
MAX_REPORTED_ERRORS = 10


# ---------------------------------------------------------------------------
# EMBEDDING PROVIDER PROTOCOL
# ---------------------------------------------------------------------------


@runtime_checkable
class EmbeddingProvider(Protocol):
    """
    Contract for embedding generation.

    Implementations:
    - LocalEmbeddings (sentence-transformers, in-process)
    - OpenAIEmbeddings (remote API)
    - MockEmbeddings (testing)

    Batch alignment: generate_embeddings() drops blank entries, and
    result[i] belongs to the i-th NON-BLANK input. Callers that index into
    their own lists should map through non_blank_indices().
    """

    @property
    def dimensions(self) -> int:
        """Length of every vector this provider returns."""
        ...

    def generate_embedding(self, text: str) -> np.ndarray:
        """Generate embedding for a single, non-blank text."""
        ...

    def generate_embeddings(self, texts: Sequence[str]) -> list[np.ndarray]:
        """Generate embeddings for the non-blank texts, in input order."""
        ...

    def is_available(self) -> bool:
        """Return True if the backend can serve requests. Never raises."""
        ...


# ---------------------------------------------------------------------------
# STORE PROTOCOLS
# ---------------------------------------------------------------------------


@dataclass
class CorpusStatistics:
    """Singleton aggregate consumed by BM25 scoring."""

    total_documents: int = 0
    average_document_length: float = 0.0
    updated_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "total_documents": self.total_documents,
            "average_document_length": self.average_document_length,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@runtime_checkable
class CandidateReader(Protocol):
    """
    Read-only surface the hybrid scorer needs from a store.

    Deliberately narrow: no SQL pass-through, no writes.
    """

    def get_stats(self) -> CorpusStatistics:
        """Return the last committed corpus statistics."""
        ...

    def read_candidates(self, terms: Sequence[str] | None = None) -> list[Document]:
        """
        Return documents with embeddings and lexical index populated.

        When terms is given, only documents containing at least one of
        them are returned.
        """
        ...

    def document_frequencies(self, terms: Sequence[str]) -> dict[str, int]:
        """Number of documents containing each term."""
        ...


@runtime_checkable
class DocumentStore(CandidateReader, Protocol):
    """
    Contract for durable document persistence.

    Implementations:
    - PgVectorStore (production with PostgreSQL + pgvector)
    - InMemoryDocumentStore (testing/development)
    """

    @property
    def dimensions(self) -> int:
        ...

    def create_schema(self, timeout: float | None = None) -> None:
        ...

    def insert(self, doc: Document, timeout: float | None = None) -> str:
        ...

    def insert_many(
        self, docs: Sequence[Document], timeout: float | None = None
    ) -> list[str]:
        """
        Insert all documents in ONE transaction (all or nothing).

        timeout bounds the transaction itself. When it expires the write is
        rolled back before the call raises, never committed afterwards.
        """
        ...

    def get(self, doc_id: str) -> Document | None:
        ...

    def update(
        self,
        doc_id: str,
        *,
        title: str | None = None,
        content: str | None = None,
        metadata: dict[str, Any] | None = None,
        embedding: np.ndarray | None = None,
        timeout: float | None = None,
    ) -> None:
        ...

    def delete(self, doc_id: str, timeout: float | None = None) -> bool:
        ...

    def count(self) -> int:
        ...

    def reset(self, timeout: float | None = None) -> None:
        ...

    def status(self) -> dict[str, Any]:
        ...

    def close(self) -> None:
        ...


# ---------------------------------------------------------------------------
# RESULT DATA CLASSES
# ---------------------------------------------------------------------------

EXCERPT_LENGTH = 200


@dataclass
class SearchResult:
    """A ranked document with its component scores."""

    id: str
    title: str | None
    content: str
    metadata: dict[str, Any]
    score: float
    rank: int
    lexical_score: float | None = None
    vector_score: float | None = None

    @property
    def excerpt(self) -> str:
        if len(self.content) <= EXCERPT_LENGTH:
            return self.content
        return self.content[:EXCERPT_LENGTH].rstrip() + "..."

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "title": self.title,
            "excerpt": self.excerpt,
            "metadata": self.metadata,
            "score": self.score,
            "lexical_score": self.lexical_score,
            "vector_score": self.vector_score,
            "rank": self.rank,
        }


@dataclass
class ImportResult:
    """
    Aggregate outcome of a batch import.

    imported + failed always accounts for every candidate document;
    errors is capped at MAX_REPORTED_ERRORS entries.
    """

    imported: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)
    error_count: int = 0

    @property
    def success(self) -> bool:
        return self.failed == 0

    @property
    def errors_truncated(self) -> bool:
        return self.error_count > len(self.errors)

    def record_error(self, message: str) -> None:
        self.error_count += 1
        if len(self.errors) < MAX_REPORTED_ERRORS:
            self.errors.append(message)

    def raise_for_failures(self) -> None:
        """Raise PartialBatchFailure if any document failed."""
        if self.failed:
            from rag_knowledge_base.core.errors import PartialBatchFailure

            raise PartialBatchFailure(self)

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "imported": self.imported,
            "failed": self.failed,
            "errors": list(self.errors),
        }
