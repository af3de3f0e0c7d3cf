"""
Document store implementations.

Pattern: Protocol -> Production impl -> Test double -> Factory

This module contains:
1. StoreConfig - Configuration dataclass
2. PgVectorStore - PostgreSQL with pgvector (production)
3. InMemoryDocumentStore - In-memory store (testing/development)
4. get_document_store() - Factory function

INVARIANTS (both implementations):
- Every stored embedding has exactly `dimensions` entries. Wrong lengths
  are rejected with DimensionMismatchError, never truncated or padded.
- lexical_index / word_count are recomputed from content on every write.
- Corpus statistics are recomputed by _recompute_statistics() inside the
  same transaction as the write that changed the document set.
"""

from __future__ import annotations

import dataclasses
import itertools
import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Sequence

import numpy as np
import psycopg
from pgvector.psycopg import register_vector
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool, PoolTimeout

from rag_knowledge_base.core.errors import (
    ConfigurationError,
    DimensionMismatchError,
    DocumentNotFoundError,
    OperationTimeoutError,
    StoreConnectionError,
    StoreError,
    ValidationError,
)
from rag_knowledge_base.core.protocols import CorpusStatistics
from rag_knowledge_base.retrieval import schema
from rag_knowledge_base.retrieval.document import Document, new_document_id

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# CONFIGURATION
# ---------------------------------------------------------------------------


@dataclass
class StoreConfig:
    """Configuration for the document store."""

    connection_string: str = "postgresql://localhost/rag"
    embedding_dim: int = 384
    table_name: str = "documents"
    stats_table_name: str = "corpus_stats"
    index_type: str = "hnsw"  # or "ivfflat"
    pool_min_size: int = 1
    pool_size: int = 10
    pool_timeout: float = 10.0  # seconds to wait for a pooled connection
    statement_timeout_ms: int = 30_000


# ---------------------------------------------------------------------------
# WRITE VALIDATION (shared)
# ---------------------------------------------------------------------------


def check_embedding(embedding: Any, dimensions: int, context: str | None = None) -> np.ndarray:
    """Return the embedding as float32, or raise if it has the wrong length."""
    if embedding is None:
        raise ValidationError("Document embedding is required")
    vector = np.asarray(embedding, dtype=np.float32).reshape(-1)
    if vector.shape[0] != dimensions:
        raise DimensionMismatchError(dimensions, int(vector.shape[0]), context)
    return vector


def validate_content(content: Any) -> str:
    if not isinstance(content, str):
        raise ValidationError("Document content is required and must be a string")
    if not content.strip():
        raise ValidationError("Document content cannot be empty")
    return content


def validate_fields(doc: Document) -> None:
    """Check content, title and metadata types. None metadata becomes {}."""
    validate_content(doc.content)
    if doc.title is not None and not isinstance(doc.title, str):
        raise ValidationError("Document title must be a string")
    if doc.metadata is None:
        doc.metadata = {}
    if not isinstance(doc.metadata, dict):
        raise ValidationError("Document metadata must be a mapping")


def prepare_for_write(doc: Document, dimensions: int) -> Document:
    """Validate a document and fill in its derived fields."""
    validate_fields(doc)

    doc.id = doc.id or new_document_id()
    doc.embedding = check_embedding(doc.embedding, dimensions, context=doc.id)
    doc.reindex()
    return doc


# ---------------------------------------------------------------------------
# PGVECTOR STORE (Production)
# ---------------------------------------------------------------------------


def _configure_connection(conn: psycopg.Connection) -> None:
    """Pool hook: make sure the vector type exists, then register adapters."""
    conn.autocommit = True
    conn.execute("CREATE EXTENSION IF NOT EXISTS vector")
    register_vector(conn)
    conn.autocommit = False


_DOCUMENT_COLUMNS = (
    "id, seq, title, content, metadata, embedding, lexical_index, "
    "word_count, created_at, updated_at"
)


def _row_to_document(row: dict) -> Document:
    embedding = row.get("embedding")
    return Document(
        id=row["id"],
        seq=row.get("seq"),
        title=row.get("title"),
        content=row["content"],
        metadata=row.get("metadata") or {},
        embedding=np.asarray(embedding, dtype=np.float32) if embedding is not None else None,
        lexical_index=list(row.get("lexical_index") or []),
        word_count=row.get("word_count") or 0,
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


class PgVectorStore:
    """
    PostgreSQL document store using pgvector.

    One bounded ConnectionPool is shared by every operation. Each public
    write runs in its own transaction with a statement_timeout, and the
    corpus statistics row is rewritten in that same transaction.
    """

    def __init__(self, config: StoreConfig, pool: ConnectionPool | None = None):
        """
        Initialize the store.

        Args:
            config: Store configuration
            pool: Pre-built pool (tests); created lazily from config otherwise
        """
        self.config = config
        self._pool = pool
        self._docs = config.table_name
        self._stats = config.stats_table_name

    @property
    def dimensions(self) -> int:
        return self.config.embedding_dim

    # -- connection management ------------------------------------------------

    def connect(self) -> None:
        """Open the connection pool."""
        if self._pool is not None:
            return
        try:
            self._pool = ConnectionPool(
                self.config.connection_string,
                min_size=self.config.pool_min_size,
                max_size=self.config.pool_size,
                timeout=self.config.pool_timeout,
                configure=_configure_connection,
                open=True,
            )
            self._pool.wait(timeout=self.config.pool_timeout)
        except (psycopg.OperationalError, PoolTimeout) as exc:
            self._pool = None
            raise StoreConnectionError(f"Could not connect to PostgreSQL: {exc}") from exc
        logger.info(f"Connected to PostgreSQL (pool size {self.config.pool_size})")

    def close(self) -> None:
        """Close the connection pool."""
        if self._pool is not None:
            self._pool.close()
            self._pool = None

    def status(self) -> dict[str, Any]:
        if self._pool is None:
            return {"connected": False}
        return {"connected": True, **self._pool.get_stats()}

    @contextmanager
    def _transaction(
        self, timeout: float | None = None, operation: str = "store"
    ) -> Iterator[psycopg.Cursor]:
        """
        One unit of work: pooled connection, transaction, bounded statements.

        A caller timeout (seconds) lowers both the pool checkout wait and the
        statement_timeout. Postgres cancels a statement that runs past it and
        the transaction rolls back, so a timed-out write never commits later.
        """
        checkout_timeout = self.config.pool_timeout
        statement_timeout_ms = self.config.statement_timeout_ms
        if timeout is not None:
            if timeout <= 0:
                raise OperationTimeoutError(operation, timeout)
            checkout_timeout = min(checkout_timeout, timeout)
            statement_timeout_ms = min(statement_timeout_ms, max(1, int(timeout * 1000)))

        if self._pool is None:
            self.connect()
        try:
            with self._pool.connection(timeout=checkout_timeout) as conn:
                with conn.transaction():
                    conn.execute(
                        "SELECT set_config('statement_timeout', %s, true)",
                        (str(statement_timeout_ms),),
                    )
                    with conn.cursor(row_factory=dict_row) as cur:
                        yield cur
        except psycopg.errors.QueryCanceled as exc:
            raise OperationTimeoutError(operation, statement_timeout_ms / 1000) from exc
        except (psycopg.OperationalError, PoolTimeout) as exc:
            raise StoreConnectionError(f"Database operation failed: {exc}") from exc
        except psycopg.Error as exc:
            raise StoreError(f"Database error: {exc}") from exc

    # -- schema -----------------------------------------------------------------

    def create_schema(self, timeout: float | None = None) -> None:
        """Create tables and indexes; verify an existing table's dimension."""
        with self._transaction(timeout, "store.create_schema") as cur:
            for statement in schema.documents_ddl(
                self._docs, self.config.embedding_dim, self.config.index_type
            ):
                cur.execute(statement)
            for statement in schema.stats_ddl(self._stats):
                cur.execute(statement)

            cur.execute(schema.embedding_dimension_query(), (self._docs,))
            row = cur.fetchone()
            if row and row["atttypmod"] > 0 and row["atttypmod"] != self.config.embedding_dim:
                raise DimensionMismatchError(
                    self.config.embedding_dim, row["atttypmod"], f"table {self._docs}"
                )
            self._recompute_statistics(cur)
        logger.info(f"Schema ready: {self._docs} ({self.config.embedding_dim} dims)")

    # -- statistics -------------------------------------------------------------

    def _recompute_statistics(self, cur: psycopg.Cursor) -> None:
        """Rewrite the corpus_stats row. Call only inside a write transaction."""
        cur.execute(schema.recompute_stats_sql(self._docs, self._stats))

    def get_stats(self) -> CorpusStatistics:
        with self._transaction() as cur:
            cur.execute(
                f"SELECT total_documents, average_document_length, updated_at "
                f"FROM {self._stats} WHERE id = 1"
            )
            row = cur.fetchone()
        if row is None:
            return CorpusStatistics()
        return CorpusStatistics(
            total_documents=int(row["total_documents"]),
            average_document_length=float(row["average_document_length"]),
            updated_at=row["updated_at"],
        )

    # -- writes -----------------------------------------------------------------

    def _upsert(self, cur: psycopg.Cursor, doc: Document) -> None:
        # Same id written twice: last commit wins, creation order is kept.
        cur.execute(
            f"""
            INSERT INTO {self._docs}
                (id, title, content, metadata, embedding, lexical_index, word_count)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (id) DO UPDATE SET
                title = EXCLUDED.title,
                content = EXCLUDED.content,
                metadata = EXCLUDED.metadata,
                embedding = EXCLUDED.embedding,
                lexical_index = EXCLUDED.lexical_index,
                word_count = EXCLUDED.word_count,
                updated_at = now()
            RETURNING seq, created_at, updated_at
            """,
            (
                doc.id,
                doc.title,
                doc.content,
                Jsonb(doc.metadata),
                doc.embedding,
                doc.lexical_index,
                doc.word_count,
            ),
        )
        row = cur.fetchone()
        if row:
            doc.seq = row["seq"]
            doc.created_at = row["created_at"]
            doc.updated_at = row["updated_at"]

    def insert(self, doc: Document, timeout: float | None = None) -> str:
        """Insert a document with its embedding."""
        prepare_for_write(doc, self.dimensions)
        with self._transaction(timeout, "store.insert") as cur:
            self._upsert(cur, doc)
            self._recompute_statistics(cur)
        return doc.id

    def insert_many(
        self, docs: Sequence[Document], timeout: float | None = None
    ) -> list[str]:
        """Insert all documents in a single transaction."""
        for doc in docs:
            prepare_for_write(doc, self.dimensions)
        if not docs:
            return []
        with self._transaction(timeout, "store.insert_many") as cur:
            for doc in docs:
                self._upsert(cur, doc)
            self._recompute_statistics(cur)
        return [doc.id for doc in docs]

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
        """Update fields of an existing document; content changes reindex it."""
        if content is not None:
            validate_content(content)
        if embedding is not None:
            embedding = check_embedding(embedding, self.dimensions, context=doc_id)

        with self._transaction(timeout, "store.update") as cur:
            cur.execute(
                f"SELECT {_DOCUMENT_COLUMNS} FROM {self._docs} WHERE id = %s FOR UPDATE",
                (doc_id,),
            )
            row = cur.fetchone()
            if row is None:
                raise DocumentNotFoundError(doc_id)

            doc = _row_to_document(row)
            if title is not None:
                doc.title = title
            if metadata is not None:
                doc.metadata = metadata
            if embedding is not None:
                doc.embedding = embedding
            if content is not None:
                doc.content = content
                doc.reindex()

            cur.execute(
                f"""
                UPDATE {self._docs} SET
                    title = %s, content = %s, metadata = %s, embedding = %s,
                    lexical_index = %s, word_count = %s, updated_at = now()
                WHERE id = %s
                """,
                (
                    doc.title,
                    doc.content,
                    Jsonb(doc.metadata),
                    doc.embedding,
                    doc.lexical_index,
                    doc.word_count,
                    doc_id,
                ),
            )
            if content is not None:
                self._recompute_statistics(cur)

    def delete(self, doc_id: str, timeout: float | None = None) -> bool:
        """Delete a document. Returns False if it didn't exist."""
        with self._transaction(timeout, "store.delete") as cur:
            cur.execute(f"DELETE FROM {self._docs} WHERE id = %s RETURNING id", (doc_id,))
            deleted = cur.fetchone() is not None
            if deleted:
                self._recompute_statistics(cur)
        return deleted

    def reset(self, timeout: float | None = None) -> None:
        """Delete every document; statistics drop to zero."""
        with self._transaction(timeout, "store.reset") as cur:
            cur.execute(f"DELETE FROM {self._docs}")
            self._recompute_statistics(cur)
        logger.info(f"Store reset: {self._docs} emptied")

    # -- reads ------------------------------------------------------------------

    def get(self, doc_id: str) -> Document | None:
        with self._transaction() as cur:
            cur.execute(
                f"SELECT {_DOCUMENT_COLUMNS} FROM {self._docs} WHERE id = %s", (doc_id,)
            )
            row = cur.fetchone()
        return _row_to_document(row) if row else None

    def count(self) -> int:
        with self._transaction() as cur:
            cur.execute(f"SELECT count(*) AS count FROM {self._docs}")
            row = cur.fetchone()
        return int(row["count"])

    def read_candidates(self, terms: Sequence[str] | None = None) -> list[Document]:
        """Candidate rows for scoring, in creation order."""
        with self._transaction() as cur:
            if terms:
                cur.execute(
                    f"SELECT {_DOCUMENT_COLUMNS} FROM {self._docs} "
                    f"WHERE lexical_index && %s::text[] ORDER BY seq",
                    (list(terms),),
                )
            else:
                cur.execute(f"SELECT {_DOCUMENT_COLUMNS} FROM {self._docs} ORDER BY seq")
            rows = cur.fetchall()
        return [_row_to_document(row) for row in rows]

    def document_frequencies(self, terms: Sequence[str]) -> dict[str, int]:
        if not terms:
            return {}
        with self._transaction() as cur:
            cur.execute(
                f"""
                SELECT t.term AS term, count(d.id) AS df
                FROM unnest(%s::text[]) AS t(term)
                LEFT JOIN {self._docs} d ON d.lexical_index @> ARRAY[t.term]
                GROUP BY t.term
                """,
                (list(terms),),
            )
            rows = cur.fetchall()
        return {row["term"]: int(row["df"]) for row in rows}


# ---------------------------------------------------------------------------
# IN-MEMORY STORE (Testing/Development)
# ---------------------------------------------------------------------------


def _copy(doc: Document) -> Document:
    return dataclasses.replace(
        doc,
        metadata=dict(doc.metadata),
        embedding=None if doc.embedding is None else doc.embedding.copy(),
        lexical_index=list(doc.lexical_index),
    )


class InMemoryDocumentStore:
    """
    In-memory document store for development/testing.

    Implements the same interface as PgVectorStore but doesn't require
    Postgres. A lock stands in for transactions: a batch is validated and
    staged first, then committed together with the statistics update.
    """

    def __init__(self, dimensions: int = 384):
        self._dimensions = dimensions
        self._documents: dict[str, Document] = {}
        self._stats = CorpusStatistics()
        self._seq = itertools.count(1)
        self._lock = threading.RLock()

    @property
    def dimensions(self) -> int:
        return self._dimensions

    # Write methods accept a timeout and ignore it: nothing here waits on I/O.

    def connect(self) -> None:
        """No-op for in-memory store."""

    def close(self) -> None:
        """No-op for in-memory store."""

    def create_schema(self, timeout: float | None = None) -> None:
        """No-op for in-memory store."""

    def status(self) -> dict[str, Any]:
        return {"connected": True, "backend": "memory"}

    def _recompute_statistics(self) -> None:
        total = len(self._documents)
        average = (
            sum(doc.word_count for doc in self._documents.values()) / total if total else 0.0
        )
        self._stats = CorpusStatistics(
            total_documents=total,
            average_document_length=float(average),
            updated_at=datetime.now(timezone.utc),
        )

    def get_stats(self) -> CorpusStatistics:
        with self._lock:
            return dataclasses.replace(self._stats)

    def _commit(self, staged: Sequence[Document]) -> None:
        now = datetime.now(timezone.utc)
        for doc in staged:
            existing = self._documents.get(doc.id)
            if existing is not None:
                doc.seq = existing.seq
                doc.created_at = existing.created_at
            else:
                doc.seq = next(self._seq)
                doc.created_at = now
            doc.updated_at = now
            self._documents[doc.id] = _copy(doc)
        self._recompute_statistics()

    def insert(self, doc: Document, timeout: float | None = None) -> str:
        prepare_for_write(doc, self._dimensions)
        with self._lock:
            self._commit([doc])
        return doc.id

    def insert_many(
        self, docs: Sequence[Document], timeout: float | None = None
    ) -> list[str]:
        for doc in docs:
            prepare_for_write(doc, self._dimensions)
        with self._lock:
            self._commit(docs)
        return [doc.id for doc in docs]

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
        if content is not None:
            validate_content(content)
        if embedding is not None:
            embedding = check_embedding(embedding, self._dimensions, context=doc_id)

        with self._lock:
            existing = self._documents.get(doc_id)
            if existing is None:
                raise DocumentNotFoundError(doc_id)
            doc = _copy(existing)
            if title is not None:
                doc.title = title
            if metadata is not None:
                doc.metadata = dict(metadata)
            if embedding is not None:
                doc.embedding = embedding
            if content is not None:
                doc.content = content
                doc.reindex()
            doc.updated_at = datetime.now(timezone.utc)
            self._documents[doc_id] = doc
            if content is not None:
                self._recompute_statistics()

    def delete(self, doc_id: str, timeout: float | None = None) -> bool:
        with self._lock:
            if self._documents.pop(doc_id, None) is None:
                return False
            self._recompute_statistics()
            return True

    def reset(self, timeout: float | None = None) -> None:
        with self._lock:
            self._documents.clear()
            self._recompute_statistics()

    def get(self, doc_id: str) -> Document | None:
        with self._lock:
            doc = self._documents.get(doc_id)
            return _copy(doc) if doc else None

    def count(self) -> int:
        with self._lock:
            return len(self._documents)

    def read_candidates(self, terms: Sequence[str] | None = None) -> list[Document]:
        with self._lock:
            docs = sorted(self._documents.values(), key=lambda d: d.seq)
            if terms:
                wanted = set(terms)
                docs = [d for d in docs if wanted.intersection(d.lexical_index)]
            return [_copy(doc) for doc in docs]

    def document_frequencies(self, terms: Sequence[str]) -> dict[str, int]:
        with self._lock:
            return {
                term: sum(1 for doc in self._documents.values() if term in doc.lexical_index)
                for term in terms
            }


# ---------------------------------------------------------------------------
# FACTORY FUNCTION
# ---------------------------------------------------------------------------

STORE_POSTGRES = "postgres"
STORE_MEMORY = "memory"


def get_document_store(
    kind: str = STORE_MEMORY,
    config: StoreConfig | None = None,
) -> PgVectorStore | InMemoryDocumentStore:
    """
    Factory function to get the appropriate document store.

    Args:
        kind: "postgres" or "memory"
        config: Store configuration (uses defaults if not provided)
    """
    config = config or StoreConfig()
    if kind == STORE_POSTGRES:
        return PgVectorStore(config)
    if kind == STORE_MEMORY:
        return InMemoryDocumentStore(dimensions=config.embedding_dim)
    raise ConfigurationError(f"Unknown store kind '{kind}'. Expected 'postgres' or 'memory'")
