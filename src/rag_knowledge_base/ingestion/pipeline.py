"""
Ingestion pipeline - validate, embed and persist documents.

Single add:   validate -> embed (only if no embedding given) -> persist
Batch import: per-row validation -> fixed-size chunks -> ONE embedding call
              per chunk -> ONE transaction per chunk

FAILURE ISOLATION:
------------------
- A row that fails validation fails alone; chunking is unaffected.
- A chunk whose embedding call or transaction fails fails as a whole
  (every document in it is counted), earlier and later chunks are not.
- A lost store connection aborts the remaining chunks. Committed chunks
  stay committed and every document not attempted is counted as failed.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Iterator, Mapping, Sequence

import numpy as np

from rag_knowledge_base.core.deadline import run_with_deadline
from rag_knowledge_base.core.errors import (
    DimensionMismatchError,
    ProviderUnavailableError,
    RetrievalError,
    StoreConnectionError,
    ValidationError,
)
from rag_knowledge_base.core.protocols import DocumentStore, EmbeddingProvider, ImportResult
from rag_knowledge_base.embeddings.base import non_blank_indices
from rag_knowledge_base.ingestion.delimited import (
    BatchImportOptions,
    RowOutcome,
    Source,
    iter_delimited,
    parse_import_options,
)
from rag_knowledge_base.observability.attributes import (
    INGEST_CHUNK_SIZE,
    INGEST_FAILED,
    INGEST_IMPORTED,
)
from rag_knowledge_base.observability.tracer import get_tracer
from rag_knowledge_base.retrieval.document import Document
from rag_knowledge_base.retrieval.store import check_embedding, validate_content, validate_fields

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 100

DOCUMENT_FIELDS = frozenset({"id", "title", "content", "metadata", "embedding"})


def as_document(item: Document | Mapping[str, Any]) -> Document:
    """Build a Document from a plain mapping; Documents pass through."""
    if isinstance(item, Document):
        return item
    if not isinstance(item, Mapping):
        raise ValidationError(f"Expected a Document or mapping, got {type(item).__name__}")
    unknown = set(item) - DOCUMENT_FIELDS
    if unknown:
        raise ValidationError(f"Unknown document fields: {', '.join(sorted(unknown))}")
    return Document(
        id=item.get("id"),
        title=item.get("title"),
        content=item.get("content"),
        metadata=item.get("metadata"),
        embedding=item.get("embedding"),
    )


class IngestionPipeline:
    """
    Writes documents through an EmbeddingProvider into a DocumentStore.

    Both collaborators are injected; the pipeline never checks which
    concrete backend it was given.
    """

    def __init__(
        self,
        store: DocumentStore,
        provider: EmbeddingProvider,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        if chunk_size < 1:
            raise ValidationError("chunk_size must be at least 1")
        self._store = store
        self._provider = provider
        self.chunk_size = chunk_size

    # ------------------------------------------------------------------
    # Single documents
    # ------------------------------------------------------------------

    def _validate(self, doc: Document) -> None:
        """Everything the store checks on write, minus id and reindexing."""
        validate_fields(doc)
        if doc.embedding is not None:
            doc.embedding = check_embedding(
                doc.embedding, self._provider.dimensions, context=doc.id
            )

    def add(
        self,
        content: str,
        title: str | None = None,
        metadata: dict[str, Any] | None = None,
        embedding: np.ndarray | Sequence[float] | None = None,
        doc_id: str | None = None,
        timeout: float | None = None,
    ) -> str:
        """Validate, embed if needed and persist one document. Returns its id."""
        doc = Document(
            id=doc_id,
            content=content,
            title=title,
            metadata=metadata,
            embedding=embedding,
        )
        self._validate(doc)

        if doc.embedding is None:
            doc.embedding = run_with_deadline(
                lambda: self._provider.generate_embedding(doc.content),
                timeout,
                "generate_embedding",
            )
        return self._store.insert(doc, timeout=timeout)

    def update(
        self,
        doc_id: str,
        *,
        title: str | None = None,
        content: str | None = None,
        metadata: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> None:
        """Update a document; a content change re-embeds and reindexes it."""
        embedding = None
        if content is not None:
            validate_content(content)
            embedding = run_with_deadline(
                lambda: self._provider.generate_embedding(content),
                timeout,
                "generate_embedding",
            )
        self._store.update(
            doc_id,
            title=title,
            content=content,
            metadata=metadata,
            embedding=embedding,
            timeout=timeout,
        )

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    def add_documents(
        self,
        documents: Iterable[Document | Mapping[str, Any]],
        timeout: float | None = None,
    ) -> ImportResult:
        """
        Import Documents or plain mappings in chunks.

        A mapping that cannot become a Document fails as its own row.
        """

        def outcomes() -> Iterator[RowOutcome]:
            for number, item in enumerate(documents, start=1):
                label = f"Document {number}"
                try:
                    doc = as_document(item)
                except ValidationError as exc:
                    yield RowOutcome(label=label, error=str(exc))
                    continue
                yield RowOutcome(label=label, document=doc)

        return self._ingest(outcomes(), timeout=timeout)

    def import_delimited(
        self,
        source: Source,
        options: BatchImportOptions | None = None,
        timeout: float | None = None,
        **option_overrides: Any,
    ) -> ImportResult:
        """
        Import a delimited file (CSV / semicolon / tab separated).

        Args:
            source: Path or open text stream
            options: BatchImportOptions; keyword overrides build one if omitted
            timeout: Per-call deadline for each embedding request and transaction

        Raises:
            ValidationError: Both options and keyword overrides were given
        """
        if options is not None and option_overrides:
            raise ValidationError("Pass either options or keyword overrides, not both")
        if options is None:
            options = parse_import_options(**option_overrides)
        logger.info(
            f"Starting delimited import (delimiter={options.delimiter!r}, "
            f"encoding={options.encoding}, validate_text={options.validate_text})"
        )
        return self._ingest(iter_delimited(source, options), timeout=timeout)

    def _ingest(self, outcomes: Iterable[RowOutcome], timeout: float | None) -> ImportResult:
        tracer = get_tracer()
        result = ImportResult()
        chunk: list[tuple[str, Document]] = []
        chunk_number = 0
        rows_read = 0
        aborted: StoreConnectionError | None = None
        not_attempted = 0

        with tracer.start_span(
            "kb.import", attributes={INGEST_CHUNK_SIZE: self.chunk_size}
        ) as span:
            try:
                for outcome in outcomes:
                    rows_read += 1
                    if outcome.error is not None:
                        result.failed += 1
                        result.record_error(f"{outcome.label}: {outcome.error}")
                        continue
                    if outcome.document is None:
                        continue
                    if aborted is not None:
                        not_attempted += 1
                        continue

                    try:
                        self._validate(outcome.document)
                    except (ValidationError, DimensionMismatchError) as exc:
                        result.failed += 1
                        result.record_error(f"{outcome.label}: {exc}")
                        continue

                    chunk.append((outcome.label, outcome.document))
                    if len(chunk) >= self.chunk_size:
                        chunk_number += 1
                        aborted = self._flush(chunk, chunk_number, result, timeout)
                        chunk = []
            except ValidationError as exc:
                # Nothing read yet: the source itself is unusable.
                if rows_read == 0:
                    raise
                result.record_error(f"Source: {exc}")
                logger.warning(f"Stopped reading source after {rows_read} row(s): {exc}")

            if chunk and aborted is None:
                chunk_number += 1
                aborted = self._flush(chunk, chunk_number, result, timeout)
            elif chunk:
                not_attempted += len(chunk)

            if not_attempted:
                result.failed += not_attempted
                result.record_error(
                    f"Import aborted: {not_attempted} document(s) not attempted ({aborted})"
                )

            span.set_attribute(INGEST_IMPORTED, result.imported)
            span.set_attribute(INGEST_FAILED, result.failed)
            if aborted is not None:
                span.fail(aborted)

        logger.info(
            f"Import finished: {result.imported} imported, {result.failed} failed "
            f"in {chunk_number} chunk(s)"
        )
        return result

    def _embed_missing(self, docs: list[Document], timeout: float | None) -> None:
        """One batch embedding call for every document that has no vector yet."""
        pending = [doc for doc in docs if doc.embedding is None]
        if not pending:
            return
        texts = [doc.content for doc in pending]
        vectors = run_with_deadline(
            lambda: self._provider.generate_embeddings(texts),
            timeout,
            "generate_embeddings",
        )
        # Provider output aligns with the non-blank inputs, not with texts.
        positions = non_blank_indices(texts)
        if len(vectors) != len(positions):
            raise ProviderUnavailableError(
                f"Provider returned {len(vectors)} embeddings for {len(positions)} texts"
            )
        for position, vector in zip(positions, vectors):
            pending[position].embedding = vector

    def _flush(
        self,
        chunk: list[tuple[str, Document]],
        number: int,
        result: ImportResult,
        timeout: float | None,
    ) -> StoreConnectionError | None:
        """Embed and persist one chunk. Returns the error if the store is gone."""
        docs = [doc for _, doc in chunk]
        logger.debug(f"Chunk {number}: embedding and storing {len(docs)} documents")

        try:
            self._embed_missing(docs, timeout)
            self._store.insert_many(docs, timeout=timeout)
        except StoreConnectionError as exc:
            result.failed += len(docs)
            result.record_error(f"Batch {number}: {exc}")
            logger.error(f"Chunk {number} lost the store connection, aborting import: {exc}")
            return exc
        except RetrievalError as exc:
            result.failed += len(docs)
            result.record_error(f"Batch {number}: {exc}")
            logger.warning(f"Chunk {number} failed ({len(docs)} documents): {exc}")
            return None

        result.imported += len(docs)
        return None
