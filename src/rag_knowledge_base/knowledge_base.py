"""
Knowledge base facade - the contract external tool layers call.

    add / add_batch / add_documents  -> IngestionPipeline
    search                           -> EmbeddingProvider (query) -> HybridScorer
    get / update / remove / stats    -> DocumentStore

QUERY EMBEDDINGS:
-----------------
Vector and hybrid searches need a query embedding. A caller may pass one in
the options; otherwise the facade embeds the query through the configured
provider before scoring. A provider failure is raised to the caller, never
turned into a lexical-only search.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Sequence

import numpy as np

from rag_knowledge_base.config import KnowledgeBaseConfig, get_config
from rag_knowledge_base.core.deadline import run_with_deadline
from rag_knowledge_base.core.errors import DimensionMismatchError, ValidationError
from rag_knowledge_base.core.protocols import (
    CorpusStatistics,
    DocumentStore,
    EmbeddingProvider,
    ImportResult,
    SearchResult,
)
from rag_knowledge_base.embeddings.factory import default_chunk_size, get_embedding_provider
from rag_knowledge_base.ingestion.delimited import BatchImportOptions, Source
from rag_knowledge_base.ingestion.pipeline import DEFAULT_CHUNK_SIZE, IngestionPipeline
from rag_knowledge_base.observability.attributes import (
    INGEST_DOCUMENT_ID,
    RETRIEVAL_RESULT_COUNT,
    RETRIEVAL_TOP_SCORE,
    search_attributes,
)
from rag_knowledge_base.observability.config import get_tracing_config
from rag_knowledge_base.observability.tracer import get_tracer
from rag_knowledge_base.retrieval.document import Document
from rag_knowledge_base.retrieval.scoring import (
    MODE_LEXICAL,
    HybridScorer,
    SearchOptions,
    parse_search_options,
)
from rag_knowledge_base.retrieval.store import check_embedding, get_document_store

logger = logging.getLogger(__name__)


class KnowledgeBase:
    """
    Hybrid-search knowledge base over one store and one embedding provider.

    Every operation takes an optional timeout in seconds that bounds each
    provider and store call it makes. Writes are bounded inside the store
    transaction, so a write that times out has not been committed.
    """

    def __init__(
        self,
        store: DocumentStore,
        provider: EmbeddingProvider,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        scorer: HybridScorer | None = None,
    ):
        if store.dimensions != provider.dimensions:
            raise DimensionMismatchError(store.dimensions, provider.dimensions, "store vs provider")
        self.store = store
        self.provider = provider
        self.pipeline = IngestionPipeline(store, provider, chunk_size=chunk_size)
        self.scorer = scorer or HybridScorer(store)

    @property
    def dimensions(self) -> int:
        return self.provider.dimensions

    def __enter__(self) -> "KnowledgeBase":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_schema(self, timeout: float | None = None) -> None:
        self.store.create_schema(timeout=timeout)

    def add(
        self,
        content: str,
        title: str | None = None,
        metadata: dict[str, Any] | None = None,
        embedding: np.ndarray | Sequence[float] | None = None,
        doc_id: str | None = None,
        timeout: float | None = None,
    ) -> str:
        """Add one document and return its id."""
        with get_tracer().start_span("kb.add") as span:
            doc_id = self.pipeline.add(
                content,
                title=title,
                metadata=metadata,
                embedding=embedding,
                doc_id=doc_id,
                timeout=timeout,
            )
            span.set_attribute(INGEST_DOCUMENT_ID, doc_id)
        logger.debug(f"Added document {doc_id}")
        return doc_id

    def add_batch(
        self,
        source: Source,
        options: BatchImportOptions | None = None,
        timeout: float | None = None,
        **option_overrides: Any,
    ) -> ImportResult:
        """
        Import a delimited file.

        Args:
            source: Path or open text stream
            options: BatchImportOptions (delimiter, encoding, validate_text,
                skip_empty_lines); keyword overrides build one if omitted
            timeout: Per-call deadline for embedding requests and transactions

        Returns:
            ImportResult with exact imported/failed counts
        """
        return self.pipeline.import_delimited(
            source, options=options, timeout=timeout, **option_overrides
        )

    def add_documents(
        self,
        documents: Iterable[Document | Mapping[str, Any]],
        timeout: float | None = None,
    ) -> ImportResult:
        """Import documents given as Document objects or plain mappings."""
        return self.pipeline.add_documents(documents, timeout=timeout)

    def update(
        self,
        doc_id: str,
        *,
        title: str | None = None,
        content: str | None = None,
        metadata: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> None:
        self.pipeline.update(
            doc_id, title=title, content=content, metadata=metadata, timeout=timeout
        )

    def remove(self, doc_id: str, timeout: float | None = None) -> bool:
        """Remove a document. A missing id returns False."""
        removed = self.store.delete(doc_id, timeout=timeout)
        if removed:
            logger.debug(f"Removed document {doc_id}")
        return removed

    def reset(self, timeout: float | None = None) -> None:
        """Delete every document and zero the corpus statistics."""
        self.store.reset(timeout=timeout)
        logger.info("Knowledge base reset")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def search(
        self,
        query: str,
        options: SearchOptions | None = None,
        timeout: float | None = None,
        **option_overrides: Any,
    ) -> list[SearchResult]:
        """
        Rank documents for a query.

        Args:
            query: Query text
            options: SearchOptions; keyword overrides (limit, threshold, mode,
                bm25_weight, vector_weight, query_embedding) build one if omitted
            timeout: Deadline for the query embedding and for scoring

        Returns:
            Results ordered by rank (1-based)

        Raises:
            ValidationError: Empty query, invalid options, or both options
                and keyword overrides given
        """
        if options is not None and option_overrides:
            raise ValidationError("Pass either options or keyword overrides, not both")
        if options is None:
            options = parse_search_options(**option_overrides)
        if not isinstance(query, str) or not query.strip():
            raise ValidationError("Query cannot be empty")

        tracing = get_tracing_config()
        attributes = search_attributes(
            options.mode,
            options.limit,
            options.threshold,
            options.bm25_weight,
            options.vector_weight,
            query=query if tracing.capture_query_text else None,
        )

        with get_tracer().start_span("kb.search", attributes=attributes) as span:
            if options.mode != MODE_LEXICAL:
                options = self._with_query_embedding(query, options, timeout)

            results = run_with_deadline(
                lambda: self.scorer.search(query, options), timeout, "search"
            )
            span.set_attribute(RETRIEVAL_RESULT_COUNT, len(results))
            if results:
                span.set_attribute(RETRIEVAL_TOP_SCORE, results[0].score)
        return results

    def _with_query_embedding(
        self, query: str, options: SearchOptions, timeout: float | None
    ) -> SearchOptions:
        if options.query_embedding is not None:
            vector = check_embedding(options.query_embedding, self.dimensions, context="query")
        else:
            vector = run_with_deadline(
                lambda: self.provider.generate_embedding(query),
                timeout,
                "generate_embedding",
            )
        return options.model_copy(update={"query_embedding": vector})

    def get(self, doc_id: str, timeout: float | None = None) -> Document | None:
        return run_with_deadline(lambda: self.store.get(doc_id), timeout, "store.get")

    def get_document_count(self, timeout: float | None = None) -> int:
        return run_with_deadline(self.store.count, timeout, "store.count")

    def get_stats(self, timeout: float | None = None) -> CorpusStatistics:
        return run_with_deadline(self.store.get_stats, timeout, "store.get_stats")

    def status(self) -> dict[str, Any]:
        """Store connectivity plus provider availability."""
        return {
            "store": self.store.status(),
            "provider": {
                "available": self.provider.is_available(),
                "dimensions": self.provider.dimensions,
            },
        }

    def close(self) -> None:
        self.store.close()


def create_knowledge_base(
    config: KnowledgeBaseConfig | None = None,
    provider: EmbeddingProvider | None = None,
    store: DocumentStore | None = None,
) -> KnowledgeBase:
    """
    Wire provider, store and pipeline from configuration.

    Args:
        config: Configuration (loaded from env if not provided)
        provider: Pre-built provider (skips the backend factory)
        store: Pre-built store (skips the store factory)

    Raises:
        ConfigurationError: Unknown backend tag or store kind
        DimensionMismatchError: Store and provider dimensions differ
    """
    config = config or get_config()

    if provider is None:
        provider = get_embedding_provider(
            config.embedding_backend, config.embedding_model, **config.provider_options()
        )
    if store is None:
        store = get_document_store(config.store_kind, config.store_config(provider.dimensions))

    chunk_size = config.chunk_size or default_chunk_size(config.embedding_backend)
    kb = KnowledgeBase(store, provider, chunk_size=chunk_size)
    logger.info(
        f"Knowledge base ready ({config.store_kind} store, "
        f"{config.embedding_backend} embeddings, {provider.dimensions} dims, chunk size {chunk_size})"
    )
    return kb
