"""
Retrieval module - document storage and hybrid scoring.

This module provides:
- Document: The document model
- StoreConfig: Configuration for stores
- PgVectorStore: PostgreSQL production store
- InMemoryDocumentStore: Testing/development store
- get_document_store(): Factory function
- HybridScorer / SearchOptions: BM25 + cosine ranking

ARCHITECTURE:
-------------
1. Protocols define the contracts (in core.protocols)
2. Multiple implementations (PgVectorStore, InMemoryDocumentStore)
3. Factory function for instantiation
4. The scorer only sees the narrow CandidateReader surface of a store
"""

from rag_knowledge_base.retrieval.document import Document, new_document_id
from rag_knowledge_base.retrieval.text import tokenize, query_terms
from rag_knowledge_base.retrieval.store import (
    StoreConfig,
    PgVectorStore,
    InMemoryDocumentStore,
    get_document_store,
    STORE_POSTGRES,
    STORE_MEMORY,
)
from rag_knowledge_base.retrieval.scoring import (
    HybridScorer,
    SearchOptions,
    parse_search_options,
    bm25_score,
    cosine_similarity,
    idf,
    MODE_VECTOR,
    MODE_LEXICAL,
    MODE_HYBRID,
)

__all__ = [
    # Document
    "Document",
    "new_document_id",
    "tokenize",
    "query_terms",
    # Stores
    "StoreConfig",
    "PgVectorStore",
    "InMemoryDocumentStore",
    "get_document_store",
    "STORE_POSTGRES",
    "STORE_MEMORY",
    # Scoring
    "HybridScorer",
    "SearchOptions",
    "parse_search_options",
    "bm25_score",
    "cosine_similarity",
    "idf",
    "MODE_VECTOR",
    "MODE_LEXICAL",
    "MODE_HYBRID",
]
