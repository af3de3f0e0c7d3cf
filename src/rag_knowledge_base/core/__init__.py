"""
Core module - shared protocols, result types and errors for the entire system.

This module provides the foundational contracts that enable:
- Dependency injection throughout the codebase
- Easy testing with mock implementations
- Clear separation of concerns

USAGE:
------
from rag_knowledge_base.core import DocumentStore, EmbeddingProvider

class MyStore:
    '''Implements DocumentStore protocol.'''
    ...
"""

from rag_knowledge_base.core.protocols import (
    # Protocols
    EmbeddingProvider,
    CandidateReader,
    DocumentStore,
    # Data classes
    CorpusStatistics,
    SearchResult,
    ImportResult,
    MAX_REPORTED_ERRORS,
)
from rag_knowledge_base.core.errors import (
    RetrievalError,
    ValidationError,
    DimensionMismatchError,
    StoreError,
    StoreConnectionError,
    ProviderUnavailableError,
    ConfigurationError,
    OperationTimeoutError,
    DocumentNotFoundError,
    PartialBatchFailure,
)
from rag_knowledge_base.core.deadline import run_with_deadline

__all__ = [
    # Protocols
    "EmbeddingProvider",
    "CandidateReader",
    "DocumentStore",
    # Data classes
    "CorpusStatistics",
    "SearchResult",
    "ImportResult",
    "MAX_REPORTED_ERRORS",
    # Errors
    "RetrievalError",
    "ValidationError",
    "DimensionMismatchError",
    "StoreError",
    "StoreConnectionError",
    "ProviderUnavailableError",
    "ConfigurationError",
    "OperationTimeoutError",
    "DocumentNotFoundError",
    "PartialBatchFailure",
    # Deadlines
    "run_with_deadline",
]
