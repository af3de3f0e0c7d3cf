"""
Error taxonomy for the knowledge base.

Every failure the engine surfaces to a caller is a RetrievalError subclass,
so the tool layer can catch one base type and still branch on the cause.

PROPAGATION RULES:
------------------
- Single-document operations raise directly.
- Batch operations record per-row / per-chunk failures in an ImportResult
  and keep going. PartialBatchFailure is only raised on request
  (ImportResult.raise_for_failures()).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from rag_knowledge_base.core.protocols import ImportResult


class RetrievalError(Exception):
    """Base class for all knowledge base errors."""


class ValidationError(RetrievalError):
    """Empty or malformed input (content, options, query)."""


class DimensionMismatchError(RetrievalError):
    """An embedding length differs from the active provider's dimension."""

    def __init__(self, expected: int, actual: int, context: str | None = None):
        self.expected = expected
        self.actual = actual
        where = f" ({context})" if context else ""
        super().__init__(
            f"Embedding dimension mismatch{where}: expected {expected}, got {actual}"
        )


class StoreError(RetrievalError):
    """A store operation failed (constraint violation, bad statement, ...)."""


class StoreConnectionError(StoreError):
    """The document store is unreachable or the connection was lost."""


class ProviderUnavailableError(RetrievalError):
    """The embedding backend failed to initialize or to respond."""


class ConfigurationError(RetrievalError):
    """Invalid configuration (unknown backend tag, bad store kind, ...)."""


class OperationTimeoutError(RetrievalError):
    """A caller-supplied deadline passed before the operation finished."""

    def __init__(self, operation: str, timeout: float):
        self.operation = operation
        self.timeout = timeout
        super().__init__(f"{operation} did not finish within {timeout:.3f}s")


class DocumentNotFoundError(RetrievalError):
    """Update targeted a document id that does not exist."""

    def __init__(self, doc_id: str):
        self.doc_id = doc_id
        super().__init__(f"Document not found: {doc_id}")


class PartialBatchFailure(RetrievalError):
    """Aggregate failure carrying the result of a batch import."""

    def __init__(self, result: ImportResult):
        self.result = result
        super().__init__(
            f"Batch import failed for {result.failed} document(s) "
            f"({result.imported} imported)"
        )

    @property
    def errors(self) -> list[str]:
        return self.result.errors
