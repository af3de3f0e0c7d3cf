"""
Embedding provider factory - the ONLY place a backend tag becomes a class.

Callers pick a backend once, at construction, by tag. Nothing downstream
(ingestion, scoring) inspects which concrete provider it was handed.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from rag_knowledge_base.core.errors import ConfigurationError
from rag_knowledge_base.core.protocols import EmbeddingProvider

logger = logging.getLogger(__name__)

BACKEND_LOCAL = "local"
BACKEND_REMOTE = "remote"
BACKEND_MOCK = "mock"

# Smaller chunks bound memory for in-process inference; larger chunks
# amortise network round-trips for remote APIs.
DEFAULT_CHUNK_SIZES = {
    BACKEND_LOCAL: 50,
    BACKEND_REMOTE: 100,
    BACKEND_MOCK: 100,
}


def _local(model: str | None, **options: Any) -> EmbeddingProvider:
    from rag_knowledge_base.embeddings.local_embeddings import (
        DEFAULT_LOCAL_MODEL,
        LocalEmbeddings,
    )

    return LocalEmbeddings(model=model or DEFAULT_LOCAL_MODEL, **options)


def _remote(model: str | None, **options: Any) -> EmbeddingProvider:
    from rag_knowledge_base.embeddings.openai_embeddings import (
        DEFAULT_REMOTE_MODEL,
        OpenAIEmbeddings,
    )

    return OpenAIEmbeddings(model=model or DEFAULT_REMOTE_MODEL, **options)


def _mock(model: str | None, **options: Any) -> EmbeddingProvider:
    from rag_knowledge_base.embeddings.mock_embeddings import MockEmbeddings

    return MockEmbeddings(**options)


_BACKENDS: dict[str, Callable[..., EmbeddingProvider]] = {
    BACKEND_LOCAL: _local,
    BACKEND_REMOTE: _remote,
    BACKEND_MOCK: _mock,
}


def available_backends() -> list[str]:
    return sorted(_BACKENDS)


def get_embedding_provider(
    backend: str = BACKEND_LOCAL,
    model: str | None = None,
    **options: Any,
) -> EmbeddingProvider:
    """
    Factory function to get the embedding provider for a backend tag.

    Args:
        backend: "local", "remote" or "mock"
        model: Model name (backend default if omitted)
        **options: Passed to the provider constructor
            (api_key/timeout for remote, device/batch_size for local,
            dimensions for mock)
    """
    try:
        build = _BACKENDS[backend]
    except KeyError:
        raise ConfigurationError(
            f"Unknown embedding backend '{backend}'. "
            f"Expected one of: {', '.join(available_backends())}"
        ) from None

    provider = build(model, **options)
    logger.info(f"Using {backend} embeddings ({provider.dimensions} dimensions)")
    return provider


def default_chunk_size(backend: str) -> int:
    """Batch-import chunk size for a backend tag."""
    if backend not in DEFAULT_CHUNK_SIZES:
        raise ConfigurationError(f"Unknown embedding backend '{backend}'")
    return DEFAULT_CHUNK_SIZES[backend]
