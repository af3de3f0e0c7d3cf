"""
Embeddings module - text embedding generation.

Pattern:
1. Protocol (EmbeddingProvider, in core) defines the interface
2. Production implementations (LocalEmbeddings, OpenAIEmbeddings)
3. Test double (MockEmbeddings) for fast testing
4. Factory function (get_embedding_provider) keyed by backend tag
"""

from rag_knowledge_base.core.protocols import EmbeddingProvider
from rag_knowledge_base.embeddings.base import non_blank_indices
from rag_knowledge_base.embeddings.factory import (
    BACKEND_LOCAL,
    BACKEND_REMOTE,
    BACKEND_MOCK,
    DEFAULT_CHUNK_SIZES,
    available_backends,
    default_chunk_size,
    get_embedding_provider,
)
from rag_knowledge_base.embeddings.local_embeddings import (
    LocalEmbeddings,
    ModelCache,
    get_model_cache,
)
from rag_knowledge_base.embeddings.mock_embeddings import MockEmbeddings
from rag_knowledge_base.embeddings.openai_embeddings import OpenAIEmbeddings

__all__ = [
    "EmbeddingProvider",
    "LocalEmbeddings",
    "OpenAIEmbeddings",
    "MockEmbeddings",
    "ModelCache",
    "get_model_cache",
    "get_embedding_provider",
    "available_backends",
    "default_chunk_size",
    "non_blank_indices",
    "BACKEND_LOCAL",
    "BACKEND_REMOTE",
    "BACKEND_MOCK",
    "DEFAULT_CHUNK_SIZES",
]
