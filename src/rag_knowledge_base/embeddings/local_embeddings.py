"""
Local embedding backend - sentence-transformers running in-process.

No API key required. The model is loaded once per process on first use and
then shared by every LocalEmbeddings instance that asks for the same model,
so only the first call pays the load latency.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Sequence

import numpy as np

from rag_knowledge_base.core.errors import ProviderUnavailableError, ValidationError
from rag_knowledge_base.embeddings.base import prepare_batch, require_text, to_vector
from rag_knowledge_base.observability.attributes import provider_attributes
from rag_knowledge_base.observability.tracer import get_tracer

logger = logging.getLogger(__name__)

DEFAULT_LOCAL_MODEL = "sentence-transformers/all-MiniLM-L6-v2"

MODEL_DIMENSIONS = {
    "sentence-transformers/all-MiniLM-L6-v2": 384,
    "all-MiniLM-L6-v2": 384,
    "sentence-transformers/all-MiniLM-L12-v2": 384,
    "sentence-transformers/paraphrase-multilingual-MiniLM-L12-v2": 384,
    "sentence-transformers/all-mpnet-base-v2": 768,
}


def _load_sentence_transformer(model_name: str, device: str | None) -> Any:
    from sentence_transformers import SentenceTransformer

    kwargs = {"device": device} if device else {}
    return SentenceTransformer(model_name, **kwargs)


class ModelCache:
    """
    Initialise-once holder for loaded models, keyed by (model, device).

    Loads happen under a per-key lock so concurrent first calls wait for a
    single load instead of racing; after that, reads take no lock.
    """

    def __init__(self, loader: Callable[[str, str | None], Any] = _load_sentence_transformer):
        self._loader = loader
        self._models: dict[tuple[str, str | None], Any] = {}
        self._locks: dict[tuple[str, str | None], threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def get(self, model_name: str, device: str | None = None) -> Any:
        key = (model_name, device)
        model = self._models.get(key)
        if model is not None:
            return model

        with self._registry_lock:
            lock = self._locks.setdefault(key, threading.Lock())

        with lock:
            model = self._models.get(key)
            if model is None:
                logger.info(f"Loading embedding model: {model_name}...")
                model = self._loader(model_name, device)
                self._models[key] = model
                logger.info(f"Embedding model loaded: {model_name}")
        return model

    def is_loaded(self, model_name: str, device: str | None = None) -> bool:
        return (model_name, device) in self._models

    def clear(self) -> None:
        with self._registry_lock:
            self._models.clear()
            self._locks.clear()


# Process-wide cache shared by every LocalEmbeddings that isn't given its own.
_default_cache = ModelCache()


def get_model_cache() -> ModelCache:
    return _default_cache


class LocalEmbeddings:
    """
    sentence-transformers embedding provider.

    Uses all-MiniLM-L6-v2 by default (384 dimensions), mean pooled and
    L2-normalised so cosine similarity equals the dot product.
    """

    def __init__(
        self,
        model: str = DEFAULT_LOCAL_MODEL,
        dimensions: int | None = None,
        device: str | None = None,
        batch_size: int = 32,
        cache: ModelCache | None = None,
    ):
        self.model = model
        self._dimensions = dimensions or MODEL_DIMENSIONS.get(model, 384)
        self._device = device
        self._batch_size = batch_size
        self._cache = cache or get_model_cache()

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def _get_model(self) -> Any:
        try:
            return self._cache.get(self.model, self._device)
        except Exception as exc:
            raise ProviderUnavailableError(
                f"Failed to initialize local model {self.model}: {exc}"
            ) from exc

    def _encode(self, texts: list[str]) -> np.ndarray:
        model = self._get_model()
        attributes = provider_attributes("sentence-transformers", self.model)
        with get_tracer().start_span("embeddings.encode", attributes=attributes) as span:
            try:
                return model.encode(
                    texts,
                    batch_size=self._batch_size,
                    convert_to_numpy=True,
                    normalize_embeddings=True,
                    show_progress_bar=False,
                )
            except Exception as exc:
                span.fail(exc)
                raise ProviderUnavailableError(f"Failed to generate embeddings: {exc}") from exc

    def generate_embedding(self, text: str) -> np.ndarray:
        text = require_text(text)
        vectors = self._encode([text])
        return to_vector(vectors[0], self._dimensions, self.model)

    def generate_embeddings(self, texts: Sequence[str]) -> list[np.ndarray]:
        if not texts:
            return []
        valid = prepare_batch(texts)
        vectors = self._encode(valid)
        logger.debug(f"Encoded {len(valid)} texts locally with {self.model}")
        return [to_vector(vector, self._dimensions, self.model) for vector in vectors]

    def is_available(self) -> bool:
        try:
            self.generate_embedding("test")
            return True
        except (ProviderUnavailableError, ValidationError) as exc:
            logger.warning(f"Local embeddings unavailable: {exc}")
            return False

    def get_model_info(self) -> dict:
        return {
            "model": self.model,
            "dimensions": self._dimensions,
            "provider": "sentence-transformers",
            "local": True,
            "loaded": self._cache.is_loaded(self.model, self._device),
        }
