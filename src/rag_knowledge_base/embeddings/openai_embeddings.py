"""
Remote embedding backend - OpenAI embeddings API.

Pays per-call network latency and cost, holds no model state locally.
Every SDK failure is wrapped in ProviderUnavailableError; there is no
automatic retry here (the client is built with max_retries=0), retry policy
belongs to the caller.
"""

from __future__ import annotations

import logging
import os
from typing import Sequence

import numpy as np
from openai import OpenAI, OpenAIError

from rag_knowledge_base.core.errors import ProviderUnavailableError
from rag_knowledge_base.embeddings.base import prepare_batch, require_text, to_vector
from rag_knowledge_base.observability.attributes import provider_attributes
from rag_knowledge_base.observability.tracer import get_tracer

logger = logging.getLogger(__name__)

MODEL_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}

DEFAULT_REMOTE_MODEL = "text-embedding-3-small"


class OpenAIEmbeddings:
    """
    OpenAI-based embedding provider.

    Uses text-embedding-3-small by default (1536 dimensions).
    """

    def __init__(
        self,
        model: str = DEFAULT_REMOTE_MODEL,
        api_key: str | None = None,
        timeout: float | None = 30.0,
        client: OpenAI | None = None,
    ):
        self.model = model
        self._api_key = api_key or os.environ.get("OPENAI_API_KEY")
        self._timeout = timeout
        self._client = client

    @property
    def dimensions(self) -> int:
        """Return embedding dimensions for the model."""
        return MODEL_DIMENSIONS.get(self.model, 1536)

    def _get_client(self) -> OpenAI:
        if self._client is None:
            try:
                self._client = OpenAI(
                    api_key=self._api_key,
                    timeout=self._timeout,
                    max_retries=0,
                )
            except OpenAIError as exc:
                raise ProviderUnavailableError(
                    f"Failed to initialize OpenAI client: {exc}"
                ) from exc
        return self._client

    def _create(self, payload: str | list[str]):
        client = self._get_client()
        attributes = provider_attributes("openai", self.model)
        with get_tracer().start_span("embeddings.create", attributes=attributes) as span:
            try:
                return client.embeddings.create(
                    model=self.model,
                    input=payload,
                    encoding_format="float",
                )
            except OpenAIError as exc:
                span.fail(exc)
                raise ProviderUnavailableError(f"Failed to generate embedding: {exc}") from exc

    def generate_embedding(self, text: str) -> np.ndarray:
        """Generate embedding for a single text."""
        text = require_text(text)
        response = self._create(text)
        if not response.data:
            raise ProviderUnavailableError("No embedding data received from OpenAI")
        return to_vector(response.data[0].embedding, self.dimensions, "OpenAI")

    def generate_embeddings(self, texts: Sequence[str]) -> list[np.ndarray]:
        """Generate embeddings for multiple texts in one request."""
        if not texts:
            return []
        valid = prepare_batch(texts)

        response = self._create(valid)
        if not response.data or len(response.data) != len(valid):
            raise ProviderUnavailableError("Mismatch in embedding data received from OpenAI")

        # The API may return items out of order; index restores alignment.
        items = sorted(response.data, key=lambda item: item.index)
        logger.debug(f"OpenAI embedded {len(valid)} texts with {self.model}")
        return [to_vector(item.embedding, self.dimensions, "OpenAI") for item in items]

    def is_available(self) -> bool:
        try:
            self.generate_embedding("test")
            return True
        except ProviderUnavailableError as exc:
            logger.warning(f"OpenAI embeddings unavailable: {exc}")
            return False
