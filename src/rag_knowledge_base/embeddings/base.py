"""
Shared input/output checks for every embedding backend.

Keeping these here means LocalEmbeddings and OpenAIEmbeddings enforce the
same contract: blank text is rejected, blank batch entries are dropped, and
no vector of the wrong length ever leaves a provider.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

from rag_knowledge_base.core.errors import ProviderUnavailableError, ValidationError


def is_blank(text: str | None) -> bool:
    return text is None or not str(text).strip()


def require_text(text: str) -> str:
    """Return the trimmed text, or raise ValidationError if it is blank."""
    if is_blank(text):
        raise ValidationError("Text cannot be empty")
    return str(text).strip()


def non_blank_indices(texts: Sequence[str]) -> list[int]:
    """
    Positions of the entries generate_embeddings() will actually embed.

    result[i] of a batch call belongs to texts[non_blank_indices(texts)[i]].
    """
    return [i for i, text in enumerate(texts) if not is_blank(text)]


def prepare_batch(texts: Sequence[str]) -> list[str]:
    """Drop blank entries and trim the rest, preserving order."""
    if not texts:
        return []
    valid = [str(texts[i]).strip() for i in non_blank_indices(texts)]
    if not valid:
        raise ValidationError("No valid texts provided")
    return valid


def to_vector(values, dimensions: int, provider: str) -> np.ndarray:
    """Convert backend output to float32 and verify its length."""
    vector = np.asarray(values, dtype=np.float32).reshape(-1)
    if vector.shape[0] != dimensions:
        raise ProviderUnavailableError(
            f"{provider} returned {vector.shape[0]} dimensions, expected {dimensions}"
        )
    return vector
