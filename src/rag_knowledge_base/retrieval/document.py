"""
Document model for the retrieval system.

Single responsibility: Define the structure of documents
stored in document stores.
"""

from __future__ import annotations

import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import numpy as np

from rag_knowledge_base.retrieval.text import tokenize


def new_document_id() -> str:
    """Generate an opaque id for documents the caller didn't name."""
    return f"doc_{uuid.uuid4().hex}"


@dataclass
class Document:
    """
    A document with embedding and lexical index.

    lexical_index and word_count are derived from content by the store on
    every write; callers never set them directly.
    """

    content: str
    id: str | None = None
    title: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    embedding: np.ndarray | None = None
    lexical_index: list[str] = field(default_factory=list)
    word_count: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None
    seq: int | None = None  # creation order, assigned by the store

    def reindex(self) -> None:
        """Recompute the lexical index from content."""
        self.lexical_index = tokenize(self.content)
        self.word_count = len(self.lexical_index)

    def term_frequencies(self) -> Counter:
        return Counter(self.lexical_index)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "metadata": self.metadata,
            "word_count": self.word_count,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
