"""
Hybrid scoring - BM25 lexical relevance fused with cosine similarity.

Three modes:
- vector:  cosine(query, doc) >= threshold, ranked by similarity
- lexical: documents containing a query term, ranked by raw BM25
- hybrid:  vector_weight * similarity + bm25_weight * min(bm25 / scale, 1)

ORDER OF OPERATIONS (hybrid):
-----------------------------
Candidates are filtered on vector similarity FIRST, then fused. A document
with a strong keyword match but similarity below the threshold never
reaches fusion. Weights are independent multipliers; they are not
renormalised to sum to 1.

Ties are broken by creation order (Document.seq), so equal scores always
come back in the order the documents were stored.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from dataclasses import dataclass
from typing import Any, Literal, Optional, Sequence

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from rag_knowledge_base.core.errors import DimensionMismatchError, ValidationError
from rag_knowledge_base.core.protocols import CandidateReader, CorpusStatistics, SearchResult
from rag_knowledge_base.retrieval.document import Document
from rag_knowledge_base.retrieval.text import query_terms

logger = logging.getLogger(__name__)

DEFAULT_K1 = 1.2
DEFAULT_B = 0.75
# Raw BM25 is divided by this and clamped to [0, 1] before fusion.
BM25_NORMALIZATION_SCALE = 10.0

MODE_VECTOR = "vector"
MODE_LEXICAL = "lexical"
MODE_HYBRID = "hybrid"


# ---------------------------------------------------------------------------
# SEARCH OPTIONS
# ---------------------------------------------------------------------------


class SearchOptions(BaseModel):
    """Caller-facing search parameters, validated on construction."""

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid")

    limit: int = Field(default=5, ge=1, le=100, description="Maximum results")
    # Similarity enters fusion as a [0, 1] score.
    threshold: float = Field(
        default=0.05, ge=0.0, le=1.0, description="Minimum cosine similarity"
    )
    mode: Literal["vector", "lexical", "hybrid"] = MODE_HYBRID
    bm25_weight: float = Field(default=0.3, ge=0.0)
    vector_weight: float = Field(default=0.7, ge=0.0)
    query_embedding: Optional[np.ndarray] = None

    @field_validator("query_embedding", mode="before")
    @classmethod
    def _as_vector(cls, value: Any) -> Optional[np.ndarray]:
        if value is None:
            return None
        return np.asarray(value, dtype=np.float32).reshape(-1)


def parse_search_options(**kwargs: Any) -> SearchOptions:
    """Build SearchOptions, reporting bad input as ValidationError."""
    try:
        return SearchOptions(**kwargs)
    except PydanticValidationError as exc:
        raise ValidationError(f"Invalid search options: {exc}") from exc


# ---------------------------------------------------------------------------
# SCORING PRIMITIVES
# ---------------------------------------------------------------------------


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine of the angle between two vectors; 0.0 if either is zero."""
    denom = float(np.linalg.norm(a) * np.linalg.norm(b))
    if denom == 0.0:
        return 0.0
    return float(np.dot(a, b) / denom)


def cosine_similarities(query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """Row-wise cosine similarity of matrix against query."""
    if matrix.size == 0:
        return np.zeros(0, dtype=np.float32)
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    dots = matrix @ query
    with np.errstate(divide="ignore", invalid="ignore"):
        sims = np.where(norms > 0, dots / norms, 0.0)
    return sims


def idf(total_documents: int, document_frequency: int) -> float:
    """ln((N - df + 0.5) / (df + 0.5)), floored at zero."""
    value = math.log(
        (total_documents - document_frequency + 0.5) / (document_frequency + 0.5)
    )
    return max(value, 0.0)


def bm25_score(
    terms: Sequence[str],
    term_frequencies: Counter,
    document_length: int,
    document_frequencies: dict[str, int],
    stats: CorpusStatistics,
    k1: float = DEFAULT_K1,
    b: float = DEFAULT_B,
) -> float:
    """Sum of per-term BM25 contributions for one document."""
    avg_length = stats.average_document_length
    length_ratio = document_length / avg_length if avg_length > 0 else 1.0

    score = 0.0
    for term in terms:
        tf = term_frequencies.get(term, 0)
        df = document_frequencies.get(term, 0)
        if tf == 0 or df == 0:
            continue
        saturated = (tf * (k1 + 1)) / (tf + k1 * (1 - b + b * length_ratio))
        score += idf(stats.total_documents, df) * saturated
    return score


# ---------------------------------------------------------------------------
# HYBRID SCORER
# ---------------------------------------------------------------------------


@dataclass
class _Scored:
    doc: Document
    score: float
    lexical: float | None
    vector: float | None


class HybridScorer:
    """
    Ranks candidates read through a CandidateReader.

    The reader is injected so the same scorer serves PgVectorStore and
    InMemoryDocumentStore. Corpus statistics come from the reader's last
    committed snapshot; they are not recomputed per query.
    """

    def __init__(
        self,
        reader: CandidateReader,
        k1: float = DEFAULT_K1,
        b: float = DEFAULT_B,
        bm25_scale: float = BM25_NORMALIZATION_SCALE,
    ):
        self._reader = reader
        self.k1 = k1
        self.b = b
        self.bm25_scale = bm25_scale

    def normalize_lexical(self, score: float) -> float:
        return min(max(score / self.bm25_scale, 0.0), 1.0)

    def search(self, query: str, options: SearchOptions) -> list[SearchResult]:
        """Score and rank documents for query under options.mode."""
        terms = query_terms(query)

        if options.mode == MODE_LEXICAL:
            scored = self._lexical(terms)
        else:
            if options.query_embedding is None:
                raise ValidationError(f"{options.mode} search requires a query embedding")
            if options.mode == MODE_VECTOR:
                scored = self._vector(options.query_embedding, options.threshold)
            else:
                scored = self._hybrid(terms, options)

        scored.sort(key=lambda s: (-s.score, s.doc.seq or 0))
        results = [
            SearchResult(
                id=s.doc.id,
                title=s.doc.title,
                content=s.doc.content,
                metadata=s.doc.metadata,
                score=s.score,
                rank=rank,
                lexical_score=s.lexical,
                vector_score=s.vector,
            )
            for rank, s in enumerate(scored[: options.limit], start=1)
        ]
        logger.debug(
            f"{options.mode} search for {query!r}: {len(scored)} candidates, "
            f"{len(results)} returned"
        )
        return results

    # -- per-mode candidate scoring -----------------------------------------

    def _similarities(self, query_embedding: np.ndarray, docs: list[Document]) -> np.ndarray:
        if not docs:
            return np.zeros(0, dtype=np.float32)
        matrix = np.vstack([doc.embedding for doc in docs]).astype(np.float32)
        if matrix.shape[1] != query_embedding.shape[0]:
            raise DimensionMismatchError(matrix.shape[1], query_embedding.shape[0], "query")
        return cosine_similarities(query_embedding, matrix)

    def _bm25(self, terms: Sequence[str], docs: list[Document]) -> list[float]:
        if not terms or not docs:
            return [0.0] * len(docs)
        stats = self._reader.get_stats()
        dfs = self._reader.document_frequencies(terms)
        return [
            bm25_score(
                terms, doc.term_frequencies(), doc.word_count, dfs, stats, self.k1, self.b
            )
            for doc in docs
        ]

    def _vector(self, query_embedding: np.ndarray, threshold: float) -> list[_Scored]:
        docs = self._reader.read_candidates()
        sims = self._similarities(query_embedding, docs)
        return [
            _Scored(doc=doc, score=float(sim), lexical=None, vector=float(sim))
            for doc, sim in zip(docs, sims)
            if sim >= threshold
        ]

    def _lexical(self, terms: Sequence[str]) -> list[_Scored]:
        if not terms:
            return []
        docs = self._reader.read_candidates(terms)
        scores = self._bm25(terms, docs)
        return [
            _Scored(doc=doc, score=score, lexical=score, vector=None)
            for doc, score in zip(docs, scores)
        ]

    def _hybrid(self, terms: Sequence[str], options: SearchOptions) -> list[_Scored]:
        docs = self._reader.read_candidates()
        sims = self._similarities(options.query_embedding, docs)

        # Filter on similarity before fusing.
        kept = [(doc, float(sim)) for doc, sim in zip(docs, sims) if sim >= options.threshold]
        lexical = self._bm25(terms, [doc for doc, _ in kept])

        scored = []
        for (doc, sim), raw in zip(kept, lexical):
            fused = (
                options.vector_weight * sim
                + options.bm25_weight * self.normalize_lexical(raw)
            )
            scored.append(_Scored(doc=doc, score=fused, lexical=raw, vector=sim))
        return scored
