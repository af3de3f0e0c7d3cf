"""
Span Attribute Keys

Custom namespaces for retrieval and ingestion spans. Embedding backend
attributes reuse the OpenTelemetry GenAI keys where one exists.

Reference: https://opentelemetry.io/docs/specs/semconv/gen-ai/
"""

# ---------------------------------------------------------------------------
# GENAI NAMESPACE (OTel standard)
# ---------------------------------------------------------------------------

GEN_AI_SYSTEM = "gen_ai.system"  # "sentence-transformers", "openai", "mock"
GEN_AI_REQUEST_MODEL = "gen_ai.request.model"  # "text-embedding-3-small"


# ---------------------------------------------------------------------------
# RETRIEVAL NAMESPACE (custom)
# ---------------------------------------------------------------------------

RETRIEVAL_MODE = "retrieval.mode"  # "vector", "lexical", "hybrid"
RETRIEVAL_LIMIT = "retrieval.limit"
RETRIEVAL_THRESHOLD = "retrieval.threshold"
RETRIEVAL_BM25_WEIGHT = "retrieval.bm25_weight"
RETRIEVAL_VECTOR_WEIGHT = "retrieval.vector_weight"
RETRIEVAL_QUERY = "retrieval.query"  # only with KB_CAPTURE_QUERY_TEXT
RETRIEVAL_RESULT_COUNT = "retrieval.result_count"
RETRIEVAL_TOP_SCORE = "retrieval.top_score"


# ---------------------------------------------------------------------------
# INGEST NAMESPACE (custom)
# ---------------------------------------------------------------------------

INGEST_CHUNK_SIZE = "ingest.chunk_size"
INGEST_IMPORTED = "ingest.imported"
INGEST_FAILED = "ingest.failed"
INGEST_DOCUMENT_ID = "ingest.document_id"


# ---------------------------------------------------------------------------
# HELPER FUNCTIONS
# ---------------------------------------------------------------------------


def search_attributes(
    mode: str,
    limit: int,
    threshold: float,
    bm25_weight: float,
    vector_weight: float,
    query: str | None = None,
) -> dict:
    """Create attributes dict for a kb.search span."""
    attrs = {
        RETRIEVAL_MODE: mode,
        RETRIEVAL_LIMIT: limit,
        RETRIEVAL_THRESHOLD: threshold,
        RETRIEVAL_BM25_WEIGHT: bm25_weight,
        RETRIEVAL_VECTOR_WEIGHT: vector_weight,
    }
    if query is not None:
        attrs[RETRIEVAL_QUERY] = query
    return attrs


def provider_attributes(system: str, model: str | None = None) -> dict:
    """Create attributes dict describing the embedding backend."""
    attrs = {GEN_AI_SYSTEM: system}
    if model:
        attrs[GEN_AI_REQUEST_MODEL] = model
    return attrs
