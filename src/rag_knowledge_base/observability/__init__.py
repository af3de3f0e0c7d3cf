"""
Observability Module - OpenTelemetry tracing for searches and imports.

USAGE:
------
# At application startup:
from rag_knowledge_base.observability import init_tracing

init_tracing()  # Installs an SDK tracer provider if KB_TRACING_ENABLED=true

# In code that needs tracing:
from rag_knowledge_base.observability import get_tracer

tracer = get_tracer()
with tracer.start_span("kb.search", attributes={"retrieval.mode": "hybrid"}) as span:
    # ... do work ...
    span.set_attribute("retrieval.result_count", 3)
"""

from __future__ import annotations

import logging

from rag_knowledge_base.observability.config import (
    TracingConfig,
    get_tracing_config,
    reset_tracing_config,
)
from rag_knowledge_base.observability.tracer import (
    get_tracer,
    set_tracer,
    reset_tracer,
)
from rag_knowledge_base.observability.attributes import (
    # GenAI
    GEN_AI_SYSTEM,
    GEN_AI_REQUEST_MODEL,
    # Retrieval
    RETRIEVAL_MODE,
    RETRIEVAL_LIMIT,
    RETRIEVAL_THRESHOLD,
    RETRIEVAL_BM25_WEIGHT,
    RETRIEVAL_VECTOR_WEIGHT,
    RETRIEVAL_QUERY,
    RETRIEVAL_RESULT_COUNT,
    RETRIEVAL_TOP_SCORE,
    # Ingest
    INGEST_CHUNK_SIZE,
    INGEST_IMPORTED,
    INGEST_FAILED,
    INGEST_DOCUMENT_ID,
    # Helpers
    search_attributes,
    provider_attributes,
)

logger = logging.getLogger(__name__)

_tracing_initialized = False


def init_tracing(config: TracingConfig | None = None) -> bool:
    """
    Install an OpenTelemetry SDK tracer provider.

    Call once at application startup. Spans are exported over OTLP/HTTP when
    a collector endpoint is configured, otherwise to the console.

    Returns:
        True if tracing was initialized, False if disabled or unavailable
    """
    global _tracing_initialized
    if _tracing_initialized:
        return True

    config = config or get_tracing_config()

    if not config.enabled:
        logger.debug("Tracing disabled")
        return False

    try:
        from opentelemetry import trace
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

        if config.collector_endpoint:
            from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
            exporter = OTLPSpanExporter(endpoint=config.collector_endpoint)
            logger.info(f"Exporting spans to: {config.collector_endpoint}")
        else:
            exporter = ConsoleSpanExporter()
            logger.info("Exporting spans to console")

        provider = TracerProvider(resource=Resource.create({"service.name": config.service_name}))
        provider.add_span_processor(BatchSpanProcessor(exporter))
        trace.set_tracer_provider(provider)

        reset_tracer()
        _tracing_initialized = True
        return True

    except ImportError as e:
        logger.warning(f"OpenTelemetry not installed, tracing disabled: {e}")
        return False


def shutdown_tracing() -> None:
    """Flush pending spans and reset tracing state."""
    global _tracing_initialized

    if not _tracing_initialized:
        return

    from opentelemetry import trace

    provider = trace.get_tracer_provider()
    if hasattr(provider, "shutdown"):
        provider.shutdown()

    reset_tracer()
    reset_tracing_config()
    _tracing_initialized = False


__all__ = [
    # Initialization
    "init_tracing",
    "shutdown_tracing",
    # Config
    "TracingConfig",
    "get_tracing_config",
    "reset_tracing_config",
    # Tracer
    "get_tracer",
    "set_tracer",
    "reset_tracer",
    # Attributes
    "GEN_AI_SYSTEM",
    "GEN_AI_REQUEST_MODEL",
    "RETRIEVAL_MODE",
    "RETRIEVAL_LIMIT",
    "RETRIEVAL_THRESHOLD",
    "RETRIEVAL_BM25_WEIGHT",
    "RETRIEVAL_VECTOR_WEIGHT",
    "RETRIEVAL_QUERY",
    "RETRIEVAL_RESULT_COUNT",
    "RETRIEVAL_TOP_SCORE",
    "INGEST_CHUNK_SIZE",
    "INGEST_IMPORTED",
    "INGEST_FAILED",
    "INGEST_DOCUMENT_ID",
    # Helpers
    "search_attributes",
    "provider_attributes",
]
