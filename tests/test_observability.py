"""
Unit Tests for Observability Module

Tests the OpenTelemetry integration with focus on:
1. Graceful degradation (NoOpTracer when disabled)
2. Configuration loading from environment
3. Span attributes emitted by search, import and embedding calls

PATTERNS:
---------
1. Tests work WITHOUT an OTel SDK provider installed
2. Environment variable handling tested with patch.dict
3. Spans captured by installing a recording tracer with set_tracer()
"""

from contextlib import contextmanager
from unittest.mock import patch, MagicMock

import pytest

from rag_knowledge_base.observability import init_tracing
from rag_knowledge_base.observability.config import (
    TracingConfig,
    get_tracing_config,
    reset_tracing_config,
)
from rag_knowledge_base.observability.tracer import (
    NoOpTracer,
    NoOpSpan,
    OTelTracer,
    get_tracer,
    reset_tracer,
    set_tracer,
)
from rag_knowledge_base.observability.attributes import (
    GEN_AI_REQUEST_MODEL,
    GEN_AI_SYSTEM,
    RETRIEVAL_MODE,
    RETRIEVAL_QUERY,
    provider_attributes,
    search_attributes,
)


class RecordingSpan:
    def __init__(self, name, attributes):
        self.name = name
        self.attributes = dict(attributes or {})
        self.status = None
        self.exceptions = []

    def set_attribute(self, key, value):
        self.attributes[key] = value

    def fail(self, exception):
        self.status = "error"
        self.exceptions.append(exception)


class RecordingTracer:
    """Keeps every span it starts."""

    def __init__(self):
        self.spans = []

    @contextmanager
    def start_span(self, name, attributes=None):
        span = RecordingSpan(name, attributes)
        self.spans.append(span)
        yield span

    def named(self, name):
        return [s for s in self.spans if s.name == name]


@pytest.fixture
def recorder():
    tracer = RecordingTracer()
    set_tracer(tracer)
    yield tracer
    reset_tracer()


# ---------------------------------------------------------------------------
# CONFIG TESTS
# ---------------------------------------------------------------------------


class TestTracingConfig:
    """Test configuration loading."""

    def setup_method(self):
        reset_tracing_config()

    def teardown_method(self):
        reset_tracing_config()

    def test_config_defaults(self):
        """Tracing is off and query text is not captured by default."""
        with patch.dict("os.environ", {}, clear=True):
            config = TracingConfig.from_env()

            assert config.enabled is False
            assert config.service_name == "rag-knowledge-base"
            assert config.collector_endpoint is None
            assert config.capture_query_text is False

    @pytest.mark.parametrize("value", ["true", "1", "YES"])
    def test_config_enabled_values(self, value):
        with patch.dict("os.environ", {"KB_TRACING_ENABLED": value}):
            assert TracingConfig.from_env().enabled is True

    def test_config_from_env(self):
        env = {
            "KB_SERVICE_NAME": "kb-worker",
            "OTEL_EXPORTER_OTLP_ENDPOINT": "http://collector:4318/v1/traces",
            "KB_CAPTURE_QUERY_TEXT": "true",
        }
        with patch.dict("os.environ", env):
            config = TracingConfig.from_env()

        assert config.service_name == "kb-worker"
        assert config.collector_endpoint == "http://collector:4318/v1/traces"
        assert config.capture_query_text is True

    def test_get_config_is_cached(self):
        assert get_tracing_config() is get_tracing_config()


# ---------------------------------------------------------------------------
# TRACER TESTS
# ---------------------------------------------------------------------------


class TestNoOpTracer:
    """Disabled tracing costs nothing and never fails."""

    def setup_method(self):
        reset_tracer()
        reset_tracing_config()

    def teardown_method(self):
        reset_tracer()
        reset_tracing_config()

    def test_disabled_returns_noop(self):
        with patch.dict("os.environ", {"KB_TRACING_ENABLED": "false"}):
            assert isinstance(get_tracer(), NoOpTracer)

    def test_enabled_without_provider_returns_noop(self):
        """Enabled tracing still degrades until init_tracing installs a provider."""
        with patch.dict("os.environ", {"KB_TRACING_ENABLED": "true"}):
            tracer = get_tracer()
        assert isinstance(tracer, NoOpTracer)

    def test_noop_span_accepts_everything(self):
        with NoOpTracer().start_span("x", attributes={"a": 1}) as span:
            assert isinstance(span, NoOpSpan)
            span.set_attribute("k", "v")
            span.fail(ValueError("boom"))

    def test_set_and_reset_tracer(self):
        custom = RecordingTracer()
        set_tracer(custom)
        assert get_tracer() is custom

        reset_tracer()
        assert get_tracer() is not custom

    def test_init_tracing_disabled(self):
        assert init_tracing(TracingConfig(enabled=False)) is False


class TestOTelTracer:
    """Wrapper over an OTel tracer; the SDK tracer is mocked."""

    def test_start_span_passes_name_and_attributes(self):
        otel = MagicMock()
        raw_span = otel.start_as_current_span.return_value.__enter__.return_value

        with OTelTracer(otel).start_span("kb.search", attributes={"retrieval.limit": 5}) as span:
            span.set_attribute("retrieval.result_count", 2)

        otel.start_as_current_span.assert_called_once_with(
            "kb.search", attributes={"retrieval.limit": 5}
        )
        raw_span.set_attribute.assert_called_once_with("retrieval.result_count", 2)

    def test_fail_records_and_marks_error(self):
        from opentelemetry.trace import StatusCode

        otel = MagicMock()
        raw_span = otel.start_as_current_span.return_value.__enter__.return_value
        error = ConnectionError("collector gone")

        with OTelTracer(otel).start_span("kb.import") as span:
            span.fail(error)

        raw_span.record_exception.assert_called_once_with(error)
        raw_span.set_status.assert_called_once_with(StatusCode.ERROR, "collector gone")


# ---------------------------------------------------------------------------
# ATTRIBUTE HELPERS
# ---------------------------------------------------------------------------


class TestAttributeHelpers:
    def test_search_attributes_omit_query_by_default(self):
        attrs = search_attributes("hybrid", 5, 0.05, 0.3, 0.7)
        assert attrs[RETRIEVAL_MODE] == "hybrid"
        assert RETRIEVAL_QUERY not in attrs

    def test_search_attributes_with_query(self):
        attrs = search_attributes("lexical", 5, 0.05, 0.3, 0.7, query="dogs")
        assert attrs[RETRIEVAL_QUERY] == "dogs"

    def test_provider_attributes(self):
        assert provider_attributes("openai", "text-embedding-3-small") == {
            GEN_AI_SYSTEM: "openai",
            GEN_AI_REQUEST_MODEL: "text-embedding-3-small",
        }
        assert provider_attributes("mock") == {GEN_AI_SYSTEM: "mock"}


# ---------------------------------------------------------------------------
# INSTRUMENTED OPERATIONS
# ---------------------------------------------------------------------------


class TestInstrumentedOperations:
    """Spans emitted by the knowledge base."""

    @pytest.fixture
    def kb(self):
        from rag_knowledge_base import KnowledgeBase
        from rag_knowledge_base.embeddings import MockEmbeddings
        from rag_knowledge_base.retrieval import InMemoryDocumentStore

        return KnowledgeBase(InMemoryDocumentStore(dimensions=16), MockEmbeddings(dimensions=16))

    def test_add_span(self, kb, recorder):
        doc_id = kb.add("Cats are pets.")

        (span,) = recorder.named("kb.add")
        assert span.attributes["ingest.document_id"] == doc_id

    def test_search_span(self, kb, recorder):
        kb.add("Dogs are loyal.")
        kb.search("dogs", mode="hybrid", limit=3)

        (span,) = recorder.named("kb.search")
        assert span.attributes["retrieval.mode"] == "hybrid"
        assert span.attributes["retrieval.limit"] == 3
        assert span.attributes["retrieval.result_count"] == 1
        assert "retrieval.query" not in span.attributes

    def test_search_span_captures_query_when_enabled(self, kb, recorder):
        reset_tracing_config()
        try:
            with patch.dict("os.environ", {"KB_CAPTURE_QUERY_TEXT": "true"}):
                kb.search("dogs", mode="lexical")
        finally:
            reset_tracing_config()

        (span,) = recorder.named("kb.search")
        assert span.attributes["retrieval.query"] == "dogs"

    def test_import_span(self, kb, recorder):
        kb.add_documents([{"content": "one"}, {"content": "two"}])

        (span,) = recorder.named("kb.import")
        assert span.attributes["ingest.imported"] == 2
        assert span.attributes["ingest.failed"] == 0

    def test_openai_call_span(self, recorder):
        from rag_knowledge_base.core import ProviderUnavailableError
        from rag_knowledge_base.embeddings import OpenAIEmbeddings
        from openai import OpenAIError

        client = MagicMock()
        client.embeddings.create.side_effect = OpenAIError("rate limited")
        provider = OpenAIEmbeddings(client=client)

        with pytest.raises(ProviderUnavailableError):
            provider.generate_embedding("hello")

        (span,) = recorder.named("embeddings.create")
        assert span.attributes[GEN_AI_SYSTEM] == "openai"
        assert span.status == "error"
        assert len(span.exceptions) == 1
