"""
Span plumbing for searches, imports and embedding calls.

Instrumented code only ever calls get_tracer().start_span(...), then
span.set_attribute(...) or span.fail(exc). Whether spans reach a collector
is decided once, here, from TracingConfig and the installed OTel provider.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, ContextManager, Iterator, Protocol


class SpanProtocol(Protocol):
    def set_attribute(self, key: str, value: Any) -> None:
        ...

    def fail(self, exception: BaseException) -> None:
        """Attach the exception and mark the span as errored."""
        ...


class TracerProtocol(Protocol):
    def start_span(
        self, name: str, attributes: dict[str, Any] | None = None
    ) -> ContextManager[SpanProtocol]:
        ...


# ---------------------------------------------------------------------------
# TRACING OFF
# ---------------------------------------------------------------------------


class NoOpSpan:
    def set_attribute(self, key: str, value: Any) -> None:
        pass

    def fail(self, exception: BaseException) -> None:
        pass


class NoOpTracer:
    """Used whenever tracing is disabled or no SDK provider is installed."""

    @contextmanager
    def start_span(self, name: str, attributes: dict[str, Any] | None = None) -> Iterator[NoOpSpan]:
        yield NoOpSpan()


# ---------------------------------------------------------------------------
# TRACING ON
# ---------------------------------------------------------------------------


class OTelSpan:
    def __init__(self, span: Any):
        self._span = span

    def set_attribute(self, key: str, value: Any) -> None:
        self._span.set_attribute(key, value)

    def fail(self, exception: BaseException) -> None:
        from opentelemetry.trace import StatusCode

        self._span.record_exception(exception)
        self._span.set_status(StatusCode.ERROR, str(exception))


class OTelTracer:
    def __init__(self, tracer: Any):
        self._tracer = tracer

    @contextmanager
    def start_span(self, name: str, attributes: dict[str, Any] | None = None) -> Iterator[OTelSpan]:
        # Exceptions escaping the block are recorded by OTel itself.
        with self._tracer.start_as_current_span(name, attributes=attributes) as span:
            yield OTelSpan(span)


# ---------------------------------------------------------------------------
# FACTORY
# ---------------------------------------------------------------------------


_tracer: TracerProtocol | None = None


def _build_tracer() -> TracerProtocol:
    from rag_knowledge_base.observability.config import get_tracing_config

    config = get_tracing_config()
    if not config.enabled:
        return NoOpTracer()

    try:
        from opentelemetry import trace
        from opentelemetry.sdk.trace import TracerProvider
    except ImportError:
        # tracing extra not installed
        return NoOpTracer()

    if not isinstance(trace.get_tracer_provider(), TracerProvider):
        # init_tracing() has not run
        return NoOpTracer()
    return OTelTracer(trace.get_tracer(config.service_name))


def get_tracer() -> TracerProtocol:
    """
    Return the process-wide tracer, building it on first use.

    OTelTracer when KB_TRACING_ENABLED is set and init_tracing() installed an
    SDK provider; NoOpTracer otherwise.
    """
    global _tracer
    if _tracer is None:
        _tracer = _build_tracer()
    return _tracer


def set_tracer(tracer: TracerProtocol | None) -> None:
    """Install a tracer explicitly (tests use this to capture spans)."""
    global _tracer
    _tracer = tracer


def reset_tracer() -> None:
    global _tracer
    _tracer = None
