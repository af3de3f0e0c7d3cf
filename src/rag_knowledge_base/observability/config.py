"""
Tracing Configuration

Loads tracing settings from environment variables.
Tracing stays off unless explicitly enabled.
"""

import os
from dataclasses import dataclass


@dataclass
class TracingConfig:
    """Configuration for OpenTelemetry tracing.

    Environment Variables:
        KB_TRACING_ENABLED: Enable tracing (default: false)
        KB_SERVICE_NAME: Service name reported on spans (default: rag-knowledge-base)
        OTEL_EXPORTER_OTLP_ENDPOINT: OTLP/HTTP collector endpoint (optional,
            spans go to the console exporter if empty)
        KB_CAPTURE_QUERY_TEXT: Record raw query text on search spans (default: false)
    """

    enabled: bool = False
    service_name: str = "rag-knowledge-base"
    collector_endpoint: str | None = None
    capture_query_text: bool = False

    @classmethod
    def from_env(cls) -> "TracingConfig":
        """Load config from environment variables."""
        return cls(
            enabled=os.environ.get("KB_TRACING_ENABLED", "false").lower() in ("true", "1", "yes"),
            service_name=os.environ.get("KB_SERVICE_NAME", "rag-knowledge-base"),
            collector_endpoint=os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT") or None,
            capture_query_text=os.environ.get("KB_CAPTURE_QUERY_TEXT", "false").lower() in ("true", "1", "yes"),
        )


# Global config singleton
_config: TracingConfig | None = None


def get_tracing_config() -> TracingConfig:
    """Get the global tracing config (lazy-loaded from env)."""
    global _config
    if _config is None:
        _config = TracingConfig.from_env()
    return _config


def reset_tracing_config() -> None:
    """Reset config (useful for testing)."""
    global _config
    _config = None
