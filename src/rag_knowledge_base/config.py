"""
Knowledge Base Configuration

Loads store, embedding and ingestion settings from environment variables.
The CLI loads a .env file (python-dotenv) before the first get_config().
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from urllib.parse import quote

from rag_knowledge_base.core.errors import ConfigurationError
from rag_knowledge_base.retrieval.store import StoreConfig, STORE_MEMORY, STORE_POSTGRES


def _env_bool(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).lower() in ("true", "1", "yes")


def _env_number(name: str, default: str, cast: type) -> int | float:
    raw = os.environ.get(name, default)
    try:
        return cast(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None


def _connection_string_from_parts() -> str:
    """Build a libpq URL from DB_HOST / DB_PORT / DB_NAME / DB_USER / DB_PASSWORD / DB_SSL."""
    host = os.environ.get("DB_HOST", "localhost")
    port = os.environ.get("DB_PORT", "5432")
    name = os.environ.get("DB_NAME", "rag")
    user = os.environ.get("DB_USER", "postgres")
    password = os.environ.get("DB_PASSWORD", "")

    auth = quote(user, safe="")
    if password:
        auth += ":" + quote(password, safe="")
    url = f"postgresql://{auth}@{host}:{port}/{name}"
    if _env_bool("DB_SSL"):
        url += "?sslmode=require"
    return url


@dataclass
class KnowledgeBaseConfig:
    """Configuration for a knowledge base instance.

    Environment Variables:
        DATABASE_URL: Full connection string (takes precedence over DB_*)
        DB_HOST, DB_PORT, DB_NAME, DB_USER, DB_PASSWORD, DB_SSL: Connection parts
        EMBEDDING_BACKEND: "local", "remote" or "mock" (default: local)
        EMBEDDING_MODEL: Model name (backend default if empty)
        OPENAI_API_KEY: API key for the remote backend
        EMBEDDING_TIMEOUT: Remote request timeout in seconds (default: 30)
        KB_STORE: "postgres" or "memory" (default: postgres)
        KB_POOL_SIZE: Max pooled connections (default: 10)
        KB_STATEMENT_TIMEOUT_MS: Per-transaction statement timeout (default: 30000)
        KB_CHUNK_SIZE: Batch-import chunk size (backend default if empty)
    """

    connection_string: str = "postgresql://postgres@localhost:5432/rag"
    embedding_backend: str = "local"
    embedding_model: str | None = None
    openai_api_key: str | None = None
    embedding_timeout: float = 30.0
    store_kind: str = STORE_POSTGRES
    pool_size: int = 10
    statement_timeout_ms: int = 30_000
    chunk_size: int | None = None

    @classmethod
    def from_env(cls) -> "KnowledgeBaseConfig":
        """Load config from environment variables."""
        chunk_size = os.environ.get("KB_CHUNK_SIZE")
        config = cls(
            connection_string=os.environ.get("DATABASE_URL") or _connection_string_from_parts(),
            embedding_backend=os.environ.get("EMBEDDING_BACKEND", "local").strip().lower(),
            embedding_model=os.environ.get("EMBEDDING_MODEL") or None,
            openai_api_key=os.environ.get("OPENAI_API_KEY") or None,
            embedding_timeout=_env_number("EMBEDDING_TIMEOUT", "30", float),
            store_kind=os.environ.get("KB_STORE", STORE_POSTGRES).strip().lower(),
            pool_size=_env_number("KB_POOL_SIZE", "10", int),
            statement_timeout_ms=_env_number("KB_STATEMENT_TIMEOUT_MS", "30000", int),
            chunk_size=_env_number("KB_CHUNK_SIZE", chunk_size, int) if chunk_size else None,
        )
        config.validate()
        return config

    def validate(self) -> None:
        if self.store_kind not in (STORE_POSTGRES, STORE_MEMORY):
            raise ConfigurationError(
                f"KB_STORE must be '{STORE_POSTGRES}' or '{STORE_MEMORY}', got '{self.store_kind}'"
            )
        if self.pool_size < 1:
            raise ConfigurationError("KB_POOL_SIZE must be at least 1")
        if self.chunk_size is not None and self.chunk_size < 1:
            raise ConfigurationError("KB_CHUNK_SIZE must be at least 1")

    def provider_options(self) -> dict:
        """Constructor options for the configured embedding backend."""
        if self.embedding_backend == "remote":
            return {"api_key": self.openai_api_key, "timeout": self.embedding_timeout}
        return {}

    def store_config(self, embedding_dim: int) -> StoreConfig:
        return StoreConfig(
            connection_string=self.connection_string,
            embedding_dim=embedding_dim,
            pool_size=self.pool_size,
            statement_timeout_ms=self.statement_timeout_ms,
        )


# Global config singleton
_config: KnowledgeBaseConfig | None = None


def get_config() -> KnowledgeBaseConfig:
    """Get the global config (lazy-loaded from env)."""
    global _config
    if _config is None:
        _config = KnowledgeBaseConfig.from_env()
    return _config


def reset_config() -> None:
    """Reset config (useful for testing)."""
    global _config
    _config = None
