"""
PostgreSQL schema for the document store.

Two tables:
- documents: content, JSONB metadata, pgvector embedding, TEXT[] lexical
  index (the tokenised content) and word_count
- corpus_stats: single row (id = 1) holding total_documents and
  average_document_length for BM25

Table names come from StoreConfig and are formatted into the statements;
they are never user input.
"""

from __future__ import annotations


def documents_ddl(table: str, dimensions: int, index_type: str = "hnsw") -> list[str]:
    if index_type == "ivfflat":
        vector_index = (
            f"CREATE INDEX IF NOT EXISTS {table}_embedding_idx ON {table} "
            f"USING ivfflat (embedding vector_cosine_ops) WITH (lists = 100)"
        )
    else:
        vector_index = (
            f"CREATE INDEX IF NOT EXISTS {table}_embedding_idx ON {table} "
            f"USING hnsw (embedding vector_cosine_ops) WITH (m = 16, ef_construction = 64)"
        )

    return [
        f"""
        CREATE TABLE IF NOT EXISTS {table} (
            id TEXT PRIMARY KEY,
            seq BIGSERIAL,
            title TEXT,
            content TEXT NOT NULL,
            metadata JSONB NOT NULL DEFAULT '{{}}'::jsonb,
            embedding vector({dimensions}) NOT NULL,
            lexical_index TEXT[] NOT NULL DEFAULT '{{}}',
            word_count INTEGER NOT NULL DEFAULT 0,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
        """,
        vector_index,
        f"CREATE INDEX IF NOT EXISTS {table}_lexical_idx ON {table} USING GIN (lexical_index)",
        f"CREATE INDEX IF NOT EXISTS {table}_metadata_idx ON {table} USING GIN (metadata)",
        f"CREATE INDEX IF NOT EXISTS {table}_seq_idx ON {table} (seq)",
    ]


def stats_ddl(table: str) -> list[str]:
    return [
        f"""
        CREATE TABLE IF NOT EXISTS {table} (
            id SMALLINT PRIMARY KEY DEFAULT 1 CHECK (id = 1),
            total_documents INTEGER NOT NULL DEFAULT 0,
            average_document_length DOUBLE PRECISION NOT NULL DEFAULT 0,
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
        """,
        f"INSERT INTO {table} (id) VALUES (1) ON CONFLICT (id) DO NOTHING",
    ]


def embedding_dimension_query() -> str:
    """pgvector stores the declared dimension in atttypmod."""
    return """
        SELECT atttypmod FROM pg_attribute
        WHERE attrelid = %s::regclass AND attname = 'embedding'
    """


def recompute_stats_sql(documents_table: str, stats_table: str) -> str:
    return f"""
        INSERT INTO {stats_table} (id, total_documents, average_document_length, updated_at)
        SELECT 1, count(*), COALESCE(avg(word_count), 0), now() FROM {documents_table}
        ON CONFLICT (id) DO UPDATE SET
            total_documents = EXCLUDED.total_documents,
            average_document_length = EXCLUDED.average_document_length,
            updated_at = EXCLUDED.updated_at
    """
