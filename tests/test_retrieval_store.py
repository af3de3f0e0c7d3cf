"""
Unit Tests for Retrieval Store

Tests the Document model, the tokenizer and InMemoryDocumentStore.

PATTERNS:
---------
1. Test through the DocumentStore protocol interface
2. Use tiny hand-made vectors instead of a real embedding model
3. Verify statistics are recomputed with every committed write
"""

import numpy as np
import pytest

from rag_knowledge_base.core import (
    ConfigurationError,
    DimensionMismatchError,
    DocumentNotFoundError,
    DocumentStore,
    ValidationError,
)
from rag_knowledge_base.retrieval import (
    Document,
    InMemoryDocumentStore,
    PgVectorStore,
    StoreConfig,
    get_document_store,
    new_document_id,
    query_terms,
    tokenize,
)


# ---------------------------------------------------------------------------
# FIXTURES
# ---------------------------------------------------------------------------


def _vec(*values):
    return np.array(values, dtype=np.float32)


@pytest.fixture
def store():
    """Empty 3-dimensional store."""
    return InMemoryDocumentStore(dimensions=3)


@pytest.fixture
def store_with_docs(store):
    """Store holding three animal documents."""
    store.insert(Document(id="cats", content="Cats are pets.", embedding=_vec(1, 0, 0)))
    store.insert(Document(id="dogs", content="Dogs are loyal.", embedding=_vec(0, 1, 0)))
    store.insert(Document(id="fish", content="Fish live in water.", embedding=_vec(0, 0, 1)))
    return store


# ---------------------------------------------------------------------------
# TOKENIZER / DOCUMENT MODEL
# ---------------------------------------------------------------------------


class TestTokenizer:
    """Shared tokenisation for index and queries."""

    def test_casefold_and_punctuation(self):
        assert tokenize("Dogs are LOYAL, really!") == ["dogs", "are", "loyal", "really"]

    def test_unicode_words(self):
        assert tokenize("Straße Größe") == ["strasse", "grösse"]

    def test_empty(self):
        assert tokenize("") == []
        assert tokenize(None) == []

    def test_query_terms_are_distinct_in_order(self):
        assert query_terms("dogs cats Dogs") == ["dogs", "cats"]


class TestDocument:
    """Document dataclass."""

    def test_reindex(self):
        doc = Document(content="Cats are pets. Cats purr.")
        doc.reindex()

        assert doc.word_count == 5
        assert doc.term_frequencies()["cats"] == 2

    def test_generated_ids_are_unique(self):
        assert new_document_id() != new_document_id()
        assert new_document_id().startswith("doc_")

    def test_to_dict(self):
        doc = Document(id="d1", title="T", content="c", metadata={"k": "v"})
        data = doc.to_dict()

        assert data["id"] == "d1"
        assert data["metadata"] == {"k": "v"}
        assert "embedding" not in data


# ---------------------------------------------------------------------------
# BASIC OPERATIONS
# ---------------------------------------------------------------------------


class TestInMemoryDocumentStore:
    """InMemoryDocumentStore CRUD."""

    def test_satisfies_protocol(self, store):
        assert isinstance(store, DocumentStore)

    def test_insert_and_get_round_trip(self, store):
        doc_id = store.insert(
            Document(
                title="Cats",
                content="  Cats are pets.  ",
                metadata={"source": "test"},
                embedding=[0.1, 0.2, 0.3],
            )
        )
        fetched = store.get(doc_id)

        assert fetched.content == "  Cats are pets.  "
        assert fetched.title == "Cats"
        assert fetched.metadata == {"source": "test"}
        assert fetched.embedding.dtype == np.float32
        assert len(fetched.embedding) == store.dimensions
        assert fetched.created_at is not None

    def test_insert_assigns_id(self, store):
        doc = Document(content="x", embedding=_vec(1, 0, 0))
        doc_id = store.insert(doc)
        assert doc_id.startswith("doc_")
        assert doc.id == doc_id

    def test_get_returns_copy(self, store_with_docs):
        doc = store_with_docs.get("cats")
        doc.metadata["changed"] = True
        assert "changed" not in store_with_docs.get("cats").metadata

    def test_get_missing(self, store):
        assert store.get("nope") is None

    def test_rejects_wrong_dimension(self, store):
        with pytest.raises(DimensionMismatchError) as exc_info:
            store.insert(Document(content="x", embedding=[1.0, 2.0]))
        assert exc_info.value.expected == 3
        assert exc_info.value.actual == 2
        assert store.count() == 0

    def test_rejects_missing_embedding(self, store):
        with pytest.raises(ValidationError):
            store.insert(Document(content="x"))

    def test_rejects_blank_content(self, store):
        with pytest.raises(ValidationError):
            store.insert(Document(content="   ", embedding=_vec(1, 0, 0)))

    def test_insert_many_is_all_or_nothing(self, store):
        docs = [
            Document(content="good", embedding=_vec(1, 0, 0)),
            Document(content="bad", embedding=[1.0]),
        ]
        with pytest.raises(DimensionMismatchError):
            store.insert_many(docs)
        assert store.count() == 0

    def test_same_id_last_write_wins(self, store):
        store.insert(Document(id="d", content="first", embedding=_vec(1, 0, 0)))
        seq = store.get("d").seq
        store.insert(Document(id="d", content="second", embedding=_vec(0, 1, 0)))

        assert store.count() == 1
        assert store.get("d").content == "second"
        assert store.get("d").seq == seq

    def test_delete(self, store_with_docs):
        assert store_with_docs.delete("dogs") is True
        assert store_with_docs.get("dogs") is None
        assert store_with_docs.count() == 2

    def test_delete_missing_returns_false(self, store_with_docs):
        assert store_with_docs.delete("unknown") is False
        assert store_with_docs.count() == 3

    def test_update_content_reindexes(self, store_with_docs):
        store_with_docs.update("fish", content="Fish swim in the sea today.")
        doc = store_with_docs.get("fish")

        assert "sea" in doc.lexical_index
        assert doc.word_count == 6
        assert doc.updated_at >= doc.created_at

    def test_update_missing_raises(self, store):
        with pytest.raises(DocumentNotFoundError):
            store.update("nope", title="x")

    def test_update_rejects_wrong_dimension(self, store_with_docs):
        with pytest.raises(DimensionMismatchError):
            store_with_docs.update("cats", embedding=[1.0])

    def test_reset(self, store_with_docs):
        store_with_docs.reset()
        stats = store_with_docs.get_stats()

        assert store_with_docs.count() == 0
        assert stats.total_documents == 0
        assert stats.average_document_length == 0.0


# ---------------------------------------------------------------------------
# STATISTICS AND CANDIDATES
# ---------------------------------------------------------------------------


class TestCorpusStatistics:
    """Statistics follow every committed write."""

    def test_empty_store(self, store):
        stats = store.get_stats()
        assert stats.total_documents == 0
        assert stats.average_document_length == 0.0

    def test_after_inserts(self, store_with_docs):
        stats = store_with_docs.get_stats()
        # 3 + 3 + 4 words
        assert stats.total_documents == 3
        assert stats.average_document_length == pytest.approx(10 / 3)

    def test_after_delete(self, store_with_docs):
        store_with_docs.delete("fish")
        assert store_with_docs.get_stats().average_document_length == pytest.approx(3.0)

    def test_title_update_keeps_stats(self, store_with_docs):
        before = store_with_docs.get_stats()
        store_with_docs.update("cats", title="Cats")
        assert store_with_docs.get_stats() == before

    def test_failed_batch_leaves_stats(self, store_with_docs):
        before = store_with_docs.get_stats()
        with pytest.raises(DimensionMismatchError):
            store_with_docs.insert_many([Document(content="x y z w", embedding=[1.0])])
        assert store_with_docs.get_stats() == before


class TestCandidateReader:
    """Narrow read surface used by the scorer."""

    def test_all_candidates_in_creation_order(self, store_with_docs):
        assert [d.id for d in store_with_docs.read_candidates()] == ["cats", "dogs", "fish"]

    def test_candidates_by_term(self, store_with_docs):
        docs = store_with_docs.read_candidates(["dogs", "water"])
        assert [d.id for d in docs] == ["dogs", "fish"]

    def test_document_frequencies(self, store_with_docs):
        assert store_with_docs.document_frequencies(["are", "fish", "owl"]) == {
            "are": 2,
            "fish": 1,
            "owl": 0,
        }


# ---------------------------------------------------------------------------
# FACTORY
# ---------------------------------------------------------------------------


class TestGetDocumentStore:
    """Store factory."""

    def test_memory(self):
        store = get_document_store("memory", StoreConfig(embedding_dim=8))
        assert isinstance(store, InMemoryDocumentStore)
        assert store.dimensions == 8

    def test_postgres_is_lazy(self):
        store = get_document_store("postgres", StoreConfig(embedding_dim=8))
        assert isinstance(store, PgVectorStore)
        assert store.status() == {"connected": False}

    def test_unknown_kind(self):
        with pytest.raises(ConfigurationError):
            get_document_store("sqlite")
