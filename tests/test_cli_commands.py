"""
Unit Tests for CLI Commands

Tests the rag-kb entry point against an in-memory knowledge base.
main() takes a kb_factory, so no database or model is needed.

PATTERNS:
---------
1. Inject the knowledge base instead of building it from env
2. Test CLI argument parsing
3. Verify exit codes
4. Test error handling
"""

import json
from unittest.mock import patch, MagicMock

import pytest

from rag_knowledge_base import KnowledgeBase
from rag_knowledge_base.cli import commands
from rag_knowledge_base.core import StoreConnectionError
from rag_knowledge_base.embeddings import MockEmbeddings
from rag_knowledge_base.retrieval import InMemoryDocumentStore


@pytest.fixture
def kb():
    return KnowledgeBase(InMemoryDocumentStore(dimensions=16), MockEmbeddings(dimensions=16))


@pytest.fixture(autouse=True)
def no_dotenv():
    with patch.object(commands, "_load_env"):
        yield


def _run(argv, kb):
    return commands.main(argv, kb_factory=lambda: kb)


# ---------------------------------------------------------------------------
# PARSER
# ---------------------------------------------------------------------------


class TestBuildParser:
    """Argument parsing."""

    def test_search_defaults(self):
        args = commands.build_parser().parse_args(["search", "loyal pets"])

        assert args.query == "loyal pets"
        assert args.mode == "hybrid"
        assert args.limit == 5
        assert args.threshold == 0.05
        assert args.bm25_weight == 0.3
        assert args.vector_weight == 0.7
        assert args.json is False

    def test_import_options(self):
        args = commands.build_parser().parse_args(
            ["import", "data.csv", "--delimiter", ";", "--encoding", "latin-1", "--no-validate"]
        )
        assert args.file == "data.csv"
        assert args.delimiter == ";"
        assert args.encoding == "latin-1"
        assert args.no_validate is True

    def test_unknown_mode_rejected(self):
        with pytest.raises(SystemExit):
            commands.build_parser().parse_args(["search", "q", "--mode", "semantic"])

    def test_command_required(self):
        with pytest.raises(SystemExit):
            commands.build_parser().parse_args([])


# ---------------------------------------------------------------------------
# COMMANDS
# ---------------------------------------------------------------------------


class TestImportCommand:
    def test_all_rows_imported(self, kb, tmp_path, capsys):
        path = tmp_path / "docs.csv"
        path.write_text("title,content\nCats,Cats are pets.\nDogs,Dogs are loyal.\n")

        assert _run(["import", str(path)], kb) == 0
        assert "Imported: 2" in capsys.readouterr().out
        assert kb.get_document_count() == 2

    def test_failed_rows_exit_1(self, kb, tmp_path, capsys):
        path = tmp_path / "docs.csv"
        path.write_text("title;content\nCats;Cats are pets.\nEmpty;\n")

        assert _run(["import", str(path), "--delimiter", ";"], kb) == 1
        out = capsys.readouterr().out
        assert "Failed:   1" in out
        assert "Line 3" in out

    def test_missing_file(self, kb, tmp_path, capsys):
        assert _run(["import", str(tmp_path / "missing.csv")], kb) == 1
        assert "File not found" in capsys.readouterr().err


class TestSearchCommand:
    def test_json_output(self, kb, capsys):
        kb.add("Dogs are loyal.", title="Dogs", doc_id="dogs")
        kb.add("Fish live in water.", title="Fish", doc_id="fish")

        assert _run(["search", "dogs", "--mode", "lexical", "--json"], kb) == 0
        results = json.loads(capsys.readouterr().out)

        assert [r["id"] for r in results] == ["dogs"]
        assert results[0]["rank"] == 1
        assert results[0]["vector_score"] is None

    def test_text_output(self, kb, capsys):
        kb.add("Dogs are loyal.", title="Dogs")

        assert _run(["search", "dogs", "--mode", "lexical"], kb) == 0
        assert "1. [" in capsys.readouterr().out

    def test_no_results(self, kb, capsys):
        assert _run(["search", "owls", "--mode", "lexical"], kb) == 0
        assert "No results" in capsys.readouterr().out

    def test_invalid_limit(self, kb, capsys):
        assert _run(["search", "dogs", "--limit", "0"], kb) == 1
        assert capsys.readouterr().err.startswith("Error:")


class TestOtherCommands:
    def test_stats(self, kb, capsys):
        kb.add("Cats are pets.")

        assert _run(["stats"], kb) == 0
        out = capsys.readouterr().out
        assert "Documents:               1" in out
        assert '"connected": true' in out

    def test_remove(self, kb, capsys):
        doc_id = kb.add("Cats are pets.")
        assert _run(["remove", doc_id], kb) == 0
        assert kb.get_document_count() == 0

    def test_remove_not_found(self, kb, capsys):
        assert _run(["remove", "nonexistent"], kb) == 1
        assert "Not found" in capsys.readouterr().out

    def test_init_schema(self, kb, capsys):
        assert _run(["init-schema"], kb) == 0
        assert "16 dimensions" in capsys.readouterr().out


# ---------------------------------------------------------------------------
# ERROR HANDLING
# ---------------------------------------------------------------------------


class TestErrorHandling:
    def test_retrieval_error_exit_1(self, capsys):
        def factory():
            raise StoreConnectionError("could not connect to server")

        assert commands.main(["stats"], kb_factory=factory) == 1
        assert "could not connect" in capsys.readouterr().err

    def test_keyboard_interrupt_exit_130(self, kb, capsys):
        with patch.object(commands, "run_stats", side_effect=KeyboardInterrupt):
            with patch.dict(commands.COMMANDS, {"stats": commands.run_stats}):
                assert _run(["stats"], kb) == 130
        assert "Interrupted" in capsys.readouterr().out

    def test_kb_closed_after_command(self, capsys):
        kb = MagicMock()
        kb.__enter__.return_value = kb
        kb.remove.return_value = True
        assert commands.main(["remove", "x"], kb_factory=lambda: kb) == 0
        kb.__exit__.assert_called_once()
