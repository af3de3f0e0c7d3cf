"""
CLI commands - thin wrappers around the KnowledgeBase contract.

Each command follows a consistent pattern:
1. Parse arguments
2. Load environment
3. Build the knowledge base from config
4. Print results
5. Return exit code (0 ok, 1 failure, 130 interrupted)
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Callable, Sequence

from rag_knowledge_base.core.deadline import shutdown_deadline_pool
from rag_knowledge_base.core.errors import RetrievalError
from rag_knowledge_base.knowledge_base import KnowledgeBase, create_knowledge_base
from rag_knowledge_base.observability import init_tracing, shutdown_tracing
from rag_knowledge_base.retrieval.scoring import MODE_HYBRID, MODE_LEXICAL, MODE_VECTOR

logger = logging.getLogger(__name__)


def _load_env() -> None:
    """Load environment variables from .env file."""
    from dotenv import load_dotenv

    load_dotenv()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# COMMANDS
# ---------------------------------------------------------------------------


def run_init_schema(kb: KnowledgeBase, args: argparse.Namespace) -> int:
    """Create tables and indexes."""
    kb.create_schema()
    print(f"Schema ready ({kb.dimensions} dimensions)")
    return 0


def run_import(kb: KnowledgeBase, args: argparse.Namespace) -> int:
    """Import a delimited file."""
    result = kb.add_batch(
        args.file,
        delimiter=args.delimiter,
        encoding=args.encoding,
        validate_text=not args.no_validate,
    )

    print("=" * 60)
    print("IMPORT")
    print("=" * 60)
    print(f"Imported: {result.imported}")
    print(f"Failed:   {result.failed}")
    for error in result.errors:
        print(f"  Error: {error}")
    if result.errors_truncated:
        print(f"  ... {result.error_count - len(result.errors)} more")

    return 0 if result.success else 1


def run_search(kb: KnowledgeBase, args: argparse.Namespace) -> int:
    """Search and print ranked results."""
    results = kb.search(
        args.query,
        mode=args.mode,
        limit=args.limit,
        threshold=args.threshold,
        bm25_weight=args.bm25_weight,
        vector_weight=args.vector_weight,
    )

    if args.json:
        print(json.dumps([r.to_dict() for r in results], indent=2, ensure_ascii=False))
        return 0

    if not results:
        print("No results")
        return 0

    for result in results:
        print(f"{result.rank}. [{result.score:.3f}] {result.title or result.id}")
        if result.lexical_score is not None or result.vector_score is not None:
            parts = []
            if result.vector_score is not None:
                parts.append(f"vector {result.vector_score:.3f}")
            if result.lexical_score is not None:
                parts.append(f"bm25 {result.lexical_score:.3f}")
            print(f"   {', '.join(parts)}")
        print(f"   {result.excerpt}")
    return 0


def run_stats(kb: KnowledgeBase, args: argparse.Namespace) -> int:
    """Print corpus statistics and backend status."""
    stats = kb.get_stats()
    print(f"Documents:               {stats.total_documents}")
    print(f"Average document length: {stats.average_document_length:.1f}")
    if stats.updated_at is not None:
        print(f"Updated at:              {stats.updated_at.isoformat()}")
    print(json.dumps(kb.status(), indent=2, default=str))
    return 0


def run_remove(kb: KnowledgeBase, args: argparse.Namespace) -> int:
    """Remove a document by id."""
    if kb.remove(args.id):
        print(f"Removed {args.id}")
        return 0
    print(f"Not found: {args.id}")
    return 1


COMMANDS: dict[str, Callable[[KnowledgeBase, argparse.Namespace], int]] = {
    "init-schema": run_init_schema,
    "import": run_import,
    "search": run_search,
    "stats": run_stats,
    "remove": run_remove,
}


# ---------------------------------------------------------------------------
# PARSER
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rag-kb",
        description="Hybrid BM25 + vector knowledge base",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  rag-kb init-schema
  rag-kb import products.csv --delimiter ';'
  rag-kb search "loyal pets" --mode hybrid --limit 3
  rag-kb remove doc_1234
        """,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-schema", help="Create tables and indexes")

    imp = sub.add_parser("import", help="Import a delimited file")
    imp.add_argument("file", help="Path to CSV/TSV file")
    imp.add_argument("--delimiter", default=",", help="Field delimiter (default: ,)")
    imp.add_argument("--encoding", default="utf-8", help="File encoding (default: utf-8)")
    imp.add_argument(
        "--no-validate",
        action="store_true",
        help="Skip rows without content instead of reporting them",
    )

    search = sub.add_parser("search", help="Search documents")
    search.add_argument("query", help="Query text")
    search.add_argument(
        "--mode", choices=[MODE_VECTOR, MODE_LEXICAL, MODE_HYBRID], default=MODE_HYBRID
    )
    search.add_argument("--limit", type=int, default=5)
    search.add_argument("--threshold", type=float, default=0.05)
    search.add_argument("--bm25-weight", type=float, default=0.3)
    search.add_argument("--vector-weight", type=float, default=0.7)
    search.add_argument("--json", action="store_true", help="Print results as JSON")

    sub.add_parser("stats", help="Show corpus statistics")

    remove = sub.add_parser("remove", help="Remove a document")
    remove.add_argument("id", help="Document id")

    return parser


def main(
    argv: Sequence[str] | None = None,
    kb_factory: Callable[[], KnowledgeBase] = create_knowledge_base,
) -> int:
    """
    Main CLI entry point with subcommands.

    Usage:
        rag-kb init-schema
        rag-kb import FILE [--delimiter D] [--encoding E] [--no-validate]
        rag-kb search QUERY [--mode M] [--limit N] [--json]
        rag-kb stats
        rag-kb remove ID
    """
    _load_env()

    args = build_parser().parse_args(argv)
    _configure_logging(args.verbose)
    init_tracing()

    try:
        with kb_factory() as kb:
            return COMMANDS[args.command](kb, args)
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 130
    except RetrievalError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        shutdown_deadline_pool()
        shutdown_tracing()


if __name__ == "__main__":
    sys.exit(main())
