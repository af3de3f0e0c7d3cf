"""
CLI module - the `rag-kb` command-line interface.
"""

from rag_knowledge_base.cli.commands import (
    main,
    build_parser,
    run_init_schema,
    run_import,
    run_search,
    run_stats,
    run_remove,
)

__all__ = [
    "main",
    "build_parser",
    "run_init_schema",
    "run_import",
    "run_search",
    "run_stats",
    "run_remove",
]
