"""
rag_knowledge_base - hybrid BM25 + vector retrieval over PostgreSQL/pgvector.

USAGE:
------
from rag_knowledge_base import create_knowledge_base

kb = create_knowledge_base()
kb.add("Cats are pets.", title="Cats")
for result in kb.search("pets", mode="hybrid", limit=3):
    print(result.rank, result.score, result.title)
"""

from rag_knowledge_base.config import KnowledgeBaseConfig, get_config, reset_config
from rag_knowledge_base.knowledge_base import KnowledgeBase, create_knowledge_base

__version__ = "0.1.0"

__all__ = [
    "KnowledgeBase",
    "create_knowledge_base",
    "KnowledgeBaseConfig",
    "get_config",
    "reset_config",
    "__version__",
]
