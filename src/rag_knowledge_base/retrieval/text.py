"""Tokenisation shared by the lexical index, BM25 scoring and query parsing."""

from __future__ import annotations

import re
import unicodedata

TOKEN_RE = re.compile(r"\w+", re.UNICODE)


def tokenize(text: str | None) -> list[str]:
    """NFKC-normalised, case-folded word tokens, in document order."""
    if not text:
        return []
    normalized = unicodedata.normalize("NFKC", text).casefold()
    return TOKEN_RE.findall(normalized)


def query_terms(query: str) -> list[str]:
    """Distinct query tokens, first occurrence order."""
    return list(dict.fromkeys(tokenize(query)))
