"""Word and sentence splitting shared by the analyzers and text tools."""

from __future__ import annotations

import re
from collections import Counter

_SENTENCE_END = re.compile(r"(?<=[.!?])\s+")
# Alphabetic terms; tokens additionally admit digits
_TERM = re.compile(r"[A-Za-z][A-Za-z'-]+")
_TOKEN = re.compile(r"[A-Za-z0-9][A-Za-z0-9'-]*")

STOPWORDS = frozenset(
    """a an and are as at be by for from has have in into is it its of on or
    that the this to was were will with using""".split()
)


def tokens(text: str) -> list[str]:
    """Every word-like token, case preserved."""
    return _TOKEN.findall(text)


def terms(text: str) -> list[str]:
    """Lower-cased alphabetic terms of at least two letters."""
    return [w.lower() for w in _TERM.findall(text)]


def content_terms(text: str, extra_stopwords: frozenset[str] = frozenset()) -> list[str]:
    return [t for t in terms(text) if t not in STOPWORDS and t not in extra_stopwords]


def sentences(text: str) -> list[str]:
    return [s for s in _SENTENCE_END.split(text.strip()) if s]


def ranked(counts: Counter[str], limit: int) -> list[tuple[str, int]]:
    """Most frequent first, alphabetical among equals."""
    return sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))[:limit]
