"""Built-in text tools.

Every tool follows the handler contract ``(context, parameters) -> str``.
Tools read the task input from ``context.input`` unless a ``text``
parameter overrides it.
"""

from __future__ import annotations

from collections import Counter

from echoself.errors import ParameterValueError
from echoself.models.task import Parameters
from echoself.runtime.lexicon import STOPWORDS, ranked, sentences, tokens
from echoself.runtime.tools import HandlerContext


def _text(context: HandlerContext, parameters: Parameters) -> str:
    return parameters.get_str("text", context.input)


def echo(context: HandlerContext, parameters: Parameters) -> str:
    """Return the input unchanged."""
    return _text(context, parameters)


def word_count(context: HandlerContext, parameters: Parameters) -> str:
    """Count words, characters, and sentences in the input."""
    text = _text(context, parameters)
    return (
        f"{len(tokens(text))} words, {len(text)} characters, "
        f"{len(sentences(text))} sentences"
    )


def summarize(context: HandlerContext, parameters: Parameters) -> str:
    """Keep the leading sentences of the input."""
    max_sentences = parameters.get_int("max_sentences", 2)
    if max_sentences <= 0:
        raise ParameterValueError(
            "max_sentences must be positive",
            context={"parameter": "max_sentences", "value": max_sentences},
        )
    return " ".join(sentences(_text(context, parameters))[:max_sentences])


def keyword_extract(context: HandlerContext, parameters: Parameters) -> str:
    """Most frequent non-stopword terms, comma separated."""
    top_k = parameters.get_int("top_k", 5)
    terms = [
        w.lower()
        for w in tokens(_text(context, parameters))
        if w.lower() not in STOPWORDS and len(w) > 2
    ]
    return ", ".join(term for term, _ in ranked(Counter(terms), top_k))
