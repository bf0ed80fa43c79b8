"""Built-in plugins: text processing and structural data analysis."""

from __future__ import annotations

from collections import Counter, defaultdict
from itertools import combinations

from echoself.errors import ParameterValueError
from echoself.models.task import Parameters
from echoself.runtime.lexicon import content_terms, ranked, sentences
from echoself.runtime.tools import HandlerContext


def _statistics(text: str) -> str:
    terms = content_terms(text)
    if not terms:
        return "statistics: no terms"
    avg = sum(len(t) for t in terms) / len(terms)
    return (
        f"statistics: {len(terms)} terms, {len(set(terms))} unique, "
        f"mean length {avg:.1f}"
    )


def _frequency(text: str) -> str:
    counts = Counter(content_terms(text))
    if not counts:
        return "frequency: no terms"
    return "frequency: " + ", ".join(f"{t}={n}" for t, n in ranked(counts, 5))


def _hypergraph(text: str) -> str:
    """Terms are nodes, each sentence is a hyperedge over its terms."""
    hyperedges = [frozenset(content_terms(s)) for s in sentences(text)]
    hyperedges = [h for h in hyperedges if h]
    if not hyperedges:
        return "hypergraph: empty"

    degree: Counter[str] = Counter()
    pairs: dict[str, set[str]] = defaultdict(set)
    for edge in hyperedges:
        degree.update(edge)
        for a, b in combinations(sorted(edge), 2):
            pairs[a].add(b)
            pairs[b].add(a)
    hub, hub_degree = ranked(degree, 1)[0]
    links = sum(len(v) for v in pairs.values()) // 2
    return (
        f"hypergraph: {len(degree)} nodes, {len(hyperedges)} hyperedges, "
        f"{links} pairwise links; hub '{hub}' (degree {hub_degree})"
    )


_ANALYSES = {
    "statistics": _statistics,
    "frequency": _frequency,
    "hypergraph_analysis": _hypergraph,
}


def data_analysis(context: HandlerContext, parameters: Parameters) -> str:
    """Structural analysis of the input selected by the ``type`` parameter."""
    kind = parameters.get_str("type", "statistics")
    analysis = _ANALYSES.get(kind)
    if analysis is None:
        raise ParameterValueError(
            f"unknown analysis type '{kind}'; expected one of {', '.join(sorted(_ANALYSES))}",
            context={"parameter": "type", "value": kind},
        )
    return analysis(parameters.get_str("text", context.input))


_OPERATIONS = {
    "uppercase": str.upper,
    "lowercase": str.lower,
    "title": str.title,
    "reverse": lambda s: s[::-1],
    "normalize": lambda s: " ".join(s.split()),
}


def text_processing(context: HandlerContext, parameters: Parameters) -> str:
    """Apply the ``operation`` parameter to the input text."""
    operation = parameters.get_str("operation", "normalize")
    func = _OPERATIONS.get(operation)
    if func is None:
        raise ParameterValueError(
            f"unknown operation '{operation}'; expected one of {', '.join(sorted(_OPERATIONS))}",
            context={"parameter": "operation", "value": operation},
        )
    return func(parameters.get_str("text", context.input))
