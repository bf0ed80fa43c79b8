"""Memory resonance graph.

Nodes are identified by a stable key (``file:<abs path>``, ``agent:<id>``,
``memory:<entry id>``). Pairwise edges are undirected and labelled with the
relation that produced them. Directories form hyperedges over the file
nodes they contain.

Not thread-safe on its own; the cognitive state tracker serialises access.
"""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Any, Literal

log = logging.getLogger(__name__)

NodeKind = Literal["file", "agent", "memory"]
EdgeKind = Literal["ancestry", "topic", "authored"]

# Stem tokens too generic to imply topical similarity
_STOP_TOKENS = frozenset(
    {"test", "tests", "main", "init", "index", "utils", "util", "readme", "setup", "config"}
)
_TOKEN_SPLIT = re.compile(r"[^a-z0-9]+")
_CAMEL = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def topic_tokens(path: str) -> frozenset[str]:
    """Tokens of a file stem used for topical similarity."""
    stem = PurePath(path).stem
    stem = _CAMEL.sub("_", stem).lower()
    return frozenset(
        tok for tok in _TOKEN_SPLIT.split(stem) if len(tok) >= 4 and tok not in _STOP_TOKENS
    )


@dataclass
class MemoryNode:
    key: str
    kind: NodeKind
    attrs: dict[str, Any] = field(default_factory=dict)


@dataclass
class FoldStats:
    nodes_created: int = 0
    nodes_merged: int = 0
    edges_created: int = 0


class MemoryGraph:
    """Nodes, labelled pairwise edges, and directory hyperedges."""

    def __init__(self, *, link_siblings: bool = True, link_topics: bool = True) -> None:
        self._nodes: dict[str, MemoryNode] = {}
        self._edges: dict[tuple[str, str], EdgeKind] = {}
        self._hyperedges: dict[str, set[str]] = defaultdict(set)
        self._topic_index: dict[str, set[str]] = defaultdict(set)
        self._link_siblings = link_siblings
        self._link_topics = link_topics

    # ── Queries ──────────────────────────────────────────────────────

    @property
    def node_count(self) -> int:
        return len(self._nodes)

    @property
    def edge_count(self) -> int:
        return len(self._edges)

    @property
    def hyperedge_count(self) -> int:
        return len(self._hyperedges)

    def get(self, key: str) -> MemoryNode | None:
        return self._nodes.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self._nodes

    def neighbours(self, key: str) -> set[str]:
        return {b if a == key else a for (a, b) in self._edges if key in (a, b)}

    def edge_kind(self, a: str, b: str) -> EdgeKind | None:
        return self._edges.get(self._edge_key(a, b))

    def hyperedge(self, directory: str) -> set[str]:
        return set(self._hyperedges.get(directory, set()))

    # ── Mutation ─────────────────────────────────────────────────────

    def add_edge(self, a: str, b: str, kind: EdgeKind) -> bool:
        """Add an undirected edge; returns False if it already existed."""
        if a == b:
            return False
        key = self._edge_key(a, b)
        if key in self._edges:
            return False
        self._edges[key] = kind
        return True

    def upsert(self, key: str, kind: NodeKind, **attrs: Any) -> bool:
        """Insert or merge a node; returns True when newly created."""
        node = self._nodes.get(key)
        if node is not None:
            node.attrs.update(attrs)
            return False
        self._nodes[key] = MemoryNode(key=key, kind=kind, attrs=dict(attrs))
        return True

    def fold_files(self, files: list[dict[str, Any]]) -> FoldStats:
        """Merge salient files into the graph.

        Each item needs ``abs_path`` and ``parent`` (absolute directory);
        remaining keys become node attributes. New nodes are linked to
        existing file nodes in the same directory and to nodes sharing a
        stem topic token.
        """
        stats = FoldStats()
        for item in files:
            abs_path = item["abs_path"]
            parent = item["parent"]
            key = f"file:{abs_path}"
            attrs = {k: v for k, v in item.items() if k not in ("abs_path",)}
            if not self.upsert(key, "file", **attrs):
                stats.nodes_merged += 1
                continue
            stats.nodes_created += 1

            siblings = self._hyperedges[parent]
            if self._link_siblings:
                for other in sorted(siblings):
                    if self.add_edge(key, other, "ancestry"):
                        stats.edges_created += 1
            siblings.add(key)

            tokens = topic_tokens(abs_path)
            if self._link_topics:
                related: set[str] = set()
                for tok in tokens:
                    related |= self._topic_index[tok]
                for other in sorted(related):
                    if self.add_edge(key, other, "topic"):
                        stats.edges_created += 1
            for tok in tokens:
                self._topic_index[tok].add(key)

        log.debug(
            "memory_graph.folded created=%d merged=%d edges=%d total_nodes=%d",
            stats.nodes_created,
            stats.nodes_merged,
            stats.edges_created,
            len(self._nodes),
        )
        return stats

    def record_memory(self, agent_id: str, entry_id: str, **attrs: Any) -> int:
        """Add an agent's memory entry linked to its agent node.

        Returns the number of nodes created (0-2).
        """
        created = 0
        agent_key = f"agent:{agent_id}"
        if self.upsert(agent_key, "agent", agent_id=agent_id):
            created += 1
        memory_key = f"memory:{entry_id}"
        if self.upsert(memory_key, "memory", agent_id=agent_id, **attrs):
            created += 1
        self.add_edge(agent_key, memory_key, "authored")
        return created

    def forget_memory(self, entry_id: str) -> bool:
        """Drop a memory node and its edges; returns False if it was absent."""
        key = f"memory:{entry_id}"
        if self._nodes.pop(key, None) is None:
            return False
        for edge in [e for e in self._edges if key in e]:
            del self._edges[edge]
        return True

    @staticmethod
    def _edge_key(a: str, b: str) -> tuple[str, str]:
        return (a, b) if a <= b else (b, a)
