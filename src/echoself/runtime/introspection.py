"""Recursive introspection: walk a tree, score files, apply attention.

Scoring
-------
Every processed file gets two signals in [0, 1]:

* coherence ``c = 0.6*category + 0.25/(1 + depth) + 0.15*anchor``
  (``category`` from the extension table below, ``anchor`` is 1 for
  well-known entry files such as README or pyproject.toml)
* novelty ``n = 2 ** (-(t_newest - t_file) / half_life)`` where
  ``t_newest`` is the newest mtime seen in this scan

and a salience ``s = tanh(w_c*c + w_n*n)``. With non-negative weights ``s``
is non-decreasing in both weights. Novelty is relative to the newest file in
the tree, not to wall-clock time, so rescanning an unchanged tree yields the
same scores.

Attention threshold
-------------------
``q_eff = q * (1 - 1/sqrt(N))`` and ``threshold = quantile(scores, q_eff)``
with linear interpolation. Small corpora get a lower effective percentile;
a single file is always salient. When ``max_salient`` is set and more files
would qualify, the threshold is raised to the ``max_salient``-th best score
(ties at the cutoff are kept). A flat score distribution admits every file.
"""

from __future__ import annotations

import logging
import math
import os
import stat
import time
from dataclasses import dataclass
from pathlib import Path

from echoself.config import IntrospectionConfig
from echoself.errors import InvalidWeightError, PathNotFoundError
from echoself.models.cognition import CognitiveSnapshot, SalientFile, SkippedPath

log = logging.getLogger(__name__)

# Signal mix inside the coherence score
_W_CATEGORY = 0.6
_W_CENTRALITY = 0.25
_W_ANCHOR = 0.15

_FLAT_SPREAD = 1e-9

_CATEGORY_WEIGHTS: dict[str, float] = {}
for _ext in (
    ".py", ".go", ".rs", ".c", ".h", ".cc", ".cpp", ".hpp", ".java", ".kt",
    ".js", ".ts", ".tsx", ".jsx", ".rb", ".swift", ".scala", ".cs", ".sh",
):
    _CATEGORY_WEIGHTS[_ext] = 1.0
for _ext in (
    ".toml", ".yaml", ".yml", ".json", ".ini", ".cfg", ".mod", ".sum",
    ".lock", ".gradle", ".mk", ".dockerfile",
):
    _CATEGORY_WEIGHTS[_ext] = 0.8
for _ext in (".md", ".rst", ".txt", ".adoc"):
    _CATEGORY_WEIGHTS[_ext] = 0.6
for _ext in (".csv", ".tsv", ".parquet", ".sql", ".xml", ".html", ".css"):
    _CATEGORY_WEIGHTS[_ext] = 0.4
_DEFAULT_CATEGORY = 0.2

_ANCHOR_NAMES = frozenset(
    {
        "readme", "readme.md", "readme.rst", "main.py", "__main__.py", "main.go",
        "pyproject.toml", "setup.py", "setup.cfg", "go.mod", "cargo.toml",
        "package.json", "makefile", "dockerfile",
    }
)


@dataclass(frozen=True)
class FileRecord:
    """A file reached by the walk."""

    rel_path: str
    abs_path: str
    parent: str
    depth: int
    mtime: float
    size: int


@dataclass(frozen=True)
class ScoredFile:
    record: FileRecord
    coherence: float
    novelty: float
    salience: float


@dataclass
class ScanOutcome:
    """Everything a scan produced, before folding into the memory graph."""

    snapshot: CognitiveSnapshot
    salient: list[ScoredFile]
    tree_depth: int
    coherence_score: float


def category_weight(path: str) -> float:
    name = os.path.basename(path).lower()
    if name in ("makefile", "dockerfile"):
        return 0.8
    return _CATEGORY_WEIGHTS.get(os.path.splitext(name)[1], _DEFAULT_CATEGORY)


def coherence_signal(rel_path: str, depth: int) -> float:
    anchor = 1.0 if os.path.basename(rel_path).lower() in _ANCHOR_NAMES else 0.0
    score = (
        _W_CATEGORY * category_weight(rel_path)
        + _W_CENTRALITY / (1 + depth)
        + _W_ANCHOR * anchor
    )
    return min(1.0, score)


def novelty_signal(mtime: float, newest: float, half_life_seconds: float) -> float:
    age = max(0.0, newest - mtime)
    return 2.0 ** (-age / half_life_seconds)


def salience_score(
    coherence: float,
    novelty: float,
    coherence_weight: float,
    novelty_weight: float,
) -> float:
    return math.tanh(coherence_weight * coherence + novelty_weight * novelty)


def quantile(values: list[float], q: float) -> float:
    """Linear-interpolation quantile of a non-empty list."""
    ordered = sorted(values)
    if len(ordered) == 1:
        return ordered[0]
    pos = q * (len(ordered) - 1)
    lo = math.floor(pos)
    hi = min(lo + 1, len(ordered) - 1)
    frac = pos - lo
    return ordered[lo] + (ordered[hi] - ordered[lo]) * frac


def attention_threshold(
    scores: list[float],
    percentile: float,
    max_salient: int | None = None,
) -> float:
    """Dynamic cutoff over a score distribution (see module docstring)."""
    if not scores:
        return 0.0
    lowest, highest = min(scores), max(scores)
    if highest - lowest < _FLAT_SPREAD:
        return lowest
    q_eff = percentile * (1.0 - 1.0 / math.sqrt(len(scores)))
    threshold = quantile(scores, q_eff)
    if max_salient is not None:
        qualifying = sum(1 for s in scores if s >= threshold)
        if qualifying > max_salient:
            threshold = sorted(scores, reverse=True)[max_salient - 1]
    return threshold


class IntrospectionEngine:
    """Scans a directory tree and ranks files by salience.

    ``scan`` is synchronous and read-only; callers run it in a worker thread.
    """

    def __init__(self, config: IntrospectionConfig | None = None) -> None:
        self._config = config or IntrospectionConfig()
        self._ignore = frozenset(self._config.ignore_dirs)

    def scan(
        self,
        root: str | os.PathLike[str],
        coherence_weight: float,
        novelty_weight: float,
    ) -> ScanOutcome:
        """Walk ``root``, score every file, and keep the salient ones."""
        for name, weight in (("coherence_weight", coherence_weight), ("novelty_weight", novelty_weight)):
            if not math.isfinite(weight) or weight < 0:
                raise InvalidWeightError(
                    f"{name} must be a finite non-negative number, got {weight}",
                    context={name: weight},
                )

        root_path = Path(root)
        if not root_path.exists():
            raise PathNotFoundError(
                f"introspection root '{root_path}' does not exist",
                context={"root": str(root_path)},
            )

        start = time.monotonic()
        root_abs = root_path.resolve()
        records, skipped = self._walk(root_abs)
        scored = self._score(records, coherence_weight, novelty_weight)

        threshold = attention_threshold(
            [s.salience for s in scored],
            self._config.attention_percentile,
            self._config.max_salient,
        )
        salient = sorted(
            (s for s in scored if s.salience >= threshold),
            key=lambda s: (-s.salience, s.record.rel_path),
        )

        snapshot = CognitiveSnapshot(
            processed_files=len(scored),
            filtered_files=len(scored) - len(salient),
            attention_threshold=threshold,
            salient_files=[
                SalientFile(
                    path=s.record.rel_path,
                    salience=s.salience,
                    coherence=s.coherence,
                    novelty=s.novelty,
                    depth=s.record.depth,
                )
                for s in salient
            ],
            skipped_paths=skipped,
        )
        tree_depth = max((s.record.depth for s in salient), default=0)
        coherence_score = (
            sum(s.coherence for s in salient) / len(salient) if salient else 0.0
        )

        log.info(
            "introspection.scanned root=%s processed=%d salient=%d filtered=%d "
            "skipped=%d threshold=%.3f elapsed_ms=%.1f",
            root_abs,
            snapshot.processed_files,
            len(salient),
            snapshot.filtered_files,
            len(skipped),
            threshold,
            (time.monotonic() - start) * 1000,
        )
        return ScanOutcome(
            snapshot=snapshot,
            salient=salient,
            tree_depth=tree_depth,
            coherence_score=coherence_score,
        )

    # ── Walk ─────────────────────────────────────────────────────────

    def _walk(self, root: Path) -> tuple[list[FileRecord], list[SkippedPath]]:
        records: list[FileRecord] = []
        skipped: list[SkippedPath] = []
        follow = self._config.follow_symlinks

        if root.is_file():
            try:
                st = root.stat()
            except OSError as e:
                skipped.append(SkippedPath(path=root.name, reason=_reason(e)))
                return records, skipped
            records.append(
                FileRecord(
                    rel_path=root.name,
                    abs_path=str(root),
                    parent=str(root.parent),
                    depth=0,
                    mtime=st.st_mtime,
                    size=st.st_size,
                )
            )
            return records, skipped

        # (absolute dir, relative dir parts)
        stack: list[tuple[str, tuple[str, ...]]] = [(str(root), ())]
        seen_dirs: set[tuple[int, int]] = set()
        while stack:
            current, parts = stack.pop()
            try:
                with os.scandir(current) as it:
                    entries = sorted(it, key=lambda e: e.name)
            except OSError as e:
                skipped.append(SkippedPath(path="/".join(parts) or ".", reason=_reason(e)))
                continue

            for entry in entries:
                rel_parts = (*parts, entry.name)
                rel = "/".join(rel_parts)
                try:
                    if entry.is_dir(follow_symlinks=follow):
                        if entry.name in self._ignore:
                            continue
                        if follow:
                            dir_st = entry.stat()
                            ident = (dir_st.st_dev, dir_st.st_ino)
                            if ident in seen_dirs:
                                continue
                            seen_dirs.add(ident)
                        stack.append((entry.path, rel_parts))
                        continue
                    st = entry.stat(follow_symlinks=follow)
                except OSError as e:
                    skipped.append(SkippedPath(path=rel, reason=_reason(e)))
                    continue
                if not stat.S_ISREG(st.st_mode):
                    continue
                records.append(
                    FileRecord(
                        rel_path=rel,
                        abs_path=entry.path,
                        parent=current,
                        depth=len(parts),
                        mtime=st.st_mtime,
                        size=st.st_size,
                    )
                )
        return records, skipped

    # ── Scoring ──────────────────────────────────────────────────────

    def _score(
        self,
        records: list[FileRecord],
        coherence_weight: float,
        novelty_weight: float,
    ) -> list[ScoredFile]:
        if not records:
            return []
        newest = max(r.mtime for r in records)
        half_life = self._config.novelty_half_life_hours * 3600.0
        scored: list[ScoredFile] = []
        for rec in records:
            c = coherence_signal(rec.rel_path, rec.depth)
            n = novelty_signal(rec.mtime, newest, half_life)
            scored.append(
                ScoredFile(
                    record=rec,
                    coherence=c,
                    novelty=n,
                    salience=salience_score(c, n, coherence_weight, novelty_weight),
                )
            )
        return scored


def _reason(exc: OSError) -> str:
    return exc.strerror or type(exc).__name__
