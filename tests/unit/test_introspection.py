"""Tests for the recursive introspection and salience engine."""

from __future__ import annotations

import math
import os

import pytest

from echoself.config import IntrospectionConfig
from echoself.errors import InvalidWeightError, PathNotFoundError
from echoself.runtime.introspection import (
    IntrospectionEngine,
    attention_threshold,
    coherence_signal,
    novelty_signal,
    quantile,
    salience_score,
)

_TREE = {
    "README.md": 1,
    "pyproject.toml": 30,
    "src/pkg/engine.py": 2,
    "src/pkg/engine_utils.py": 400,
    "src/pkg/models/agent.py": 5,
    "docs/guide.md": 900,
    "data/sample.csv": 2000,
    "assets/logo.png": 3000,
    ".git/HEAD": 0,
}


class TestSignals:
    def test_coherence_prefers_code_near_root(self):
        assert coherence_signal("main.py", 0) > coherence_signal("pkg/deep/x.py", 2)
        assert coherence_signal("x.py", 0) > coherence_signal("x.png", 0)

    def test_coherence_is_bounded(self):
        assert coherence_signal("main.py", 0) <= 1.0
        assert coherence_signal("blob.bin", 50) >= 0.0

    def test_novelty_halves_per_half_life(self):
        assert novelty_signal(100.0, 100.0, 10.0) == 1.0
        assert novelty_signal(90.0, 100.0, 10.0) == pytest.approx(0.5)

    def test_salience_monotone_in_weights(self):
        c, n = 0.7, 0.3
        base = salience_score(c, n, 0.4, 0.4)
        assert salience_score(c, n, 0.8, 0.4) >= base
        assert salience_score(c, n, 0.4, 0.8) >= base
        assert salience_score(c, n, 0.0, 0.0) == 0.0


class TestThreshold:
    def test_quantile_interpolates(self):
        assert quantile([4.0, 1.0, 3.0, 2.0], 0.5) == pytest.approx(2.5)
        assert quantile([7.0], 0.9) == 7.0

    def test_empty_scores(self):
        assert attention_threshold([], 0.75) == 0.0

    def test_single_file_is_salient(self):
        assert attention_threshold([0.42], 0.75) == 0.42

    def test_flat_distribution_admits_everything(self):
        assert attention_threshold([0.3, 0.3, 0.3], 0.75) == 0.3

    def test_small_corpus_lowers_effective_percentile(self):
        scores = [0.2, 0.9]
        threshold = attention_threshold(scores, 0.75)
        assert 0.2 < threshold < quantile(scores, 0.75)

    def test_max_salient_raises_cutoff(self):
        scores = [0.1, 0.2, 0.3, 0.4, 0.5]
        assert attention_threshold(scores, 0.0, max_salient=2) == 0.4

    def test_max_salient_keeps_ties(self):
        scores = [0.1, 0.4, 0.4, 0.4, 0.5]
        threshold = attention_threshold(scores, 0.0, max_salient=2)
        assert sum(1 for s in scores if s >= threshold) == 4


class TestScan:
    def test_missing_root(self, tmp_path):
        with pytest.raises(PathNotFoundError):
            IntrospectionEngine().scan(tmp_path / "missing", 0.6, 0.4)

    @pytest.mark.parametrize("weights", [(-0.1, 0.4), (0.6, math.nan), (math.inf, 0.1)])
    def test_invalid_weights(self, tmp_path, weights):
        with pytest.raises(InvalidWeightError):
            IntrospectionEngine().scan(tmp_path, *weights)

    def test_empty_tree(self, tmp_path):
        outcome = IntrospectionEngine().scan(tmp_path, 0.6, 0.4)
        snap = outcome.snapshot
        assert snap.processed_files == 0
        assert snap.filtered_files == 0
        assert snap.salient_files == []
        assert snap.attention_threshold == 0.0
        assert outcome.tree_depth == 0
        assert outcome.coherence_score == 0.0

    def test_snapshot_invariants(self, make_tree):
        root = make_tree(_TREE)
        snap = IntrospectionEngine().scan(root, 0.6, 0.4).snapshot

        assert snap.processed_files == 8  # .git is ignored
        assert snap.processed_files == snap.filtered_files + len(snap.salient_files)
        assert 0.0 <= snap.attention_threshold <= 1.0
        assert snap.salient_files
        for f in snap.salient_files:
            assert f.salience >= snap.attention_threshold
        order = [(-f.salience, f.path) for f in snap.salient_files]
        assert order == sorted(order)
        assert not any(f.path.startswith(".git") for f in snap.salient_files)

    def test_rescan_is_idempotent(self, make_tree):
        root = make_tree(_TREE)
        engine = IntrospectionEngine()
        first = engine.scan(root, 0.6, 0.4).snapshot
        second = engine.scan(root, 0.6, 0.4).snapshot
        assert first == second

    def test_fresh_central_files_outrank_stale_assets(self, make_tree):
        root = make_tree(_TREE)
        snap = IntrospectionEngine().scan(root, 0.6, 0.4).snapshot
        paths = [f.path for f in snap.salient_files]
        assert "README.md" in paths
        assert "assets/logo.png" not in paths

    def test_flat_tree_is_fully_salient(self, make_tree):
        root = make_tree({"a.py": 0, "b.py": 0, "c.py": 0})
        snap = IntrospectionEngine().scan(root, 0.6, 0.4).snapshot
        assert [f.path for f in snap.salient_files] == ["a.py", "b.py", "c.py"]
        assert snap.filtered_files == 0

    def test_max_salient_caps_selection(self, make_tree):
        root = make_tree(_TREE)
        config = IntrospectionConfig(attention_percentile=0.0, max_salient=3)
        snap = IntrospectionEngine(config).scan(root, 0.6, 0.4).snapshot
        assert len(snap.salient_files) == 3

    def test_tree_depth_and_relative_paths(self, make_tree):
        root = make_tree(_TREE)
        config = IntrospectionConfig(attention_percentile=0.0, max_salient=None)
        outcome = IntrospectionEngine(config).scan(root, 0.6, 0.4)
        depths = {f.path: f.depth for f in outcome.snapshot.salient_files}
        assert depths["README.md"] == 0
        assert depths["src/pkg/models/agent.py"] == 3
        assert outcome.tree_depth == 3

    def test_single_file_root(self, make_tree):
        root = make_tree({"only.py": 0})
        outcome = IntrospectionEngine().scan(root / "only.py", 0.6, 0.4)
        assert outcome.snapshot.processed_files == 1
        assert [f.path for f in outcome.snapshot.salient_files] == ["only.py"]

    def test_unreadable_entries_are_skipped(self, make_tree):
        root = make_tree({"a.py": 0})
        os.symlink(root / "gone.py", root / "dangling.py")
        config = IntrospectionConfig(follow_symlinks=True)
        snap = IntrospectionEngine(config).scan(root, 0.6, 0.4).snapshot

        assert snap.processed_files == 1
        assert [s.path for s in snap.skipped_paths] == ["dangling.py"]
        assert snap.skipped_paths[0].reason

    def test_symlink_cycle_terminates(self, make_tree):
        root = make_tree({"pkg/a.py": 0})
        os.symlink(root, root / "pkg" / "loop")
        config = IntrospectionConfig(follow_symlinks=True)
        snap = IntrospectionEngine(config).scan(root, 0.6, 0.4).snapshot
        assert snap.processed_files >= 1

    def test_symlinks_not_followed_by_default(self, make_tree):
        root = make_tree({"pkg/a.py": 0})
        os.symlink(root / "pkg", root / "alias")
        snap = IntrospectionEngine().scan(root, 0.6, 0.4).snapshot
        assert snap.processed_files == 1
