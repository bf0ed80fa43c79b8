from __future__ import annotations

import os
import time
from collections.abc import Callable
from pathlib import Path

import pytest

from echoself.runtime.backends import HeuristicAnalyzer
from echoself.runtime.engine import Engine
from echoself.runtime.tool_bootstrap import register_default_plugins, register_default_tools


@pytest.fixture
def engine() -> Engine:
    """Engine with the offline analyzer and no registered capabilities."""
    return Engine(analyzer=HeuristicAnalyzer())


@pytest.fixture
def loaded_engine(engine: Engine) -> Engine:
    """Engine with the built-in tools and plugins registered."""
    register_default_tools(engine)
    register_default_plugins(engine)
    return engine


@pytest.fixture
def make_tree(tmp_path: Path) -> Callable[[dict[str, float]], Path]:
    """Build a file tree from ``{relative path: age in hours}``."""

    def _make(files: dict[str, float]) -> Path:
        root = tmp_path / "tree"
        root.mkdir(exist_ok=True)
        now = time.time()
        for rel, age_hours in files.items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(f"# {rel}\n")
            ts = now - age_hours * 3600
            os.utime(path, (ts, ts))
        return root

    return _make
