"""Register the built-in tools and plugins on an engine."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from echoself.tools import (
    data_analysis,
    echo,
    keyword_extract,
    summarize,
    text_processing,
    word_count,
)

if TYPE_CHECKING:
    from echoself.runtime.engine import Engine

log = logging.getLogger(__name__)

# (name, handler, category)
_BUILTIN_TOOLS = [
    ("echo", echo, "text"),
    ("word_count", word_count, "text"),
    ("summarize", summarize, "text"),
    ("keyword_extract", keyword_extract, "text"),
]

_BUILTIN_PLUGINS = [
    ("data_analysis", data_analysis, "analysis"),
    ("text_processing", text_processing, "text"),
]


def register_default_tools(engine: Engine) -> list[str]:
    """Register every built-in tool not already bound; returns the names added."""
    added = []
    for name, handler, category in _BUILTIN_TOOLS:
        if name in engine.available_tools():
            continue
        engine.register_tool(name, handler, category=category)
        added.append(name)
    log.info("tool_bootstrap.tools_registered count=%d tools=%s", len(added), added)
    return added


def register_default_plugins(engine: Engine) -> list[str]:
    """Register every built-in plugin not already bound; returns the names added."""
    added = []
    for name, handler, category in _BUILTIN_PLUGINS:
        if name in engine.available_plugins():
            continue
        engine.register_plugin(name, handler, category=category)
        added.append(name)
    log.info("tool_bootstrap.plugins_registered count=%d plugins=%s", len(added), added)
    return added
