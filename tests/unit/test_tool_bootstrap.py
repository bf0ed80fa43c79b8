"""Tests for built-in tool/plugin registration."""

from __future__ import annotations

from echoself.runtime.tool_bootstrap import register_default_plugins, register_default_tools


def test_registers_builtin_tools(engine):
    added = register_default_tools(engine)
    assert added == ["echo", "word_count", "summarize", "keyword_extract"]
    assert engine.available_tools() == added


def test_registers_builtin_plugins(engine):
    added = register_default_plugins(engine)
    assert added == ["data_analysis", "text_processing"]
    assert engine.available_plugins() == added


def test_keeps_existing_bindings(engine):
    engine.register_tool("echo", lambda c, p: "custom echo")
    added = register_default_tools(engine)
    assert "echo" not in added
    assert engine.available_tools()[0] == "echo"
    assert register_default_tools(engine) == []
