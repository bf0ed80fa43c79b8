"""Tests for the built-in tools and plugins."""

from __future__ import annotations

import pytest

from echoself.errors import ParameterTypeError, ParameterValueError
from echoself.models.agent import AgentType
from echoself.models.task import Parameters
from echoself.runtime.tools import HandlerContext
from echoself.tools import (
    data_analysis,
    echo,
    keyword_extract,
    summarize,
    text_processing,
    word_count,
)

_TEXT = (
    "Deep trees echo their roots. Every echo returns changed! "
    "Do the roots remember the echo?"
)


def _ctx(text: str = _TEXT) -> HandlerContext:
    return HandlerContext(
        task_id="task_1",
        task_type="tool_call",
        input=text,
        agent_id="agt_1",
        agent_name="specialist-tools",
        agent_type=AgentType.SPECIALIST,
    )


class TestTextTools:
    def test_echo(self):
        assert echo(_ctx("same"), Parameters()) == "same"

    def test_text_parameter_overrides_input(self):
        assert echo(_ctx("input"), Parameters({"text": "override"})) == "override"

    def test_word_count(self):
        assert word_count(_ctx("one two. three"), Parameters()) == (
            "3 words, 14 characters, 2 sentences"
        )

    def test_summarize(self):
        out = summarize(_ctx(), Parameters({"max_sentences": 1}))
        assert out == "Deep trees echo their roots."

    def test_summarize_rejects_non_positive(self):
        with pytest.raises(ParameterValueError):
            summarize(_ctx(), Parameters({"max_sentences": 0}))

    def test_keyword_extract(self):
        assert keyword_extract(_ctx(), Parameters({"top_k": 2})) == "echo, roots"

    def test_keyword_extract_type_checked(self):
        with pytest.raises(ParameterTypeError):
            keyword_extract(_ctx(), Parameters({"top_k": "two"}))


class TestDataAnalysis:
    def test_statistics_by_default(self):
        out = data_analysis(_ctx("alpha beta alpha"), Parameters())
        assert out == "statistics: 3 terms, 2 unique, mean length 4.7"

    def test_frequency(self):
        out = data_analysis(_ctx("alpha beta alpha"), Parameters({"type": "frequency"}))
        assert out == "frequency: alpha=2, beta=1"

    def test_hypergraph_analysis(self):
        out = data_analysis(_ctx(), Parameters({"type": "hypergraph_analysis"}))
        assert out.startswith("hypergraph: ")
        assert "3 hyperedges" in out
        assert "hub 'echo' (degree 3)" in out

    def test_unknown_type(self):
        with pytest.raises(ParameterValueError) as exc_info:
            data_analysis(_ctx(), Parameters({"type": "astrology"}))
        assert exc_info.value.context["value"] == "astrology"


class TestTextProcessing:
    @pytest.mark.parametrize(
        ("operation", "expected"),
        [
            ("uppercase", "HELLO  WORLD"),
            ("lowercase", "hello  world"),
            ("reverse", "dlroW  olleH"),
            ("normalize", "Hello World"),
        ],
    )
    def test_operations(self, operation, expected):
        out = text_processing(_ctx("Hello  World"), Parameters({"operation": operation}))
        assert out == expected

    def test_unknown_operation(self):
        with pytest.raises(ParameterValueError):
            text_processing(_ctx(), Parameters({"operation": "shred"}))
