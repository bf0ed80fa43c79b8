"""Tests for the cognitive analysis backends."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from echoself.config import BackendConfig
from echoself.errors import AnalyzerError
from echoself.runtime.backends import (
    Analyzer,
    HeuristicAnalyzer,
    LiteLLMAnalyzer,
    ReflectionOutput,
    build_analyzer,
)


class TestHeuristicAnalyzer:
    @pytest.mark.asyncio
    async def test_deterministic_summary(self):
        analyzer = HeuristicAnalyzer()
        text = "Memory shapes identity. Identity shapes memory and memory shapes thought."
        config = {"depth_level": "deep", "analysis_scope": "broad"}

        first = await analyzer.analyze(text, config)
        second = await analyzer.analyze(text, config)
        assert first == second
        assert first.startswith("deep reflection (broad); 10 terms; ")
        assert "themes: memory, shapes, identity" in first
        assert "lexical diversity" in first

    @pytest.mark.asyncio
    async def test_defaults_and_identity_coherence(self):
        out = await HeuristicAnalyzer().analyze(
            "patterns within patterns", {"identity_coherence": 0.5}
        )
        assert out.startswith("surface reflection (focused)")
        assert out.endswith("identity coherence 50%")

    @pytest.mark.asyncio
    async def test_no_terms_raises(self):
        with pytest.raises(AnalyzerError):
            await HeuristicAnalyzer().analyze("  123 !!! ", {})

    @pytest.mark.asyncio
    async def test_health_check(self):
        assert await HeuristicAnalyzer().health_check() is True


class TestLiteLLMAnalyzer:
    @pytest.fixture
    def fake_client(self, monkeypatch):
        client = MagicMock()
        client.chat.completions.create = AsyncMock(
            return_value=ReflectionOutput(summary="A calm self-model", themes=["memory", "echo"])
        )
        from_litellm = MagicMock(return_value=client)
        monkeypatch.setattr("echoself.runtime.backends.instructor.from_litellm", from_litellm)
        return client

    @pytest.mark.asyncio
    async def test_structured_response(self, fake_client):
        analyzer = LiteLLMAnalyzer(model="ollama/llama3", temperature=0.1)
        out = await analyzer.analyze("who am I", {"depth_level": "recursive"})

        assert out == "A calm self-model (themes: memory, echo)"
        kwargs = fake_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "ollama/llama3"
        assert kwargs["response_model"] is ReflectionOutput
        assert kwargs["temperature"] == 0.1
        assert "depth_level=recursive" in kwargs["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_backend_failure_wrapped(self, fake_client):
        fake_client.chat.completions.create.side_effect = RuntimeError("connection refused")
        with pytest.raises(AnalyzerError) as exc_info:
            await LiteLLMAnalyzer().analyze("who am I", {})
        assert exc_info.value.context == {"model": "gpt-4o-mini"}
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_empty_input_rejected_without_call(self, fake_client):
        with pytest.raises(AnalyzerError):
            await LiteLLMAnalyzer().analyze("   ", {})
        fake_client.chat.completions.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_health_check_requires_provider_key(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        assert await LiteLLMAnalyzer(model="gpt-4o-mini").health_check() is False

        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        assert await LiteLLMAnalyzer(model="gpt-4o-mini").health_check() is True

    @pytest.mark.asyncio
    async def test_health_check_logs_missing_keys(self, monkeypatch, caplog):
        monkeypatch.setattr(
            "echoself.runtime.backends.litellm.validate_environment",
            MagicMock(return_value={"keys_in_environment": False, "missing_keys": ["X_KEY"]}),
        )
        with caplog.at_level("WARNING", logger="echoself.runtime.backends"):
            assert await LiteLLMAnalyzer(model="x/model").health_check() is False
        assert "missing=['X_KEY']" in caplog.text


class TestBuildAnalyzer:
    def test_heuristic_by_default(self):
        analyzer = build_analyzer(BackendConfig())
        assert isinstance(analyzer, HeuristicAnalyzer)
        assert isinstance(analyzer, Analyzer)

    def test_litellm(self):
        analyzer = build_analyzer(BackendConfig(kind="litellm", model="gpt-4o"))
        assert isinstance(analyzer, LiteLLMAnalyzer)
        assert analyzer.model == "gpt-4o"
