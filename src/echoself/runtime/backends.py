"""Cognitive analysis backends used by reflect tasks.

A backend exposes ``analyze(text, config) -> str`` and a cheap
``health_check()``. The heuristic backend is deterministic and offline;
the LiteLLM backend delegates to a chat model through instructor.
"""

from __future__ import annotations

import logging
import time
from collections import Counter
from typing import Any, Protocol, runtime_checkable

import instructor
import litellm
from dotenv import load_dotenv
from pydantic import BaseModel, Field

from echoself.config import BackendConfig
from echoself.errors import AnalyzerError
from echoself.runtime import lexicon

load_dotenv()

log = logging.getLogger(__name__)

# Pronouns and prompt verbs that say nothing about the subject
_PROMPT_WORDS = frozenset(
    "our your their them they we you perform analyze analyse".split()
)


@runtime_checkable
class Analyzer(Protocol):
    async def analyze(self, text: str, config: dict[str, Any]) -> str: ...

    async def health_check(self) -> bool: ...


class HeuristicAnalyzer:
    """Offline lexical analysis: dominant themes and lexical diversity."""

    def __init__(self, top_k: int = 3) -> None:
        self._top_k = top_k

    async def analyze(self, text: str, config: dict[str, Any]) -> str:
        terms = lexicon.terms(text)
        if not terms:
            raise AnalyzerError("nothing to analyze: input has no terms")

        content = lexicon.content_terms(text, _PROMPT_WORDS)
        themes = lexicon.ranked(Counter(content or terms), self._top_k)
        diversity = len(set(terms)) / len(terms)

        depth = config.get("depth_level", "surface")
        scope = config.get("analysis_scope", "focused")
        parts = [
            f"{depth} reflection ({scope})",
            f"{len(terms)} terms",
            "themes: " + ", ".join(t for t, _ in themes),
            f"lexical diversity {diversity:.2f}",
        ]
        if "identity_coherence" in config:
            parts.append(f"identity coherence {float(config['identity_coherence']):.0%}")
        return "; ".join(parts)

    async def health_check(self) -> bool:
        return True


class ReflectionOutput(BaseModel):
    """Structured reflection returned by the LLM backend."""

    summary: str = Field(description="A concise self-analysis of the input")
    themes: list[str] = Field(default_factory=list)


_REFLECT_SYSTEM = """\
You are the introspective analysis module of a multi-agent cognitive system.
Reflect on the user's input at the requested depth and scope. Be concise.
"""


class LiteLLMAnalyzer:
    """Analyzer backed by any litellm-supported chat model."""

    def __init__(self, model: str = "gpt-4o-mini", temperature: float = 0.2) -> None:
        self._model = model
        self._temperature = temperature

    @property
    def model(self) -> str:
        return self._model

    async def analyze(self, text: str, config: dict[str, Any]) -> str:
        if not text.strip():
            raise AnalyzerError("nothing to analyze: empty input")

        settings = ", ".join(f"{k}={v}" for k, v in sorted(config.items()))
        messages = [
            {"role": "system", "content": _REFLECT_SYSTEM},
            {"role": "user", "content": f"Settings: {settings}\n\n{text}"},
        ]

        start = time.monotonic()
        client = instructor.from_litellm(litellm.acompletion)
        try:
            result = await client.chat.completions.create(
                model=self._model,
                messages=messages,
                response_model=ReflectionOutput,
                temperature=self._temperature,
            )
        except Exception as e:
            raise AnalyzerError(
                f"analysis via {self._model} failed: {e}",
                context={"model": self._model},
            ) from e

        log.debug(
            "backend.analyze model=%s latency_ms=%.1f",
            self._model,
            (time.monotonic() - start) * 1000,
        )
        if result.themes:
            return f"{result.summary} (themes: {', '.join(result.themes)})"
        return result.summary

    async def health_check(self) -> bool:
        """True when litellm finds the provider credentials for the model."""
        env = litellm.validate_environment(model=self._model)
        if not env.get("keys_in_environment", False):
            log.warning(
                "backend.credentials_missing model=%s missing=%s",
                self._model,
                env.get("missing_keys", []),
            )
            return False
        return True


def build_analyzer(config: BackendConfig) -> Analyzer:
    if config.kind == "litellm":
        return LiteLLMAnalyzer(model=config.model, temperature=config.temperature)
    return HeuristicAnalyzer()
