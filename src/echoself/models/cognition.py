"""Cognitive self-model: DeepTreeEcho state, introspection and diagnostics.

These are the data shapes handed back to callers. They are plain Pydantic
models so that presentation layers can ``model_dump()`` them directly.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, Field

# ── Introspection ──────────────────────────────────────────────────────────


class SalientFile(BaseModel):
    """A file that passed the attention threshold."""

    path: str
    salience: float = Field(ge=0.0, le=1.0)
    coherence: float = Field(default=0.0, ge=0.0, le=1.0)
    novelty: float = Field(default=0.0, ge=0.0, le=1.0)
    depth: int = 0


class SkippedPath(BaseModel):
    """A path the scan could not read; the walk continued past it."""

    path: str
    reason: str


class CognitiveSnapshot(BaseModel):
    processed_files: int = 0
    filtered_files: int = 0
    attention_threshold: float = Field(default=0.0, ge=0.0, le=1.0)
    salient_files: list[SalientFile] = Field(default_factory=list)
    skipped_paths: list[SkippedPath] = Field(default_factory=list)


class EchoIntegration(BaseModel):
    nodes_created: int = 0
    tree_depth: int = 0
    connections_created: int = 0


class IntrospectionResult(BaseModel):
    root: str
    cognitive_snapshot: CognitiveSnapshot = Field(default_factory=CognitiveSnapshot)
    echo_integration: EchoIntegration = Field(default_factory=EchoIntegration)
    coherence_score: float = Field(default=0.0, ge=0.0, le=1.0)
    duration_ms: float = 0.0


# ── DeepTreeEcho state ─────────────────────────────────────────────────────


class SystemHealth(StrEnum):
    UNKNOWN = "unknown"
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    CRITICAL = "critical"


class CoreStatus(StrEnum):
    INACTIVE = "inactive"
    ACTIVE = "active"
    DEGRADED = "degraded"


class IdentityCoherence(BaseModel):
    overall_coherence: float = Field(default=0.5, ge=0.0, le=1.0)
    agent_consistency: float | None = None
    introspection_coherence: float | None = None


class MemoryResonance(BaseModel):
    memory_nodes: int = 0
    connections: int = 0
    hyperedges: int = 0


class Milestone(BaseModel):
    stage: str
    reached_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    thought_count: int = 0


class EvolutionTimeline(BaseModel):
    current_stage: str = "nascent"
    milestones: list[Milestone] = Field(default_factory=list)


class IntegrationStatus(BaseModel):
    status: Literal["pending", "connected", "disconnected"] = "pending"
    health: Literal["unknown", "healthy", "unreachable"] = "unknown"
    required: bool = False
    message: str = ""


class DeepTreeEchoState(BaseModel):
    """Aggregated self-model, one per engine."""

    system_health: SystemHealth = SystemHealth.UNKNOWN
    core_status: CoreStatus = CoreStatus.INACTIVE
    thought_count: int = Field(default=0, ge=0)
    recursive_depth: int = Field(default=0, ge=0)
    identity_coherence: IdentityCoherence = Field(default_factory=IdentityCoherence)
    memory_resonance: MemoryResonance = Field(default_factory=MemoryResonance)
    evolution_timeline: EvolutionTimeline = Field(default_factory=EvolutionTimeline)
    integrations: dict[str, IntegrationStatus] = Field(default_factory=dict)
    initialized: bool = False


# ── Diagnostics ────────────────────────────────────────────────────────────


class CheckStatus(StrEnum):
    PASS = "pass"
    WARN = "warn"
    FAIL = "fail"


_SEVERITY_ORDER = {CheckStatus.PASS: 0, CheckStatus.WARN: 1, CheckStatus.FAIL: 2}


def worst_status(statuses: list[CheckStatus]) -> CheckStatus:
    """fail > warn > pass; an empty list is a pass."""
    if not statuses:
        return CheckStatus.PASS
    return max(statuses, key=_SEVERITY_ORDER.__getitem__)


class DiagnosticTest(BaseModel):
    """Result of a single diagnostic check."""

    name: str
    status: CheckStatus
    message: str = ""
    fix_hint: str = ""
    duration_ms: float = 0.0


class DiagnosticResult(BaseModel):
    overall_health: CheckStatus = CheckStatus.PASS
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    tests: list[DiagnosticTest] = Field(default_factory=list)
    pass_count: int = 0
    warn_count: int = 0
    fail_count: int = 0
