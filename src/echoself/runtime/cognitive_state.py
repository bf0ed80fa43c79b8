"""Cognitive state tracker: the engine's DeepTreeEcho self-model.

Aggregates task outcomes, introspection results, and integration probes into
a single ``DeepTreeEchoState``. All shared counters and the memory graph are
guarded by one process-wide lock that is never held across an ``await``.
"""

from __future__ import annotations

import inspect
import logging
import threading
from collections import deque
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from echoself.config import CognitionConfig, IntrospectionConfig
from echoself.errors import CapabilityUnavailableError, ParameterValueError
from echoself.models.agent import Agent, MemoryEntry
from echoself.models.cognition import (
    CoreStatus,
    DeepTreeEchoState,
    EchoIntegration,
    IntegrationStatus,
    Milestone,
    SystemHealth,
)
from echoself.models.task import Parameters
from echoself.runtime.backends import Analyzer
from echoself.runtime.introspection import ScanOutcome
from echoself.runtime.memory_graph import MemoryGraph

log = logging.getLogger(__name__)

Probe = Callable[[], bool | Awaitable[bool]]

DEPTH_LEVELS = ("surface", "deep", "recursive")

# (stage, minimum maturity) where maturity = thought_count + memory_nodes // 10
EVOLUTION_STAGES: tuple[tuple[str, int], ...] = (
    ("nascent", 0),
    ("emerging", 1),
    ("integrating", 5),
    ("reflective", 20),
    ("recursive", 50),
)


def stage_for(maturity: int) -> str:
    current = EVOLUTION_STAGES[0][0]
    for stage, minimum in EVOLUTION_STAGES:
        if maturity >= minimum:
            current = stage
    return current


@dataclass
class _Integration:
    probe: Probe
    required: bool


class CognitiveStateTracker:
    """Owns the DeepTreeEcho state and the memory resonance graph."""

    def __init__(
        self,
        analyzer: Analyzer,
        config: CognitionConfig | None = None,
        introspection_config: IntrospectionConfig | None = None,
    ) -> None:
        self._analyzer = analyzer
        self._config = config or CognitionConfig()
        self._intro_config = introspection_config or IntrospectionConfig()
        self._lock = threading.Lock()
        self._integrations: dict[str, _Integration] = {}
        self._reset()

    def _reset(self) -> None:
        self._state = DeepTreeEchoState()
        self._graph = MemoryGraph(
            link_siblings=self._intro_config.link_siblings,
            link_topics=self._intro_config.link_topics,
        )
        self._outcomes: deque[bool] = deque(maxlen=self._config.health_window)
        self._coherence_history: deque[float] = deque(
            maxlen=self._intro_config.coherence_history
        )
        self._last_agent_consistency: float | None = None

    # ── Integrations ─────────────────────────────────────────────────

    def register_integration(self, name: str, probe: Probe, *, required: bool = False) -> None:
        """Track an external capability; ``probe`` reports reachability."""
        self._integrations[name] = _Integration(probe=probe, required=required)
        with self._lock:
            self._state.integrations.setdefault(
                name, IntegrationStatus(status="pending", required=required)
            )

    async def _probe_all(self) -> dict[str, IntegrationStatus]:
        results: dict[str, IntegrationStatus] = {}
        for name, integ in self._integrations.items():
            try:
                outcome = integ.probe()
                if inspect.isawaitable(outcome):
                    outcome = await outcome
                ok, message = bool(outcome), ""
            except Exception as e:
                log.warning("cognitive_state.probe_failed integration=%s error=%s", name, e)
                ok, message = False, f"{type(e).__name__}: {e}"
            results[name] = IntegrationStatus(
                status="connected" if ok else "disconnected",
                health="healthy" if ok else "unreachable",
                required=integ.required,
                message=message,
            )
        return results

    def _missing_required(self) -> list[str]:
        return sorted(
            name
            for name, integ in self._state.integrations.items()
            if integ.required and integ.status != "connected"
        )

    def _raise_if_missing(self, missing: list[str], operation: str) -> None:
        if missing:
            raise CapabilityUnavailableError(
                f"{operation}: required integrations unavailable: {', '.join(missing)}",
                context={"integrations": missing},
            )

    # ── Lifecycle ────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Reset to baseline and probe integrations.

        Raises CapabilityUnavailableError when a required integration is
        unreachable; the tracker is still usable in a degraded state.
        """
        with self._lock:
            self._reset()
            self._state.integrations = {
                name: IntegrationStatus(status="pending", required=integ.required)
                for name, integ in self._integrations.items()
            }

        probed = await self._probe_all()

        with self._lock:
            self._state.integrations.update(probed)
            self._state.initialized = True
            self._state.evolution_timeline.milestones.append(
                Milestone(stage=self._state.evolution_timeline.current_stage)
            )
            self._recompute()
            missing = self._missing_required()

        log.info(
            "cognitive_state.initialized health=%s integrations=%s",
            self._state.system_health.value,
            {n: s.status for n, s in probed.items()},
        )
        self._raise_if_missing(missing, "initialize")

    async def refresh_status(self, agent_consistency: float | None = None) -> None:
        """Re-probe integrations and recompute derived fields.

        Idempotent when nothing happened since the previous call.
        """
        probed = await self._probe_all()
        with self._lock:
            self._state.integrations.update(probed)
            self._last_agent_consistency = agent_consistency
            self._recompute()
            missing = self._missing_required()
            health = self._state.system_health

        log.debug(
            "cognitive_state.refreshed health=%s coherence=%.3f thoughts=%d",
            health.value,
            self._state.identity_coherence.overall_coherence,
            self._state.thought_count,
        )
        self._raise_if_missing(missing, "refresh")

    # ── Derived fields (call with lock held) ─────────────────────────

    def _recompute(self) -> None:
        state = self._state
        missing = self._missing_required()

        if not state.initialized:
            health = SystemHealth.UNKNOWN
        elif not self._outcomes:
            health = SystemHealth.HEALTHY
        else:
            ratio = sum(self._outcomes) / len(self._outcomes)
            if ratio >= self._config.healthy_ratio:
                health = SystemHealth.HEALTHY
            elif ratio >= self._config.degraded_ratio:
                health = SystemHealth.DEGRADED
            else:
                health = SystemHealth.CRITICAL
        if missing and health == SystemHealth.HEALTHY:
            health = SystemHealth.DEGRADED
        state.system_health = health

        if not state.initialized:
            state.core_status = CoreStatus.INACTIVE
        elif health == SystemHealth.CRITICAL or missing:
            state.core_status = CoreStatus.DEGRADED
        else:
            state.core_status = CoreStatus.ACTIVE

        introspection = (
            sum(self._coherence_history) / len(self._coherence_history)
            if self._coherence_history
            else None
        )
        components = [
            c for c in (self._last_agent_consistency, introspection) if c is not None
        ]
        overall = (
            sum(components) / len(components)
            if components
            else self._config.baseline_coherence
        )
        coherence = state.identity_coherence
        coherence.overall_coherence = min(1.0, max(0.0, overall))
        coherence.agent_consistency = self._last_agent_consistency
        coherence.introspection_coherence = introspection

        self._sync_graph()

    def _sync_graph(self) -> None:
        resonance = self._state.memory_resonance
        resonance.memory_nodes = self._graph.node_count
        resonance.connections = self._graph.edge_count
        resonance.hyperedges = self._graph.hyperedge_count

        timeline = self._state.evolution_timeline
        stage = stage_for(self._state.thought_count + self._graph.node_count // 10)
        if stage != timeline.current_stage:
            log.info(
                "cognitive_state.evolved from=%s to=%s thoughts=%d",
                timeline.current_stage,
                stage,
                self._state.thought_count,
            )
            timeline.current_stage = stage
            timeline.milestones.append(
                Milestone(stage=stage, thought_count=self._state.thought_count)
            )

    # ── Cognitive routine for reflect tasks ──────────────────────────

    async def reflect(self, text: str, parameters: Parameters, agent: Agent) -> str:
        """Introspective analysis of ``text`` configured by ``parameters``."""
        depth = parameters.get_str("depth_level", "surface")
        if depth not in DEPTH_LEVELS:
            raise ParameterValueError(
                f"depth_level must be one of {', '.join(DEPTH_LEVELS)}, got '{depth}'",
                context={"parameter": "depth_level", "value": depth},
            )
        scope = parameters.get_str("analysis_scope", "focused")

        with self._lock:
            state_view = {
                "identity_coherence": self._state.identity_coherence.overall_coherence,
                "thought_count": self._state.thought_count,
                "memory_nodes": self._graph.node_count,
                "evolution_stage": self._state.evolution_timeline.current_stage,
            }

        config = {
            **parameters.to_dict(),
            "depth_level": depth,
            "analysis_scope": scope,
            "agent_name": agent.name,
            "agent_type": agent.agent_type.value,
            **state_view,
        }
        return await self._analyzer.analyze(text, config)

    # ── Mutations from the engine ────────────────────────────────────

    def record_task_outcome(
        self,
        agent_id: str,
        *,
        success: bool,
        cognitive: bool,
        memory_entry: MemoryEntry | None = None,
        pruned: Sequence[MemoryEntry] = (),
    ) -> None:
        """Fold one task outcome into the rolling window and counters.

        Entries in ``pruned`` were evicted from the agent's memory by the same
        commit and leave the graph with it.
        """
        with self._lock:
            self._outcomes.append(success)
            if success and cognitive:
                self._state.thought_count += 1
            if success and memory_entry is not None:
                self._graph.record_memory(
                    agent_id,
                    memory_entry.entry_id,
                    task_id=memory_entry.task_id,
                    task_type=memory_entry.task_type,
                )
            for old in pruned:
                self._graph.forget_memory(old.entry_id)
            self._sync_graph()

    def fold_introspection(self, outcome: ScanOutcome) -> EchoIntegration:
        """Merge a scan's salient files into the memory graph."""
        items = [
            {
                "abs_path": s.record.abs_path,
                "parent": s.record.parent,
                "rel_path": s.record.rel_path,
                "salience": s.salience,
                "depth": s.record.depth,
            }
            for s in outcome.salient
        ]
        with self._lock:
            stats = self._graph.fold_files(items)
            if outcome.salient:
                self._coherence_history.append(outcome.coherence_score)
            self._state.recursive_depth = max(
                self._state.recursive_depth, outcome.tree_depth
            )
            self._sync_graph()

        return EchoIntegration(
            nodes_created=stats.nodes_created,
            tree_depth=outcome.tree_depth,
            connections_created=stats.edges_created,
        )

    # ── Read access ──────────────────────────────────────────────────

    def snapshot(self) -> DeepTreeEchoState:
        with self._lock:
            return self._state.model_copy(deep=True)

    @property
    def graph(self) -> MemoryGraph:
        return self._graph
