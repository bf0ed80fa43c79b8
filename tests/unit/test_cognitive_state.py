"""Tests for the DeepTreeEcho cognitive state tracker."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from echoself.config import CognitionConfig
from echoself.errors import CapabilityUnavailableError, ParameterValueError
from echoself.models.agent import Agent, AgentType, MemoryEntry
from echoself.models.cognition import CoreStatus, SystemHealth
from echoself.models.task import Parameters
from echoself.runtime.backends import HeuristicAnalyzer
from echoself.runtime.cognitive_state import CognitiveStateTracker, stage_for
from echoself.runtime.introspection import IntrospectionEngine


@pytest.fixture
def tracker() -> CognitiveStateTracker:
    return CognitiveStateTracker(HeuristicAnalyzer())


def _outcomes(tracker: CognitiveStateTracker, successes: int, failures: int) -> None:
    for _ in range(successes):
        tracker.record_task_outcome("agt_1", success=True, cognitive=False)
    for _ in range(failures):
        tracker.record_task_outcome("agt_1", success=False, cognitive=False)


class TestBaseline:
    def test_fresh_state(self, tracker):
        state = tracker.snapshot()
        assert state.system_health == SystemHealth.UNKNOWN
        assert state.core_status == CoreStatus.INACTIVE
        assert state.thought_count == 0
        assert state.identity_coherence.overall_coherence == 0.5
        assert state.evolution_timeline.current_stage == "nascent"
        assert not state.initialized

    def test_registered_integration_is_pending(self, tracker):
        tracker.register_integration("nlp", lambda: True, required=True)
        integ = tracker.snapshot().integrations["nlp"]
        assert integ.status == "pending"
        assert integ.required is True

    def test_snapshot_is_detached(self, tracker):
        snap = tracker.snapshot()
        snap.thought_count = 42
        assert tracker.snapshot().thought_count == 0


class TestInitialize:
    @pytest.mark.asyncio
    async def test_all_integrations_reachable(self, tracker):
        tracker.register_integration("nlp", AsyncMock(return_value=True), required=True)
        tracker.register_integration("tools", lambda: True)
        await tracker.initialize()

        state = tracker.snapshot()
        assert state.initialized
        assert state.system_health == SystemHealth.HEALTHY
        assert state.core_status == CoreStatus.ACTIVE
        assert {i.status for i in state.integrations.values()} == {"connected"}
        assert [m.stage for m in state.evolution_timeline.milestones] == ["nascent"]

    @pytest.mark.asyncio
    async def test_missing_required_integration(self, tracker):
        tracker.register_integration("nlp", lambda: False, required=True)
        with pytest.raises(CapabilityUnavailableError) as exc_info:
            await tracker.initialize()
        assert exc_info.value.context == {"integrations": ["nlp"]}

        # state is updated before the error surfaces
        state = tracker.snapshot()
        assert state.initialized
        assert state.system_health == SystemHealth.DEGRADED
        assert state.core_status == CoreStatus.DEGRADED
        assert state.integrations["nlp"].status == "disconnected"
        assert state.integrations["nlp"].health == "unreachable"

    @pytest.mark.asyncio
    async def test_probe_exception_is_disconnected(self, tracker):
        probe = MagicMock(side_effect=ConnectionError("no route"))
        tracker.register_integration("search", probe)
        await tracker.initialize()

        integ = tracker.snapshot().integrations["search"]
        assert integ.status == "disconnected"
        assert "ConnectionError: no route" in integ.message
        # optional integrations do not degrade health
        assert tracker.snapshot().system_health == SystemHealth.HEALTHY

    @pytest.mark.asyncio
    async def test_initialize_resets_counters(self, tracker):
        tracker.record_task_outcome("agt_1", success=True, cognitive=True)
        tracker.record_task_outcome(
            "agt_1",
            success=True,
            cognitive=False,
            memory_entry=MemoryEntry(task_id="t", task_type="plugin", summary="s"),
        )
        assert tracker.snapshot().thought_count == 1
        assert tracker.graph.node_count == 2

        await tracker.initialize()
        state = tracker.snapshot()
        assert state.thought_count == 0
        assert state.memory_resonance.memory_nodes == 0
        assert state.evolution_timeline.current_stage == "nascent"


class TestOutcomes:
    def test_thought_count_only_for_cognitive_successes(self, tracker):
        tracker.record_task_outcome("agt_1", success=True, cognitive=True)
        tracker.record_task_outcome("agt_1", success=True, cognitive=False)
        tracker.record_task_outcome("agt_1", success=False, cognitive=True)
        assert tracker.snapshot().thought_count == 1

    def test_memory_entry_added_to_graph(self, tracker):
        entry = MemoryEntry(task_id="task_1", task_type="reflect", summary="s")
        tracker.record_task_outcome("agt_1", success=True, cognitive=True, memory_entry=entry)

        resonance = tracker.snapshot().memory_resonance
        assert resonance.memory_nodes == 2
        assert resonance.connections == 1
        assert f"memory:{entry.entry_id}" in tracker.graph

    def test_pruned_entries_removed_from_graph(self, tracker):
        old = MemoryEntry(task_id="task_1", task_type="chat", summary="old")
        new = MemoryEntry(task_id="task_2", task_type="chat", summary="new")
        tracker.record_task_outcome("agt_1", success=True, cognitive=False, memory_entry=old)
        tracker.record_task_outcome(
            "agt_1", success=True, cognitive=False, memory_entry=new, pruned=[old]
        )

        assert f"memory:{old.entry_id}" not in tracker.graph
        assert f"memory:{new.entry_id}" in tracker.graph
        assert tracker.snapshot().memory_resonance.memory_nodes == 2

    def test_evolution_milestone_on_stage_change(self, tracker):
        tracker.record_task_outcome("agt_1", success=True, cognitive=True)
        timeline = tracker.snapshot().evolution_timeline
        assert timeline.current_stage == "emerging"
        assert timeline.milestones[-1].stage == "emerging"
        assert timeline.milestones[-1].thought_count == 1

    @pytest.mark.parametrize(
        ("successes", "failures", "expected"),
        [
            (9, 1, SystemHealth.HEALTHY),
            (7, 3, SystemHealth.DEGRADED),
            (5, 5, SystemHealth.CRITICAL),
        ],
    )
    @pytest.mark.asyncio
    async def test_health_from_success_ratio(self, tracker, successes, failures, expected):
        await tracker.initialize()
        _outcomes(tracker, successes, failures)
        await tracker.refresh_status()
        assert tracker.snapshot().system_health == expected

    @pytest.mark.asyncio
    async def test_health_window_is_rolling(self):
        tracker = CognitiveStateTracker(HeuristicAnalyzer(), CognitionConfig(health_window=4))
        await tracker.initialize()
        _outcomes(tracker, 0, 4)
        _outcomes(tracker, 4, 0)
        await tracker.refresh_status()
        assert tracker.snapshot().system_health == SystemHealth.HEALTHY

    @pytest.mark.asyncio
    async def test_critical_health_degrades_core(self, tracker):
        await tracker.initialize()
        _outcomes(tracker, 0, 3)
        await tracker.refresh_status()
        assert tracker.snapshot().core_status == CoreStatus.DEGRADED


class TestRefresh:
    @pytest.mark.asyncio
    async def test_refresh_is_idempotent(self, tracker):
        tracker.register_integration("nlp", lambda: True, required=True)
        await tracker.initialize()
        tracker.record_task_outcome("agt_1", success=True, cognitive=True)

        await tracker.refresh_status(0.75)
        first = tracker.snapshot()
        await tracker.refresh_status(0.75)
        assert tracker.snapshot() == first

    @pytest.mark.asyncio
    async def test_identity_coherence_components(self, tracker, make_tree):
        await tracker.refresh_status(agent_consistency=0.8)
        assert tracker.snapshot().identity_coherence.overall_coherence == pytest.approx(0.8)

        outcome = IntrospectionEngine().scan(make_tree({"main.py": 0}), 0.6, 0.4)
        tracker.fold_introspection(outcome)
        await tracker.refresh_status(agent_consistency=0.8)

        coherence = tracker.snapshot().identity_coherence
        assert coherence.introspection_coherence == pytest.approx(outcome.coherence_score)
        assert coherence.overall_coherence == pytest.approx(
            (0.8 + outcome.coherence_score) / 2
        )

    @pytest.mark.asyncio
    async def test_refresh_raises_when_required_missing(self, tracker):
        healthy = {"up": True}
        tracker.register_integration("nlp", lambda: healthy["up"], required=True)
        await tracker.initialize()

        healthy["up"] = False
        with pytest.raises(CapabilityUnavailableError):
            await tracker.refresh_status()
        assert tracker.snapshot().integrations["nlp"].status == "disconnected"


class TestReflect:
    @pytest.mark.asyncio
    async def test_passes_parameters_and_state_to_analyzer(self):
        analyzer = MagicMock()
        analyzer.analyze = AsyncMock(return_value="insight")
        tracker = CognitiveStateTracker(analyzer)
        agent = Agent(agent_type=AgentType.REFLECTIVE, label="mirror")

        out = await tracker.reflect(
            "who am I", Parameters({"depth_level": "recursive"}), agent
        )
        assert out == "insight"
        text, config = analyzer.analyze.call_args.args
        assert text == "who am I"
        assert config["depth_level"] == "recursive"
        assert config["analysis_scope"] == "focused"
        assert config["agent_name"] == "reflective-mirror"
        assert config["evolution_stage"] == "nascent"

    @pytest.mark.asyncio
    async def test_invalid_depth_level(self, tracker):
        agent = Agent(agent_type=AgentType.REFLECTIVE, label="mirror")
        with pytest.raises(ParameterValueError):
            await tracker.reflect("text", Parameters({"depth_level": "abyssal"}), agent)


class TestIntrospectionFold:
    def test_fold_updates_graph_and_depth(self, tracker, make_tree):
        root = make_tree({"a/b/deep.py": 0, "a/b/other.py": 0, "top.py": 0})
        outcome = IntrospectionEngine().scan(root, 0.6, 0.4)
        integration = tracker.fold_introspection(outcome)

        assert integration.nodes_created == len(outcome.salient)
        assert integration.tree_depth == outcome.tree_depth
        state = tracker.snapshot()
        assert state.recursive_depth == outcome.tree_depth
        assert state.memory_resonance.memory_nodes == len(outcome.salient)

    def test_refold_creates_nothing(self, tracker, make_tree):
        root = make_tree({"x.py": 0, "y.py": 0})
        engine = IntrospectionEngine()
        tracker.fold_introspection(engine.scan(root, 0.6, 0.4))
        again = tracker.fold_introspection(engine.scan(root, 0.6, 0.4))
        assert again.nodes_created == 0
        assert again.connections_created == 0


def test_stage_thresholds():
    assert stage_for(0) == "nascent"
    assert stage_for(1) == "emerging"
    assert stage_for(5) == "integrating"
    assert stage_for(20) == "reflective"
    assert stage_for(500) == "recursive"
