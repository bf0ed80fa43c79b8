"""Doctor service: on-demand self-diagnostics for the engine.

Runs a fixed battery of deterministic checks against the registries, the
agent store, and the cognitive state. Each check yields pass/warn/fail on
its own; a check that raises is reported as a failed check, so
``run_all_checks`` never raises.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time

from echoself.models.cognition import (
    CheckStatus,
    DiagnosticResult,
    DiagnosticTest,
    worst_status,
)
from echoself.runtime.agent_store import AgentStore
from echoself.runtime.cognitive_state import CognitiveStateTracker
from echoself.runtime.tools import CapabilityRegistry

log = logging.getLogger(__name__)


class DoctorService:
    """Diagnostic battery over engine-owned components."""

    def __init__(
        self,
        tools: CapabilityRegistry,
        plugins: CapabilityRegistry,
        agents: AgentStore,
        tracker: CognitiveStateTracker,
    ) -> None:
        self._tools = tools
        self._plugins = plugins
        self._agents = agents
        self._tracker = tracker

    async def run_all_checks(self) -> DiagnosticResult:
        """Run all checks concurrently and return the aggregated result."""
        checks: list[DiagnosticTest] = []
        names = ["registry", "agents", "cognitive_state", "integrations"]
        check_coros = [
            self._check_registry(),
            self._check_agents(),
            self._check_cognitive_state(),
            self._check_integrations(),
        ]

        results = await asyncio.gather(*check_coros, return_exceptions=True)
        for name, result in zip(names, results):
            if isinstance(result, BaseException):
                checks.append(DiagnosticTest(
                    name=name,
                    status=CheckStatus.FAIL,
                    message=f"check raised {type(result).__name__}: {result}",
                ))
            elif isinstance(result, list):
                checks.extend(result)
            else:
                checks.append(result)

        statuses = [c.status for c in checks]
        report = DiagnosticResult(
            overall_health=worst_status(statuses),
            tests=checks,
            pass_count=statuses.count(CheckStatus.PASS),
            warn_count=statuses.count(CheckStatus.WARN),
            fail_count=statuses.count(CheckStatus.FAIL),
        )
        log.debug(
            "doctor.report overall=%s pass=%d warn=%d fail=%d",
            report.overall_health.value,
            report.pass_count,
            report.warn_count,
            report.fail_count,
        )
        return report

    # ── Individual Checks ────────────────────────────────────────────

    async def _check_registry(self) -> DiagnosticTest:
        """Tools and plugins are registered."""
        start = time.monotonic()
        n_tools, n_plugins = len(self._tools), len(self._plugins)
        if n_tools + n_plugins == 0:
            return DiagnosticTest(
                name="registry",
                status=CheckStatus.WARN,
                message="No tools or plugins registered",
                fix_hint="Call register_default_tools / register_default_plugins",
                duration_ms=(time.monotonic() - start) * 1000,
            )
        return DiagnosticTest(
            name="registry",
            status=CheckStatus.PASS,
            message=f"{n_tools} tools and {n_plugins} plugins registered",
            duration_ms=(time.monotonic() - start) * 1000,
        )

    async def _check_agents(self) -> DiagnosticTest:
        """At least one agent is reachable."""
        start = time.monotonic()
        agents = self._agents.all_agents()
        if not agents:
            return DiagnosticTest(
                name="agents",
                status=CheckStatus.WARN,
                message="No agents registered",
                fix_hint="Create an agent with create_specialized_agent",
                duration_ms=(time.monotonic() - start) * 1000,
            )
        return DiagnosticTest(
            name="agents",
            status=CheckStatus.PASS,
            message=f"{len(agents)} agents reachable",
            duration_ms=(time.monotonic() - start) * 1000,
        )

    async def _check_cognitive_state(self) -> DiagnosticTest:
        """State fields are within their valid ranges."""
        start = time.monotonic()
        state = self._tracker.snapshot()

        problems: list[str] = []
        coherence = state.identity_coherence.overall_coherence
        if not (math.isfinite(coherence) and 0.0 <= coherence <= 1.0):
            problems.append(f"identity coherence out of range ({coherence})")
        if state.thought_count < 0:
            problems.append(f"negative thought count ({state.thought_count})")
        if state.recursive_depth < 0:
            problems.append(f"negative recursive depth ({state.recursive_depth})")
        resonance = state.memory_resonance
        if resonance.memory_nodes < 0 or resonance.connections < 0:
            problems.append("negative memory resonance counts")

        if problems:
            return DiagnosticTest(
                name="cognitive_state",
                status=CheckStatus.FAIL,
                message="; ".join(problems),
                fix_hint="Re-run initialize_deep_tree_echo to reset the state",
                duration_ms=(time.monotonic() - start) * 1000,
            )
        if not state.initialized:
            return DiagnosticTest(
                name="cognitive_state",
                status=CheckStatus.WARN,
                message="Cognitive state not initialized",
                fix_hint="Call initialize_deep_tree_echo",
                duration_ms=(time.monotonic() - start) * 1000,
            )
        return DiagnosticTest(
            name="cognitive_state",
            status=CheckStatus.PASS,
            message=(
                f"Core {state.core_status.value}, coherence {coherence:.0%}, "
                f"stage {state.evolution_timeline.current_stage}"
            ),
            duration_ms=(time.monotonic() - start) * 1000,
        )

    async def _check_integrations(self) -> list[DiagnosticTest]:
        """One check per tracked integration."""
        state = self._tracker.snapshot()
        checks: list[DiagnosticTest] = []

        for name, integ in sorted(state.integrations.items()):
            check_name = f"integration:{name}"
            if integ.status == "connected":
                checks.append(DiagnosticTest(
                    name=check_name,
                    status=CheckStatus.PASS,
                    message=f"'{name}' connected ({integ.health})",
                ))
            elif integ.status == "pending":
                checks.append(DiagnosticTest(
                    name=check_name,
                    status=CheckStatus.WARN,
                    message=f"'{name}' not probed yet",
                    fix_hint="Initialize or refresh the cognitive state",
                ))
            else:
                detail = f": {integ.message}" if integ.message else ""
                checks.append(DiagnosticTest(
                    name=check_name,
                    status=CheckStatus.FAIL if integ.required else CheckStatus.WARN,
                    message=f"'{name}' disconnected{detail}",
                    fix_hint="Check the backend configuration and credentials",
                ))

        return checks

