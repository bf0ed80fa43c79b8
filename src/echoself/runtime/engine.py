"""Orchestration engine: the caller-facing API and task execution.

The engine owns the tool and plugin registries, the agent store, and the
cognitive state tracker. ``execute_task`` drives a task through
``pending -> running -> completed | failed``:

1. validate the task against the target agent,
2. route it through the dispatch table (one route per ``TaskType``),
3. run the handler under a deadline and an optional cancel signal,
4. commit agent state and cognitive state together under the agent's lock.

Handler failures never leave partial agent state behind: nothing is written
until step 4, and step 4 does not yield to the event loop.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass

from echoself.config import EchoConfig
from echoself.errors import (
    AgentMismatchError,
    CapabilityUnavailableError,
    ConfigValidationError,
    EchoError,
    EmptyOutputError,
    ParameterValueError,
    TaskCancelledError,
    TaskStateError,
    TaskTimeoutError,
    UnsupportedTaskTypeError,
    classify_error,
)
from echoself.models.agent import Agent, AgentType
from echoself.models.cognition import (
    DeepTreeEchoState,
    DiagnosticResult,
    IntrospectionResult,
)
from echoself.models.task import Task, TaskResult, TaskStatus, TaskType
from echoself.runtime.agent_store import AgentStore
from echoself.runtime.backends import Analyzer, build_analyzer
from echoself.runtime.cognitive_state import CognitiveStateTracker
from echoself.runtime.introspection import IntrospectionEngine
from echoself.runtime.logging_config import ctx_agent_id, ctx_task_id
from echoself.runtime.tools import (
    CapabilityRegistry,
    CapabilitySpec,
    Handler,
    HandlerContext,
    RegisteredCapability,
)
from echoself.services.doctor.service import DoctorService

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Route:
    """A resolved handler invocation for one task."""

    target: str
    run: Callable[[], Awaitable[str]]
    timeout_seconds: float | None = None


def _clip(text: str, limit: int) -> str:
    text = " ".join(text.split())
    if len(text) <= limit:
        return text
    return text[: max(0, limit - 3)] + "..."


class Engine:
    """In-process orchestration engine for agents, tasks, and self-model."""

    def __init__(
        self,
        config: EchoConfig | None = None,
        *,
        analyzer: Analyzer | None = None,
    ) -> None:
        self._config = config or EchoConfig()
        cfg = self._config

        self._tools = CapabilityRegistry("tool")
        self._plugins = CapabilityRegistry("plugin")
        self._agents = AgentStore(
            context_capacity=cfg.agents.context_capacity,
            memory_capacity=cfg.agents.memory_capacity,
        )
        self._analyzer = analyzer or build_analyzer(cfg.backend)
        self._tracker = CognitiveStateTracker(
            self._analyzer,
            config=cfg.cognition,
            introspection_config=cfg.introspection,
        )
        self._introspection = IntrospectionEngine(cfg.introspection)
        self._doctor = DoctorService(self._tools, self._plugins, self._agents, self._tracker)

        try:
            self._cognitive_types = frozenset(TaskType(t) for t in cfg.tasks.cognitive_types)
        except ValueError as e:
            raise ConfigValidationError(
                f"tasks.cognitive_types: {e}",
                context={"cognitive_types": cfg.tasks.cognitive_types},
            ) from e

        self._dispatch: dict[TaskType, Callable[[Task, Agent], _Route]] = {
            TaskType.REFLECT: self._route_reflect,
            TaskType.PLUGIN: self._route_plugin,
            TaskType.TOOL_CALL: self._route_tool_call,
            TaskType.GENERATE: self._route_named_tool,
            TaskType.CHAT: self._route_named_tool,
        }
        unrouted = set(TaskType) - set(self._dispatch)
        if unrouted:
            raise RuntimeError(f"no dispatch route for task types: {sorted(unrouted)}")

        self._tracker.register_integration(
            "nlp_backend", self._analyzer.health_check, required=True
        )
        self._tracker.register_integration("tool_registry", lambda: len(self._tools) > 0)
        self._tracker.register_integration("plugin_registry", lambda: len(self._plugins) > 0)

    @property
    def config(self) -> EchoConfig:
        return self._config

    # ── Registry ─────────────────────────────────────────────────────

    def register_tool(
        self,
        name: str,
        handler: Handler,
        *,
        description: str = "",
        category: str = "",
        timeout_seconds: float | None = None,
    ) -> CapabilitySpec:
        return self._tools.register(
            name,
            handler,
            description=description,
            category=category,
            timeout_seconds=timeout_seconds,
        )

    def register_plugin(
        self,
        name: str,
        handler: Handler,
        *,
        description: str = "",
        category: str = "",
        timeout_seconds: float | None = None,
    ) -> CapabilitySpec:
        return self._plugins.register(
            name,
            handler,
            description=description,
            category=category,
            timeout_seconds=timeout_seconds,
        )

    def available_tools(self) -> list[str]:
        return self._tools.names()

    def available_plugins(self) -> list[str]:
        return self._plugins.names()

    # ── Agents ───────────────────────────────────────────────────────

    async def create_specialized_agent(self, agent_type: AgentType | str, label: str) -> Agent:
        """Create an agent; raises UnsupportedAgentTypeError for unknown types."""
        return self._agents.create_agent(agent_type, label).snapshot()

    async def get_agent(self, agent_id: str) -> Agent:
        """Snapshot of an agent's current state; raises NotFoundError."""
        return self._agents.get(agent_id).snapshot()

    def list_agents(self) -> list[Agent]:
        return [a.snapshot() for a in self._agents.all_agents()]

    # ── Cognitive state ──────────────────────────────────────────────

    @property
    def deep_tree_echo(self) -> DeepTreeEchoState:
        """Snapshot of the DeepTreeEcho state."""
        return self._tracker.snapshot()

    async def initialize_deep_tree_echo(self) -> None:
        """Reset the cognitive state and probe integrations.

        Raises CapabilityUnavailableError if a required integration is down;
        the engine stays usable in a degraded state.
        """
        try:
            await self._tracker.initialize()
        except CapabilityUnavailableError as e:
            log.warning("engine.initialize_degraded error=%s", e.message)
            raise

    async def refresh_deep_tree_echo_status(self) -> None:
        try:
            await self._tracker.refresh_status(self._agents.consistency())
        except CapabilityUnavailableError as e:
            log.warning("engine.refresh_degraded error=%s", e.message)
            raise

    async def run_diagnostics(self) -> DiagnosticResult:
        return await self._doctor.run_all_checks()

    async def perform_introspection(
        self,
        root: str | os.PathLike[str],
        coherence_weight: float = 0.6,
        novelty_weight: float = 0.4,
    ) -> IntrospectionResult:
        """Scan ``root`` and fold the salient files into the memory graph."""
        start = time.monotonic()
        outcome = await asyncio.to_thread(
            self._introspection.scan, root, coherence_weight, novelty_weight
        )
        integration = self._tracker.fold_introspection(outcome)
        return IntrospectionResult(
            root=str(root),
            cognitive_snapshot=outcome.snapshot,
            echo_integration=integration,
            coherence_score=outcome.coherence_score,
            duration_ms=(time.monotonic() - start) * 1000,
        )

    # ── Task execution ───────────────────────────────────────────────

    async def execute_task(
        self,
        task: Task,
        agent: Agent,
        *,
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> TaskResult:
        """Run ``task`` against ``agent`` and return its result.

        Task-local failures (mismatch, unknown handler, handler errors,
        deadline, cancel signal) are returned in ``TaskResult.error``.
        Raises TaskStateError if the task is not pending. If the awaiting
        coroutine itself is cancelled the task is marked failed and the
        CancelledError propagates.
        """
        if task.status != TaskStatus.PENDING:
            raise TaskStateError(
                f"task {task.task_id} is {task.status}, only pending tasks can be executed",
                context={"task_id": task.task_id, "status": str(task.status)},
            )

        tok_task = ctx_task_id.set(task.task_id)
        tok_agent = ctx_agent_id.set(task.agent_id)
        try:
            return await self._execute(task, agent, timeout, cancel_event)
        finally:
            ctx_task_id.reset(tok_task)
            ctx_agent_id.reset(tok_agent)

    async def execute_batch(
        self,
        items: Iterable[tuple[Task, Agent]],
        *,
        timeout: float | None = None,
    ) -> list[TaskResult]:
        """Execute several tasks concurrently; results keep input order."""
        return list(
            await asyncio.gather(
                *(self.execute_task(task, agent, timeout=timeout) for task, agent in items)
            )
        )

    async def _execute(
        self,
        task: Task,
        agent: Agent,
        timeout: float | None,
        cancel_event: asyncio.Event | None,
    ) -> TaskResult:
        start = time.monotonic()

        if task.agent_id != agent.agent_id:
            return self._fail(
                task,
                AgentMismatchError(
                    f"task {task.task_id} targets agent {task.agent_id}, "
                    f"not {agent.agent_id}",
                    context={"task_agent_id": task.agent_id, "agent_id": agent.agent_id},
                ),
                start,
                charge_agent=False,
            )
        try:
            live = self._agents.get(agent.agent_id)
        except EchoError as e:
            return self._fail(task, e, start, charge_agent=False)

        if cancel_event is not None and cancel_event.is_set():
            return self._fail(task, TaskCancelledError("cancelled before start"), start)

        task.transition_to(TaskStatus.RUNNING)
        log.debug("engine.task_running type=%s agent=%s", task.task_type.value, live.name)

        try:
            route = self._route(task, live)
            deadline = self._deadline(task, route, timeout)
            output = await self._run_bounded(route, deadline, cancel_event)
            if not output.strip():
                raise EmptyOutputError(
                    f"{route.target} returned no output",
                    context={"target": route.target},
                )
        except asyncio.CancelledError:
            self._fail(task, TaskCancelledError("cancelled by caller"), start)
            raise
        except Exception as e:
            return self._fail(task, classify_error(e), start)

        limit = self._config.agents.summary_chars
        try:
            async with self._agents.lock_for(live.agent_id):
                commit = self._agents.commit_success(
                    live.agent_id,
                    task_id=task.task_id,
                    task_type=task.task_type.value,
                    task_input=task.input,
                    output=output,
                    summary=(
                        f"{task.task_type.value}: {_clip(task.input, limit)} -> "
                        f"{_clip(output, limit)}"
                    ),
                )
                self._tracker.record_task_outcome(
                    live.agent_id,
                    success=True,
                    cognitive=task.task_type in self._cognitive_types,
                    memory_entry=commit.entry,
                    pruned=commit.pruned,
                )
        except asyncio.CancelledError:
            # Cancelled while waiting for the lock: nothing was committed.
            self._fail(task, TaskCancelledError("cancelled before commit"), start)
            raise

        task.transition_to(TaskStatus.COMPLETED)
        duration_ms = (time.monotonic() - start) * 1000
        log.info(
            "engine.task_completed type=%s target=%s duration_ms=%.1f",
            task.task_type.value,
            route.target,
            duration_ms,
        )
        return TaskResult(
            task_id=task.task_id,
            agent_id=task.agent_id,
            status=TaskStatus.COMPLETED,
            output=output,
            duration_ms=duration_ms,
        )

    def _fail(
        self,
        task: Task,
        error: EchoError,
        start: float,
        *,
        charge_agent: bool = True,
    ) -> TaskResult:
        task.transition_to(TaskStatus.FAILED, reason=error.code)
        if charge_agent:
            self._agents.commit_failure(task.agent_id)
        self._tracker.record_task_outcome(
            task.agent_id,
            success=False,
            cognitive=task.task_type in self._cognitive_types,
        )
        duration_ms = (time.monotonic() - start) * 1000
        log.warning(
            "engine.task_failed type=%s code=%s error=%s duration_ms=%.1f",
            task.task_type.value,
            error.code,
            error.message,
            duration_ms,
        )
        return TaskResult(
            task_id=task.task_id,
            agent_id=task.agent_id,
            status=TaskStatus.FAILED,
            error=error,
            duration_ms=duration_ms,
        )

    # ── Routing ──────────────────────────────────────────────────────

    def _route(self, task: Task, agent: Agent) -> _Route:
        router = self._dispatch.get(task.task_type)
        if router is None:
            raise UnsupportedTaskTypeError(
                f"no route for task type '{task.task_type}'",
                context={"task_type": str(task.task_type)},
            )
        return router(task, agent)

    def _route_reflect(self, task: Task, agent: Agent) -> _Route:
        return _Route(
            target="cognitive:reflect",
            run=lambda: self._tracker.reflect(task.input, task.parameters, agent),
        )

    def _route_plugin(self, task: Task, agent: Agent) -> _Route:
        name = task.parameters.get_str("plugin_name")
        return self._capability_route(self._plugins.lookup(name), task, agent)

    def _route_tool_call(self, task: Task, agent: Agent) -> _Route:
        name = task.parameters.get_str("tool_name")
        return self._capability_route(self._tools.lookup(name), task, agent)

    def _route_named_tool(self, task: Task, agent: Agent) -> _Route:
        name = task.parameters.get_str("tool_name", task.task_type.value)
        return self._capability_route(self._tools.lookup(name), task, agent)

    def _capability_route(
        self,
        capability: RegisteredCapability,
        task: Task,
        agent: Agent,
    ) -> _Route:
        context = HandlerContext(
            task_id=task.task_id,
            task_type=task.task_type.value,
            input=task.input,
            agent_id=agent.agent_id,
            agent_name=agent.name,
            agent_type=agent.agent_type,
            recent_context=tuple(agent.state.context),
        )
        return _Route(
            target=f"{capability.spec.kind}:{capability.name}",
            run=lambda: capability.invoke(context, task.parameters),
            timeout_seconds=capability.spec.timeout_seconds,
        )

    def _deadline(self, task: Task, route: _Route, timeout: float | None) -> float:
        if timeout is None:
            timeout = task.parameters.get_float("timeout_seconds", None)
        if timeout is None:
            timeout = route.timeout_seconds
        if timeout is None:
            timeout = self._config.tasks.default_timeout_seconds
        if timeout <= 0:
            raise ParameterValueError(
                f"timeout must be positive, got {timeout}",
                context={"timeout_seconds": timeout},
            )
        return timeout

    async def _run_bounded(
        self,
        route: _Route,
        deadline: float,
        cancel_event: asyncio.Event | None,
    ) -> str:
        """Run a route as its own task under ``deadline``, racing ``cancel_event``."""
        handler = asyncio.ensure_future(route.run())
        pending: list[asyncio.Future] = [handler]
        if cancel_event is not None:
            pending.append(asyncio.ensure_future(cancel_event.wait()))

        cm = asyncio.timeout(deadline)
        try:
            async with cm:
                await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
        except TimeoutError:
            if cm.expired():
                raise TaskTimeoutError(
                    f"{route.target} exceeded deadline of {deadline:.3f}s",
                    context={"target": route.target, "deadline_seconds": deadline},
                ) from None
            raise
        finally:
            for fut in pending:
                if not fut.done():
                    fut.cancel()

        if handler.done() and not handler.cancelled():
            return handler.result()
        raise TaskCancelledError(
            f"{route.target} cancelled by signal",
            context={"target": route.target},
        )
