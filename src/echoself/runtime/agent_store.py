"""Agent store: identity, per-agent locks, and state commits.

Only the task engine calls the ``commit_*`` methods. Each commit is a
synchronous block that must run while the caller holds ``lock_for(agent_id)``
so that all mutations of one agent are linearised.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime

from echoself.errors import NotFoundError, UnsupportedAgentTypeError
from echoself.models.agent import Agent, AgentState, AgentType, ContextItem, MemoryEntry

log = logging.getLogger(__name__)


@dataclass
class MemoryCommit:
    """Outcome of a successful commit: the new entry and any entries evicted."""

    entry: MemoryEntry
    pruned: list[MemoryEntry] = field(default_factory=list)


def _coerce_agent_type(agent_type: AgentType | str) -> AgentType:
    if isinstance(agent_type, AgentType):
        return agent_type
    try:
        return AgentType(str(agent_type).lower())
    except ValueError:
        raise UnsupportedAgentTypeError(
            f"unsupported agent type '{agent_type}'",
            context={
                "agent_type": str(agent_type),
                "supported": [t.value for t in AgentType],
            },
        ) from None


class AgentStore:
    """Owns every agent for the lifetime of an engine."""

    def __init__(
        self,
        context_capacity: int = 32,
        memory_capacity: int | None = None,
    ) -> None:
        self._agents: dict[str, Agent] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._context_capacity = context_capacity
        self._memory_capacity = memory_capacity

    def create_agent(self, agent_type: AgentType | str, label: str) -> Agent:
        """Allocate a fresh agent with empty context and memory."""
        resolved = _coerce_agent_type(agent_type)
        agent = Agent(
            agent_type=resolved,
            label=label,
            state=AgentState(context=deque(maxlen=self._context_capacity)),
        )
        self._agents[agent.agent_id] = agent
        self._locks[agent.agent_id] = asyncio.Lock()
        log.info(
            "agent_store.created agent_id=%s type=%s name=%s",
            agent.agent_id,
            resolved.value,
            agent.name,
        )
        return agent

    def get(self, agent_id: str) -> Agent:
        """Return the live agent. Raises NotFoundError."""
        agent = self._agents.get(agent_id)
        if agent is None:
            raise NotFoundError(
                f"agent '{agent_id}' not found",
                context={"agent_id": agent_id},
            )
        return agent

    def lock_for(self, agent_id: str) -> asyncio.Lock:
        self.get(agent_id)
        return self._locks[agent_id]

    def all_agents(self) -> list[Agent]:
        return list(self._agents.values())

    def __len__(self) -> int:
        return len(self._agents)

    def __contains__(self, agent_id: object) -> bool:
        return agent_id in self._agents

    # ── Commits (engine only, under lock_for) ────────────────────────

    def commit_success(
        self,
        agent_id: str,
        *,
        task_id: str,
        task_type: str,
        task_input: str,
        output: str,
        summary: str,
    ) -> MemoryCommit:
        """Append the task's turn to context and a memory entry, atomically."""
        agent = self.get(agent_id)
        now = datetime.now(UTC)
        items = (
            ContextItem(role="input", content=task_input, task_id=task_id, created_at=now),
            ContextItem(role="output", content=output, task_id=task_id, created_at=now),
        )
        entry = MemoryEntry(
            task_id=task_id,
            task_type=task_type,
            summary=summary,
            created_at=now,
        )

        state = agent.state
        state.context.extend(items)
        state.memory.append(entry)
        pruned = self._prune_memory(state)
        state.last_interaction = now
        state.tasks_completed += 1

        if pruned:
            log.debug(
                "agent_store.memory_pruned agent_id=%s pruned=%d capacity=%s",
                agent_id,
                len(pruned),
                self._memory_capacity,
            )
        return MemoryCommit(entry=entry, pruned=pruned)

    def commit_failure(self, agent_id: str) -> None:
        """Record a failed task. Context and memory are left untouched."""
        agent = self._agents.get(agent_id)
        if agent is None:
            return
        agent.state.tasks_failed += 1

    def _prune_memory(self, state: AgentState) -> list[MemoryEntry]:
        if self._memory_capacity is None:
            return []
        overflow = len(state.memory) - self._memory_capacity
        if overflow <= 0:
            return []
        pruned = state.memory[:overflow]
        del state.memory[:overflow]
        return pruned

    # ── Aggregates ───────────────────────────────────────────────────

    def consistency(self) -> float | None:
        """Mean success rate over agents that have executed anything.

        Memory entries are only written on success, so this is the share of
        task activity that is reflected in agent memory.
        """
        active = [
            a.state
            for a in self._agents.values()
            if a.state.tasks_completed + a.state.tasks_failed > 0
        ]
        if not active:
            return None
        return sum(s.success_rate for s in active) / len(active)
