"""Agent identity and per-agent mutable state."""

from __future__ import annotations

import copy
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Literal


class AgentType(StrEnum):
    GENERAL = "general"
    REFLECTIVE = "reflective"
    ORCHESTRATOR = "orchestrator"
    SPECIALIST = "specialist"


@dataclass(frozen=True)
class ContextItem:
    """One turn of an agent's working context."""

    role: Literal["input", "output"]
    content: str
    task_id: str
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True)
class MemoryEntry:
    """Long-term memory derived from a completed task."""

    task_id: str
    task_type: str
    summary: str
    entry_id: str = field(default_factory=lambda: f"mem_{uuid.uuid4().hex[:12]}")
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass
class AgentState:
    """Mutable state owned by the engine.

    ``context`` is a bounded ring: once ``maxlen`` is reached the oldest
    items are evicted first.
    """

    context: deque[ContextItem] = field(default_factory=lambda: deque(maxlen=32))
    memory: list[MemoryEntry] = field(default_factory=list)
    last_interaction: datetime | None = None
    tasks_completed: int = 0
    tasks_failed: int = 0

    @property
    def context_capacity(self) -> int | None:
        return self.context.maxlen

    @property
    def success_rate(self) -> float:
        total = self.tasks_completed + self.tasks_failed
        if total == 0:
            return 1.0  # optimistic default
        return self.tasks_completed / total


@dataclass
class Agent:
    """A stateful actor that executes tasks."""

    agent_type: AgentType
    label: str
    agent_id: str = field(default_factory=lambda: f"agt_{uuid.uuid4().hex[:12]}")
    state: AgentState = field(default_factory=AgentState)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def name(self) -> str:
        return f"{self.agent_type.value}-{self.label}"

    def snapshot(self) -> Agent:
        """Deep copy handed to callers; mutating it never touches the store."""
        return copy.deepcopy(self)
