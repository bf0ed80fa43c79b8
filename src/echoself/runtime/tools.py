"""Name-keyed registry for tool and plugin handlers.

A handler takes ``(context, parameters)`` and returns output text, either
directly or as an awaitable. It signals failure by raising.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Literal

from pydantic import BaseModel, Field

from echoself.errors import DuplicateNameError, NotFoundError
from echoself.models.agent import AgentType, ContextItem
from echoself.models.task import Parameters

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class HandlerContext:
    """What a handler may see of the task and agent it serves."""

    task_id: str
    task_type: str
    input: str
    agent_id: str
    agent_name: str
    agent_type: AgentType
    recent_context: tuple[ContextItem, ...] = field(default_factory=tuple)


Handler = Callable[[HandlerContext, Parameters], str | Awaitable[str]]

CapabilityKind = Literal["tool", "plugin"]


class CapabilitySpec(BaseModel):
    """Specification for a registered tool or plugin."""

    name: str
    kind: CapabilityKind = "tool"
    description: str = ""
    category: str = ""
    timeout_seconds: float | None = Field(default=None, gt=0)


@dataclass(frozen=True)
class RegisteredCapability:
    spec: CapabilitySpec
    handler: Handler

    @property
    def name(self) -> str:
        return self.spec.name

    async def invoke(self, context: HandlerContext, parameters: Parameters) -> str:
        """Run the handler; sync handlers go to a worker thread."""
        if inspect.iscoroutinefunction(self.handler):
            result = await self.handler(context, parameters)
        else:
            result = await asyncio.to_thread(self.handler, context, parameters)
            if inspect.isawaitable(result):
                result = await result
        return "" if result is None else str(result)


class CapabilityRegistry:
    """Registry for one kind of capability (tools or plugins)."""

    def __init__(self, kind: CapabilityKind = "tool") -> None:
        self.kind = kind
        self._entries: dict[str, RegisteredCapability] = {}

    def register(
        self,
        name: str,
        handler: Handler,
        *,
        description: str = "",
        category: str = "",
        timeout_seconds: float | None = None,
    ) -> CapabilitySpec:
        """Bind ``name`` to ``handler``. Raises DuplicateNameError if taken."""
        if not name:
            raise ValueError(f"{self.kind} name must be non-empty")
        if name in self._entries:
            raise DuplicateNameError(
                f"{self.kind} '{name}' is already registered",
                context={"kind": self.kind, "name": name},
            )
        spec = CapabilitySpec(
            name=name,
            kind=self.kind,
            description=description or (handler.__doc__ or "").strip(),
            category=category,
            timeout_seconds=timeout_seconds,
        )
        self._entries[name] = RegisteredCapability(spec=spec, handler=handler)
        log.debug("registry.registered kind=%s name=%s category=%s", self.kind, name, category)
        return spec

    def lookup(self, name: str) -> RegisteredCapability:
        """Return the capability bound to ``name``. Raises NotFoundError."""
        entry = self._entries.get(name)
        if entry is None:
            raise NotFoundError(
                f"{self.kind} '{name}' is not registered",
                context={"kind": self.kind, "name": name},
            )
        return entry

    def names(self) -> list[str]:
        """Registered names in registration order."""
        return list(self._entries)

    def list_all(self) -> list[CapabilitySpec]:
        return [entry.spec for entry in self._entries.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)
