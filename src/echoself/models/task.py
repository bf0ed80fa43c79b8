"""Task, parameter, and result models."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, RootModel, field_validator

from echoself.errors import (
    EchoError,
    ParameterMissingError,
    ParameterTypeError,
    TaskStateError,
)

_MISSING: Any = object()


class TaskType(StrEnum):
    REFLECT = "reflect"
    PLUGIN = "plugin"
    TOOL_CALL = "tool_call"
    GENERATE = "generate"
    CHAT = "chat"


class TaskStatus(StrEnum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


# Valid state transitions: from_status -> {allowed_to_statuses}
_TASK_TRANSITIONS: dict[TaskStatus, set[TaskStatus]] = {
    TaskStatus.PENDING: {TaskStatus.RUNNING, TaskStatus.FAILED},
    TaskStatus.RUNNING: {TaskStatus.COMPLETED, TaskStatus.FAILED},
    TaskStatus.COMPLETED: set(),  # terminal
    TaskStatus.FAILED: set(),  # terminal
}


def _check_value(key: str, value: Any) -> Any:
    if isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, Parameters):
        return value.root
    if isinstance(value, dict):
        return {str(k): _check_value(f"{key}.{k}", v) for k, v in value.items()}
    raise ValueError(
        f"parameter '{key}' has unsupported type {type(value).__name__}; "
        "expected str, int, float, bool or mapping"
    )


class Parameters(RootModel[dict[str, Any]]):
    """Tagged-variant parameter map.

    Values are restricted to str, int, float, bool and nested mappings of the
    same. Reads go through typed accessors which raise ParameterMissingError
    or ParameterTypeError instead of returning a surprise type.
    """

    root: dict[str, Any] = Field(default_factory=dict)

    @field_validator("root", mode="before")
    @classmethod
    def _validate_variants(cls, v: Any) -> Any:
        if v is None:
            return {}
        if not isinstance(v, dict):
            raise ValueError("parameters must be a mapping")
        return {str(k): _check_value(str(k), val) for k, val in v.items()}

    def __contains__(self, key: object) -> bool:
        return key in self.root

    def __len__(self) -> int:
        return len(self.root)

    def keys(self) -> list[str]:
        return list(self.root)

    def to_dict(self) -> dict[str, Any]:
        return dict(self.root)

    def _default(self, key: str, default: Any) -> Any:
        if default is _MISSING:
            raise ParameterMissingError(
                f"missing required parameter '{key}'",
                context={"parameter": key},
            )
        return default

    def _mismatch(self, key: str, expected: str, value: Any) -> ParameterTypeError:
        return ParameterTypeError(
            f"parameter '{key}' expected {expected}, got {type(value).__name__}",
            context={"parameter": key, "expected": expected},
        )

    def get(self, key: str, default: Any = None) -> Any:
        return self.root.get(key, default)

    def get_str(self, key: str, default: Any = _MISSING) -> str:
        if key not in self.root:
            return self._default(key, default)
        value = self.root[key]
        if not isinstance(value, str):
            raise self._mismatch(key, "str", value)
        return value

    def get_int(self, key: str, default: Any = _MISSING) -> int:
        if key not in self.root:
            return self._default(key, default)
        value = self.root[key]
        if isinstance(value, bool) or not isinstance(value, int):
            raise self._mismatch(key, "int", value)
        return value

    def get_float(self, key: str, default: Any = _MISSING) -> float:
        if key not in self.root:
            return self._default(key, default)
        value = self.root[key]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise self._mismatch(key, "float", value)
        return float(value)

    def get_bool(self, key: str, default: Any = _MISSING) -> bool:
        if key not in self.root:
            return self._default(key, default)
        value = self.root[key]
        if not isinstance(value, bool):
            raise self._mismatch(key, "bool", value)
        return value

    def get_map(self, key: str, default: Any = _MISSING) -> Parameters:
        if key not in self.root:
            return self._default(key, default)
        value = self.root[key]
        if not isinstance(value, dict):
            raise self._mismatch(key, "mapping", value)
        return Parameters(value)


class Task(BaseModel):
    """A unit of work addressed to one agent."""

    task_id: str = Field(
        default_factory=lambda: f"task_{uuid.uuid4().hex[:12]}", frozen=True
    )
    task_type: TaskType = Field(frozen=True)
    input: str = Field(default="", frozen=True)
    agent_id: str = Field(frozen=True)
    status: TaskStatus = TaskStatus.PENDING
    parameters: Parameters = Field(default_factory=Parameters)
    failure_reason: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    started_at: datetime | None = None
    completed_at: datetime | None = None

    def transition_to(self, new_status: TaskStatus, reason: str | None = None) -> None:
        """Validated state transition. Raises TaskStateError if illegal."""
        allowed = _TASK_TRANSITIONS.get(self.status, set())
        if new_status not in allowed:
            raise TaskStateError(
                f"Cannot transition task {self.task_id} "
                f"from '{self.status}' to '{new_status}'. "
                f"Allowed: {sorted(allowed) or 'none (terminal state)'}",
                context={"task_id": self.task_id, "status": str(self.status)},
            )
        self.status = new_status
        if new_status == TaskStatus.RUNNING:
            self.started_at = datetime.now(UTC)
        if new_status in (TaskStatus.COMPLETED, TaskStatus.FAILED):
            self.completed_at = datetime.now(UTC)
        if new_status == TaskStatus.FAILED:
            self.failure_reason = reason

    @property
    def is_terminal(self) -> bool:
        return self.status in (TaskStatus.COMPLETED, TaskStatus.FAILED)


class TaskResult(BaseModel):
    """Outcome of one executed task: either output or error, never both."""

    task_id: str
    agent_id: str
    status: TaskStatus
    output: str = ""
    error: EchoError | None = None
    duration_ms: float = 0.0

    model_config = {"arbitrary_types_allowed": True}

    @property
    def ok(self) -> bool:
        return self.status == TaskStatus.COMPLETED

    @property
    def error_code(self) -> str | None:
        return self.error.code if self.error is not None else None

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error
