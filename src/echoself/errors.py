"""Structured error taxonomy for echoself.

Every error carries a machine-readable code, severity, and retryability
flag so that callers (and the task engine) can treat failures as data.

Error code format: ECHO_<DOMAIN>_<ISSUE>
Domains: AGENT, TASK, REGISTRY, INTROSPECTION, COGNITION, CONFIG, BACKEND
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any


class Severity(StrEnum):
    CRITICAL = "critical"  # engine cannot continue
    ERROR = "error"  # operation failed
    WARN = "warn"  # degraded but operational


class ErrorDomain(StrEnum):
    AGENT = "AGENT"
    TASK = "TASK"
    REGISTRY = "REGISTRY"
    INTROSPECTION = "INTROSPECTION"
    COGNITION = "COGNITION"
    CONFIG = "CONFIG"
    BACKEND = "BACKEND"


# ── Base exception ─────────────────────────────────────────────────────────


class EchoError(Exception):
    """Base exception for all echoself errors."""

    code: str = "ECHO_UNKNOWN"
    domain: ErrorDomain = ErrorDomain.TASK
    severity: Severity = Severity.ERROR
    is_retryable: bool = False

    def __init__(
        self,
        message: str = "",
        *,
        context: dict[str, Any] | None = None,
    ) -> None:
        self.message = message or self.code
        self.context: dict[str, Any] = context or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "domain": self.domain.value,
            "severity": self.severity.value,
            "message": self.message,
            "is_retryable": self.is_retryable,
            "context": self.context,
        }


# ── Lookup / registry errors ───────────────────────────────────────────────


class NotFoundError(EchoError):
    code = "ECHO_REGISTRY_NOT_FOUND"
    domain = ErrorDomain.REGISTRY


class DuplicateNameError(EchoError):
    code = "ECHO_REGISTRY_DUPLICATE"
    domain = ErrorDomain.REGISTRY


# ── Agent errors ───────────────────────────────────────────────────────────


class UnsupportedAgentTypeError(EchoError):
    code = "ECHO_AGENT_UNSUPPORTED_TYPE"
    domain = ErrorDomain.AGENT


class AgentMismatchError(EchoError):
    code = "ECHO_AGENT_MISMATCH"
    domain = ErrorDomain.AGENT


# ── Task errors ────────────────────────────────────────────────────────────


class TaskStateError(EchoError):
    code = "ECHO_TASK_INVALID_TRANSITION"
    domain = ErrorDomain.TASK


class TaskTimeoutError(EchoError, TimeoutError):
    code = "ECHO_TASK_TIMEOUT"
    domain = ErrorDomain.TASK
    severity = Severity.WARN
    is_retryable = True


class TaskCancelledError(EchoError):
    code = "ECHO_TASK_CANCELLED"
    domain = ErrorDomain.TASK
    severity = Severity.WARN


class UnsupportedTaskTypeError(EchoError):
    code = "ECHO_TASK_UNSUPPORTED_TYPE"
    domain = ErrorDomain.TASK


class EmptyOutputError(EchoError):
    code = "ECHO_TASK_EMPTY_OUTPUT"
    domain = ErrorDomain.TASK


class HandlerError(EchoError):
    """A tool, plugin, or backend raised while handling a task."""

    code = "ECHO_TASK_HANDLER_FAILED"
    domain = ErrorDomain.TASK
    is_retryable = True


class ParameterError(EchoError):
    code = "ECHO_TASK_PARAMETER"
    domain = ErrorDomain.TASK


class ParameterMissingError(ParameterError):
    code = "ECHO_TASK_PARAMETER_MISSING"


class ParameterTypeError(ParameterError):
    code = "ECHO_TASK_PARAMETER_TYPE"


class ParameterValueError(ParameterError):
    code = "ECHO_TASK_PARAMETER_VALUE"


# ── Introspection errors ───────────────────────────────────────────────────


class PathNotFoundError(NotFoundError):
    code = "ECHO_INTROSPECTION_PATH_NOT_FOUND"
    domain = ErrorDomain.INTROSPECTION


class InvalidWeightError(EchoError):
    code = "ECHO_INTROSPECTION_INVALID_WEIGHT"
    domain = ErrorDomain.INTROSPECTION


# ── Cognition / backend errors ─────────────────────────────────────────────


class CapabilityUnavailableError(EchoError):
    code = "ECHO_COGNITION_CAPABILITY_UNAVAILABLE"
    domain = ErrorDomain.COGNITION
    severity = Severity.WARN
    is_retryable = True


class AnalyzerError(EchoError):
    code = "ECHO_BACKEND_ANALYZE_FAILED"
    domain = ErrorDomain.BACKEND
    is_retryable = True


# ── Config errors ──────────────────────────────────────────────────────────


class ConfigValidationError(EchoError):
    code = "ECHO_CONFIG_INVALID"
    domain = ErrorDomain.CONFIG
    severity = Severity.CRITICAL


# ── Error classification helper ────────────────────────────────────────────


def classify_error(exc: BaseException) -> EchoError:
    """Wrap a raw handler exception into a structured EchoError.

    EchoErrors pass through untouched; timeouts become TaskTimeoutError and
    everything else becomes HandlerError carrying the original type name.
    """
    if isinstance(exc, EchoError):
        return exc
    if isinstance(exc, TimeoutError):
        return TaskTimeoutError(str(exc) or "handler timed out")
    return HandlerError(
        f"{type(exc).__name__}: {exc}",
        context={"exception_type": type(exc).__name__},
    )
