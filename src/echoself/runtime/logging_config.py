"""Process-wide logging setup driven by the ``[runtime]`` config section.

Console output is human-readable or JSON lines. When ``log_dir`` is set a
rotating ``echoself.log`` always receives JSON lines. Every record carries the
task context (task, agent and correlation ids) read from contextvars, so
interleaved output of concurrent tasks stays attributable.
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import sys
from contextvars import ContextVar
from pathlib import Path

from echoself.config import EchoConfig, RuntimeConfig

ctx_correlation_id: ContextVar[str] = ContextVar("ctx_correlation_id", default="")
ctx_task_id: ContextVar[str] = ContextVar("ctx_task_id", default="")
ctx_agent_id: ContextVar[str] = ContextVar("ctx_agent_id", default="")

LOG_FILE = "echoself.log"
_ISO_TIME = "%Y-%m-%dT%H:%M:%S"

# Chatty dependencies pinned to WARNING regardless of the root level
_QUIET_LOGGERS = ("litellm", "instructor", "httpx", "httpcore", "asyncio")


def task_context() -> dict[str, str]:
    """Non-empty task context values of the running task."""
    values = {
        "agent_id": ctx_agent_id.get(),
        "task_id": ctx_task_id.get(),
        "correlation_id": ctx_correlation_id.get(),
    }
    return {key: val for key, val in values.items() if val}


class TaskContextFilter(logging.Filter):
    """Attach ``task_context()`` to each record as ``record.task_context``."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.task_context = task_context()  # type: ignore[attr-defined]
        return True


class JsonLineFormatter(logging.Formatter):
    def __init__(self) -> None:
        super().__init__(datefmt=_ISO_TIME)

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, object] = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            **getattr(record, "task_context", {}),
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """``HH:MM:SS [logger] LEVEL: message [agent=.. task=.. cor=..]``"""

    # context key -> (label, max shown chars)
    _LABELS = {
        "agent_id": ("agent", None),
        "task_id": ("task", 16),
        "correlation_id": ("cor", 12),
    }

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
            datefmt="%H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        ctx = getattr(record, "task_context", {})
        suffix = " ".join(
            f"{label}={ctx[key][:width]}"
            for key, (label, width) in self._LABELS.items()
            if key in ctx
        )
        return f"{line} [{suffix}]" if suffix else line


def _file_handler(runtime: RuntimeConfig) -> logging.Handler:
    log_path = Path(runtime.log_dir or ".")
    log_path.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        log_path / LOG_FILE,
        maxBytes=runtime.log_max_bytes,
        backupCount=runtime.log_backup_count,
        encoding="utf-8",
    )
    handler.setFormatter(JsonLineFormatter())
    return handler


def configure_logging(runtime: RuntimeConfig | None = None, *, verbose: bool = False) -> None:
    """Replace the root handlers according to ``runtime``.

    ``verbose`` forces the root level to DEBUG. Calling again reconfigures
    from scratch.
    """
    runtime = runtime or RuntimeConfig()

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(JsonLineFormatter() if runtime.log_json else ConsoleFormatter())
    handlers: list[logging.Handler] = [console]
    if runtime.log_dir:
        handlers.append(_file_handler(runtime))

    context_filter = TaskContextFilter()
    root = logging.getLogger()
    root.handlers.clear()
    for handler in handlers:
        handler.addFilter(context_filter)
        root.addHandler(handler)
    root.setLevel("DEBUG" if verbose else runtime.log_level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    for name, level in (runtime.module_levels or {}).items():
        logging.getLogger(name).setLevel(level)


def configure_from_config(config: EchoConfig, *, verbose: bool = False) -> None:
    """Configure logging from a loaded ``echoself.toml``."""
    configure_logging(config.runtime, verbose=verbose)


def set_log_level(level: str) -> bool:
    """Change the root level in place; False when ``level`` is unknown."""
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        return False
    logging.getLogger().setLevel(numeric)
    logging.getLogger(__name__).info("logging.level_changed level=%s", level.upper())
    return True
