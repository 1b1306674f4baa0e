"""Structured logging for devboxctl runs.

Two sinks are maintained under the configured logs directory:

``devboxctl.log``
    Human readable, severity tagged lines (``[2025-01-01 12:00:00] [INFO] ...``)
    written through the standard :mod:`logging` machinery. Every line is
    mirrored to the console with severity colouring.

``operations.jsonl``
    One JSON record per CLI operation (workflow run, uninstall, preflight)
    including the individual steps, their status and the final result.

File output is best effort: if the directory cannot be created or a write
fails, the logger disables its file sinks and keeps printing to the console.
"""
from __future__ import annotations

import json
import logging
import time
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from rich.console import Console
from rich.markup import escape

LEVEL_STYLES: Mapping[str, str] = {
    "ERROR": "red",
    "WARN": "yellow",
    "INFO": "green",
    "DEBUG": "blue",
}

_LEVELS: Mapping[str, int] = {
    "ERROR": logging.ERROR,
    "WARN": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}

_SECRET_MARKERS = ("password", "secret", "token")


class _SeverityFormatter(logging.Formatter):
    """Render ``WARNING`` as ``WARN`` to match the console tags."""

    def format(self, record: logging.LogRecord) -> str:
        record.severity = "WARN" if record.levelno == logging.WARNING else record.levelname
        return super().format(record)


def _sanitize(value: object) -> object:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Mapping):
        cleaned: dict[str, object] = {}
        for key, item in value.items():
            name = str(key)
            if any(marker in name.lower() for marker in _SECRET_MARKERS):
                cleaned[name] = "***"
                continue
            cleaned[name] = _sanitize(item)
        return cleaned
    if isinstance(value, (list, tuple)):
        return [_sanitize(item) for item in value]
    return str(value)


@dataclass(slots=True)
class OperationScope:
    """Collects steps and the final result of a single operation."""

    name: str
    args: Mapping[str, object]
    target: Mapping[str, object]
    started: float = field(default_factory=time.perf_counter)
    steps: list[dict[str, object]] = field(default_factory=list)
    result: dict[str, object] | None = None
    lock_wait_ms: int | None = None

    def add_step(self, name: str, *, status: str, detail: str | None = None) -> None:
        """Record an individual step outcome."""
        entry: dict[str, object] = {"name": name, "status": status}
        if detail is not None:
            entry["detail"] = detail
        self.steps.append(entry)

    def set_lock_wait_ms(self, wait_ms: int) -> None:
        """Record how long the operation waited for its lock."""
        self.lock_wait_ms = wait_ms

    def success(
        self,
        message: str,
        *,
        changed: int = 0,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as successful."""
        self.result = {
            "status": "success",
            "message": message,
            "changed": changed,
            "context": _sanitize(dict(context or {})),
        }

    def warning(
        self,
        message: str,
        *,
        warnings: Sequence[str] = (),
        errors: Sequence[str] = (),
        changed: int = 0,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as completed with warnings."""
        self.result = {
            "status": "warning",
            "message": message,
            "warnings": list(warnings),
            "errors": list(errors),
            "changed": changed,
            "context": _sanitize(dict(context or {})),
        }

    def error(
        self,
        message: str,
        *,
        errors: Sequence[str] | None = None,
        rc: int = 1,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as failed."""
        self.result = {
            "status": "error",
            "message": message,
            "errors": list(errors) if errors else [message],
            "rc": rc,
            "context": _sanitize(dict(context or {})),
        }


class StructuredLogger:
    """Severity tagged run log plus JSON operation records."""

    def __init__(
        self,
        logs_dir: Path,
        *,
        console: Console | None = None,
        err_console: Console | None = None,
    ) -> None:
        """Prepare the log sinks under *logs_dir*."""
        self._logs_dir = logs_dir
        self._console = console or Console(highlight=False)
        self._err_console = err_console or Console(stderr=True, highlight=False)
        self._log_path = logs_dir / "devboxctl.log"
        self._operations_log_path = logs_dir / "operations.jsonl"
        self._enabled = True
        try:
            logs_dir.mkdir(parents=True, exist_ok=True)
        except OSError:
            self._enabled = False
        self._file_logger = logging.getLogger(f"devboxctl.run.{self._log_path}")
        self._file_logger.setLevel(logging.DEBUG)
        self._file_logger.propagate = False
        if self._enabled and not self._file_logger.handlers:
            try:
                handler = logging.FileHandler(self._log_path, encoding="utf-8")
            except OSError:
                self._enabled = False
            else:
                handler.setFormatter(
                    _SeverityFormatter(
                        "[%(asctime)s] [%(severity)s] %(message)s",
                        datefmt="%Y-%m-%d %H:%M:%S",
                    )
                )
                self._file_logger.addHandler(handler)

    @property
    def log_path(self) -> Path:
        """Return the path of the human readable log file."""
        return self._log_path

    @property
    def operations_log_path(self) -> Path:
        """Return the path of the JSON operation records."""
        return self._operations_log_path

    @property
    def console(self) -> Console:
        """Return the console used for mirrored output."""
        return self._console

    # ------------------------------------------------------------------
    def log(self, level: str, message: str) -> None:
        """Write *message* at *level* (ERROR, WARN, INFO, DEBUG)."""
        label = level.upper()
        if label == "WARNING":
            label = "WARN"
        if label not in _LEVELS:
            raise ValueError(f"Unknown log level '{level}'.")
        style = LEVEL_STYLES[label]
        target = self._err_console if label == "ERROR" else self._console
        target.print(f"[{style}]\\[{label}][/{style}] {escape(message)}")
        if self._enabled:
            try:
                self._file_logger.log(_LEVELS[label], message)
            except OSError:
                self._enabled = False

    def info(self, message: str) -> None:
        """Log an informational message."""
        self.log("INFO", message)

    def warn(self, message: str) -> None:
        """Log a warning."""
        self.log("WARN", message)

    def error(self, message: str) -> None:
        """Log an error."""
        self.log("ERROR", message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.log("DEBUG", message)

    # ------------------------------------------------------------------
    @contextmanager
    def operation(
        self,
        name: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> Iterator[OperationScope]:
        """Record an operation; the record is written when the block exits."""
        scope = OperationScope(name=name, args=dict(args or {}), target=dict(target or {}))
        try:
            yield scope
        except BaseException as exc:
            if scope.result is None:
                scope.error(str(exc) or type(exc).__name__)
            raise
        finally:
            if scope.result is None:
                scope.error("Operation ended without a result.")
            self._write_operation(scope)

    def _write_operation(self, scope: OperationScope) -> None:
        if not self._enabled:
            return
        record = {
            "timestamp": datetime.now(UTC).isoformat(),
            "operation": scope.name,
            "args": _sanitize(scope.args),
            "target": _sanitize(scope.target),
            "steps": scope.steps,
            "duration_ms": int((time.perf_counter() - scope.started) * 1000),
            "lock_wait_ms": scope.lock_wait_ms,
            "result": scope.result,
        }
        try:
            with self._operations_log_path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(record, sort_keys=True) + "\n")
        except OSError:
            self._enabled = False


__all__ = ["LEVEL_STYLES", "OperationScope", "StructuredLogger"]
