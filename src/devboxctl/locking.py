"""Host-wide lock preventing concurrent workflow runs.

Workflows mutate shared host state (nginx configuration, systemd units, port
choices) without any finer-grained coordination, so only one may run at a
time. The lock is an ``fcntl`` advisory lock on a file in the runtime
directory; the file itself persists for diagnostics.
"""
from __future__ import annotations

import fcntl
import json
import os
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from .errors import DevboxError


class LockTimeoutError(DevboxError):
    """Raised when a lock cannot be acquired before the timeout."""


@dataclass(slots=True)
class LockHandle:
    """Metadata about an acquired lock."""

    path: Path
    wait_ms: int


class LockManager:
    """Acquire named lock files beneath *runtime_dir*."""

    def __init__(self, runtime_dir: Path, default_timeout: float = 5.0) -> None:
        """Store the lock directory and default acquisition timeout."""
        self.runtime_dir = runtime_dir
        self.default_timeout = default_timeout

    def lock_path(self, name: str = "devboxctl") -> Path:
        """Return the lock file path for *name*."""
        return self.runtime_dir / f"{name}.lock"

    @contextmanager
    def workflow_lock(
        self,
        name: str = "devboxctl",
        *,
        timeout: float | None = None,
    ) -> Iterator[LockHandle]:
        """Hold the lock called *name* for the duration of the block."""
        path = self.lock_path(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        deadline_seconds = self.default_timeout if timeout is None else timeout
        start = time.monotonic()
        fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o644)
        try:
            while True:
                try:
                    fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                    break
                except BlockingIOError:
                    if time.monotonic() - start >= deadline_seconds:
                        raise LockTimeoutError(
                            f"Another devboxctl run holds {path}; "
                            "concurrent workflows are not supported."
                        ) from None
                    time.sleep(0.05)
            wait_ms = int((time.monotonic() - start) * 1000)
            metadata = {
                "pid": os.getpid(),
                "path": str(path),
                "acquired_at": datetime.now(UTC).isoformat(),
            }
            os.ftruncate(fd, 0)
            os.pwrite(fd, json.dumps(metadata).encode("utf-8"), 0)
            try:
                yield LockHandle(path=path, wait_ms=wait_ms)
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)


__all__ = ["LockHandle", "LockManager", "LockTimeoutError"]
