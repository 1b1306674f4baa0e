"""External action runner.

Every side effect on the host (package installs, service management,
certificate requests, file writes into root-owned directories) goes through
:class:`CommandRunner`. A non-zero exit status becomes an
:class:`~devboxctl.errors.ExternalActionFailure`; callers opt into
``best_effort`` per invocation when a failure should only be logged.
"""
from __future__ import annotations

import os
import shutil
import subprocess
import tempfile
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from .errors import ExternalActionFailure
from .logging import StructuredLogger

_DIAGNOSTIC_LIMIT = 2000


def _diagnostic(result: subprocess.CompletedProcess[str]) -> str:
    stdout = getattr(result, "stdout", "") or ""
    stderr = getattr(result, "stderr", "") or ""
    message = stderr.strip() or stdout.strip() or "no output"
    if len(message) > _DIAGNOSTIC_LIMIT:
        message = "..." + message[-_DIAGNOSTIC_LIMIT:]
    return message


def atomic_write(path: Path, content: str, *, mode: int = 0o644) -> None:
    """Write *content* to *path* via a temporary file and rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.")
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(tmp_fd, "w", encoding="utf-8") as handle:
            handle.write(content)
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    finally:
        tmp_path.unlink(missing_ok=True)


@dataclass(slots=True)
class CommandRunner:
    """Execute external commands and map their exit status to errors."""

    logger: StructuredLogger
    sudo: bool = True
    dry_run: bool = False
    sudo_bin: str = "sudo"
    history: list[list[str]] = field(default_factory=list)

    def command_line(self, args: Sequence[str], *, privileged: bool = False) -> list[str]:
        """Return the full argv, prefixed with sudo when required."""
        command = [str(item) for item in args]
        if privileged and self.sudo:
            return [self.sudo_bin, *command]
        return command

    def run(
        self,
        args: Sequence[str],
        *,
        privileged: bool = False,
        best_effort: bool = False,
        input_text: str | None = None,
        timeout: float | None = None,
        capture: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        """Run *args*; raise :class:`ExternalActionFailure` on a non-zero exit."""
        command = self.command_line(args, privileged=privileged)
        self.history.append(command)
        self.logger.debug(f"$ {' '.join(command)}")
        if self.dry_run:
            return subprocess.CompletedProcess(command, returncode=0, stdout="", stderr="")
        try:
            result = self._execute(command, input_text=input_text, timeout=timeout, capture=capture)
        except FileNotFoundError as exc:
            result = subprocess.CompletedProcess(
                command, returncode=127, stdout="", stderr=f"{command[0]} not found: {exc}"
            )
        except subprocess.TimeoutExpired:
            result = subprocess.CompletedProcess(
                command, returncode=124, stdout="", stderr=f"timed out after {timeout}s"
            )
        if result.returncode != 0:
            failure = ExternalActionFailure(command, result.returncode, _diagnostic(result))
            if best_effort:
                self.logger.warn(f"Ignoring failure of best-effort action: {failure}")
                return result
            raise failure
        return result

    def inspect(
        self,
        args: Sequence[str],
        *,
        privileged: bool = False,
        timeout: float | None = None,
    ) -> subprocess.CompletedProcess[str]:
        """Run a read-only query and return its result without raising."""
        command = self.command_line(args, privileged=privileged)
        self.history.append(command)
        if self.dry_run:
            return subprocess.CompletedProcess(command, returncode=0, stdout="", stderr="")
        try:
            return self._execute(command, input_text=None, timeout=timeout, capture=True)
        except FileNotFoundError as exc:
            return subprocess.CompletedProcess(command, returncode=127, stdout="", stderr=str(exc))
        except subprocess.TimeoutExpired:
            return subprocess.CompletedProcess(
                command, returncode=124, stdout="", stderr=f"timed out after {timeout}s"
            )

    def probe(
        self,
        args: Sequence[str],
        *,
        privileged: bool = False,
        timeout: float | None = None,
    ) -> bool:
        """Run a read-only check and return ``True`` when it exits 0."""
        return self.inspect(args, privileged=privileged, timeout=timeout).returncode == 0

    def exists(self, command: str) -> bool:
        """Return ``True`` when *command* resolves on ``PATH``."""
        path = Path(command)
        if path.is_absolute():
            return path.exists() and os.access(path, os.X_OK)
        return shutil.which(command) is not None

    def write_file(
        self,
        path: Path,
        content: str,
        *,
        mode: int = 0o644,
        privileged: bool = False,
    ) -> None:
        """Overwrite *path* with *content*."""
        if privileged and self.sudo:
            self.run(
                ["install", "-D", "-m", f"{mode:o}", "/dev/stdin", str(path)],
                privileged=True,
                input_text=content,
            )
            return
        command = ["write", str(path)]
        self.history.append(command)
        if self.dry_run:
            return
        try:
            atomic_write(path, content, mode=mode)
        except OSError as exc:
            raise _filesystem_failure(command, exc) from exc

    def remove_path(self, path: Path, *, privileged: bool = False) -> bool:
        """Delete *path* recursively; return ``False`` when it was already absent."""
        if not path.exists() and not path.is_symlink():
            return False
        if privileged and self.sudo:
            self.run(["rm", "-rf", str(path)], privileged=True)
            return True
        command = ["remove", str(path)]
        self.history.append(command)
        if self.dry_run:
            return True
        try:
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            else:
                path.unlink(missing_ok=True)
        except OSError as exc:
            raise _filesystem_failure(command, exc) from exc
        return True

    # ------------------------------------------------------------------
    def _execute(
        self,
        command: list[str],
        *,
        input_text: str | None,
        timeout: float | None,
        capture: bool,
    ) -> subprocess.CompletedProcess[str]:
        return subprocess.run(  # noqa: S603
            command,
            input=input_text,
            capture_output=capture,
            text=True,
            timeout=timeout,
            check=False,
        )


def _filesystem_failure(command: list[str], exc: OSError) -> ExternalActionFailure:
    """Report a failed in-process file operation like a failed command."""
    return ExternalActionFailure(command, exc.errno or 1, exc.strerror or str(exc))


__all__ = ["CommandRunner", "atomic_write"]
