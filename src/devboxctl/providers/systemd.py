"""Systemd provider for installing and managing service units."""
from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path

from ..runner import CommandRunner


@dataclass(slots=True)
class SystemdProvider:
    """Write unit files and drive ``systemctl`` through the command runner."""

    runner: CommandRunner
    unit_dir: Path = Path("/etc/systemd/system")
    systemctl_bin: str = "systemctl"
    journalctl_bin: str = "journalctl"

    def unit_name(self, name: str) -> str:
        """Return the systemd unit name for service *name*."""
        return name if name.endswith(".service") else f"{name}.service"

    def unit_path(self, name: str) -> Path:
        """Return the full path for the unit file of *name*."""
        return self.unit_dir / self.unit_name(name)

    def install_unit(self, name: str, content: str) -> Path:
        """Overwrite the unit file for *name* and reload the daemon."""
        path = self.unit_path(name)
        self.runner.write_file(path, content, mode=0o644, privileged=True)
        self.daemon_reload()
        return path

    def remove_unit(self, name: str) -> bool:
        """Delete the unit file for *name*; ``False`` when it was already gone."""
        removed = self.runner.remove_path(self.unit_path(name), privileged=True)
        if removed:
            self.daemon_reload()
            self._systemctl("reset-failed", best_effort=True)
        return removed

    def daemon_reload(self) -> None:
        """Reload systemd manager configuration."""
        self._systemctl("daemon-reload")

    def enable(self, name: str) -> None:
        """Enable the unit at boot."""
        self._systemctl("enable", self.unit_name(name))

    def disable(self, name: str) -> None:
        """Disable the unit at boot."""
        self._systemctl("disable", self.unit_name(name))

    def start(self, name: str) -> None:
        """Start the unit."""
        self._systemctl("start", self.unit_name(name))

    def stop(self, name: str, *, best_effort: bool = False) -> None:
        """Stop the unit."""
        self._systemctl("stop", self.unit_name(name), best_effort=best_effort)

    def restart(self, name: str) -> None:
        """Restart the unit."""
        self._systemctl("restart", self.unit_name(name))

    def is_active(self, name: str) -> bool:
        """Return ``True`` when the unit is active."""
        return self.runner.probe(
            [self.systemctl_bin, "is-active", "--quiet", self.unit_name(name)], privileged=True
        )

    def is_enabled(self, name: str) -> bool:
        """Return ``True`` when the unit is enabled."""
        return self.runner.probe(
            [self.systemctl_bin, "is-enabled", "--quiet", self.unit_name(name)], privileged=True
        )

    def logs(self, name: str, *, since: str | None = None) -> str:
        """Return recent journal lines for the unit."""
        args = [self.journalctl_bin, "-u", self.unit_name(name), "--no-pager", "-q"]
        if since is not None:
            args.extend(["--since", since])
        return self.runner.inspect(args, privileged=True).stdout or ""

    def diagnostics(self, name: str) -> tuple[str, ...]:
        """Return the commands an operator should run when the unit misbehaves."""
        unit = self.unit_name(name)
        return (
            f"sudo {self.systemctl_bin} status {unit}",
            f"sudo {self.journalctl_bin} -u {unit} -f",
        )

    # ------------------------------------------------------------------
    def _systemctl(
        self,
        command: str,
        unit: str | None = None,
        *,
        best_effort: bool = False,
    ) -> subprocess.CompletedProcess[str]:
        args: list[str] = [self.systemctl_bin, command]
        if unit is not None:
            args.append(unit)
        return self.runner.run(args, privileged=True, best_effort=best_effort)


__all__ = ["SystemdProvider"]
