"""Apt provider for installing and purging system packages."""
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from ..runner import CommandRunner

_NONINTERACTIVE = ("env", "DEBIAN_FRONTEND=noninteractive")


@dataclass(slots=True)
class AptProvider:
    """Drive ``apt-get`` through the command runner."""

    runner: CommandRunner
    apt_bin: str = "apt-get"
    dpkg_query_bin: str = "dpkg-query"

    def update(self) -> None:
        """Refresh the package index."""
        self._apt("update")

    def upgrade(self) -> None:
        """Upgrade installed packages non-interactively."""
        self._apt("upgrade", "-y")

    def is_installed(self, package: str) -> bool:
        """Return ``True`` when dpkg reports *package* as installed."""
        result = self.runner.inspect(
            [self.dpkg_query_bin, "-W", "-f=${Status}", package]
        )
        return result.returncode == 0 and "install ok installed" in (result.stdout or "")

    def missing(self, packages: Sequence[str]) -> list[str]:
        """Return the subset of *packages* that is not installed."""
        return [package for package in packages if not self.is_installed(package)]

    def install(self, packages: Sequence[str]) -> list[str]:
        """Install missing *packages*; a no-op when all are present."""
        missing = self.missing(packages)
        if missing:
            self._apt("install", "-y", *missing)
        return missing

    def reinstall(self, packages: Sequence[str]) -> None:
        """Install *packages* even when they are already present."""
        self._apt("install", "--reinstall", "-y", *packages)

    def purge(self, packages: Sequence[str]) -> list[str]:
        """Purge the installed subset of *packages*."""
        present = [package for package in packages if self.is_installed(package)]
        if present:
            self._apt("remove", "--purge", "-y", *present)
        return present

    def autoremove(self) -> None:
        """Remove packages that are no longer required."""
        self._apt("autoremove", "-y")

    def add_repository(
        self,
        *,
        key_url: str,
        keyring: Path,
        sources_list: Path,
        entry: str,
    ) -> None:
        """Import the signing key at *key_url* and write the apt source entry."""
        armored = self.runner.run(["curl", "-fsSL", key_url]).stdout
        self.runner.run(
            ["gpg", "--batch", "--yes", "--dearmor", "-o", str(keyring)],
            privileged=True,
            input_text=armored,
        )
        self.runner.run(["chmod", "644", str(keyring)], privileged=True)
        self.runner.write_file(sources_list, entry + "\n", mode=0o644, privileged=True)

    def remove_repository(self, *, keyring: Path, sources_list: Path) -> list[Path]:
        """Delete the apt source entry and its keyring; return what was removed."""
        removed: list[Path] = []
        for path in (sources_list, keyring):
            if self.runner.remove_path(path, privileged=True):
                removed.append(path)
        return removed

    # ------------------------------------------------------------------
    def _apt(self, *args: str) -> None:
        self.runner.run([*_NONINTERACTIVE, self.apt_bin, *args], privileged=True)


__all__ = ["AptProvider"]
