"""Live host probes consumed by the precondition checks."""
from __future__ import annotations

import getpass
import grp
import ipaddress
import os
import pwd
import shutil
import socket
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from urllib.error import URLError
from urllib.request import Request, urlopen

from ..errors import ExternalActionFailure
from ..runner import CommandRunner


@dataclass(slots=True)
class HostFacts:
    """Read facts about the machine the workflow runs on."""

    runner: CommandRunner
    request_timeout: float = 5.0

    def effective_uid(self) -> int:
        """Return the effective user id of this process."""
        return os.geteuid()

    def login_user(self) -> str:
        """Return the account name of the invoking user."""
        return getpass.getuser()

    def home(self) -> Path:
        """Return the invoking user's home directory."""
        return Path.home()

    def account(self, user: str) -> tuple[int, str]:
        """Return the uid and primary group name of *user*."""
        try:
            entry = pwd.getpwnam(user)
        except KeyError:
            return os.getuid(), user
        try:
            group = grp.getgrgid(entry.pw_gid).gr_name
        except KeyError:
            group = user
        return entry.pw_uid, group

    def hostname(self) -> str:
        """Return the short hostname."""
        return socket.gethostname().split(".")[0]

    def has_sudo(self) -> bool:
        """Return ``True`` when sudo works, prompting for a password if needed."""
        if self.runner.probe(["sudo", "-n", "true"]):
            return True
        try:
            self.runner.run(["sudo", "-v"], capture=False)
        except ExternalActionFailure:
            return False
        return True

    def can_reach(self, host: str) -> bool:
        """Return ``True`` when a single ICMP echo to *host* succeeds."""
        return self.runner.probe(["ping", "-c", "1", "-W", "5", host])

    def free_bytes(self, path: Path) -> int:
        """Return the free space on the filesystem holding *path*."""
        return shutil.disk_usage(path).free

    def os_version(self, os_release: Path) -> str | None:
        """Return ``VERSION_ID`` from an os-release file, if present."""
        try:
            lines = os_release.read_text(encoding="utf-8").splitlines()
        except OSError:
            return None
        for line in lines:
            key, _, value = line.partition("=")
            if key.strip() == "VERSION_ID":
                return value.strip().strip('"').strip("'")
        return None

    def password_status(self, user: str) -> str | None:
        """Return the ``passwd -S`` status code (``P``, ``NP``, ``L``) for *user*."""
        result = self.runner.run(["passwd", "-S", user], best_effort=True)
        if result.returncode != 0:
            return None
        fields = (result.stdout or "").split()
        if len(fields) < 2:
            return None
        return fields[1]

    def set_password(self) -> None:
        """Run the interactive `passwd` command for the invoking user."""
        self.runner.run(["passwd"], capture=False)

    def resolve(self, domain: str) -> tuple[str, ...]:
        """Return the IPv4 addresses *domain* resolves to."""
        try:
            infos = socket.getaddrinfo(domain, None, socket.AF_INET, socket.SOCK_STREAM)
        except (socket.gaierror, UnicodeError):
            return ()
        addresses: list[str] = []
        for info in infos:
            address = str(info[4][0])
            if address not in addresses:
                addresses.append(address)
        return tuple(addresses)

    def public_ip(self, urls: Sequence[str]) -> str | None:
        """Return the first valid address reported by the echo services."""
        for url in urls:
            try:
                request = Request(url, headers={"User-Agent": "devboxctl"})  # noqa: S310
                with urlopen(request, timeout=self.request_timeout) as response:  # noqa: S310
                    candidate = response.read().decode("utf-8", "replace").strip()
            except (URLError, OSError, ValueError):
                continue
            try:
                ipaddress.ip_address(candidate)
            except ValueError:
                continue
            return candidate
        return None


__all__ = ["HostFacts"]
