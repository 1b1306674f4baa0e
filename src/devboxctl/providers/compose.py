"""Docker and docker-compose helpers for the Guacamole stack."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from ..runner import CommandRunner


@dataclass(slots=True)
class ComposeProvider:
    """Run compose projects and query container state.

    Commands run through sudo because a freshly added docker group membership
    only takes effect at the next login.
    """

    runner: CommandRunner
    compose_bin: str = "docker-compose"
    docker_bin: str = "docker"

    def daemon_ready(self) -> bool:
        """Return ``True`` when the docker daemon answers."""
        return self.runner.probe([self.docker_bin, "info"], privileged=True)

    def up(self, compose_file: Path) -> None:
        """Start the project described by *compose_file* in the background."""
        self.runner.run(
            [self.compose_bin, "-f", str(compose_file), "up", "-d"], privileged=True
        )

    def is_running(self, container: str) -> bool:
        """Return ``True`` when a container named *container* is running."""
        result = self.runner.inspect(
            [self.docker_bin, "ps", "--filter", f"name=^{container}$", "--format", "{{.Names}}"],
            privileged=True,
        )
        return container in (result.stdout or "").split()

    def add_user_to_group(self, user: str) -> None:
        """Add *user* to the docker group."""
        self.runner.run(["usermod", "-aG", "docker", user], privileged=True)


__all__ = ["ComposeProvider"]
