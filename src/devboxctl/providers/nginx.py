"""Nginx provider for managing site configurations."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from ..runner import CommandRunner


@dataclass(slots=True)
class NginxProvider:
    """Write, enable and validate nginx site configurations."""

    runner: CommandRunner
    sites_available: Path = Path("/etc/nginx/sites-available")
    sites_enabled: Path = Path("/etc/nginx/sites-enabled")
    conf_dir: Path = Path("/etc/nginx/conf.d")
    nginx_bin: str = "nginx"
    systemctl_bin: str = "systemctl"

    def site_path(self, name: str) -> Path:
        """Return the path to the site configuration file."""
        return self.sites_available / name

    def enabled_path(self, name: str) -> Path:
        """Return the path of the symlink in sites-enabled for *name*."""
        return self.sites_enabled / name

    def conf_path(self, name: str) -> Path:
        """Return the path of a snippet in ``conf.d``."""
        return self.conf_dir / name

    def write_site(self, name: str, content: str) -> Path:
        """Overwrite the site configuration for *name*."""
        path = self.site_path(name)
        self.runner.write_file(path, content, mode=0o644, privileged=True)
        return path

    def enable(self, name: str) -> None:
        """Enable the site by (re)creating its symlink in sites-enabled."""
        self.runner.run(
            ["ln", "-sf", str(self.site_path(name)), str(self.enabled_path(name))],
            privileged=True,
        )

    def disable(self, name: str) -> bool:
        """Remove the site symlink; ``False`` when it was not enabled."""
        return self.runner.remove_path(self.enabled_path(name), privileged=True)

    def remove_default(self) -> bool:
        """Disable the stock ``default`` site."""
        return self.disable("default")

    def remove(self, name: str) -> bool:
        """Remove both the configuration and symlink for *name*."""
        disabled = self.disable(name)
        removed = self.runner.remove_path(self.site_path(name), privileged=True)
        return disabled or removed

    def site_exists(self, name: str) -> bool:
        """Return ``True`` when the site configuration exists."""
        return self.site_path(name).exists()

    def is_enabled(self, name: str) -> bool:
        """Return ``True`` when the site is enabled via sites-enabled symlink."""
        return self.enabled_path(name).is_symlink()

    def test_config(self) -> None:
        """Run ``nginx -t`` to validate the configuration."""
        self.runner.run([self.nginx_bin, "-t"], privileged=True)

    def reload(self, *, best_effort: bool = False) -> None:
        """Reload the nginx service to apply configuration changes."""
        self.runner.run(
            [self.systemctl_bin, "reload", "nginx"], privileged=True, best_effort=best_effort
        )

    def diagnostics(self) -> tuple[str, ...]:
        """Return the commands an operator should run when nginx misbehaves."""
        return (f"sudo {self.nginx_bin} -t", f"sudo {self.systemctl_bin} status nginx")


__all__ = ["NginxProvider"]
