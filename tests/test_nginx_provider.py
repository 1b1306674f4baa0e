"""Tests for the nginx provider."""
from __future__ import annotations

from pathlib import Path

import pytest
from conftest import RecordingRunner

from devboxctl.config import AppConfig
from devboxctl.errors import ExternalActionFailure
from devboxctl.logging import StructuredLogger
from devboxctl.providers.nginx import NginxProvider
from devboxctl.workflow import Toolkit


@pytest.fixture
def provider(tmp_path: Path, runner: RecordingRunner) -> NginxProvider:
    """Return a provider rooted in a temporary nginx tree."""
    root = tmp_path / "nginx"
    (root / "sites-available").mkdir(parents=True)
    (root / "sites-enabled").mkdir()
    return NginxProvider(
        runner=runner,
        sites_available=root / "sites-available",
        sites_enabled=root / "sites-enabled",
        conf_dir=root / "conf.d",
    )


def test_write_site_overwrites_content(provider: NginxProvider) -> None:
    """Writing a site twice keeps only the latest content."""
    provider.write_site("code-gateway", "server { listen 80; }\n")
    path = provider.write_site("code-gateway", "server { listen 443 ssl; }\n")

    assert path == provider.sites_available / "code-gateway"
    assert path.read_text(encoding="utf-8") == "server { listen 443 ssl; }\n"


def test_enable_links_site(provider: NginxProvider, runner: RecordingRunner) -> None:
    """Enabling a site (re)creates the symlink with ln -sf."""
    provider.enable("code-gateway")

    assert runner.executed == [
        [
            "ln",
            "-sf",
            str(provider.sites_available / "code-gateway"),
            str(provider.sites_enabled / "code-gateway"),
        ]
    ]


def test_remove_default_tolerates_absence(
    provider: NginxProvider,
    runner: RecordingRunner,
) -> None:
    """Removing the stock default site twice is harmless."""
    default = provider.sites_enabled / "default"
    default.symlink_to(provider.sites_available / "default")

    assert provider.remove_default() is True
    assert provider.remove_default() is False
    assert not default.is_symlink()
    assert runner.executed == []


def test_remove_deletes_site_and_link(provider: NginxProvider) -> None:
    """Removing a site deletes both the file and its symlink."""
    site = provider.write_site("code-gateway", "server {}\n")
    provider.enabled_path("code-gateway").symlink_to(site)

    assert provider.site_exists("code-gateway")
    assert provider.is_enabled("code-gateway")
    assert provider.remove("code-gateway") is True
    assert not provider.site_exists("code-gateway")
    assert not provider.is_enabled("code-gateway")
    assert provider.remove("code-gateway") is False


def test_reload_goes_through_systemd(
    provider: NginxProvider,
    runner: RecordingRunner,
) -> None:
    """Reloads go through systemctl rather than signalling nginx."""
    provider.reload()

    assert runner.executed == [["systemctl", "reload", "nginx"]]
    assert provider.diagnostics() == ("sudo nginx -t", "sudo systemctl status nginx")


def test_invalid_config_raises(
    provider: NginxProvider,
    runner: RecordingRunner,
) -> None:
    """A failing nginx -t raises with its diagnostic."""
    runner.respond("nginx -t", returncode=1, stderr="nginx: [emerg] unexpected end of file")

    with pytest.raises(ExternalActionFailure, match="unexpected end of file"):
        provider.test_config()

    assert not runner.ran("systemctl reload nginx")


def test_best_effort_reload(provider: NginxProvider, runner: RecordingRunner) -> None:
    """A best-effort reload tolerates a stopped nginx."""
    runner.respond("reload", returncode=1, stderr="nginx is not running")

    provider.reload(best_effort=True)

    with pytest.raises(ExternalActionFailure):
        provider.reload()


def test_toolkit_reloads_nginx_with_configured_systemctl(
    app_config: AppConfig,
    runner: RecordingRunner,
    logger: StructuredLogger,
) -> None:
    """The toolkit hands the configured systemctl binary to the nginx provider."""
    nginx = Toolkit.from_config(app_config, runner, logger).nginx

    nginx.reload()

    assert runner.executed == [[app_config.systemd.systemctl_bin, "reload", "nginx"]]
