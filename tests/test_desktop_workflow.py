"""End-to-end tests for the remote desktop workflow."""
from __future__ import annotations

from collections.abc import Callable

import pytest
from conftest import FakeBinder, RecordingRunner, ScriptedHost, ScriptedOperator

from devboxctl.config import AppConfig
from devboxctl.logging import StructuredLogger
from devboxctl.ports import PortAllocator
from devboxctl.workflows import Session, WorkflowOptions, base, desktop

OPTIONS = WorkflowOptions(
    domain="desk.example.com",
    username="alice",
    password="Desk!top1",
)


@pytest.fixture
def binder(monkeypatch: pytest.MonkeyPatch) -> FakeBinder:
    """Route port leases through a fake binder."""
    fake = FakeBinder()

    def allocator(logger: StructuredLogger, **kwargs: object) -> PortAllocator:
        return PortAllocator(logger, binder=fake, **kwargs)  # type: ignore[arg-type]

    monkeypatch.setattr(base, "PortAllocator", allocator)
    return fake


@pytest.fixture
def desktop_runner(runner: RecordingRunner) -> RecordingRunner:
    """Return a runner where Guacamole starts and no certificate exists yet."""
    runner.respond("docker ps", stdout="guacamole\n")
    runner.respond("test -d", returncode=1)
    return runner


def test_xrdp_port_rewrite_only_touches_port_lines() -> None:
    """Every numeric port= line is rewritten; other keys are kept."""
    ini = "[Globals]\nport=3389\nuse_vsock=false\n[Xvnc]\nport=-1\n[Extra]\nport=3389\n"

    assert desktop.rewrite_xrdp_port(ini, 3390) == (
        "[Globals]\nport=3390\nuse_vsock=false\n[Xvnc]\nport=-1\n[Extra]\nport=3390\n"
    )


def test_fresh_desktop_setup(
    make_session: Callable[..., Session],
    desktop_runner: RecordingRunner,
    binder: FakeBinder,
    app_config: AppConfig,
    host: ScriptedHost,
) -> None:
    """Every component is installed and published under /desktop."""
    report = desktop.run(make_session(ScriptedOperator()), OPTIONS)

    assert report.succeeded, report.reason
    assert "Access your desktop at: https://desk.example.com/desktop" in report.summary
    assert "RDP is running on port: 3389" in report.summary
    assert (host.home_dir / ".xsession").read_text("utf-8") == "startxfce4\n"
    guacamole_dir = app_config.desktop.guacamole_dir
    assert 'encoding="sha256"' in (guacamole_dir / "user-mapping.xml").read_text("utf-8")
    assert "127.0.0.1:8080:8080" in (guacamole_dir / "docker-compose.yml").read_text("utf-8")
    assert desktop_runner.ran("certbot certonly --standalone -d desk.example.com")
    assert desktop_runner.inputs["crontab -"].endswith(
        "0 12 * * * /usr/bin/certbot renew --quiet\n"
    )
    site = app_config.nginx.sites_available / "desk.example.com"
    assert "proxy_pass http://localhost:8080/guacamole;" in site.read_text("utf-8")
    assert not desktop_runner.ran("xrdp.ini")
    assert all(sock.closed for sock in binder.sockets)


def test_standalone_issue_stops_nginx_first(
    make_session: Callable[..., Session],
    desktop_runner: RecordingRunner,
    binder: FakeBinder,
) -> None:
    """Port 80 is freed for the standalone authenticator, then nginx returns."""
    desktop.run(make_session(ScriptedOperator()), OPTIONS)

    stop = desktop_runner.index_of("systemctl stop nginx.service")
    issue = desktop_runner.index_of("certbot certonly")
    start = desktop_runner.index_of("systemctl start nginx.service")
    assert stop < issue < start


def test_busy_rdp_port_moves_xrdp(
    make_session: Callable[..., Session],
    desktop_runner: RecordingRunner,
    binder: FakeBinder,
    app_config: AppConfig,
) -> None:
    """A bound 3389 makes XRDP and Guacamole use the next free port."""
    binder.busy.add(3389)
    desktop_runner.respond("xrdp.ini", stdout="[Globals]\nport=3389\ncrypt_level=high\n")

    report = desktop.run(make_session(ScriptedOperator()), OPTIONS)

    assert report.succeeded, report.reason
    assert "RDP is running on port: 3390" in report.summary
    assert app_config.desktop.xrdp_ini.read_text("utf-8") == (
        "[Globals]\nport=3390\ncrypt_level=high\n"
    )
    mapping = (app_config.desktop.guacamole_dir / "user-mapping.xml").read_text("utf-8")
    assert '<param name="port">3390</param>' in mapping


def test_guacamole_not_running_aborts(
    make_session: Callable[..., Session],
    desktop_runner: RecordingRunner,
    binder: FakeBinder,
) -> None:
    """A container that never appears fails verification with docker hints."""
    desktop_runner.respond("docker ps", stdout="")

    report = desktop.run(make_session(ScriptedOperator()), OPTIONS)

    assert report.failed_step == "guacamole"
    assert report.reason == "Verification of 'guacamole' failed."
    assert "sudo docker logs guacamole" in report.diagnostics
    assert not desktop_runner.ran("certbot")
    assert all(sock.closed for sock in binder.sockets)


def test_missing_password_can_be_set_during_preflight(
    make_session: Callable[..., Session],
    desktop_runner: RecordingRunner,
    binder: FakeBinder,
    host: ScriptedHost,
) -> None:
    """A login without a password is offered passwd before anything changes."""
    host.password_state = "NP"

    report = desktop.run(make_session(ScriptedOperator(confirmations=[True])), OPTIONS)

    assert host.password_changes == 1
    assert report.succeeded
    assert report.overrides == []


def test_existing_certificate_is_renewed(
    make_session: Callable[..., Session],
    desktop_runner: RecordingRunner,
    binder: FakeBinder,
) -> None:
    """Re-runs keep the certificate and only renew it."""
    desktop_runner.respond("test -d", returncode=0)
    desktop_runner.respond("crontab -l", stdout="0 12 * * * /usr/bin/certbot renew --quiet\n")

    report = desktop.run(make_session(ScriptedOperator()), OPTIONS)

    assert report.succeeded
    assert not desktop_runner.ran("certonly")
    assert desktop_runner.ran("certbot renew --quiet")
    assert "crontab -" not in desktop_runner.inputs
