"""Tests for the apt, certbot, compose and crontab providers."""
from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest
from conftest import DummyResult, RecordingRunner

from devboxctl.errors import ExternalActionFailure
from devboxctl.providers import AptProvider, CertbotProvider, ComposeProvider, CrontabProvider
from devboxctl.tls import CertificateError

APT = ["env", "DEBIAN_FRONTEND=noninteractive", "apt-get"]


def _installed(*packages: str) -> Callable[[list[str]], DummyResult]:
    def answer(command: list[str]) -> DummyResult:
        if command[-1] in packages:
            return DummyResult(stdout="install ok installed")
        return DummyResult(returncode=1, stderr=f"no packages found matching {command[-1]}")

    return answer


# ---------------------------------------------------------------------------
# apt
# ---------------------------------------------------------------------------


def test_apt_installs_only_missing_packages(runner: RecordingRunner) -> None:
    """Packages already reported by dpkg are not reinstalled."""
    runner.respond_with("dpkg-query", _installed("curl"))
    apt = AptProvider(runner=runner)

    installed = apt.install(("nginx", "curl", "certbot"))

    assert installed == ["nginx", "certbot"]
    assert runner.executed[-1] == [*APT, "install", "-y", "nginx", "certbot"]


def test_apt_install_is_noop_when_present(runner: RecordingRunner) -> None:
    """Nothing runs when every package is installed."""
    runner.respond_with("dpkg-query", _installed("nginx", "curl"))
    apt = AptProvider(runner=runner)

    assert apt.install(("nginx", "curl")) == []
    assert not runner.ran("apt-get")


def test_apt_purge_only_installed(runner: RecordingRunner) -> None:
    """Purging a package that is absent does nothing."""
    runner.respond_with("dpkg-query", _installed("code"))
    apt = AptProvider(runner=runner)

    assert apt.purge(("code", "code-insiders")) == ["code"]
    assert runner.executed[-1] == [*APT, "remove", "--purge", "-y", "code"]


def test_apt_failure_raises(runner: RecordingRunner) -> None:
    """A failing apt-get update aborts with its stderr."""
    runner.respond("update", returncode=100, stderr="Temporary failure resolving archive")
    apt = AptProvider(runner=runner)

    with pytest.raises(ExternalActionFailure, match="Temporary failure resolving"):
        apt.update()


def test_apt_repository_round_trip(runner: RecordingRunner, tmp_path: Path) -> None:
    """The key is dearmored from curl output and the entry written as a list file."""
    runner.respond("curl", stdout="-----BEGIN PGP PUBLIC KEY BLOCK-----\n")
    apt = AptProvider(runner=runner)
    keyring = tmp_path / "packages.microsoft.gpg"
    sources = tmp_path / "sources.list.d" / "vscode.list"

    apt.add_repository(
        key_url="https://packages.microsoft.com/keys/microsoft.asc",
        keyring=keyring,
        sources_list=sources,
        entry="deb [arch=amd64] https://packages.microsoft.com/repos/code stable main",
    )

    gpg = " ".join(["gpg", "--batch", "--yes", "--dearmor", "-o", str(keyring)])
    assert runner.inputs[gpg].startswith("-----BEGIN PGP PUBLIC KEY BLOCK-----")
    assert sources.read_text(encoding="utf-8").endswith("stable main\n")

    keyring.write_bytes(b"key")
    assert apt.remove_repository(keyring=keyring, sources_list=sources) == [sources, keyring]
    assert apt.remove_repository(keyring=keyring, sources_list=sources) == []


# ---------------------------------------------------------------------------
# certbot
# ---------------------------------------------------------------------------


def test_certbot_issue_with_nginx_authenticator(runner: RecordingRunner) -> None:
    """The default authenticator is the nginx plugin."""
    certbot = CertbotProvider(runner=runner)

    certbot.issue("code.example.com", "admin@code.example.com")

    assert runner.executed == [
        [
            "certbot",
            "--nginx",
            "-d",
            "code.example.com",
            "--non-interactive",
            "--agree-tos",
            "-m",
            "admin@code.example.com",
        ]
    ]


def test_certbot_issue_standalone(runner: RecordingRunner) -> None:
    """Standalone issuance uses certonly."""
    certbot = CertbotProvider(runner=runner)

    certbot.issue("desk.example.com", "admin@desk.example.com", standalone=True)

    assert runner.executed[0][:3] == ["certbot", "certonly", "--standalone"]


def test_certbot_has_certificate_probes_live_dir(
    runner: RecordingRunner,
    tmp_path: Path,
) -> None:
    """Existence is checked with test -d on the live directory."""
    certbot = CertbotProvider(runner=runner, live_dir=tmp_path / "live")
    runner.respond("test -d", returncode=1)

    assert certbot.has_certificate("code.example.com") is False
    assert runner.executed[-1] == ["test", "-d", str(tmp_path / "live" / "code.example.com")]


def test_certbot_verify_reads_live_files(
    runner: RecordingRunner,
    certificate_pem: tuple[str, str],
) -> None:
    """verify() reads fullchain and privkey and checks they belong together."""
    cert_pem, key_pem = certificate_pem
    runner.respond("fullchain.pem", stdout=cert_pem)
    runner.respond("privkey.pem", stdout=key_pem)
    certbot = CertbotProvider(runner=runner)

    report = certbot.verify("code.example.com")

    assert report.key_matches is True
    assert "code.example.com" in report.names


def test_certbot_verify_rejects_wrong_domain(
    runner: RecordingRunner,
    certificate_pem: tuple[str, str],
) -> None:
    """A certificate for another name is an error."""
    cert_pem, key_pem = certificate_pem
    runner.respond("fullchain.pem", stdout=cert_pem)
    runner.respond("privkey.pem", stdout=key_pem)
    certbot = CertbotProvider(runner=runner)

    with pytest.raises(CertificateError, match="does not cover other.example.com"):
        certbot.verify("other.example.com")


# ---------------------------------------------------------------------------
# compose
# ---------------------------------------------------------------------------


def test_compose_up_and_status(runner: RecordingRunner, tmp_path: Path) -> None:
    """Compose runs detached and container state is read from docker ps."""
    compose = ComposeProvider(runner=runner)
    runner.respond("docker ps", stdout="guacamole\n")

    compose.up(tmp_path / "docker-compose.yml")

    assert runner.executed[0] == [
        "docker-compose",
        "-f",
        str(tmp_path / "docker-compose.yml"),
        "up",
        "-d",
    ]
    assert compose.is_running("guacamole") is True
    assert compose.is_running("guacd") is False


def test_compose_daemon_ready(runner: RecordingRunner) -> None:
    """docker info failing means the daemon is not ready."""
    compose = ComposeProvider(runner=runner)
    runner.respond("docker info", returncode=1)

    assert compose.daemon_ready() is False


# ---------------------------------------------------------------------------
# crontab
# ---------------------------------------------------------------------------


def test_cron_ensure_appends_once(runner: RecordingRunner) -> None:
    """A renewal entry is appended only when missing."""
    entry = "0 12 * * * /usr/bin/certbot renew --quiet"
    runner.respond("crontab -l", stdout="@reboot /usr/local/bin/backup\n")
    cron = CrontabProvider(runner=runner)

    assert cron.ensure(entry) is True
    assert runner.inputs["crontab -"] == f"@reboot /usr/local/bin/backup\n{entry}\n"

    runner.respond("crontab -l", stdout=f"@reboot /usr/local/bin/backup\n{entry}\n")
    assert cron.ensure(entry) is False


def test_cron_empty_crontab_is_not_an_error(runner: RecordingRunner) -> None:
    """crontab -l exits 1 for a user without a crontab."""
    runner.respond("crontab -l", returncode=1, stderr="no crontab for root")
    cron = CrontabProvider(runner=runner)

    assert cron.entries() == []

    log = runner.logger.log_path.read_text(encoding="utf-8")
    assert "[WARN]" not in log


def test_cron_unreadable_crontab_raises(runner: RecordingRunner) -> None:
    """Any other crontab -l failure stops before the crontab is overwritten."""
    runner.respond("crontab -l", returncode=1, stderr="crontab: cannot open /var/spool/cron")
    cron = CrontabProvider(runner=runner)

    with pytest.raises(ExternalActionFailure, match="cannot open"):
        cron.ensure("0 12 * * * /usr/bin/certbot renew --quiet")

    assert not runner.ran("crontab -")
