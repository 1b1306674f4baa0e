"""Tests for precondition checks and the hard/soft failure policy."""
from __future__ import annotations

from pathlib import Path

import pytest
from conftest import RecordingRunner, ScriptedHost, ScriptedOperator

from devboxctl.config import AppConfig
from devboxctl.errors import OperatorDeclined, PreconditionFailure
from devboxctl.logging import StructuredLogger
from devboxctl.preflight import (
    CheckStatus,
    HostFacts,
    PreflightChecker,
    PreflightContext,
    domain_checks,
    generic_checks,
    password_checks,
    run_checks,
)


def _context(
    app_config: AppConfig,
    host: ScriptedHost,
    *,
    domain: str | None = None,
) -> PreflightContext:
    return PreflightContext(config=app_config, host=host, domain=domain)  # type: ignore[arg-type]


def test_healthy_host_passes_generic_checks(app_config: AppConfig, host: ScriptedHost) -> None:
    """A regular sudo user on Ubuntu 24.04 with space and network passes."""
    results = run_checks(_context(app_config, host), generic_checks())

    assert [result.id for result in results] == [
        "not-root",
        "sudo",
        "connectivity",
        "disk-space",
        "os-version",
    ]
    assert all(result.passed for result in results)


def test_root_is_a_hard_failure(
    app_config: AppConfig,
    host: ScriptedHost,
    logger: StructuredLogger,
) -> None:
    """Running as root aborts before anything else is asked."""
    host.uid = 0
    operator = ScriptedOperator()
    checker = PreflightChecker(logger, operator)

    with pytest.raises(PreconditionFailure) as excinfo:
        checker.enforce(_context(app_config, host), generic_checks())

    assert excinfo.value.check == "not-root"
    assert operator.questions == []


@pytest.mark.parametrize(
    ("attribute", "value", "check"),
    [
        ("sudo", False, "sudo"),
        ("reachable", False, "connectivity"),
        ("free", 1024, "disk-space"),
    ],
)
def test_hard_failures_raise(
    app_config: AppConfig,
    host: ScriptedHost,
    logger: StructuredLogger,
    attribute: str,
    value: object,
    check: str,
) -> None:
    """Each hard check aborts with its identifier."""
    setattr(host, attribute, value)

    with pytest.raises(PreconditionFailure) as excinfo:
        PreflightChecker(logger, ScriptedOperator()).enforce(
            _context(app_config, host), generic_checks()
        )

    assert excinfo.value.check == check
    assert excinfo.value.remediation


def test_disk_space_message_reports_sizes(app_config: AppConfig, host: ScriptedHost) -> None:
    """The failure message names free and required space."""
    host.free = 1024**3

    (result,) = [
        item for item in run_checks(_context(app_config, host), generic_checks())
        if item.id == "disk-space"
    ]

    assert result.status is CheckStatus.FAIL
    assert "1.0 GiB free" in result.message
    assert result.data == {"free_bytes": 1024**3, "required_bytes": 2_000_000 * 1024}


def test_os_mismatch_declined(
    app_config: AppConfig,
    host: ScriptedHost,
    logger: StructuredLogger,
) -> None:
    """Declining a soft failure raises OperatorDeclined."""
    host.version = "22.04"

    with pytest.raises(OperatorDeclined, match="designed for Ubuntu 24.04; detected version 22.04"):
        PreflightChecker(logger, ScriptedOperator()).enforce(
            _context(app_config, host), generic_checks()
        )


def test_os_mismatch_accepted_is_audited(
    app_config: AppConfig,
    host: ScriptedHost,
    logger: StructuredLogger,
) -> None:
    """Accepting a soft failure records the override."""
    host.version = "22.04"
    checker = PreflightChecker(logger, ScriptedOperator(confirmations=[True]))

    results = checker.enforce(_context(app_config, host), generic_checks())

    assert results[-1].status is CheckStatus.WARN
    assert checker.audit == ["This tool is designed for Ubuntu 24.04; detected version 22.04."]


def test_password_remedy_sets_password_and_rechecks(
    app_config: AppConfig,
    host: ScriptedHost,
    logger: StructuredLogger,
) -> None:
    """Accepting the remedy runs passwd and the check passes without an override."""
    host.password_state = "NP"
    operator = ScriptedOperator(confirmations=[True])
    checker = PreflightChecker(logger, operator)

    (result,) = checker.enforce(_context(app_config, host), password_checks())

    assert host.password_changes == 1
    assert result.passed
    assert checker.audit == []
    assert operator.questions == ["Would you like to set a password now?"]


def test_password_remedy_declined_then_continue(
    app_config: AppConfig,
    host: ScriptedHost,
    logger: StructuredLogger,
) -> None:
    """Declining the remedy still offers to continue without a password."""
    host.password_state = "L"
    checker = PreflightChecker(logger, ScriptedOperator(confirmations=[False, True]))

    (result,) = checker.enforce(_context(app_config, host), password_checks())

    assert host.password_changes == 0
    assert result.status is CheckStatus.WARN
    assert "RDP requires a password" in checker.audit[0]


def test_dns_mismatch_message(app_config: AppConfig, host: ScriptedHost) -> None:
    """A domain resolving elsewhere names both addresses."""
    host.addresses = ("198.51.100.7",)

    syntax, dns = run_checks(_context(app_config, host, domain="code.example.com"), domain_checks())

    assert syntax.passed
    assert dns.status is CheckStatus.WARN
    assert dns.message == (
        "Domain code.example.com resolves to 198.51.100.7, "
        "but this server's public IP is 203.0.113.10."
    )


def test_unresolvable_domain_and_unknown_public_ip(
    app_config: AppConfig,
    host: ScriptedHost,
) -> None:
    """Missing DNS records and an unknown public IP both warn."""
    host.addresses = ()
    (_, dns) = run_checks(_context(app_config, host, domain="code.example.com"), domain_checks())
    assert dns.message == "Domain code.example.com does not resolve to any address."

    host.addresses = ("203.0.113.10",)
    host.ip = None
    (_, dns) = run_checks(_context(app_config, host, domain="code.example.com"), domain_checks())
    assert "Unable to determine this server's public IP" in dns.message


def test_bad_domain_syntax_is_hard(
    app_config: AppConfig,
    host: ScriptedHost,
    logger: StructuredLogger,
) -> None:
    """Malformed domains abort before any DNS lookup is confirmed."""
    with pytest.raises(PreconditionFailure, match="Invalid domain name format"):
        PreflightChecker(logger, ScriptedOperator()).enforce(
            _context(app_config, host, domain="bad domain"), domain_checks()
        )


def test_domain_checks_without_syntax_only_resolve(
    app_config: AppConfig, host: ScriptedHost
) -> None:
    """Dropping the syntax check leaves the DNS lookup as the only domain check."""
    checks = domain_checks(syntax=False)

    (dns,) = run_checks(_context(app_config, host, domain="dev_box.example.com"), checks)

    assert [check.id for check in checks] == ["domain-dns"]
    assert dns.passed


def test_results_serialise(app_config: AppConfig, host: ScriptedHost) -> None:
    """Check results render as plain dictionaries for --json output."""
    checks = generic_checks(connectivity=False, disk=False, os_version=False)
    result = run_checks(_context(app_config, host), checks)[0]

    assert result.to_dict() == {
        "id": "not-root",
        "kind": "hard",
        "status": "pass",
        "message": "Running as a regular user.",
        "remediation": None,
        "data": None,
    }


# ---------------------------------------------------------------------------
# HostFacts
# ---------------------------------------------------------------------------


def test_host_facts_reads_os_release(runner: RecordingRunner, tmp_path: Path) -> None:
    """VERSION_ID is parsed with quotes stripped; a missing file yields None."""
    os_release = tmp_path / "os-release"
    os_release.write_text('NAME="Ubuntu"\nVERSION_ID="24.04"\n', encoding="utf-8")
    facts = HostFacts(runner=runner)

    assert facts.os_version(os_release) == "24.04"
    assert facts.os_version(tmp_path / "absent") is None


def test_host_facts_password_status(runner: RecordingRunner) -> None:
    """The second passwd -S field is the status code."""
    runner.respond("passwd -S", stdout="dev P 01/01/2025 0 99999 7 -1\n")
    facts = HostFacts(runner=runner)

    assert facts.password_status("dev") == "P"
    assert runner.executed[-1] == ["passwd", "-S", "dev"]

    runner.respond("passwd -S", returncode=1, stderr="unknown user")
    assert facts.password_status("dev") is None


def test_host_facts_sudo_probe(runner: RecordingRunner) -> None:
    """Non-interactive sudo success short-circuits the password prompt."""
    facts = HostFacts(runner=runner)

    assert facts.has_sudo() is True
    assert runner.executed == [["sudo", "-n", "true"]]

    runner.respond("sudo -n true", returncode=1)
    runner.respond("sudo -v", returncode=1)
    assert facts.has_sudo() is False


def test_host_facts_connectivity_uses_ping(runner: RecordingRunner) -> None:
    """A single ping decides reachability."""
    runner.respond("ping", returncode=2)

    assert HostFacts(runner=runner).can_reach("google.com") is False
    assert runner.executed[-1] == ["ping", "-c", "1", "-W", "5", "google.com"]
