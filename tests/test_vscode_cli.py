"""Tests for the VS Code CLI wrapper and the tunnel device-login handshake."""
from __future__ import annotations

import subprocess
from collections.abc import Callable, Sequence

import pytest
from conftest import DummyResult, RecordingRunner

from devboxctl.errors import ExternalActionFailure
from devboxctl.logging import StructuredLogger
from devboxctl.providers.vscode import VSCodeCLI


class FakeClock:
    """Monotonic clock advanced only by the fake sleep."""

    def __init__(self) -> None:
        """Start at zero."""
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeProcess:
    """Popen stand-in that runs until terminated or told to exit."""

    def __init__(self, *, ignore_term: bool = False) -> None:
        """Configure whether SIGTERM is ignored."""
        self.returncode: int | None = None
        self.ignore_term = ignore_term
        self.terminated = False
        self.killed = False

    def poll(self) -> int | None:
        return self.returncode

    def terminate(self) -> None:
        self.terminated = True
        if not self.ignore_term:
            self.returncode = -15

    def wait(self, timeout: float | None = None) -> int:
        if self.returncode is None:
            raise subprocess.TimeoutExpired("code", timeout or 0)
        return self.returncode

    def kill(self) -> None:
        self.killed = True
        self.returncode = -9


def _make_cli(
    runner: RecordingRunner,
    logger: StructuredLogger,
    process: FakeProcess,
    clock: FakeClock,
    spawned: list[list[str]],
) -> VSCodeCLI:
    def popen(command: Sequence[str]) -> FakeProcess:
        spawned.append(list(command))
        return process

    return VSCodeCLI(
        runner=runner,
        logger=logger,
        poll_interval=1.0,
        popen=popen,  # type: ignore[arg-type]
        clock=clock,
        sleep=clock.sleep,
    )


def _logged_in_after(attempts: int) -> Callable[[list[str]], DummyResult]:
    calls = {"count": 0}

    def answer(command: list[str]) -> DummyResult:
        calls["count"] += 1
        return DummyResult(returncode=0 if calls["count"] > attempts else 1)

    return answer


def test_already_authenticated_skips_login(
    runner: RecordingRunner,
    logger: StructuredLogger,
) -> None:
    """No device login is started when the CLI already has a session."""
    spawned: list[list[str]] = []
    cli = _make_cli(runner, logger, FakeProcess(), FakeClock(), spawned)

    assert cli.authenticate("devbox-tunnel") is False
    assert spawned == []


def test_login_completes_before_deadline(
    runner: RecordingRunner,
    logger: StructuredLogger,
) -> None:
    """The handshake returns once the login is observed and stops the process."""
    runner.respond_with("tunnel user show", _logged_in_after(3))
    process = FakeProcess()
    clock = FakeClock()
    spawned: list[list[str]] = []
    cli = _make_cli(runner, logger, process, clock, spawned)

    assert cli.authenticate("devbox-tunnel", timeout=300) is True
    assert spawned == [
        ["code", "tunnel", "--name", "devbox-tunnel", "--accept-server-license-terms"]
    ]
    assert process.terminated is True
    assert clock.now < 300


def test_handshake_timeout_is_fatal_when_not_logged_in(
    runner: RecordingRunner,
    logger: StructuredLogger,
) -> None:
    """Running out of time warns, terminates the process and then fails verification."""
    runner.respond("tunnel user show", returncode=1)
    process = FakeProcess()
    clock = FakeClock()
    cli = _make_cli(runner, logger, process, clock, [])

    with pytest.raises(ExternalActionFailure, match="Authentication failed"):
        cli.authenticate("devbox-tunnel", timeout=10, verify_timeout=5)

    assert process.terminated is True
    assert clock.now >= 10
    log = logger.log_path.read_text(encoding="utf-8")
    assert "[WARN] Authentication did not complete within 10 seconds." in log


def test_handshake_timeout_recovers_when_login_lands_late(
    runner: RecordingRunner,
    logger: StructuredLogger,
) -> None:
    """A login observed during re-verification still succeeds."""
    # 1 initial check + 11 polls during the 10 second window, then logged in.
    runner.respond_with("tunnel user show", _logged_in_after(12))
    process = FakeProcess()
    cli = _make_cli(runner, logger, process, FakeClock(), [])

    assert cli.authenticate("devbox-tunnel", timeout=10, verify_timeout=5) is True


def test_stubborn_process_is_killed(
    runner: RecordingRunner,
    logger: StructuredLogger,
) -> None:
    """A process ignoring SIGTERM is killed after the grace period."""
    runner.respond_with("tunnel user show", _logged_in_after(2))
    process = FakeProcess(ignore_term=True)
    cli = _make_cli(runner, logger, process, FakeClock(), [])

    cli.authenticate("devbox-tunnel")

    assert process.killed is True


def test_spawn_failure_is_an_external_action_failure(
    runner: RecordingRunner,
    logger: StructuredLogger,
) -> None:
    """A missing code binary surfaces as exit 127."""
    runner.respond("tunnel user show", returncode=1)

    def popen(command: Sequence[str]) -> FakeProcess:
        raise FileNotFoundError(command[0])

    cli = VSCodeCLI(runner=runner, logger=logger, popen=popen)  # type: ignore[arg-type]

    with pytest.raises(ExternalActionFailure) as excinfo:
        cli.authenticate("devbox-tunnel")

    assert excinfo.value.returncode == 127


def test_dry_run_never_spawns(logger: StructuredLogger) -> None:
    """Dry runs only log the intended login."""
    runner = RecordingRunner(logger=logger, sudo=False, dry_run=True)
    spawned: list[list[str]] = []
    cli = _make_cli(runner, logger, FakeProcess(), FakeClock(), spawned)

    assert cli.authenticate("devbox-tunnel") is False
    assert spawned == []


def test_kill_tunnels_reports_matches(
    runner: RecordingRunner,
    logger: StructuredLogger,
) -> None:
    """pkill exit 1 means no process matched; higher codes only warn."""
    cli = VSCodeCLI(runner=runner, logger=logger)

    assert cli.kill_tunnels() is True
    runner.respond("pkill", returncode=1)
    assert cli.kill_tunnels() is False
    runner.respond("pkill", returncode=3)
    assert cli.kill_tunnels() is False


def test_kill_tunnels_also_stops_bare_code_processes(
    runner: RecordingRunner,
    logger: StructuredLogger,
) -> None:
    """A leftover ``code`` process counts even when no tunnel pattern matches."""
    cli = VSCodeCLI(runner=runner, logger=logger)
    runner.respond("pkill -f", returncode=1)
    runner.respond("pgrep -f", returncode=1)

    assert cli.tunnels_running() is True
    assert cli.kill_tunnels() is True
    assert runner.executed[-2:] == [["pkill", "-f", "code.*tunnel"], ["pkill", "-x", "code"]]

    runner.respond("pgrep -x", returncode=1)
    assert cli.tunnels_running() is False


def test_version_reads_first_line(runner: RecordingRunner, logger: StructuredLogger) -> None:
    """Only the release number line is reported."""
    runner.respond("--version", stdout="1.95.3\nf1a4fb1\nx64\n")
    cli = VSCodeCLI(runner=runner, logger=logger)

    assert cli.version() == "1.95.3"
