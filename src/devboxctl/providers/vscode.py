"""VS Code CLI integration, including the tunnel device-login handshake."""
from __future__ import annotations

import shutil
import subprocess
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from ..errors import AuthenticationTimeout, ExternalActionFailure
from ..logging import StructuredLogger
from ..polling import wait_until
from ..runner import CommandRunner

PopenFactory = Callable[[Sequence[str]], "subprocess.Popen[str]"]

# Tunnel processes first, then any bare `code` CLI left behind.
_TUNNEL_MATCHERS = (("-f", "code.*tunnel"), ("-x", "code"))


def _spawn(command: Sequence[str]) -> subprocess.Popen[str]:
    # Output is inherited so the operator sees the device code and login URL.
    return subprocess.Popen(list(command), text=True)  # noqa: S603


@dataclass(slots=True)
class VSCodeCLI:
    """Wrap the ``code`` command line."""

    runner: CommandRunner
    logger: StructuredLogger
    code_bin: str = "code"
    grace_period: float = 5.0
    poll_interval: float = 2.0
    popen: PopenFactory = _spawn
    clock: Callable[[], float] = field(default=time.monotonic)
    sleep: Callable[[float], None] = field(default=time.sleep)

    def is_installed(self) -> bool:
        """Return ``True`` when the ``code`` binary is on ``PATH``."""
        return self.runner.exists(self.code_bin)

    def binary_path(self) -> str:
        """Return the absolute path of the ``code`` binary when resolvable."""
        return shutil.which(self.code_bin) or self.code_bin

    def version(self) -> str:
        """Return the first line of ``code --version``."""
        output = self.runner.run([self.code_bin, "--version"]).stdout or ""
        lines = output.strip().splitlines()
        return lines[0] if lines else ""

    def is_authenticated(self) -> bool:
        """Return ``True`` when ``code tunnel user show`` reports a login."""
        return self.runner.probe([self.code_bin, "tunnel", "user", "show"], timeout=30)

    def tunnel_status(self) -> bool:
        """Return ``True`` when ``code tunnel status`` succeeds."""
        return self.runner.probe([self.code_bin, "tunnel", "status"], timeout=30)

    def tunnels_running(self) -> bool:
        """Return ``True`` when any tunnel process is running."""
        return any(
            self.runner.probe(["pgrep", flag, pattern]) for flag, pattern in _TUNNEL_MATCHERS
        )

    def kill_tunnels(self) -> bool:
        """Terminate stray tunnel processes; return ``True`` when any were signalled."""
        signalled = False
        for flag, pattern in _TUNNEL_MATCHERS:
            result = self.runner.inspect(["pkill", flag, pattern])
            if result.returncode == 0:
                signalled = True
            elif result.returncode > 1:
                self.logger.warn(
                    f"Ignoring failure to stop '{pattern}' processes (exit {result.returncode})."
                )
        return signalled

    def authenticate(
        self,
        tunnel_name: str,
        *,
        timeout: float = 300.0,
        verify_timeout: float = 30.0,
    ) -> bool:
        """Run the device-login handshake for *tunnel_name*.

        Returns ``True`` when a new login happened and ``False`` when the CLI
        was already authenticated. Running out of time only warns; the login
        is re-verified afterwards and a failed verification is fatal.
        """
        if self.runner.dry_run:
            self.logger.info(f"Would authenticate tunnel {tunnel_name}")
            return False
        if self.is_authenticated():
            self.logger.info("VS Code tunnel is already authenticated.")
            return False

        command = [
            self.code_bin,
            "tunnel",
            "--name",
            tunnel_name,
            "--accept-server-license-terms",
        ]
        self.logger.info(
            f"Starting authentication (will time out in {timeout:.0f} seconds). "
            "Follow the instructions below to sign in."
        )
        self.logger.debug(f"$ {' '.join(command)}")
        try:
            process = self.popen(command)
        except OSError as exc:
            raise ExternalActionFailure(command, 127, str(exc)) from exc

        try:
            self._await_login(process, timeout)
        except AuthenticationTimeout as exc:
            self.logger.warn(str(exc))
        finally:
            self._terminate(process)

        verify = [self.code_bin, "tunnel", "user", "show"]
        if not wait_until(
            self.is_authenticated,
            timeout=verify_timeout,
            interval=self.poll_interval,
            clock=self.clock,
            sleep=self.sleep,
        ):
            raise ExternalActionFailure(
                verify, 1, "Authentication failed; the tunnel is not logged in."
            )
        self.logger.info("Authentication successful.")
        return True

    # ------------------------------------------------------------------
    def _await_login(self, process: subprocess.Popen[str], timeout: float) -> None:
        deadline = self.clock() + timeout
        while True:
            if process.poll() is not None:
                return
            if self.is_authenticated():
                return
            remaining = deadline - self.clock()
            if remaining <= 0:
                raise AuthenticationTimeout(
                    f"Authentication did not complete within {timeout:.0f} seconds."
                )
            self.sleep(min(self.poll_interval, remaining))

    def _terminate(self, process: subprocess.Popen[str]) -> None:
        if process.poll() is not None:
            return
        process.terminate()
        try:
            process.wait(timeout=self.grace_period)
        except subprocess.TimeoutExpired:
            self.logger.warn("Tunnel process ignored SIGTERM; killing it.")
            process.kill()
            process.wait()


__all__ = ["VSCodeCLI"]
