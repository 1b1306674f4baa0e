"""Error taxonomy shared by preflight checks, providers and workflows.

Every fatal condition is a :class:`DevboxError`. The step sequencer is the only
place that catches them: it logs the failure, aborts the workflow and reports
a non-zero exit status. Nothing is retried.
"""
from __future__ import annotations

from collections.abc import Sequence


class DevboxError(RuntimeError):
    """Base class for fatal workflow errors."""


class PreconditionFailure(DevboxError):
    """The host does not meet a hard requirement."""

    def __init__(self, check: str, message: str, remediation: str | None = None) -> None:
        """Record the failing check identifier alongside the message."""
        super().__init__(message)
        self.check = check
        self.remediation = remediation


class OperatorDeclined(DevboxError):
    """The operator answered no to a confirmation that gates the workflow."""


class ExternalActionFailure(DevboxError):
    """A delegated command exited with a non-zero status."""

    def __init__(
        self,
        command: Sequence[str],
        returncode: int,
        diagnostic: str,
    ) -> None:
        """Capture the command line, exit status and diagnostic output."""
        self.command = list(command)
        self.returncode = returncode
        self.diagnostic = diagnostic
        joined = " ".join(self.command)
        super().__init__(f"{joined} failed (exit {returncode}): {diagnostic}")


class AuthenticationTimeout(DevboxError):
    """The device authentication handshake did not finish before its deadline."""


class VerificationFailure(DevboxError):
    """A step completed its action but the resulting state did not check out."""


__all__ = [
    "AuthenticationTimeout",
    "DevboxError",
    "ExternalActionFailure",
    "OperatorDeclined",
    "PreconditionFailure",
    "VerificationFailure",
]
