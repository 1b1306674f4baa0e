"""Core data model shared by the step and uninstall sequencers."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from ..exit_codes import ExitCode

if TYPE_CHECKING:
    from .context import WorkflowContext


@dataclass(frozen=True)
class WorkflowConfig:
    """Values collected once from the operator, immutable for the run."""

    workflow: str
    login_user: str
    home: Path
    login_group: str = ""
    login_uid: int = 0
    domain: str | None = None
    username: str | None = None
    password: str | None = field(default=None, repr=False)
    tunnel_name: str | None = None
    ports: Mapping[str, int] = field(default_factory=dict)
    credential_salt: bytes = field(default=b"", repr=False)

    @property
    def email(self) -> str:
        """Contact address registered with the certificate authority."""
        return f"admin@{self.require('domain')}"

    def require(self, name: str) -> str:
        """Return the string field *name*, failing loudly when it was not collected."""
        value = getattr(self, name)
        if not value:
            raise ValueError(f"Workflow {self.workflow} did not collect '{name}'.")
        return str(value)

    def port(self, name: str) -> int:
        """Return the port chosen for *name*."""
        try:
            return int(self.ports[name])
        except KeyError:
            raise ValueError(
                f"Workflow {self.workflow} did not allocate a '{name}' port."
            ) from None

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation without secrets."""
        return {
            "workflow": self.workflow,
            "login_user": self.login_user,
            "home": str(self.home),
            "domain": self.domain,
            "username": self.username,
            "tunnel_name": self.tunnel_name,
            "ports": dict(self.ports),
        }


class WorkflowPhase(str, Enum):
    """Lifecycle of a single workflow run."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    ABORTED = "aborted"


@dataclass(slots=True)
class WorkflowState:
    """``NOT_STARTED -> RUNNING(k) -> SUCCEEDED | ABORTED(k, reason)``."""

    phase: WorkflowPhase = WorkflowPhase.NOT_STARTED
    step_index: int | None = None
    reason: str | None = None

    @property
    def finished(self) -> bool:
        """Return ``True`` once the run reached a terminal phase."""
        return self.phase in (WorkflowPhase.SUCCEEDED, WorkflowPhase.ABORTED)

    def advance(self, step_index: int) -> None:
        """Enter (or move to) step *step_index*."""
        if self.finished:
            raise RuntimeError(
                f"Cannot start step {step_index}; workflow already {self.phase.value}."
            )
        if self.step_index is not None and step_index <= self.step_index:
            raise RuntimeError(f"Steps must advance; {step_index} follows {self.step_index}.")
        self.phase = WorkflowPhase.RUNNING
        self.step_index = step_index

    def succeed(self) -> None:
        """Mark the run as complete."""
        if self.finished:
            raise RuntimeError(f"Workflow already {self.phase.value}.")
        self.phase = WorkflowPhase.SUCCEEDED

    def abort(self, reason: str) -> None:
        """Mark the run as aborted at the current step."""
        if self.finished:
            raise RuntimeError(f"Workflow already {self.phase.value}.")
        self.phase = WorkflowPhase.ABORTED
        self.reason = reason


@dataclass(frozen=True)
class StepOutcome:
    """What a step's action reported."""

    status: Literal["success", "skipped"] = "success"
    detail: str | None = None
    changed: bool = True

    @classmethod
    def done(cls, detail: str | None = None, *, changed: bool = True) -> StepOutcome:
        """Return a successful outcome."""
        return cls(status="success", detail=detail, changed=changed)

    @classmethod
    def skipped(cls, detail: str) -> StepOutcome:
        """Return an outcome for an action that found nothing to do."""
        return cls(status="skipped", detail=detail, changed=False)


StepAction = Callable[["WorkflowContext"], "StepOutcome | None"]
StepCheck = Callable[["WorkflowContext"], bool]


@dataclass(frozen=True)
class Step:
    """One precondition-checked, side-effecting unit of a workflow."""

    name: str
    description: str
    action: StepAction
    precondition: StepCheck | None = None
    verify: StepCheck | None = None
    diagnostics: tuple[str, ...] = ()


@dataclass(slots=True)
class WorkflowReport:
    """Final result of a workflow run."""

    workflow: str
    state: WorkflowState
    completed: list[str] = field(default_factory=list)
    failed_step: str | None = None
    summary: list[str] = field(default_factory=list)
    overrides: list[str] = field(default_factory=list)
    diagnostics: tuple[str, ...] = ()
    changed: int = 0

    @property
    def succeeded(self) -> bool:
        """Return ``True`` when every step completed."""
        return self.state.phase is WorkflowPhase.SUCCEEDED

    @property
    def reason(self) -> str | None:
        """Return the abort reason, if any."""
        return self.state.reason

    @property
    def exit_code(self) -> ExitCode:
        """Return the process exit status for this report."""
        return ExitCode.OK if self.succeeded else ExitCode.FAILURE

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "workflow": self.workflow,
            "state": self.state.phase.value,
            "step_index": self.state.step_index,
            "reason": self.state.reason,
            "completed": list(self.completed),
            "failed_step": self.failed_step,
            "summary": list(self.summary),
            "overrides": list(self.overrides),
            "changed": self.changed,
        }


__all__ = [
    "Step",
    "StepOutcome",
    "WorkflowConfig",
    "WorkflowPhase",
    "WorkflowReport",
    "WorkflowState",
]
