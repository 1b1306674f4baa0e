"""Data models for precondition checks."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..config import AppConfig
    from .host import HostFacts


class CheckStatus(str, Enum):
    """Outcome of a single check."""

    PASS = "pass"
    WARN = "warn"
    FAIL = "fail"


class CheckKind(str, Enum):
    """Whether a failing check aborts or asks the operator."""

    HARD = "hard"
    SOFT = "soft"


@dataclass(slots=True, frozen=True)
class PreflightContext:
    """Inputs available to every check."""

    config: AppConfig
    host: HostFacts
    domain: str | None = None
    login_user: str | None = None


@dataclass(slots=True, frozen=True)
class CheckResult:
    """Outcome of running a check."""

    id: str
    kind: CheckKind
    status: CheckStatus
    message: str
    remediation: str | None = None
    data: Mapping[str, Any] | None = None

    @property
    def passed(self) -> bool:
        """Return ``True`` when the check passed."""
        return self.status is CheckStatus.PASS

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "id": self.id,
            "kind": self.kind.value,
            "status": self.status.value,
            "message": self.message,
            "remediation": self.remediation,
            "data": dict(self.data) if self.data else None,
        }


@dataclass(slots=True, frozen=True)
class CheckDefinition:
    """Metadata + callable for a check.

    ``remedy`` optionally lets the operator fix a soft failure on the spot
    (for example setting a login password); the check is re-run afterwards.
    """

    id: str
    kind: CheckKind
    run: Callable[[PreflightContext], CheckResult]
    remedy_prompt: str | None = None
    remedy: Callable[[PreflightContext], None] | None = None


__all__ = [
    "CheckDefinition",
    "CheckKind",
    "CheckResult",
    "CheckStatus",
    "PreflightContext",
]
