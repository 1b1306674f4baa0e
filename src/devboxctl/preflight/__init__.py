"""Precondition checks executed before any workflow mutates the host."""

from __future__ import annotations

from .checks import domain_checks, generic_checks, password_checks
from .engine import PreflightChecker, run_checks
from .host import HostFacts
from .models import (
    CheckDefinition,
    CheckKind,
    CheckResult,
    CheckStatus,
    PreflightContext,
)

__all__ = [
    "CheckDefinition",
    "CheckKind",
    "CheckResult",
    "CheckStatus",
    "HostFacts",
    "PreflightChecker",
    "PreflightContext",
    "domain_checks",
    "generic_checks",
    "password_checks",
    "run_checks",
]
