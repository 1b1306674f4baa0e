"""Workflow engine: data model, renderer, step and uninstall sequencers."""

from __future__ import annotations

from .context import Toolkit, WorkflowContext
from .engine import StepSequencer
from .models import (
    Step,
    StepOutcome,
    WorkflowConfig,
    WorkflowPhase,
    WorkflowReport,
    WorkflowState,
)
from .render import Artifact, ConfigRenderer
from .uninstall import RemovalStep, UninstallReport, UninstallSequencer

__all__ = [
    "Artifact",
    "ConfigRenderer",
    "RemovalStep",
    "Step",
    "StepOutcome",
    "StepSequencer",
    "Toolkit",
    "UninstallReport",
    "UninstallSequencer",
    "WorkflowConfig",
    "WorkflowContext",
    "WorkflowPhase",
    "WorkflowReport",
    "WorkflowState",
]
