"""Concrete provisioning and removal workflows."""

from __future__ import annotations

from .base import Session, WorkflowOptions

__all__ = ["Session", "WorkflowOptions"]
