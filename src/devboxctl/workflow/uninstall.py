"""Uninstall sequencer: detect, confirm, then remove in a fixed order.

Unlike provisioning, removal keeps going after a failed step. Every removal
is tolerant of the component already being gone, so re-running an
uninstall is always safe.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from contextlib import ExitStack
from dataclasses import dataclass, field

from ..errors import DevboxError
from ..exit_codes import ExitCode
from ..locking import LockManager
from ..logging import StructuredLogger
from .context import WorkflowContext


@dataclass(frozen=True)
class RemovalStep:
    """One component the uninstaller knows how to find and remove."""

    name: str
    label: str
    detect: Callable[[WorkflowContext], bool]
    remove: Callable[[WorkflowContext], None]
    user_data: bool = False


@dataclass(slots=True)
class UninstallReport:
    """Outcome of an uninstall run."""

    workflow: str
    planned: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    cancelled: bool = False

    @property
    def exit_code(self) -> ExitCode:
        """Cancelling is a normal outcome; removal warnings are not fatal."""
        return ExitCode.OK

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "workflow": self.workflow,
            "planned": list(self.planned),
            "removed": list(self.removed),
            "skipped": list(self.skipped),
            "warnings": list(self.warnings),
            "cancelled": self.cancelled,
        }


class UninstallSequencer:
    """Show the removal plan, ask for confirmation and run the removals."""

    def __init__(
        self,
        logger: StructuredLogger,
        *,
        locks: LockManager | None = None,
    ) -> None:
        """Store the logger and the optional host-wide lock manager."""
        self._logger = logger
        self._locks = locks

    def plan(self, steps: Sequence[RemovalStep], context: WorkflowContext) -> list[RemovalStep]:
        """Return the steps whose component is currently present."""
        return [step for step in steps if step.detect(context)]

    def run(
        self,
        name: str,
        steps: Sequence[RemovalStep],
        context: WorkflowContext,
    ) -> UninstallReport:
        """Detect, confirm and remove; absent components are skipped."""
        report = UninstallReport(workflow=name)
        present = self.plan(steps, context)
        report.planned = [step.name for step in present]
        if not present:
            self._logger.info("Nothing to remove; no components were found.")
            return report

        self._show_plan(name, present)
        if not context.operator.confirm(
            "Do you want to proceed with the uninstallation?", default=False
        ):
            self._logger.info("Uninstallation cancelled by user")
            report.cancelled = True
            return report

        present_names = set(report.planned)
        with ExitStack() as stack:
            op = stack.enter_context(
                self._logger.operation(f"uninstall.{name}", args={"planned": report.planned})
            )
            if self._locks is not None:
                handle = stack.enter_context(self._locks.workflow_lock())
                op.set_lock_wait_ms(handle.wait_ms)

            for index, step in enumerate(steps, start=1):
                if step.name not in present_names:
                    self._logger.debug(f"{step.label}: not present, skipping")
                    op.add_step(step.name, status="skipped", detail="not present")
                    report.skipped.append(step.name)
                    continue
                self._logger.info(f"Removal {index}/{len(steps)}: {step.label}")
                try:
                    step.remove(context)
                except (DevboxError, OSError) as exc:
                    message = f"{step.label}: {exc}"
                    self._logger.warn(f"Failed to remove {message}")
                    op.add_step(step.name, status="warning", detail=str(exc))
                    report.warnings.append(message)
                    continue
                op.add_step(step.name, status="success")
                report.removed.append(step.name)

            if report.warnings:
                op.warning(
                    f"{name} uninstall finished with warnings.",
                    warnings=report.warnings,
                    changed=len(report.removed),
                )
            else:
                op.success(f"{name} uninstall completed.", changed=len(report.removed))
        self._logger.info(f"Uninstallation of {name} completed.")
        return report

    def _show_plan(self, name: str, present: Sequence[RemovalStep]) -> None:
        console = self._logger.console
        console.print(f"[bold]{name} uninstall plan[/bold]")
        console.print("The following components will be removed:")
        for step in present:
            console.print(f"  [green]✓[/green] {step.label}")
        if any(step.user_data for step in present):
            self._logger.warn(
                "This will remove ALL user settings, extensions and authentication data!"
            )
            self._logger.warn("Back up any important configuration before proceeding.")


__all__ = ["RemovalStep", "UninstallReport", "UninstallSequencer"]
