"""Step sequencer: run steps in order and stop at the first failure.

There is no rollback. When a step's precondition, action or verification
fails, the steps after it never run and the host is left in whatever state
the completed steps produced. The report says which step failed and why.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from contextlib import ExitStack

from ..errors import DevboxError, PreconditionFailure, VerificationFailure
from ..locking import LockManager
from ..logging import StructuredLogger
from .context import WorkflowContext
from .models import Step, StepOutcome, WorkflowReport, WorkflowState

SummaryBuilder = Callable[[WorkflowContext], list[str]]

DEFAULT_DIAGNOSTICS: tuple[str, ...] = (
    "sudo systemctl status nginx",
    "sudo journalctl -xe --no-pager",
    "sudo nginx -t",
)


class StepSequencer:
    """Execute a workflow's steps fail-fast and build its report."""

    def __init__(
        self,
        logger: StructuredLogger,
        *,
        locks: LockManager | None = None,
    ) -> None:
        """Store the logger and the optional host-wide lock manager."""
        self._logger = logger
        self._locks = locks

    def run(
        self,
        name: str,
        steps: Sequence[Step],
        context: WorkflowContext,
        *,
        summary: SummaryBuilder | None = None,
    ) -> WorkflowReport:
        """Run *steps* against *context* and return the report."""
        state = WorkflowState()
        report = WorkflowReport(workflow=name, state=state, overrides=list(context.overrides))
        total = len(steps)
        with ExitStack() as stack:
            op = stack.enter_context(
                self._logger.operation(
                    f"workflow.{name}",
                    args=context.workflow.to_dict(),
                    target={"domain": context.workflow.domain, "dry_run": context.dry_run},
                )
            )
            if self._locks is not None:
                handle = stack.enter_context(self._locks.workflow_lock())
                op.set_lock_wait_ms(handle.wait_ms)
            stack.callback(context.release_leases)

            for index, step in enumerate(steps, start=1):
                state.advance(index)
                self._logger.info(f"Step {index}/{total}: {step.description}")
                try:
                    outcome = self._execute(step, context)
                except DevboxError as exc:
                    reason = str(exc)
                    state.abort(reason)
                    report.failed_step = step.name
                    report.diagnostics = step.diagnostics or DEFAULT_DIAGNOSTICS
                    op.add_step(step.name, status="failed", detail=reason)
                    op.error(
                        f"Step {index}/{total} ({step.name}) failed.",
                        errors=[reason],
                        context={"overrides": report.overrides, "completed": report.completed},
                    )
                    self._report_abort(index, total, step, report)
                    return report
                op.add_step(step.name, status=outcome.status, detail=outcome.detail)
                if outcome.status == "skipped":
                    self._logger.debug(f"{step.name}: skipped ({outcome.detail})")
                elif outcome.detail:
                    self._logger.info(outcome.detail)
                if outcome.changed:
                    report.changed += 1
                report.completed.append(step.name)

            state.succeed()
            report.summary = summary(context) if summary is not None else []
            op.success(
                f"{name} completed.",
                changed=report.changed,
                context={"overrides": report.overrides, "summary": report.summary},
            )
        for line in report.summary:
            self._logger.info(line)
        return report

    # ------------------------------------------------------------------
    def _execute(self, step: Step, context: WorkflowContext) -> StepOutcome:
        if step.precondition is not None and not step.precondition(context):
            raise PreconditionFailure(step.name, f"Precondition for '{step.name}' is not met.")
        outcome = step.action(context) or StepOutcome.done()
        if step.verify is not None and not context.dry_run and not step.verify(context):
            raise VerificationFailure(f"Verification of '{step.name}' failed.")
        return outcome

    def _report_abort(
        self,
        index: int,
        total: int,
        step: Step,
        report: WorkflowReport,
    ) -> None:
        self._logger.error(f"Step {index}/{total} ({step.name}) failed: {report.reason}")
        self._logger.error(
            f"Workflow aborted. See the log file for details: {self._logger.log_path}"
        )
        console = self._logger.console
        console.print("Useful diagnostics:")
        for command in report.diagnostics:
            console.print(f"  {command}", markup=False)


__all__ = ["DEFAULT_DIAGNOSTICS", "StepSequencer"]
