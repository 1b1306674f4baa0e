"""Run precondition checks and apply the hard/soft failure policy."""

from __future__ import annotations

from collections.abc import Sequence

from ..errors import PreconditionFailure
from ..logging import StructuredLogger
from ..prompts import Operator, require_confirmation
from .models import CheckDefinition, CheckKind, CheckResult, CheckStatus, PreflightContext


def run_checks(
    context: PreflightContext,
    checks: Sequence[CheckDefinition],
) -> list[CheckResult]:
    """Execute every check and return the results without enforcing them."""
    return [check.run(context) for check in checks]


class PreflightChecker:
    """Enforce checks in order.

    A failing hard check raises :class:`PreconditionFailure`. A failing soft
    check first offers its remedy (when it has one), then asks the operator
    whether to continue; the answer defaults to no.
    """

    def __init__(
        self,
        logger: StructuredLogger,
        operator: Operator,
        *,
        audit: list[str] | None = None,
    ) -> None:
        """Store the logger, operator and the list collecting overrides."""
        self._logger = logger
        self._operator = operator
        self.audit: list[str] = audit if audit is not None else []

    def enforce(
        self,
        context: PreflightContext,
        checks: Sequence[CheckDefinition],
    ) -> list[CheckResult]:
        """Run *checks*, stopping at the first unrecoverable failure."""
        results: list[CheckResult] = []
        for check in checks:
            result = check.run(context)
            if result.status is CheckStatus.PASS:
                self._logger.info(result.message)
            elif check.kind is CheckKind.HARD:
                self._logger.error(result.message)
                raise PreconditionFailure(result.id, result.message, result.remediation)
            else:
                self._logger.warn(result.message)
                result = self._resolve_soft(context, check, result)
            results.append(result)
        return results

    def _resolve_soft(
        self,
        context: PreflightContext,
        check: CheckDefinition,
        result: CheckResult,
    ) -> CheckResult:
        if check.remedy is not None and check.remedy_prompt:
            if self._operator.confirm(check.remedy_prompt, default=False):
                check.remedy(context)
                retried = check.run(context)
                if retried.status is CheckStatus.PASS:
                    self._logger.info(retried.message)
                    return retried
                self._logger.warn(retried.message)
                result = retried
        require_confirmation(
            self._operator,
            self._logger,
            "Do you want to continue anyway?",
            reason=result.message,
            audit=self.audit,
        )
        return result


__all__ = ["PreflightChecker", "run_checks"]
