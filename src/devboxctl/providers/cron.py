"""Root crontab management for certificate renewal."""
from __future__ import annotations

from dataclasses import dataclass

from ..errors import ExternalActionFailure
from ..runner import CommandRunner

_NO_CRONTAB = "no crontab for"


@dataclass(slots=True)
class CrontabProvider:
    """Read and extend the root crontab."""

    runner: CommandRunner
    crontab_bin: str = "crontab"

    def entries(self) -> list[str]:
        """Return the current crontab lines; an empty crontab is not an error."""
        result = self.runner.inspect([self.crontab_bin, "-l"], privileged=True)
        if result.returncode != 0:
            if _NO_CRONTAB in (result.stderr or ""):
                return []
            raise ExternalActionFailure(
                result.args, result.returncode, (result.stderr or "").strip() or "no output"
            )
        return [line for line in (result.stdout or "").splitlines() if line.strip()]

    def ensure(self, entry: str) -> bool:
        """Append *entry* unless it is already present; return ``True`` on change."""
        current = self.entries()
        if entry in current:
            return False
        content = "\n".join([*current, entry]) + "\n"
        self.runner.run([self.crontab_bin, "-"], privileged=True, input_text=content)
        return True


__all__ = ["CrontabProvider"]
