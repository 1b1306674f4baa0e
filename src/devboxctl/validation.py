"""Validators for operator-supplied values."""
from __future__ import annotations

import re
from dataclasses import dataclass

_LABEL = r"[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
DOMAIN_PATTERN = re.compile(rf"^{_LABEL}(\.{_LABEL})*\.[a-zA-Z]{{2,}}$")
TUNNEL_NAME_PATTERN = re.compile(r"^[A-Za-z0-9-]+$")

_LOWER = re.compile(r"[a-z]")
_UPPER = re.compile(r"[A-Z]")
_DIGIT = re.compile(r"[0-9]")
# Anything outside ASCII letters and digits counts, including spaces.
_SYMBOL = re.compile(r"[^a-zA-Z0-9]")


@dataclass(frozen=True)
class PasswordPolicy:
    """Character-class and length requirements for a credential."""

    min_length: int = 12
    require_lower: bool = True
    require_upper: bool = True
    require_digit: bool = True
    require_symbol: bool = True

    def violations(self, password: str) -> list[str]:
        """Return human-readable reasons *password* is rejected."""
        if not password:
            return ["Password cannot be empty."]
        problems: list[str] = []
        if len(password) < self.min_length:
            problems.append(f"Password must be at least {self.min_length} characters long.")
        if self.require_lower and not _LOWER.search(password):
            problems.append("Password must contain at least one lowercase letter.")
        if self.require_upper and not _UPPER.search(password):
            problems.append("Password must contain at least one uppercase letter.")
        if self.require_digit and not _DIGIT.search(password):
            problems.append("Password must contain at least one number.")
        if self.require_symbol and not _SYMBOL.search(password):
            problems.append("Password must contain at least one special character.")
        return problems

    def accepts(self, password: str) -> bool:
        """Return ``True`` when *password* satisfies every rule."""
        return not self.violations(password)


def is_valid_domain(domain: str) -> bool:
    """Return ``True`` when *domain* looks like a public hostname."""
    return bool(DOMAIN_PATTERN.fullmatch(domain.strip()))


def is_valid_tunnel_name(name: str) -> bool:
    """Tunnel names are limited to letters, digits and hyphens."""
    return bool(TUNNEL_NAME_PATTERN.fullmatch(name))


def username_problem(username: str) -> str | None:
    """Return why *username* cannot be used in a digest file, or ``None``."""
    if not username:
        return "Username cannot be empty."
    if ":" in username:
        return "Username cannot contain ':'."
    if any(char.isspace() for char in username):
        return "Username cannot contain whitespace."
    return None


__all__ = [
    "DOMAIN_PATTERN",
    "PasswordPolicy",
    "TUNNEL_NAME_PATTERN",
    "is_valid_domain",
    "is_valid_tunnel_name",
    "username_problem",
]
