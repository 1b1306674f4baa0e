"""Operator interaction: free-text answers, secrets and yes/no confirmations."""
from __future__ import annotations

from typing import Protocol

import typer

from .errors import OperatorDeclined
from .logging import StructuredLogger
from .validation import (
    PasswordPolicy,
    is_valid_domain,
    is_valid_tunnel_name,
    username_problem,
)


class Operator(Protocol):
    """Source of answers to interactive questions."""

    def ask(self, question: str, *, default: str | None = None) -> str:
        """Return the answer to *question*."""

    def ask_secret(self, question: str) -> str:
        """Return a hidden answer to *question*."""

    def confirm(self, question: str, *, default: bool = False) -> bool:
        """Return ``True`` when the operator answers yes."""


class ConsoleOperator:
    """Prompt on the terminal through Typer."""

    def __init__(self, *, assume_yes: bool = False) -> None:
        """Configure whether confirmations are answered automatically."""
        self.assume_yes = assume_yes

    def ask(self, question: str, *, default: str | None = None) -> str:
        """Prompt for a value, falling back to *default* on empty input."""
        answer = typer.prompt(question, default=default, show_default=default is not None)
        return str(answer).strip()

    def ask_secret(self, question: str) -> str:
        """Prompt without echo."""
        return str(typer.prompt(question, hide_input=True, default="", show_default=False))

    def confirm(self, question: str, *, default: bool = False) -> bool:
        """Ask a yes/no question; ``--yes`` answers every question with yes."""
        if self.assume_yes:
            typer.echo(f"{question} [auto-confirmed]")
            return True
        return bool(typer.confirm(question, default=default))


def require_confirmation(
    operator: Operator,
    logger: StructuredLogger,
    question: str,
    *,
    reason: str,
    audit: list[str] | None = None,
) -> None:
    """Ask *question* (default no) and raise :class:`OperatorDeclined` on no.

    An accepted override is logged at WARN and appended to *audit*.
    """
    if not operator.confirm(question, default=False):
        raise OperatorDeclined(f"Operator declined to continue: {reason}")
    logger.warn(f"Operator chose to continue despite: {reason}")
    if audit is not None:
        audit.append(reason)


def ask_domain(
    operator: Operator,
    logger: StructuredLogger,
    *,
    default: str | None = None,
    validate: bool = True,
) -> str:
    """Ask for a domain until it matches the hostname pattern.

    With *validate* off only an empty answer is refused.
    """
    while True:
        domain = operator.ask("Enter the domain name", default=default).strip().lower()
        if domain and (not validate or is_valid_domain(domain)):
            return domain
        logger.error(f"Invalid domain name format: {domain!r}")


def ask_username(operator: Operator, logger: StructuredLogger, *, default: str) -> str:
    """Ask for the basic-auth username."""
    while True:
        username = operator.ask("Enter the username for basic authentication", default=default)
        problem = username_problem(username)
        if problem is None:
            return username
        logger.error(problem)


def ask_password(
    operator: Operator,
    logger: StructuredLogger,
    policy: PasswordPolicy,
    *,
    confirm: bool = True,
) -> str:
    """Ask for a password (and its confirmation) until *policy* accepts it."""
    while True:
        password = operator.ask_secret("Enter password")
        problems = policy.violations(password)
        if problems:
            for problem in problems:
                logger.error(problem)
            continue
        if confirm and operator.ask_secret("Confirm password") != password:
            logger.error("Passwords do not match. Please try again.")
            continue
        logger.info("Password confirmed.")
        return password


def ask_tunnel_name(operator: Operator, logger: StructuredLogger, *, default: str) -> str:
    """Ask for a tunnel name made of letters, digits and hyphens."""
    while True:
        name = operator.ask("Enter a name for this tunnel", default=default)
        if is_valid_tunnel_name(name):
            return name
        logger.error("Tunnel name may only contain letters, numbers and hyphens.")


__all__ = [
    "ConsoleOperator",
    "Operator",
    "ask_domain",
    "ask_password",
    "ask_tunnel_name",
    "ask_username",
    "require_confirmation",
]
