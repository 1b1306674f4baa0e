"""Shared plumbing for the concrete workflows.

A :class:`Session` bundles the long-lived collaborators built by the CLI
(configuration, logger, command runner, operator, host probes, lock
manager). Each workflow module uses it to run its preflight checks, collect
its :class:`WorkflowConfig` and hand the resulting context to a sequencer.
"""

from __future__ import annotations

import secrets
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from ..config import AppConfig
from ..errors import PreconditionFailure
from ..locking import LockManager
from ..logging import StructuredLogger
from ..ports import PortAllocator, PortLease
from ..preflight import CheckDefinition, HostFacts, PreflightChecker, PreflightContext
from ..prompts import Operator, ask_domain, ask_password, ask_tunnel_name, ask_username
from ..runner import CommandRunner
from ..templates import TemplateEngine
from ..validation import PasswordPolicy, is_valid_tunnel_name, username_problem
from ..workflow import WorkflowConfig, WorkflowContext

SALT_BYTES = 8


@dataclass(slots=True)
class WorkflowOptions:
    """Answers supplied on the command line instead of interactively."""

    domain: str | None = None
    username: str | None = None
    password: str | None = field(default=None, repr=False)
    tunnel_name: str | None = None


@dataclass(slots=True)
class Session:
    """Collaborators shared by every step of one CLI invocation."""

    app: AppConfig
    logger: StructuredLogger
    runner: CommandRunner
    operator: Operator
    host: HostFacts
    locks: LockManager | None = None
    templates: TemplateEngine | None = None
    audit: list[str] = field(default_factory=list)

    # ------------------------------------------------------------------
    # Preflight
    # ------------------------------------------------------------------
    def preflight(
        self,
        checks: Sequence[CheckDefinition],
        *,
        domain: str | None = None,
    ) -> None:
        """Enforce *checks*; accepted soft failures land in :attr:`audit`."""
        context = PreflightContext(
            config=self.app,
            host=self.host,
            domain=domain,
            login_user=self.host.login_user(),
        )
        PreflightChecker(self.logger, self.operator, audit=self.audit).enforce(context, checks)

    # ------------------------------------------------------------------
    # Input collection
    # ------------------------------------------------------------------
    def domain(
        self,
        options: WorkflowOptions,
        *,
        default: str | None = None,
        validate: bool = True,
    ) -> str:
        """Return the domain from *options* or ask for it."""
        if options.domain:
            return options.domain.strip().lower()
        return ask_domain(self.operator, self.logger, default=default, validate=validate)

    def username(self, options: WorkflowOptions) -> str:
        """Return a basic-auth username from *options* or ask for it."""
        if options.username is not None:
            problem = username_problem(options.username)
            if problem is not None:
                raise PreconditionFailure("username", problem)
            return options.username
        return ask_username(
            self.operator, self.logger, default=self.app.code_server.default_username
        )

    def password(self, options: WorkflowOptions, policy: PasswordPolicy) -> str:
        """Return a password accepted by *policy*.

        A password piped on stdin is checked once; there is nobody to ask
        again, so a weak one is a precondition failure.
        """
        if options.password is not None:
            problems = policy.violations(options.password)
            if problems:
                raise PreconditionFailure("password-policy", " ".join(problems))
            return options.password
        return ask_password(self.operator, self.logger, policy)

    def tunnel_name(self, options: WorkflowOptions) -> str:
        """Return the tunnel name from *options* or ask for it."""
        default = f"{self.host.hostname()}-tunnel"
        if options.tunnel_name is not None:
            if not is_valid_tunnel_name(options.tunnel_name):
                raise PreconditionFailure(
                    "tunnel-name",
                    "Tunnel name may only contain letters, numbers and hyphens.",
                )
            return options.tunnel_name
        return ask_tunnel_name(self.operator, self.logger, default=default)

    def lease_ports(self, requested: Mapping[str, int]) -> dict[str, PortLease]:
        """Lease a free port for each ``name -> preferred start`` pair."""
        allocator = PortAllocator(self.logger, window=self.app.ports.window)
        leases: dict[str, PortLease] = {}
        try:
            for name, start in requested.items():
                leases[name] = allocator.lease(start, name=name)
        except BaseException:
            for lease in leases.values():
                lease.release()
            raise
        return leases

    def workflow_config(
        self,
        workflow: str,
        *,
        domain: str | None = None,
        username: str | None = None,
        password: str | None = None,
        tunnel_name: str | None = None,
        ports: Mapping[str, int] | None = None,
    ) -> WorkflowConfig:
        """Freeze the collected answers together with the login account."""
        login_user = self.host.login_user()
        uid, group = self.host.account(login_user)
        return WorkflowConfig(
            workflow=workflow,
            login_user=login_user,
            home=self.host.home(),
            login_group=group,
            login_uid=uid,
            domain=domain,
            username=username,
            password=password,
            tunnel_name=tunnel_name,
            ports=dict(ports or {}),
            credential_salt=secrets.token_bytes(SALT_BYTES),
        )

    def context(
        self,
        workflow: WorkflowConfig,
        *,
        leases: Mapping[str, PortLease] | None = None,
    ) -> WorkflowContext:
        """Build the per-run context handed to every step."""
        return WorkflowContext.build(
            self.app,
            workflow,
            logger=self.logger,
            runner=self.runner,
            operator=self.operator,
            leases=leases,
            overrides=self.audit,
            templates=self.templates,
        )


__all__ = ["SALT_BYTES", "Session", "WorkflowOptions"]
