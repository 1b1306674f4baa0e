"""Everything a step needs, passed explicitly instead of read from globals."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

from ..config import AppConfig
from ..logging import StructuredLogger
from ..polling import wait_until
from ..ports import PortAllocationError, PortLease
from ..prompts import Operator
from ..providers import (
    AptProvider,
    CertbotProvider,
    ComposeProvider,
    CrontabProvider,
    NginxProvider,
    SystemdProvider,
    VSCodeCLI,
)
from ..runner import CommandRunner
from ..templates import TemplateEngine
from .models import WorkflowConfig
from .render import ConfigRenderer


@dataclass(slots=True)
class Toolkit:
    """Providers for each external tool, wired to one command runner."""

    apt: AptProvider
    systemd: SystemdProvider
    nginx: NginxProvider
    certbot: CertbotProvider
    compose: ComposeProvider
    cron: CrontabProvider
    vscode: VSCodeCLI

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        runner: CommandRunner,
        logger: StructuredLogger,
    ) -> Toolkit:
        """Build providers using the paths and binaries from *config*."""
        return cls(
            apt=AptProvider(runner=runner),
            systemd=SystemdProvider(
                runner=runner,
                unit_dir=config.systemd.unit_dir,
                systemctl_bin=config.systemd.systemctl_bin,
                journalctl_bin=config.systemd.journalctl_bin,
            ),
            nginx=NginxProvider(
                runner=runner,
                sites_available=config.nginx.sites_available,
                sites_enabled=config.nginx.sites_enabled,
                conf_dir=config.nginx.conf_dir,
                nginx_bin=config.nginx.nginx_bin,
                systemctl_bin=config.systemd.systemctl_bin,
            ),
            certbot=CertbotProvider(
                runner=runner,
                certbot_bin=config.certbot.certbot_bin,
                live_dir=config.certbot.live_dir,
            ),
            compose=ComposeProvider(
                runner=runner,
                compose_bin=config.desktop.compose_bin,
                docker_bin=config.desktop.docker_bin,
            ),
            cron=CrontabProvider(runner=runner),
            vscode=VSCodeCLI(
                runner=runner,
                logger=logger,
                code_bin=config.vscode.code_bin,
                poll_interval=config.timeouts.poll_interval,
            ),
        )


@dataclass(slots=True)
class WorkflowContext:
    """Per-run bundle handed to every step."""

    app: AppConfig
    workflow: WorkflowConfig
    logger: StructuredLogger
    runner: CommandRunner
    tools: Toolkit
    renderer: ConfigRenderer
    operator: Operator
    leases: Mapping[str, PortLease] = field(default_factory=dict)
    overrides: list[str] = field(default_factory=list)

    @classmethod
    def build(
        cls,
        app: AppConfig,
        workflow: WorkflowConfig,
        *,
        logger: StructuredLogger,
        runner: CommandRunner,
        operator: Operator,
        leases: Mapping[str, PortLease] | None = None,
        overrides: list[str] | None = None,
        templates: TemplateEngine | None = None,
    ) -> WorkflowContext:
        """Wire providers and the renderer from *app*."""
        engine = templates or TemplateEngine.with_overrides(app.templates_dir)
        return cls(
            app=app,
            workflow=workflow,
            logger=logger,
            runner=runner,
            tools=Toolkit.from_config(app, runner, logger),
            renderer=ConfigRenderer(engine, app),
            operator=operator,
            leases=dict(leases or {}),
            overrides=list(overrides or []),
        )

    @property
    def dry_run(self) -> bool:
        """Return ``True`` when commands are only being recorded."""
        return self.runner.dry_run

    def claim_port(self, name: str) -> int:
        """Release the lease for *name* right before its consumer binds it."""
        lease = self.leases.get(name)
        if lease is None:
            return self.workflow.port(name)
        port = lease.confirm()
        if port != self.workflow.port(name):
            raise PortAllocationError(
                f"Lease for {name} holds port {port}, expected {self.workflow.port(name)}."
            )
        return port

    def wait_for(self, predicate: Callable[[], bool], *, timeout: float | None = None) -> bool:
        """Poll *predicate* using the configured readiness timeout and interval."""
        if self.dry_run:
            return True
        return wait_until(
            predicate,
            timeout=self.app.timeouts.readiness if timeout is None else timeout,
            interval=self.app.timeouts.poll_interval,
        )

    def release_leases(self) -> None:
        """Close any probe sockets still held."""
        for lease in self.leases.values():
            lease.release()


__all__ = ["Toolkit", "WorkflowContext"]
