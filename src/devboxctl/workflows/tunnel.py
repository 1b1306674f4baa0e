"""VS Code tunnel as a systemd service, authenticated with a device login."""

from __future__ import annotations

from ..preflight import generic_checks
from ..workflow import Step, StepOutcome, StepSequencer, WorkflowContext, WorkflowReport
from ..workflow.models import StepAction
from ..workflow.render import TUNNEL_UNIT
from .base import Session, WorkflowOptions

NAME = "tunnel"
DEPENDENCIES = ("curl", "wget", "gpg")
REPO_ARCHITECTURES = "amd64,arm64,armhf"


def repository_entry(ctx: WorkflowContext) -> str:
    """Return the apt source line for the Microsoft VS Code repository."""
    settings = ctx.app.vscode
    return (
        f"deb [arch={REPO_ARCHITECTURES} signed-by={settings.keyring}] "
        f"{settings.repo_url} stable main"
    )


def _update_system(ctx: WorkflowContext) -> StepOutcome:
    ctx.tools.apt.update()
    ctx.tools.apt.upgrade()
    return StepOutcome.done("System packages updated.")


def _install_dependencies(ctx: WorkflowContext) -> StepOutcome:
    installed = ctx.tools.apt.install(DEPENDENCIES)
    if not installed:
        return StepOutcome.skipped("Dependencies already installed.")
    return StepOutcome.done(f"Installed {', '.join(installed)}.")


def _installer(reinstall: bool) -> StepAction:
    def install(ctx: WorkflowContext) -> StepOutcome:
        apt = ctx.tools.apt
        settings = ctx.app.vscode
        present = ctx.tools.vscode.is_installed()
        if present and not reinstall:
            return StepOutcome.skipped("Keeping the installed VS Code CLI.")
        apt.add_repository(
            key_url=settings.key_url,
            keyring=settings.keyring,
            sources_list=settings.sources_list,
            entry=repository_entry(ctx),
        )
        apt.update()
        if present:
            apt.reinstall(("code",))
        else:
            apt.install(("code",))
        return StepOutcome.done("VS Code CLI installed.")

    return install


def _report_version(ctx: WorkflowContext) -> StepOutcome:
    version = ctx.tools.vscode.version()
    return StepOutcome.done(f"VS Code CLI is ready: {version or 'version unknown'}", changed=False)


def _install_unit(ctx: WorkflowContext) -> StepOutcome:
    vscode = ctx.tools.vscode
    unit = ctx.renderer.tunnel_unit(ctx.workflow, exec_path=vscode.binary_path())
    systemd = ctx.tools.systemd
    systemd.install_unit(TUNNEL_UNIT, unit.content)
    systemd.enable(TUNNEL_UNIT)
    return StepOutcome.done(f"{TUNNEL_UNIT} service installed and enabled.")


def _authenticate(ctx: WorkflowContext) -> StepOutcome:
    logged_in = ctx.tools.vscode.authenticate(
        ctx.workflow.require("tunnel_name"),
        timeout=ctx.app.timeouts.auth,
    )
    return StepOutcome.done(changed=logged_in)


def _start_tunnel(ctx: WorkflowContext) -> StepOutcome:
    ctx.tools.systemd.start(TUNNEL_UNIT)
    return StepOutcome.done(f"{TUNNEL_UNIT} service started.")


def _tunnel_active(ctx: WorkflowContext) -> bool:
    return ctx.wait_for(lambda: ctx.tools.systemd.is_active(TUNNEL_UNIT))


def _check_connectivity(ctx: WorkflowContext) -> StepOutcome:
    vscode = ctx.tools.vscode
    if vscode.tunnel_status():
        ctx.logger.info("Tunnel is registered and active.")
        if vscode.is_authenticated():
            ctx.logger.info("Authentication verified; the tunnel should be accessible.")
        else:
            ctx.logger.warn("Authentication status unclear; check the logs if connections fail.")
    else:
        ctx.logger.warn("Tunnel status check failed; this may be normal during startup.")

    recent = ctx.tools.systemd.logs(TUNNEL_UNIT, since="1 minute ago")
    if any("error" in line.lower() for line in recent.splitlines()):
        ctx.logger.warn(
            f"Found errors in service logs; check full logs with: "
            f"sudo journalctl -u {TUNNEL_UNIT} -f"
        )
    else:
        ctx.logger.info("No immediate errors found in service logs.")
    return StepOutcome.done(changed=False)


def build_steps(ctx: WorkflowContext, *, reinstall: bool = False) -> list[Step]:
    """Return the ordered steps for the tunnel workflow."""
    hints = ctx.tools.systemd.diagnostics(TUNNEL_UNIT)
    return [
        Step("system-update", "Updating system packages", _update_system),
        Step("dependencies", "Installing dependencies", _install_dependencies),
        Step(
            "vscode-install",
            "Installing the VS Code CLI",
            _installer(reinstall),
            verify=lambda c: c.runner.probe([c.app.vscode.code_bin, "--version"]),
        ),
        Step("vscode-version", "Checking the VS Code CLI", _report_version),
        Step("tunnel-unit", "Setting up the tunnel service", _install_unit, diagnostics=hints),
        Step(
            "authentication",
            "Authenticating the tunnel",
            _authenticate,
            diagnostics=(f"{ctx.app.vscode.code_bin} tunnel user show",),
        ),
        Step(
            "tunnel-start",
            "Starting the tunnel service",
            _start_tunnel,
            verify=_tunnel_active,
            diagnostics=hints,
        ),
        Step("connectivity", "Verifying tunnel connectivity", _check_connectivity),
    ]


def summary(ctx: WorkflowContext) -> list[str]:
    """Return the connection instructions shown after a successful run."""
    name = ctx.workflow.require("tunnel_name")
    return [
        "VS Code Tunnel Setup Complete!",
        f"Tunnel Name: {name}",
        f"Service Name: {TUNNEL_UNIT}",
        "To connect from another VS Code instance:",
        "1. Open VS Code on your local machine",
        "2. Install the 'Remote - Tunnels' extension",
        "3. Run 'Remote-Tunnels: Connect to Tunnel' from the Command Palette",
        f"4. Select your tunnel: {name}",
        "You can also open vscode.dev in a browser and connect to the tunnel.",
        f"Check status: sudo systemctl status {TUNNEL_UNIT}",
        f"View logs: sudo journalctl -u {TUNNEL_UNIT} -f",
        f"Manual tunnel command (for debugging): code tunnel --name {name} --verbose",
    ]


def collect(session: Session, options: WorkflowOptions) -> tuple[WorkflowContext, bool]:
    """Run the preflight checks and gather the tunnel name.

    Returns the context and whether an existing VS Code CLI should be
    reinstalled.
    """
    session.preflight(generic_checks(connectivity=False, disk=False))
    reinstall = False
    if session.runner.exists(session.app.vscode.code_bin):
        session.logger.warn("VS Code is already installed.")
        reinstall = session.operator.confirm("Do you want to reinstall?", default=False)
    tunnel_name = session.tunnel_name(options)
    session.logger.info(f"Using tunnel name: {tunnel_name}")
    workflow = session.workflow_config(NAME, tunnel_name=tunnel_name)
    return session.context(workflow), reinstall


def run(session: Session, options: WorkflowOptions) -> WorkflowReport:
    """Provision the VS Code tunnel end to end."""
    ctx, reinstall = collect(session, options)
    sequencer = StepSequencer(session.logger, locks=session.locks)
    return sequencer.run(NAME, build_steps(ctx, reinstall=reinstall), ctx, summary=summary)


__all__ = ["DEPENDENCIES", "NAME", "build_steps", "collect", "repository_entry", "run", "summary"]
