"""XFCE desktop over XRDP, published through Guacamole behind nginx."""

from __future__ import annotations

import re

from ..preflight import domain_checks, generic_checks, password_checks
from ..validation import PasswordPolicy
from ..workflow import Step, StepOutcome, StepSequencer, WorkflowContext, WorkflowReport
from .base import Session, WorkflowOptions

NAME = "desktop"
DEFAULT_RDP_PORT = 3389
GUACAMOLE_CONTAINER = "guacamole"

_XRDP_PORT_LINE = re.compile(r"^port=\d+$", re.MULTILINE)


def rewrite_xrdp_port(ini: str, port: int) -> str:
    """Return *ini* with every ``port=`` line pointing at *port*."""
    return _XRDP_PORT_LINE.sub(f"port={port}", ini)


def _update_system(ctx: WorkflowContext) -> StepOutcome:
    ctx.tools.apt.update()
    ctx.tools.apt.upgrade()
    return StepOutcome.done("System packages updated.")


def _install_xfce(ctx: WorkflowContext) -> StepOutcome:
    ctx.tools.apt.install(("xfce4", "xfce4-goodies"))
    ctx.runner.write_file(ctx.workflow.home / ".xsession", "startxfce4\n")
    return StepOutcome.done("XFCE installed and selected for XRDP sessions.")


def _setup_xrdp(ctx: WorkflowContext) -> StepOutcome:
    port = ctx.claim_port("rdp")
    ctx.tools.apt.install(("xrdp",))
    if port != DEFAULT_RDP_PORT:
        ini_path = ctx.app.desktop.xrdp_ini
        current = ctx.runner.run(["cat", str(ini_path)], privileged=True).stdout or ""
        if current:
            updated = rewrite_xrdp_port(current, port)
            if updated != current:
                ctx.runner.write_file(ini_path, updated, privileged=True)
    systemd = ctx.tools.systemd
    systemd.enable("xrdp")
    systemd.restart("xrdp")
    return StepOutcome.done(f"XRDP listening on port {port}.")


def _xrdp_active(ctx: WorkflowContext) -> bool:
    return ctx.wait_for(lambda: ctx.tools.systemd.is_active("xrdp"))


def _setup_docker(ctx: WorkflowContext) -> StepOutcome:
    ctx.tools.apt.install(("docker.io", "docker-compose"))
    systemd = ctx.tools.systemd
    systemd.enable("docker")
    systemd.start("docker")
    if not ctx.wait_for(ctx.tools.compose.daemon_ready):
        ctx.logger.warn("Docker daemon did not answer within the readiness timeout.")
    ctx.tools.compose.add_user_to_group(ctx.workflow.login_user)
    return StepOutcome.done()


def _setup_guacamole(ctx: WorkflowContext) -> StepOutcome:
    renderer = ctx.renderer
    renderer.guacamole_user_mapping(ctx.workflow).write(ctx.runner)
    compose_file = renderer.guacamole_compose(ctx.workflow)
    compose_file.write(ctx.runner)
    port = ctx.claim_port("guacamole")
    # Group membership for the login user only applies after the next login.
    ctx.tools.compose.up(compose_file.path)
    workflow = ctx.workflow
    owner = f"{workflow.login_user}:{workflow.login_group or workflow.login_user}"
    ctx.runner.run(
        ["chown", "-R", owner, str(ctx.app.desktop.guacamole_dir)], privileged=True
    )
    return StepOutcome.done(f"Guacamole published on 127.0.0.1:{port}.")


def _guacamole_running(ctx: WorkflowContext) -> bool:
    return ctx.wait_for(lambda: ctx.tools.compose.is_running(GUACAMOLE_CONTAINER))


def _certificate(ctx: WorkflowContext) -> StepOutcome:
    ctx.tools.apt.install(("certbot", "python3-certbot-nginx", "nginx"))
    certbot = ctx.tools.certbot
    domain = ctx.workflow.require("domain")
    systemd = ctx.tools.systemd
    changed = False
    if certbot.has_certificate(domain):
        ctx.logger.info(f"Certificate for {domain} already exists; renewing if due.")
        certbot.renew()
    else:
        # The standalone authenticator needs port 80.
        systemd.stop("nginx", best_effort=True)
        certbot.issue(domain, ctx.workflow.email, standalone=True)
        changed = True
    systemd.start("nginx")
    systemd.enable("nginx")
    schedule = f"{ctx.app.certbot.renew_schedule} {ctx.app.certbot.renew_command}"
    if ctx.tools.cron.ensure(schedule):
        ctx.logger.info("Certificate auto-renewal scheduled in the root crontab.")
    return StepOutcome.done(changed=changed)


def _setup_proxy(ctx: WorkflowContext) -> StepOutcome:
    ctx.tools.apt.install(("nginx", "apache2-utils"))
    ctx.renderer.credentials(ctx.workflow).write(ctx.runner)
    nginx = ctx.tools.nginx
    domain = ctx.workflow.require("domain")
    route = ctx.renderer.desktop_route(ctx.workflow)
    nginx.write_site(domain, route.content)
    nginx.enable(domain)
    nginx.remove_default()
    nginx.test_config()
    nginx.reload()
    return StepOutcome.done(f"nginx is serving https://{domain}/desktop.")


def build_steps(ctx: WorkflowContext) -> list[Step]:
    """Return the ordered steps for the desktop workflow."""
    systemd = ctx.tools.systemd
    nginx_hints = ctx.tools.nginx.diagnostics()
    return [
        Step("system-update", "Updating system packages", _update_system),
        Step("xfce", "Installing the XFCE desktop", _install_xfce),
        Step(
            "xrdp",
            "Setting up remote desktop (XRDP)",
            _setup_xrdp,
            verify=_xrdp_active,
            diagnostics=systemd.diagnostics("xrdp"),
        ),
        Step(
            "docker",
            "Installing Docker",
            _setup_docker,
            diagnostics=systemd.diagnostics("docker"),
        ),
        Step(
            "guacamole",
            "Starting Guacamole",
            _setup_guacamole,
            verify=_guacamole_running,
            diagnostics=(
                f"sudo docker logs {GUACAMOLE_CONTAINER}",
                "sudo docker ps -a",
            ),
        ),
        Step(
            "certificate",
            "Obtaining the TLS certificate",
            _certificate,
            diagnostics=("sudo certbot certificates", *systemd.diagnostics("nginx")),
        ),
        Step("proxy", "Configuring nginx", _setup_proxy, diagnostics=nginx_hints),
    ]


def summary(ctx: WorkflowContext) -> list[str]:
    """Return the connection instructions shown after a successful run."""
    workflow = ctx.workflow
    rdp_port = workflow.port("rdp")
    return [
        "Setup completed successfully!",
        f"Access your desktop at: https://{workflow.require('domain')}/desktop",
        f"Username: {workflow.username}",
        f"Guacamole is running on port: {workflow.port('guacamole')}",
        f"RDP is running on port: {rdp_port}",
        "Important notes:",
        "1. You may need to logout and login again for docker group membership to take effect",
        f"2. Ensure your firewall allows traffic on ports 80, 443, and {rdp_port}",
        "3. The SSL certificate will auto-renew via crontab",
        f"4. Check the log file for detailed information: {ctx.logger.log_path}",
    ]


def collect(session: Session, options: WorkflowOptions) -> WorkflowContext:
    """Run the preflight checks, gather answers and lease the ports."""
    session.preflight(
        (*generic_checks(os_version=False), *password_checks()),
    )
    domain = session.domain(options)
    session.preflight(domain_checks(), domain=domain)
    username = session.username(options)
    policy = PasswordPolicy(min_length=session.app.passwords.desktop_min_length)
    password = session.password(options, policy)
    leases = session.lease_ports(
        {"rdp": session.app.ports.rdp, "guacamole": session.app.ports.guacamole}
    )
    workflow = session.workflow_config(
        NAME,
        domain=domain,
        username=username,
        password=password,
        ports={name: lease.port for name, lease in leases.items()},
    )
    return session.context(workflow, leases=leases)


def run(session: Session, options: WorkflowOptions) -> WorkflowReport:
    """Provision the remote desktop end to end."""
    ctx = collect(session, options)
    sequencer = StepSequencer(session.logger, locks=session.locks)
    return sequencer.run(NAME, build_steps(ctx), ctx, summary=summary)


__all__ = ["NAME", "build_steps", "collect", "rewrite_xrdp_port", "run", "summary"]
