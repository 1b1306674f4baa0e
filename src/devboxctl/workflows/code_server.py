"""code-server behind nginx basic auth with a Let's Encrypt certificate.

The proxy is rendered in two phases. An HTTP-only site goes live first so
certbot's nginx authenticator can answer the challenge; once the
certificate is in place the HTTPS site replaces it.
"""

from __future__ import annotations

from ..preflight import domain_checks, generic_checks
from ..validation import PasswordPolicy
from ..workflow import Step, StepOutcome, StepSequencer, WorkflowContext, WorkflowReport
from ..workflow.render import CODE_SERVER_SITE, CODE_SERVER_UNIT
from .base import Session, WorkflowOptions

NAME = "code-server"
PACKAGES = ("nginx", "curl", "certbot", "python3-certbot-nginx", "wget", "apache2-utils")


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


def _update_system(ctx: WorkflowContext) -> StepOutcome:
    ctx.tools.apt.update()
    ctx.tools.apt.upgrade()
    return StepOutcome.done("System packages updated.")


def _install_packages(ctx: WorkflowContext) -> StepOutcome:
    installed = ctx.tools.apt.install(PACKAGES)
    if not installed:
        return StepOutcome.skipped("All required packages already installed.")
    return StepOutcome.done(f"Installed {', '.join(installed)}.")


def _install_code_server(ctx: WorkflowContext) -> StepOutcome:
    settings = ctx.app.code_server
    if ctx.runner.exists(settings.bin):
        return StepOutcome.skipped("code-server is already installed.")
    script = ctx.runner.run(["curl", "-fsSL", settings.installer_url]).stdout
    ctx.runner.run(["sh"], input_text=script)
    return StepOutcome.done("code-server installed.")


def _code_server_answers(ctx: WorkflowContext) -> bool:
    return ctx.runner.probe([ctx.app.code_server.bin, "--version"])


def _write_code_server_config(ctx: WorkflowContext) -> StepOutcome:
    ctx.renderer.code_server_config(ctx.workflow).write(ctx.runner)
    return StepOutcome.done()


def _install_unit(ctx: WorkflowContext) -> StepOutcome:
    unit = ctx.renderer.code_server_unit(ctx.workflow)
    ctx.tools.systemd.install_unit(CODE_SERVER_UNIT, unit.content)
    return StepOutcome.done()


def _write_credentials(ctx: WorkflowContext) -> StepOutcome:
    ctx.renderer.credentials(ctx.workflow).write(ctx.runner)
    return StepOutcome.done(f"Basic auth configured for {ctx.workflow.username}.")


def _write_websocket_map(ctx: WorkflowContext) -> StepOutcome:
    ctx.renderer.websocket_map().write(ctx.runner)
    return StepOutcome.done()


def _http_route(ctx: WorkflowContext) -> StepOutcome:
    nginx = ctx.tools.nginx
    route = ctx.renderer.code_server_route(ctx.workflow, tls=False)
    nginx.write_site(CODE_SERVER_SITE, route.content)
    nginx.enable(CODE_SERVER_SITE)
    nginx.remove_default()
    nginx.test_config()
    nginx.reload()
    return StepOutcome.done("HTTP site enabled.")


def _certificate(ctx: WorkflowContext) -> StepOutcome:
    certbot = ctx.tools.certbot
    domain = ctx.workflow.require("domain")
    if certbot.has_certificate(domain):
        ctx.logger.info(f"Certificate for {domain} already exists; renewing if due.")
        certbot.renew()
        return StepOutcome.done("Certificate renewal checked.", changed=False)
    certbot.issue(domain, ctx.workflow.email)
    return StepOutcome.done(f"Certificate issued for {domain}.")


def _verify_certificate(ctx: WorkflowContext) -> StepOutcome:
    if ctx.dry_run:
        return StepOutcome.skipped("dry run")
    report = ctx.tools.certbot.verify(ctx.workflow.require("domain"))
    return StepOutcome.done(
        f"Certificate valid until {report.not_valid_after:%Y-%m-%d} "
        f"({report.days_remaining()} days).",
        changed=False,
    )


def _https_route(ctx: WorkflowContext) -> StepOutcome:
    nginx = ctx.tools.nginx
    route = ctx.renderer.code_server_route(ctx.workflow, tls=True)
    nginx.write_site(CODE_SERVER_SITE, route.content)
    nginx.test_config()
    nginx.reload()
    return StepOutcome.done("HTTPS site enabled.")


def _start_services(ctx: WorkflowContext) -> StepOutcome:
    systemd = ctx.tools.systemd
    systemd.daemon_reload()
    systemd.enable(CODE_SERVER_UNIT)
    systemd.restart(CODE_SERVER_UNIT)
    systemd.restart("nginx")
    return StepOutcome.done()


def _await_code_server(ctx: WorkflowContext) -> StepOutcome:
    url = f"http://127.0.0.1:{ctx.workflow.port('code_server')}"
    if ctx.wait_for(lambda: ctx.runner.probe(["curl", "-sSf", "-o", "/dev/null", url], timeout=5)):
        return StepOutcome.done(f"code-server is answering on {url}.", changed=False)
    ctx.logger.warn(f"code-server did not answer on {url} within the readiness timeout.")
    ctx.logger.warn(f"Check its logs with: sudo journalctl -u {CODE_SERVER_UNIT} -f")
    return StepOutcome.done(changed=False)


# ---------------------------------------------------------------------------
# Definition
# ---------------------------------------------------------------------------


def build_steps(ctx: WorkflowContext) -> list[Step]:
    """Return the ordered steps for the code-server workflow."""
    nginx_hints = ctx.tools.nginx.diagnostics()
    unit_hints = ctx.tools.systemd.diagnostics(CODE_SERVER_UNIT)
    return [
        Step("system-update", "Updating system packages", _update_system),
        Step("packages", "Installing nginx, certbot and helpers", _install_packages),
        Step(
            "code-server-install",
            "Installing code-server",
            _install_code_server,
            verify=_code_server_answers,
        ),
        Step("code-server-config", "Writing code-server configuration", _write_code_server_config),
        Step(
            "code-server-unit",
            "Installing the code-server service",
            _install_unit,
            diagnostics=unit_hints,
        ),
        Step("credentials", "Writing basic auth credentials", _write_credentials),
        Step("websocket-map", "Writing the websocket upgrade map", _write_websocket_map),
        Step("http-route", "Enabling the HTTP site", _http_route, diagnostics=nginx_hints),
        Step(
            "certificate",
            "Obtaining the TLS certificate",
            _certificate,
            diagnostics=("sudo certbot certificates", *nginx_hints),
        ),
        Step("certificate-check", "Verifying the TLS certificate", _verify_certificate),
        Step("https-route", "Enabling the HTTPS site", _https_route, diagnostics=nginx_hints),
        Step(
            "services",
            "Starting code-server and restarting nginx",
            _start_services,
            diagnostics=(*unit_hints, *nginx_hints),
        ),
        Step("readiness", "Waiting for code-server to answer", _await_code_server),
    ]


def summary(ctx: WorkflowContext) -> list[str]:
    """Return the connection instructions shown after a successful run."""
    return [
        "Setup completed successfully!",
        f"code-server is available at: https://{ctx.workflow.require('domain')}/",
        f"Username: {ctx.workflow.username}",
        "Password: the password you entered during setup",
    ]


def collect(session: Session, options: WorkflowOptions) -> WorkflowContext:
    """Run the preflight checks and gather the operator's answers."""
    session.preflight(generic_checks(connectivity=False, disk=False))
    domain = session.domain(
        options, default=session.app.code_server.default_domain, validate=False
    )
    session.preflight(domain_checks(syntax=False), domain=domain)
    username = session.username(options)
    policy = PasswordPolicy(min_length=session.app.passwords.code_server_min_length)
    password = session.password(options, policy)
    workflow = session.workflow_config(
        NAME,
        domain=domain,
        username=username,
        password=password,
        ports={"code_server": session.app.ports.code_server},
    )
    return session.context(workflow)


def run(session: Session, options: WorkflowOptions) -> WorkflowReport:
    """Provision code-server end to end."""
    ctx = collect(session, options)
    sequencer = StepSequencer(session.logger, locks=session.locks)
    return sequencer.run(NAME, build_steps(ctx), ctx, summary=summary)


__all__ = ["NAME", "PACKAGES", "build_steps", "collect", "run", "summary"]
