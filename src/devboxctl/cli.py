"""Typer-powered command line for ``devboxctl``.

Every provisioning command follows the same shape: build a
:class:`~devboxctl.workflows.Session`, let the workflow module collect its
answers and run its steps, then turn the report into an exit status.
"""
from __future__ import annotations

import json
import textwrap
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import AppConfig, ConfigError, load_config
from .errors import DevboxError, PreconditionFailure
from .exit_codes import ExitCode
from .locking import LockManager
from .logging import OperationScope, StructuredLogger
from .ports import PortAllocationError, PortAllocator
from .preflight import CheckKind, CheckStatus, HostFacts, PreflightContext, run_checks
from .preflight.checks import generic_checks
from .prompts import ConsoleOperator
from .runner import CommandRunner
from .templates import TemplateEngine
from .workflow import UninstallReport, WorkflowReport
from .workflows import Session, WorkflowOptions
from .workflows import code_server as code_server_workflow
from .workflows import desktop as desktop_workflow
from .workflows import tunnel as tunnel_workflow
from .workflows import uninstall as uninstall_workflows

console = Console()

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to devboxctl's YAML config file.",
)
DOMAIN_OPTION = typer.Option(
    None,
    "--domain",
    help="Domain name to serve (prompted when omitted).",
)
USERNAME_OPTION = typer.Option(
    None,
    "--username",
    help="Basic authentication username (prompted when omitted).",
)
PASSWORD_STDIN_OPTION = typer.Option(
    False,
    "--password-stdin",
    help="Read the basic authentication password from the first line of stdin.",
)
TUNNEL_NAME_OPTION = typer.Option(
    None,
    "--tunnel-name",
    help="Name for the VS Code tunnel (prompted when omitted).",
)
YES_OPTION = typer.Option(
    False,
    "--yes",
    "-y",
    help="Answer yes to every confirmation; overrides are still logged.",
)
DRY_RUN_OPTION = typer.Option(
    False,
    "--dry-run",
    help="Log the commands that would run without changing the host.",
)

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Provision cloud development environments on Ubuntu 24.04.

        Workflows are idempotent: re-running one converges the host on the
        same configuration. A failed step stops the run; nothing is rolled
        back.
        """
    ).strip(),
)
uninstall_app = typer.Typer(help="Remove components installed by devboxctl.")
ports_app = typer.Typer(help="Inspect local port availability.")
config_app = typer.Typer(help="Inspect the effective configuration.")

app.add_typer(uninstall_app, name="uninstall")
app.add_typer(ports_app, name="ports")
app.add_typer(config_app, name="config")


@dataclass
class RuntimeContext:
    """Aggregated runtime objects shared by commands."""

    config: AppConfig
    locks: LockManager
    logger: StructuredLogger
    templates: TemplateEngine


def _ensure_runtime(ctx: typer.Context, config_file: Path | None) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime

    try:
        config = load_config(config_file=config_file)
    except ConfigError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=ExitCode.FAILURE) from exc
    runtime = RuntimeContext(
        config=config,
        locks=LockManager(config.runtime_dir, config.lock_timeout),
        logger=StructuredLogger(config.logs_dir, console=console),
        templates=TemplateEngine.with_overrides(config.templates_dir),
    )
    ctx.obj = runtime
    return runtime


def _get_runtime(ctx: typer.Context) -> RuntimeContext:
    runtime = ctx.obj
    if isinstance(runtime, RuntimeContext):
        return runtime
    return _ensure_runtime(ctx, None)


@app.callback(invoke_without_command=True)
def _root(  # noqa: D401 - Typer displays help for us, docstring optional.
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the devboxctl version and exit.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
) -> None:
    """Entry point callback invoked for every CLI execution."""
    if version:
        console.print(f"devboxctl {__version__}")
        raise typer.Exit(code=ExitCode.OK)

    _ensure_runtime(ctx, config_file)

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())
        raise typer.Exit(code=ExitCode.OK)


def _command_error(
    op: OperationScope,
    message: str,
    *,
    rc: int = ExitCode.FAILURE,
    errors: Sequence[str] | None = None,
) -> NoReturn:
    """Emit a structured error and terminate the command."""
    console.print(f"[red]{message}[/red]")
    op.error(message, errors=list(errors or [message]), rc=rc)
    raise typer.Exit(code=rc)


# ---------------------------------------------------------------------------
# Session wiring
# ---------------------------------------------------------------------------


def _build_runner(runtime: RuntimeContext, *, dry_run: bool) -> CommandRunner:
    execution = runtime.config.execution
    return CommandRunner(
        logger=runtime.logger,
        sudo=execution.sudo,
        dry_run=dry_run or execution.dry_run,
    )


def _build_host(runner: CommandRunner) -> HostFacts:
    return HostFacts(runner=runner)


def _build_session(
    runtime: RuntimeContext,
    *,
    dry_run: bool = False,
    assume_yes: bool = False,
) -> Session:
    runner = _build_runner(runtime, dry_run=dry_run)
    if runner.dry_run:
        runtime.logger.warn("Dry run: commands are logged, not executed.")
    return Session(
        app=runtime.config,
        logger=runtime.logger,
        runner=runner,
        operator=ConsoleOperator(assume_yes=assume_yes),
        host=_build_host(runner),
        locks=runtime.locks,
        templates=runtime.templates,
    )


def _read_password(password_stdin: bool) -> str | None:
    if not password_stdin:
        return None
    line = typer.get_text_stream("stdin").readline()
    return line.rstrip("\r\n")


def _fail(runtime: RuntimeContext, exc: DevboxError) -> NoReturn:
    runtime.logger.error(str(exc))
    if isinstance(exc, PreconditionFailure) and exc.remediation:
        runtime.logger.info(exc.remediation)
    runtime.logger.error(f"See the log file for details: {runtime.logger.log_path}")
    raise typer.Exit(code=ExitCode.FAILURE)


def _run_workflow(
    runtime: RuntimeContext,
    execute: Callable[[Session], WorkflowReport],
    *,
    dry_run: bool,
    assume_yes: bool,
) -> None:
    session = _build_session(runtime, dry_run=dry_run, assume_yes=assume_yes)
    try:
        report = execute(session)
    except DevboxError as exc:
        _fail(runtime, exc)
    if not report.succeeded:
        raise typer.Exit(code=report.exit_code)


def _run_uninstall(
    runtime: RuntimeContext,
    execute: Callable[[Session], UninstallReport],
    *,
    dry_run: bool,
    assume_yes: bool,
) -> None:
    session = _build_session(runtime, dry_run=dry_run, assume_yes=assume_yes)
    try:
        report = execute(session)
    except DevboxError as exc:
        _fail(runtime, exc)
    if report.warnings:
        console.print(
            f"[yellow]{len(report.warnings)} removal(s) reported warnings; "
            f"see {runtime.logger.log_path}.[/yellow]"
        )
    raise typer.Exit(code=report.exit_code)


# ---------------------------------------------------------------------------
# Provisioning commands
# ---------------------------------------------------------------------------


@app.command("code-server")
def code_server(
    ctx: typer.Context,
    domain: str | None = DOMAIN_OPTION,
    username: str | None = USERNAME_OPTION,
    password_stdin: bool = PASSWORD_STDIN_OPTION,
    yes: bool = YES_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
) -> None:
    """Install code-server behind nginx basic auth with a TLS certificate."""
    runtime = _get_runtime(ctx)
    options = WorkflowOptions(
        domain=domain,
        username=username,
        password=_read_password(password_stdin),
    )
    _run_workflow(
        runtime,
        lambda session: code_server_workflow.run(session, options),
        dry_run=dry_run,
        assume_yes=yes,
    )


@app.command("desktop")
def desktop(
    ctx: typer.Context,
    domain: str | None = DOMAIN_OPTION,
    username: str | None = USERNAME_OPTION,
    password_stdin: bool = PASSWORD_STDIN_OPTION,
    yes: bool = YES_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
) -> None:
    """Install an XFCE desktop reachable through Guacamole at /desktop."""
    runtime = _get_runtime(ctx)
    options = WorkflowOptions(
        domain=domain,
        username=username,
        password=_read_password(password_stdin),
    )
    _run_workflow(
        runtime,
        lambda session: desktop_workflow.run(session, options),
        dry_run=dry_run,
        assume_yes=yes,
    )


@app.command("tunnel")
def tunnel(
    ctx: typer.Context,
    tunnel_name: str | None = TUNNEL_NAME_OPTION,
    yes: bool = YES_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
) -> None:
    """Install the VS Code CLI and run a tunnel as a systemd service."""
    runtime = _get_runtime(ctx)
    options = WorkflowOptions(tunnel_name=tunnel_name)
    _run_workflow(
        runtime,
        lambda session: tunnel_workflow.run(session, options),
        dry_run=dry_run,
        assume_yes=yes,
    )


@uninstall_app.command("tunnel")
def uninstall_tunnel(
    ctx: typer.Context,
    yes: bool = YES_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
) -> None:
    """Remove the VS Code tunnel, its package and its user data."""
    runtime = _get_runtime(ctx)
    _run_uninstall(runtime, uninstall_workflows.run_tunnel, dry_run=dry_run, assume_yes=yes)


@uninstall_app.command("code-server")
def uninstall_code_server(
    ctx: typer.Context,
    yes: bool = YES_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
) -> None:
    """Remove code-server and its nginx configuration."""
    runtime = _get_runtime(ctx)
    _run_uninstall(
        runtime, uninstall_workflows.run_code_server, dry_run=dry_run, assume_yes=yes
    )


# ---------------------------------------------------------------------------
# Inspection commands
# ---------------------------------------------------------------------------


_STATUS_STYLES = {
    CheckStatus.PASS: "[green]pass[/green]",
    CheckStatus.WARN: "[yellow]warn[/yellow]",
    CheckStatus.FAIL: "[red]fail[/red]",
}


@app.command("preflight")
def preflight(
    ctx: typer.Context,
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Emit check results as JSON instead of a table.",
    ),
) -> None:
    """Run the host checks shared by every workflow without changing anything."""
    runtime = _get_runtime(ctx)
    runner = _build_runner(runtime, dry_run=False)
    host = _build_host(runner)
    context = PreflightContext(config=runtime.config, host=host, login_user=host.login_user())

    with runtime.logger.operation(
        "preflight",
        args={"json": json_output},
        target={"kind": "host"},
    ) as op:
        results = run_checks(context, generic_checks())
        hard_failures = [
            result
            for result in results
            if not result.passed and result.kind is CheckKind.HARD
        ]

        if json_output:
            console.print_json(data={"checks": [result.to_dict() for result in results]})
        else:
            table = Table(show_header=True, header_style="bold magenta")
            table.add_column("Check", style="bold")
            table.add_column("Kind")
            table.add_column("Status")
            table.add_column("Message")
            for result in results:
                table.add_row(
                    result.id,
                    result.kind.value,
                    _STATUS_STYLES[result.status],
                    result.message,
                )
            console.print(table)

        if hard_failures:
            _command_error(
                op,
                f"{len(hard_failures)} required check(s) failed.",
                errors=[result.message for result in hard_failures],
            )
        op.success("Preflight checks passed.", changed=0)


@ports_app.command("find")
def ports_find(
    ctx: typer.Context,
    start: int = typer.Argument(..., help="Preferred port; the search starts here."),
    window: int | None = typer.Option(
        None,
        "--window",
        help="Number of ports above START to try (defaults to ports.window).",
    ),
) -> None:
    """Print the smallest free port in [START, START + window]."""
    runtime = _get_runtime(ctx)
    effective_window = runtime.config.ports.window if window is None else window

    with runtime.logger.operation(
        "ports find",
        args={"start": start, "window": effective_window},
        target={"kind": "ports"},
    ) as op:
        try:
            allocator = PortAllocator(runtime.logger, window=effective_window)
            port = allocator.find_free(start)
        except PortAllocationError as exc:
            _command_error(op, str(exc))
        console.print(str(port))
        op.success(f"Port {port} is free.", changed=0, context={"port": port})


@config_app.command("show")
def config_show(
    ctx: typer.Context,
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Emit configuration as JSON instead of a table.",
    ),
) -> None:
    """Display the effective configuration after merges."""
    runtime = _get_runtime(ctx)
    data = runtime.config.to_dict()

    with runtime.logger.operation(
        "config show",
        args={"json": json_output},
        target={"kind": "config"},
    ) as op:
        if json_output:
            console.print_json(data=data)
            op.success("Rendered configuration as JSON.", changed=0)
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Key", style="bold")
        table.add_column("Value")

        for key, value in data.items():
            if isinstance(value, dict):
                rendered = json.dumps(value, indent=2, sort_keys=True)
            else:
                rendered = str(value)
            table.add_row(key, rendered)

        console.print(table)
        op.success("Rendered configuration table.", changed=0)


def main() -> None:
    """Console script entry point."""
    app()


__all__ = ["app", "main"]
