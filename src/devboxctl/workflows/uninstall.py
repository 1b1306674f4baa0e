"""Uninstallers for the tunnel and code-server workflows."""

from __future__ import annotations

import tempfile
from collections.abc import Callable
from pathlib import Path

from ..preflight import generic_checks
from ..workflow import RemovalStep, UninstallReport, UninstallSequencer, WorkflowContext
from ..workflow.render import CODE_SERVER_SITE, CODE_SERVER_UNIT, TUNNEL_UNIT, WEBSOCKET_CONF
from .base import Session

VSCODE_USER_DIRS = (
    ".vscode",
    ".vscode-cli",
    ".vscode-server",
    ".config/Code",
    ".cache/vscode-cli",
)
AUTH_TEMP_GLOB = "vscode_auth_*"


# ---------------------------------------------------------------------------
# Shared removals
# ---------------------------------------------------------------------------


def _service_removals(unit: str) -> list[RemovalStep]:
    def running(ctx: WorkflowContext) -> bool:
        systemd = ctx.tools.systemd
        return systemd.is_active(unit) or systemd.is_enabled(unit)

    def stop(ctx: WorkflowContext) -> None:
        systemd = ctx.tools.systemd
        if systemd.is_active(unit):
            systemd.stop(unit)
        if systemd.is_enabled(unit):
            systemd.disable(unit)

    def has_unit_file(ctx: WorkflowContext) -> bool:
        return ctx.tools.systemd.unit_path(unit).exists()

    def delete(ctx: WorkflowContext) -> None:
        ctx.tools.systemd.remove_unit(unit)

    return [
        RemovalStep(f"{unit}-service", f"Stop and disable {unit}.service", running, stop),
        RemovalStep(f"{unit}-unit", f"Delete {unit}.service", has_unit_file, delete),
    ]


def _package_removal(package: str) -> RemovalStep:
    def installed(ctx: WorkflowContext) -> bool:
        return ctx.tools.apt.is_installed(package)

    def purge(ctx: WorkflowContext) -> None:
        ctx.tools.apt.purge((package,))
        ctx.tools.apt.autoremove()

    return RemovalStep(f"{package}-package", f"Purge the {package} package", installed, purge)


def _paths_removal(
    name: str,
    label: str,
    paths: Callable[[WorkflowContext], list[Path]],
    *,
    privileged: bool = False,
    user_data: bool = False,
) -> RemovalStep:
    def present(ctx: WorkflowContext) -> bool:
        return any(path.exists() or path.is_symlink() for path in paths(ctx))

    def remove(ctx: WorkflowContext) -> None:
        removed = [
            str(path)
            for path in paths(ctx)
            if ctx.runner.remove_path(path, privileged=privileged)
        ]
        if removed:
            ctx.logger.info(f"Removed {', '.join(removed)}")

    return RemovalStep(name, label, present, remove, user_data=user_data)


# ---------------------------------------------------------------------------
# Tunnel
# ---------------------------------------------------------------------------


def _kill_tunnels(ctx: WorkflowContext) -> None:
    if ctx.tools.vscode.kill_tunnels():
        ctx.logger.info("Stopped running VS Code tunnel processes.")


def _repository_paths(ctx: WorkflowContext) -> list[Path]:
    return [ctx.app.vscode.sources_list, ctx.app.vscode.keyring]


def _remove_repository(ctx: WorkflowContext) -> None:
    settings = ctx.app.vscode
    ctx.tools.apt.remove_repository(keyring=settings.keyring, sources_list=settings.sources_list)
    ctx.tools.apt.update()


def _vscode_user_dirs(ctx: WorkflowContext) -> list[Path]:
    return [ctx.workflow.home / relative for relative in VSCODE_USER_DIRS]


def _auth_temp_files(ctx: WorkflowContext) -> list[Path]:
    return sorted(Path(tempfile.gettempdir()).glob(AUTH_TEMP_GLOB))


def tunnel_removals() -> list[RemovalStep]:
    """Return the ordered removals for the VS Code tunnel."""
    return [
        RemovalStep(
            "tunnel-processes",
            "Stop running VS Code tunnel processes",
            lambda ctx: ctx.tools.vscode.tunnels_running(),
            _kill_tunnels,
        ),
        *_service_removals(TUNNEL_UNIT),
        _package_removal("code"),
        RemovalStep(
            "vscode-repository",
            "Remove the Microsoft apt repository and signing key",
            lambda ctx: any(path.exists() for path in _repository_paths(ctx)),
            _remove_repository,
        ),
        _paths_removal(
            "vscode-user-data",
            "Remove VS Code settings, extensions and tunnel authentication",
            _vscode_user_dirs,
            user_data=True,
        ),
        _paths_removal("temp-files", "Remove temporary authentication files", _auth_temp_files),
    ]


# ---------------------------------------------------------------------------
# code-server
# ---------------------------------------------------------------------------


def _site_present(ctx: WorkflowContext) -> bool:
    nginx = ctx.tools.nginx
    return nginx.site_exists(CODE_SERVER_SITE) or nginx.is_enabled(CODE_SERVER_SITE)


def _remove_site(ctx: WorkflowContext) -> None:
    ctx.tools.nginx.remove(CODE_SERVER_SITE)
    ctx.tools.nginx.reload(best_effort=True)


def _proxy_files(ctx: WorkflowContext) -> list[Path]:
    return [ctx.tools.nginx.conf_path(WEBSOCKET_CONF), ctx.app.nginx.htpasswd]


def _code_server_config(ctx: WorkflowContext) -> list[Path]:
    return [ctx.workflow.home / ".config" / "code-server"]


def code_server_removals() -> list[RemovalStep]:
    """Return the ordered removals for code-server and its proxy."""
    return [
        *_service_removals(CODE_SERVER_UNIT),
        RemovalStep(
            "code-server-site",
            f"Remove the nginx site {CODE_SERVER_SITE}",
            _site_present,
            _remove_site,
        ),
        _paths_removal(
            "proxy-files",
            "Remove the websocket map and basic auth credentials",
            _proxy_files,
            privileged=True,
        ),
        _paths_removal(
            "code-server-config",
            "Remove the code-server configuration",
            _code_server_config,
            user_data=True,
        ),
        _package_removal("code-server"),
    ]


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def _uninstall(session: Session, name: str, removals: list[RemovalStep]) -> UninstallReport:
    session.preflight(generic_checks(connectivity=False, disk=False, os_version=False))
    ctx = session.context(session.workflow_config(f"uninstall-{name}"))
    return UninstallSequencer(session.logger, locks=session.locks).run(name, removals, ctx)


def run_tunnel(session: Session) -> UninstallReport:
    """Remove the VS Code tunnel, its package, repository and user data."""
    return _uninstall(session, "tunnel", tunnel_removals())


def run_code_server(session: Session) -> UninstallReport:
    """Remove code-server, its service and its nginx configuration."""
    return _uninstall(session, "code-server", code_server_removals())


__all__ = [
    "AUTH_TEMP_GLOB",
    "VSCODE_USER_DIRS",
    "code_server_removals",
    "run_code_server",
    "run_tunnel",
    "tunnel_removals",
]
