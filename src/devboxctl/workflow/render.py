"""Config renderer: pure functions from workflow values to file artifacts.

Nothing here touches the host. Every method returns an :class:`Artifact`
whose content depends only on its inputs, so rendering twice with the same
:class:`WorkflowConfig` yields byte-identical files. Writing an artifact is
the job of the step that owns it.
"""
from __future__ import annotations

import base64
import hashlib
from dataclasses import dataclass
from pathlib import Path

import yaml

from ..config import AppConfig
from ..runner import CommandRunner
from ..templates import TemplateEngine
from ..tls import CertificatePaths
from .models import WorkflowConfig

CODE_SERVER_UNIT = "code-server"
TUNNEL_UNIT = "vscode-tunnel"
CODE_SERVER_SITE = "code-gateway"
WEBSOCKET_CONF = "websocket-upgrade.conf"
CODE_SERVER_EXEC = "/usr/bin/code-server"


@dataclass(frozen=True)
class Artifact:
    """A file to be written: destination, content, mode and privilege."""

    path: Path
    content: str
    mode: int = 0o644
    privileged: bool = True

    def write(self, runner: CommandRunner) -> None:
        """Overwrite the destination through *runner*."""
        runner.write_file(self.path, self.content, mode=self.mode, privileged=self.privileged)


def ssha_digest(password: str, salt: bytes) -> str:
    """Return the ``{SSHA}`` digest nginx accepts in basic-auth files."""
    digest = hashlib.sha1(password.encode("utf-8") + salt).digest()  # noqa: S324
    return "{SSHA}" + base64.b64encode(digest + salt).decode("ascii")


def credential_line(username: str, password: str, salt: bytes) -> str:
    """Return one ``user:digest`` line for a basic-auth credential file."""
    return f"{username}:{ssha_digest(password, salt)}\n"


class ConfigRenderer:
    """Render every configuration artifact the workflows write."""

    def __init__(self, templates: TemplateEngine, config: AppConfig) -> None:
        """Store the template engine and the configured host paths."""
        self._templates = templates
        self._config = config

    # ------------------------------------------------------------------
    # code-server
    # ------------------------------------------------------------------
    def code_server_config(self, workflow: WorkflowConfig) -> Artifact:
        """code-server listens on loopback only; nginx handles auth and TLS."""
        document = {
            "bind-addr": f"127.0.0.1:{workflow.port('code_server')}",
            "auth": "none",
            "cert": False,
        }
        return Artifact(
            path=workflow.home / ".config" / "code-server" / "config.yaml",
            content=yaml.safe_dump(document, sort_keys=False),
            mode=0o600,
            privileged=False,
        )

    def code_server_unit(
        self,
        workflow: WorkflowConfig,
        *,
        exec_path: str = CODE_SERVER_EXEC,
    ) -> Artifact:
        content = self._templates.render_to_string(
            "systemd/code-server.service.j2",
            {
                "exec_path": exec_path,
                "user": workflow.login_user,
                "home": str(workflow.home),
            },
        )
        return Artifact(path=self._unit_path(CODE_SERVER_UNIT), content=content)

    def websocket_map(self) -> Artifact:
        content = self._templates.render_to_string("nginx/websocket-upgrade.conf.j2", {})
        return Artifact(path=self._config.nginx.conf_dir / WEBSOCKET_CONF, content=content)

    def code_server_route(self, workflow: WorkflowConfig, *, tls: bool) -> Artifact:
        """Render the HTTP-only (``tls=False``) or HTTPS variant of the proxy."""
        domain = workflow.require("domain")
        context: dict[str, object] = {
            "domain": domain,
            "htpasswd": str(self._config.nginx.htpasswd),
            "upstream_port": workflow.port("code_server"),
        }
        template = "nginx/code-server-http.conf.j2"
        if tls:
            template = "nginx/code-server-https.conf.j2"
            context.update(self._certificate_context(domain))
            context["webroot"] = str(self._config.nginx.webroot)
        content = self._templates.render_to_string(template, context)
        return Artifact(
            path=self._config.nginx.sites_available / CODE_SERVER_SITE, content=content
        )

    # ------------------------------------------------------------------
    # desktop
    # ------------------------------------------------------------------
    def desktop_route(self, workflow: WorkflowConfig) -> Artifact:
        domain = workflow.require("domain")
        context: dict[str, object] = {
            "domain": domain,
            "htpasswd": str(self._config.nginx.htpasswd),
            "guacamole_port": workflow.port("guacamole"),
        }
        context.update(self._certificate_context(domain))
        content = self._templates.render_to_string("nginx/desktop.conf.j2", context)
        return Artifact(path=self._config.nginx.sites_available / domain, content=content)

    def guacamole_user_mapping(self, workflow: WorkflowConfig) -> Artifact:
        """Guacamole stores the web login as a SHA-256 hex digest."""
        password = workflow.require("password")
        content = self._templates.render_to_string(
            "guacamole/user-mapping.xml.j2",
            {
                "username": workflow.require("username"),
                "password_digest": hashlib.sha256(password.encode("utf-8")).hexdigest(),
                "login_user": workflow.login_user,
                "rdp_host": "host.docker.internal",
                "rdp_port": workflow.port("rdp"),
            },
        )
        return Artifact(
            path=self._config.desktop.guacamole_dir / "user-mapping.xml",
            content=content,
            privileged=False,
        )

    def guacamole_compose(self, workflow: WorkflowConfig) -> Artifact:
        document = {
            "services": {
                "guacd": {
                    "image": "guacamole/guacd",
                    "container_name": "guacd",
                    "restart": "always",
                },
                "guacamole": {
                    "image": "guacamole/guacamole",
                    "container_name": "guacamole",
                    "restart": "always",
                    "ports": [f"127.0.0.1:{workflow.port('guacamole')}:8080"],
                    "volumes": ["./user-mapping.xml:/etc/guacamole/user-mapping.xml:ro"],
                    "environment": {
                        "GUACAMOLE_HOME": "/etc/guacamole",
                        "GUACD_HOSTNAME": "guacd",
                    },
                    "depends_on": ["guacd"],
                    "extra_hosts": ["host.docker.internal:host-gateway"],
                },
            },
        }
        return Artifact(
            path=self._config.desktop.guacamole_dir / "docker-compose.yml",
            content=yaml.safe_dump(document, sort_keys=False),
            privileged=False,
        )

    # ------------------------------------------------------------------
    # shared
    # ------------------------------------------------------------------
    def credentials(self, workflow: WorkflowConfig) -> Artifact:
        """Basic-auth file; the salt comes from the workflow so output is stable."""
        content = credential_line(
            workflow.require("username"),
            workflow.require("password"),
            workflow.credential_salt,
        )
        return Artifact(path=self._config.nginx.htpasswd, content=content)

    def tunnel_unit(self, workflow: WorkflowConfig, *, exec_path: str) -> Artifact:
        content = self._templates.render_to_string(
            "systemd/vscode-tunnel.service.j2",
            {
                "exec_path": exec_path,
                "tunnel_name": workflow.require("tunnel_name"),
                "user": workflow.login_user,
                "group": workflow.login_group or workflow.login_user,
                "uid": workflow.login_uid,
                "home": str(workflow.home),
                "unit_name": TUNNEL_UNIT,
            },
        )
        return Artifact(path=self._unit_path(TUNNEL_UNIT), content=content)

    # ------------------------------------------------------------------
    def _unit_path(self, name: str) -> Path:
        return self._config.systemd.unit_dir / f"{name}.service"

    def _certificate_context(self, domain: str) -> dict[str, object]:
        paths = CertificatePaths.for_domain(self._config.certbot.live_dir, domain)
        return {"fullchain": str(paths.fullchain), "privkey": str(paths.privkey)}


__all__ = [
    "Artifact",
    "CODE_SERVER_EXEC",
    "CODE_SERVER_SITE",
    "CODE_SERVER_UNIT",
    "ConfigRenderer",
    "TUNNEL_UNIT",
    "WEBSOCKET_CONF",
    "credential_line",
    "ssha_digest",
]
