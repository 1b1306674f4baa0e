"""Configuration loader for devboxctl.

Configuration values are merged from several sources, lowest precedence
first:

1. Built-in defaults.
2. ``/etc/devboxctl/config.yml`` (or an override path).
3. Environment variables prefixed with ``DEVBOXCTL_``.
4. Explicit overrides supplied programmatically (reserved for CLI flags).

Environment keys use double underscores to express nesting, e.g.::

    export DEVBOXCTL_PORTS__WINDOW=200
    export DEVBOXCTL_EXECUTION__SUDO=false

Values are coerced via PyYAML's ``safe_load`` so that booleans and numbers are
parsed naturally. The resulting configuration is exposed as immutable
``dataclasses`` for convenient access and type safety.
"""
from __future__ import annotations

import os
from collections.abc import Mapping, MutableMapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import cast

try:  # PyYAML is a runtime dependency (declared in pyproject.toml).
    import yaml
except Exception as exc:  # pragma: no cover - import failure covered in tests
    raise RuntimeError(
        "PyYAML is required to load devboxctl configuration. Install with "
        "`pip install devboxctl` or ensure PyYAML>=6.0 is available."
    ) from exc


ENV_PREFIX = "DEVBOXCTL_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
RESERVED_ENV_KEYS = {CONFIG_ENV_VAR}


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class ExecutionConfig:
    """How external commands are executed."""

    sudo: bool = True
    dry_run: bool = False

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {"sudo": self.sudo, "dry_run": self.dry_run}


@dataclass(frozen=True)
class PreflightConfig:
    """Thresholds and probe targets for the precondition checks."""

    min_free_bytes: int
    disk_path: Path
    expected_os_version: str
    os_release: Path
    connectivity_host: str
    public_ip_urls: tuple[str, ...]

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "min_free_bytes": self.min_free_bytes,
            "disk_path": str(self.disk_path),
            "expected_os_version": self.expected_os_version,
            "os_release": str(self.os_release),
            "connectivity_host": self.connectivity_host,
            "public_ip_urls": list(self.public_ip_urls),
        }


@dataclass(frozen=True)
class PortsConfig:
    """Preferred ports and the bounded search window."""

    window: int = 100
    rdp: int = 3389
    guacamole: int = 8080
    code_server: int = 8080

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "window": self.window,
            "rdp": self.rdp,
            "guacamole": self.guacamole,
            "code_server": self.code_server,
        }


@dataclass(frozen=True)
class PasswordsConfig:
    """Minimum password lengths per workflow."""

    code_server_min_length: int = 12
    desktop_min_length: int = 8

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "code_server": {"min_length": self.code_server_min_length},
            "desktop": {"min_length": self.desktop_min_length},
        }


@dataclass(frozen=True)
class TimeoutsConfig:
    """Deadlines used when waiting on external daemons."""

    auth: float = 300.0
    readiness: float = 60.0
    poll_interval: float = 2.0

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "auth": self.auth,
            "readiness": self.readiness,
            "poll_interval": self.poll_interval,
        }


@dataclass(frozen=True)
class SystemdConfig:
    """Systemd integration configuration values."""

    unit_dir: Path = Path("/etc/systemd/system")
    systemctl_bin: str = "systemctl"
    journalctl_bin: str = "journalctl"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "unit_dir": str(self.unit_dir),
            "systemctl_bin": self.systemctl_bin,
            "journalctl_bin": self.journalctl_bin,
        }


@dataclass(frozen=True)
class NginxConfig:
    """Locations of the nginx configuration tree."""

    sites_available: Path = Path("/etc/nginx/sites-available")
    sites_enabled: Path = Path("/etc/nginx/sites-enabled")
    conf_dir: Path = Path("/etc/nginx/conf.d")
    htpasswd: Path = Path("/etc/nginx/.htpasswd")
    webroot: Path = Path("/var/www/html")
    nginx_bin: str = "nginx"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "sites_available": str(self.sites_available),
            "sites_enabled": str(self.sites_enabled),
            "conf_dir": str(self.conf_dir),
            "htpasswd": str(self.htpasswd),
            "webroot": str(self.webroot),
            "nginx_bin": self.nginx_bin,
        }


@dataclass(frozen=True)
class CertbotConfig:
    """Let's Encrypt client settings."""

    certbot_bin: str = "certbot"
    live_dir: Path = Path("/etc/letsencrypt/live")
    renew_schedule: str = "0 12 * * *"
    renew_command: str = "/usr/bin/certbot renew --quiet"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "certbot_bin": self.certbot_bin,
            "live_dir": str(self.live_dir),
            "renew_schedule": self.renew_schedule,
            "renew_command": self.renew_command,
        }


@dataclass(frozen=True)
class CodeServerConfig:
    """code-server installation details."""

    bin: str = "code-server"
    installer_url: str = "https://code-server.dev/install.sh"
    default_domain: str = "cloud-ide.example.com"
    default_username: str = "ubuntu"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "bin": self.bin,
            "installer_url": self.installer_url,
            "default_domain": self.default_domain,
            "default_username": self.default_username,
        }


@dataclass(frozen=True)
class DesktopConfig:
    """Remote desktop stack details."""

    guacamole_dir: Path = Path("~/guacamole")
    compose_bin: str = "docker-compose"
    docker_bin: str = "docker"
    xrdp_ini: Path = Path("/etc/xrdp/xrdp.ini")

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "guacamole_dir": str(self.guacamole_dir),
            "compose_bin": self.compose_bin,
            "docker_bin": self.docker_bin,
            "xrdp_ini": str(self.xrdp_ini),
        }


@dataclass(frozen=True)
class VSCodeConfig:
    """VS Code CLI repository and binary settings."""

    code_bin: str = "code"
    key_url: str = "https://packages.microsoft.com/keys/microsoft.asc"
    keyring: Path = Path("/etc/apt/trusted.gpg.d/packages.microsoft.gpg")
    sources_list: Path = Path("/etc/apt/sources.list.d/vscode.list")
    repo_url: str = "https://packages.microsoft.com/repos/code"

    def to_dict(self) -> dict[str, object]:
        """Return a serialisable representation."""
        return {
            "code_bin": self.code_bin,
            "key_url": self.key_url,
            "keyring": str(self.keyring),
            "sources_list": str(self.sources_list),
            "repo_url": self.repo_url,
        }


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for devboxctl."""

    config_file: Path
    logs_dir: Path
    runtime_dir: Path
    templates_dir: Path
    lock_timeout: float
    execution: ExecutionConfig
    preflight: PreflightConfig
    ports: PortsConfig
    passwords: PasswordsConfig
    timeouts: TimeoutsConfig
    systemd: SystemdConfig
    nginx: NginxConfig
    certbot: CertbotConfig
    code_server: CodeServerConfig
    desktop: DesktopConfig
    vscode: VSCodeConfig

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        return {
            "config_file": str(self.config_file),
            "logs_dir": str(self.logs_dir),
            "runtime_dir": str(self.runtime_dir),
            "templates_dir": str(self.templates_dir),
            "lock_timeout": self.lock_timeout,
            "execution": self.execution.to_dict(),
            "preflight": self.preflight.to_dict(),
            "ports": self.ports.to_dict(),
            "passwords": self.passwords.to_dict(),
            "timeouts": self.timeouts.to_dict(),
            "systemd": self.systemd.to_dict(),
            "nginx": self.nginx.to_dict(),
            "certbot": self.certbot.to_dict(),
            "code_server": self.code_server.to_dict(),
            "desktop": self.desktop.to_dict(),
            "vscode": self.vscode.to_dict(),
        }


DEFAULTS: dict[str, object] = {
    "config_file": "/etc/devboxctl/config.yml",
    "logs_dir": "~/.local/state/devboxctl",
    "runtime_dir": "~/.local/state/devboxctl/run",
    "templates_dir": "/etc/devboxctl/templates",
    "lock_timeout": 5.0,
    "execution": {
        "sudo": True,
        "dry_run": False,
    },
    "preflight": {
        # 2000000 one-kilobyte blocks, as reported by df.
        "min_free_bytes": 2_000_000 * 1024,
        "disk_path": "/",
        "expected_os_version": "24.04",
        "os_release": "/etc/os-release",
        "connectivity_host": "8.8.8.8",
        "public_ip_urls": [
            "https://ifconfig.me/ip",
            "https://ipinfo.io/ip",
            "https://icanhazip.com",
        ],
    },
    "ports": {
        "window": 100,
        "rdp": 3389,
        "guacamole": 8080,
        "code_server": 8080,
    },
    "passwords": {
        "code_server": {"min_length": 12},
        "desktop": {"min_length": 8},
    },
    "timeouts": {
        "auth": 300.0,
        "readiness": 60.0,
        "poll_interval": 2.0,
    },
    "systemd": {
        "unit_dir": "/etc/systemd/system",
        "systemctl_bin": "systemctl",
        "journalctl_bin": "journalctl",
    },
    "nginx": {
        "sites_available": "/etc/nginx/sites-available",
        "sites_enabled": "/etc/nginx/sites-enabled",
        "conf_dir": "/etc/nginx/conf.d",
        "htpasswd": "/etc/nginx/.htpasswd",
        "webroot": "/var/www/html",
        "nginx_bin": "nginx",
    },
    "certbot": {
        "certbot_bin": "certbot",
        "live_dir": "/etc/letsencrypt/live",
        "renew_schedule": "0 12 * * *",
        "renew_command": "/usr/bin/certbot renew --quiet",
    },
    "code_server": {
        "bin": "code-server",
        "installer_url": "https://code-server.dev/install.sh",
        "default_domain": "cloud-ide.example.com",
        "default_username": "ubuntu",
    },
    "desktop": {
        "guacamole_dir": "~/guacamole",
        "compose_bin": "docker-compose",
        "docker_bin": "docker",
        "xrdp_ini": "/etc/xrdp/xrdp.ini",
    },
    "vscode": {
        "code_bin": "code",
        "key_url": "https://packages.microsoft.com/keys/microsoft.asc",
        "keyring": "/etc/apt/trusted.gpg.d/packages.microsoft.gpg",
        "sources_list": "/etc/apt/sources.list.d/vscode.list",
        "repo_url": "https://packages.microsoft.com/repos/code",
    },
}

# Leaf mappings whose keys are validated by their own builders.
_OPAQUE_SECTIONS = {"preflight.public_ip_urls"}


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`."""
    merged: dict[str, object] = _deep_copy(DEFAULTS)
    resolved_env = dict(os.environ if env is None else env)

    config_default = _expect_str(merged["config_file"], "config_file")
    config_path = _determine_config_path(config_default, config_file, resolved_env)

    file_values = _load_yaml_file(config_path)
    if file_values:
        _deep_merge(merged, file_values)

    env_values = _build_env_overrides(resolved_env)
    if env_values:
        _deep_merge(merged, env_values)

    if overrides:
        _deep_merge(merged, dict(overrides))

    merged["config_file"] = str(config_path)

    _check_keys(merged, DEFAULTS, "")

    return _build_app_config(merged)


def _determine_config_path(
    default_path: str,
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    if cli_override:
        return Path(cli_override)
    if CONFIG_ENV_VAR in env:
        return Path(env[CONFIG_ENV_VAR])
    return Path(default_path)


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - PyYAML owns detailed error
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _check_keys(raw: Mapping[str, object], defaults: Mapping[str, object], prefix: str) -> None:
    unknown = set(raw.keys()) - set(defaults.keys())
    if unknown:
        joined = ", ".join(sorted(f"{prefix}{key}" for key in unknown))
        raise ConfigError(f"Unknown configuration keys: {joined}.")
    for key, value in raw.items():
        default = defaults.get(key)
        label = f"{prefix}{key}"
        if label in _OPAQUE_SECTIONS:
            continue
        if isinstance(default, Mapping):
            _check_keys(_as_dict(value, label), default, f"{label}.")


def _build_app_config(raw: Mapping[str, object]) -> AppConfig:
    execution_map = _as_dict(raw.get("execution"), "execution")
    execution = ExecutionConfig(
        sudo=_expect_bool(execution_map.get("sudo"), "execution.sudo", default=True),
        dry_run=_expect_bool(execution_map.get("dry_run"), "execution.dry_run", default=False),
    )

    preflight_map = _as_dict(raw.get("preflight"), "preflight")
    min_free = _expect_int(
        preflight_map.get("min_free_bytes"), "preflight.min_free_bytes", default=0
    )
    if min_free < 0:
        raise ConfigError("preflight.min_free_bytes must be non-negative.")
    urls = [
        str(item).strip()
        for item in _as_sequence(
            preflight_map.get("public_ip_urls", []), "preflight.public_ip_urls"
        )
        if str(item).strip()
    ]
    if not urls:
        raise ConfigError("preflight.public_ip_urls must list at least one URL.")
    preflight = PreflightConfig(
        min_free_bytes=min_free,
        disk_path=_to_path(preflight_map.get("disk_path")),
        expected_os_version=str(preflight_map.get("expected_os_version", "24.04")),
        os_release=_to_path(preflight_map.get("os_release")),
        connectivity_host=str(preflight_map.get("connectivity_host", "8.8.8.8")),
        public_ip_urls=tuple(urls),
    )

    ports_map = _as_dict(raw.get("ports"), "ports")
    ports = PortsConfig(
        window=_expect_port(ports_map.get("window"), "ports.window", default=100, minimum=0),
        rdp=_expect_port(ports_map.get("rdp"), "ports.rdp", default=3389),
        guacamole=_expect_port(ports_map.get("guacamole"), "ports.guacamole", default=8080),
        code_server=_expect_port(
            ports_map.get("code_server"), "ports.code_server", default=8080
        ),
    )

    passwords_map = _as_dict(raw.get("passwords"), "passwords")
    code_server_pw = _as_dict(passwords_map.get("code_server"), "passwords.code_server")
    desktop_pw = _as_dict(passwords_map.get("desktop"), "passwords.desktop")
    passwords = PasswordsConfig(
        code_server_min_length=_expect_positive_int(
            code_server_pw.get("min_length"), "passwords.code_server.min_length", default=12
        ),
        desktop_min_length=_expect_positive_int(
            desktop_pw.get("min_length"), "passwords.desktop.min_length", default=8
        ),
    )

    timeouts_map = _as_dict(raw.get("timeouts"), "timeouts")
    timeouts = TimeoutsConfig(
        auth=_expect_positive_float(timeouts_map.get("auth"), "timeouts.auth", default=300.0),
        readiness=_expect_positive_float(
            timeouts_map.get("readiness"), "timeouts.readiness", default=60.0
        ),
        poll_interval=_expect_positive_float(
            timeouts_map.get("poll_interval"), "timeouts.poll_interval", default=2.0
        ),
    )

    systemd_map = _as_dict(raw.get("systemd"), "systemd")
    systemd = SystemdConfig(
        unit_dir=_to_path(systemd_map.get("unit_dir")),
        systemctl_bin=str(systemd_map.get("systemctl_bin", "systemctl")),
        journalctl_bin=str(systemd_map.get("journalctl_bin", "journalctl")),
    )

    nginx_map = _as_dict(raw.get("nginx"), "nginx")
    nginx = NginxConfig(
        sites_available=_to_path(nginx_map.get("sites_available")),
        sites_enabled=_to_path(nginx_map.get("sites_enabled")),
        conf_dir=_to_path(nginx_map.get("conf_dir")),
        htpasswd=_to_path(nginx_map.get("htpasswd")),
        webroot=_to_path(nginx_map.get("webroot")),
        nginx_bin=str(nginx_map.get("nginx_bin", "nginx")),
    )

    certbot_map = _as_dict(raw.get("certbot"), "certbot")
    certbot = CertbotConfig(
        certbot_bin=str(certbot_map.get("certbot_bin", "certbot")),
        live_dir=_to_path(certbot_map.get("live_dir")),
        renew_schedule=str(certbot_map.get("renew_schedule", "0 12 * * *")),
        renew_command=str(certbot_map.get("renew_command", "/usr/bin/certbot renew --quiet")),
    )

    code_server_map = _as_dict(raw.get("code_server"), "code_server")
    code_server = CodeServerConfig(
        bin=str(code_server_map.get("bin", "code-server")),
        installer_url=str(code_server_map.get("installer_url", CodeServerConfig.installer_url)),
        default_domain=str(
            code_server_map.get("default_domain", CodeServerConfig.default_domain)
        ),
        default_username=str(
            code_server_map.get("default_username", CodeServerConfig.default_username)
        ),
    )

    desktop_map = _as_dict(raw.get("desktop"), "desktop")
    desktop = DesktopConfig(
        guacamole_dir=_to_path(desktop_map.get("guacamole_dir")),
        compose_bin=str(desktop_map.get("compose_bin", "docker-compose")),
        docker_bin=str(desktop_map.get("docker_bin", "docker")),
        xrdp_ini=_to_path(desktop_map.get("xrdp_ini")),
    )

    vscode_map = _as_dict(raw.get("vscode"), "vscode")
    vscode = VSCodeConfig(
        code_bin=str(vscode_map.get("code_bin", "code")),
        key_url=str(vscode_map.get("key_url", VSCodeConfig.key_url)),
        keyring=_to_path(vscode_map.get("keyring")),
        sources_list=_to_path(vscode_map.get("sources_list")),
        repo_url=str(vscode_map.get("repo_url", VSCodeConfig.repo_url)),
    )

    return AppConfig(
        config_file=_to_path(raw.get("config_file")),
        logs_dir=_to_path(raw.get("logs_dir")),
        runtime_dir=_to_path(raw.get("runtime_dir")),
        templates_dir=_to_path(raw.get("templates_dir")),
        lock_timeout=_expect_positive_float(
            raw.get("lock_timeout"), "lock_timeout", default=5.0
        ),
        execution=execution,
        preflight=preflight,
        ports=ports,
        passwords=passwords,
        timeouts=timeouts,
        systemd=systemd,
        nginx=nginx,
        certbot=certbot,
        code_server=code_server,
        desktop=desktop,
        vscode=vscode,
    )


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for key, value in env.items():
        if key in RESERVED_ENV_KEYS:
            continue
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX) :]
        path_segments = [segment.lower() for segment in suffix.split("__") if segment]
        if not path_segments:
            continue
        _assign_nested(overrides, path_segments, _coerce_value(value))
    return overrides


def _assign_nested(tree: MutableMapping[str, object], path: list[str], value: object) -> None:
    current: MutableMapping[str, object] = tree
    for segment in path[:-1]:
        existing = current.get(segment)
        if existing is None:
            new_child: MutableMapping[str, object] = {}
            current[segment] = new_child
            current = new_child
            continue
        if isinstance(existing, MutableMapping):
            current = cast(MutableMapping[str, object], existing)
            continue
        raise ConfigError(
            "Environment overrides conflict with existing scalar value at "
            f"{'.'.join(path)}"
        )
    current[path[-1]] = value


def _deep_merge(target: MutableMapping[str, object], overrides: Mapping[str, object]) -> None:
    for key, value in overrides.items():
        existing = target.get(key)
        if isinstance(existing, MutableMapping) and isinstance(value, Mapping):
            _deep_merge(existing, _as_dict(value, f"merge.{key}"))
            continue
        target[key] = value


def _deep_copy(source: Mapping[str, object]) -> dict[str, object]:
    result: dict[str, object] = {}
    for key, value in source.items():
        if isinstance(value, Mapping):
            result[key] = _deep_copy(_as_dict(value, f"copy.{key}"))
        elif isinstance(value, list):
            result[key] = list(value)
        else:
            result[key] = value
    return result


def _as_sequence(value: object, label: str) -> Sequence[object]:
    if isinstance(value, (str, bytes)):
        raise ConfigError(f"Expected {label} to be a sequence. Got {type(value).__name__}.")
    if not isinstance(value, Sequence):
        raise ConfigError(f"Expected {label} to be a sequence. Got {type(value).__name__}.")
    return value


def _coerce_value(raw: str) -> object:
    raw = raw.strip()
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError:  # pragma: no cover - treat as string if parsing fails
        return raw
    return parsed


def _to_path(value: object) -> Path:
    if value is None:
        raise ConfigError("Expected a filesystem path, received None.")
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise ConfigError(f"Cannot convert value {value!r} to Path.")


def _expect_bool(value: object | None, label: str, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    raise ConfigError(f"Expected {label} to be a boolean. Got {value!r}.")


def _expect_int(value: object | None, label: str, *, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be an integer. Got boolean {value!r}.")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 0)
        except ValueError as exc:
            raise ConfigError(f"Invalid integer for {label}: {value!r}.") from exc
    raise ConfigError(f"Expected {label} to be an integer. Got {type(value).__name__}.")


def _expect_positive_int(value: object | None, label: str, *, default: int) -> int:
    number = _expect_int(value, label, default=default)
    if number <= 0:
        raise ConfigError(f"{label} must be greater than zero. Got {number}.")
    return number


def _expect_port(
    value: object | None,
    label: str,
    *,
    default: int,
    minimum: int = 1,
) -> int:
    number = _expect_int(value, label, default=default)
    if number < minimum or number > 65535:
        raise ConfigError(f"{label} must be between {minimum} and 65535. Got {number}.")
    return number


def _expect_str(value: object, key: str) -> str:
    if isinstance(value, str):
        return value
    raise ConfigError(f"Expected {key} to resolve to a string. Got {value!r}.")


def _expect_positive_float(
    value: object | None,
    label: str,
    *,
    default: float,
) -> float:
    if value is None:
        return float(default)
    if isinstance(value, bool):
        raise ConfigError(f"Expected {label} to be a number. Got boolean {value!r}.")
    if isinstance(value, (int, float)):
        numeric = float(value)
    elif isinstance(value, str):
        try:
            numeric = float(value)
        except ValueError as exc:
            raise ConfigError(f"Invalid number for {label}: {value!r}.") from exc
    else:
        raise ConfigError(
            f"Expected {label} to be numeric. Got {type(value).__name__}."
        )
    if numeric <= 0:
        raise ConfigError(f"{label} must be greater than zero. Got {numeric}.")
    return numeric


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    result: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Mapping {label} must use string keys. Got {key!r}.")
        result[key] = item
    return result


__all__ = [
    "AppConfig",
    "CertbotConfig",
    "CodeServerConfig",
    "ConfigError",
    "DesktopConfig",
    "ExecutionConfig",
    "NginxConfig",
    "PasswordsConfig",
    "PortsConfig",
    "PreflightConfig",
    "SystemdConfig",
    "TimeoutsConfig",
    "VSCodeConfig",
    "load_config",
]
