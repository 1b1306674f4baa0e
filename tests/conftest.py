"""Shared fakes and fixtures for the test suite."""

from __future__ import annotations

import subprocess
from collections import deque
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from devboxctl.config import AppConfig, load_config
from devboxctl.logging import StructuredLogger
from devboxctl.runner import CommandRunner
from devboxctl.workflows import Session


class DummyResult(subprocess.CompletedProcess[str]):
    """``CompletedProcess`` with keyword defaults for scripted answers."""

    def __init__(self, returncode: int = 0, stdout: str = "", stderr: str = "") -> None:
        """Initialise the dummy result."""
        super().__init__([], returncode, stdout, stderr)


@dataclass(slots=True)
class RecordingRunner(CommandRunner):
    """Command runner that records commands and answers from scripted rules.

    Rules match when their fragment occurs in the space-joined command line;
    the most recently added rule wins. Unmatched commands succeed silently.
    """

    rules: list[tuple[str, Callable[[list[str]], DummyResult]]] = field(default_factory=list)
    available: set[str] = field(default_factory=set)
    executed: list[list[str]] = field(default_factory=list)
    inputs: dict[str, str] = field(default_factory=dict)
    writes: list[tuple[Path, str]] = field(default_factory=list)

    def respond(
        self,
        fragment: str,
        *,
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        """Answer commands containing *fragment* with a fixed result."""
        result = DummyResult(returncode, stdout, stderr)
        self.rules.insert(0, (fragment, lambda _command: result))

    def respond_with(self, fragment: str, handler: Callable[[list[str]], DummyResult]) -> None:
        """Answer commands containing *fragment* by calling *handler*."""
        self.rules.insert(0, (fragment, handler))

    def exists(self, command: str) -> bool:
        return command in self.available

    def write_file(
        self,
        path: Path,
        content: str,
        *,
        mode: int = 0o644,
        privileged: bool = False,
    ) -> None:
        self.writes.append((path, content))
        CommandRunner.write_file(self, path, content, mode=mode, privileged=privileged)

    def ran(self, fragment: str) -> bool:
        """Return ``True`` when any recorded action contains *fragment*."""
        return any(fragment in " ".join(command) for command in self.history)

    def index_of(self, fragment: str, *, start: int = 0) -> int:
        """Return the position of the first recorded action containing *fragment*."""
        for index, command in enumerate(self.history[start:], start=start):
            if fragment in " ".join(command):
                return index
        raise AssertionError(f"No action containing {fragment!r} was recorded.")

    def written(self, path: Path) -> list[str]:
        """Return every content written to *path*, oldest first."""
        return [content for target, content in self.writes if target == path]

    def _execute(
        self,
        command: list[str],
        *,
        input_text: str | None,
        timeout: float | None,
        capture: bool,
    ) -> subprocess.CompletedProcess[str]:
        self.executed.append(list(command))
        line = " ".join(command)
        if input_text is not None:
            self.inputs[line] = input_text
        for fragment, handler in self.rules:
            if fragment in line:
                result = handler(list(command))
                return subprocess.CompletedProcess(
                    command, result.returncode, result.stdout, result.stderr
                )
        return subprocess.CompletedProcess(command, 0, "", "")


@dataclass
class ScriptedHost:
    """Host facts with fixed answers."""

    home_dir: Path
    user: str = "dev"
    uid: int = 1000
    group: str = "dev"
    sudo: bool = True
    reachable: bool = True
    free: int = 50 * 1024**3
    version: str | None = "24.04"
    password_state: str | None = "P"
    addresses: tuple[str, ...] = ("203.0.113.10",)
    ip: str | None = "203.0.113.10"
    name: str = "devbox"
    password_changes: int = 0

    def effective_uid(self) -> int:
        return self.uid

    def login_user(self) -> str:
        return self.user

    def home(self) -> Path:
        return self.home_dir

    def account(self, user: str) -> tuple[int, str]:
        return self.uid, self.group

    def hostname(self) -> str:
        return self.name

    def has_sudo(self) -> bool:
        return self.sudo

    def can_reach(self, host: str) -> bool:
        return self.reachable

    def free_bytes(self, path: Path) -> int:
        return self.free

    def os_version(self, os_release: Path) -> str | None:
        return self.version

    def password_status(self, user: str) -> str | None:
        return self.password_state

    def set_password(self) -> None:
        self.password_changes += 1
        self.password_state = "P"

    def resolve(self, domain: str) -> tuple[str, ...]:
        return self.addresses

    def public_ip(self, urls: Iterable[str]) -> str | None:
        return self.ip


class FakeSocket:
    """Socket stand-in that records closure."""

    def __init__(self, port: int) -> None:
        """Remember the bound port."""
        self.port = port
        self.closed = False

    def close(self) -> None:
        self.closed = True


class FakeBinder:
    """Bind function refusing ports listed as busy."""

    def __init__(self, busy: Iterable[int] = ()) -> None:
        """Start with the given busy ports."""
        self.busy = set(busy)
        self.sockets: list[FakeSocket] = []

    def __call__(self, host: str, port: int) -> FakeSocket:
        if port in self.busy:
            raise OSError(98, "Address already in use")
        sock = FakeSocket(port)
        self.sockets.append(sock)
        return sock


class ScriptedOperator:
    """Operator answering from queues; empty or missing answers take the default."""

    def __init__(
        self,
        *,
        answers: Iterable[str] = (),
        secrets: Iterable[str] = (),
        confirmations: Iterable[bool] = (),
    ) -> None:
        """Queue the answers handed out in order."""
        self.answers = deque(answers)
        self.secrets = deque(secrets)
        self.confirmations = deque(confirmations)
        self.questions: list[str] = []

    def ask(self, question: str, *, default: str | None = None) -> str:
        self.questions.append(question)
        answer = self.answers.popleft() if self.answers else ""
        return answer or default or ""

    def ask_secret(self, question: str) -> str:
        self.questions.append(question)
        return self.secrets.popleft()

    def confirm(self, question: str, *, default: bool = False) -> bool:
        self.questions.append(question)
        if self.confirmations:
            return self.confirmations.popleft()
        return default


def config_values(tmp_path: Path) -> dict[str, object]:
    """Return raw settings redirecting every host path under *tmp_path*."""
    os_release = tmp_path / "os-release"
    os_release.write_text('NAME="Ubuntu"\nVERSION_ID="24.04"\n', encoding="utf-8")
    etc = tmp_path / "etc"
    return {
        "logs_dir": str(tmp_path / "logs"),
        "runtime_dir": str(tmp_path / "run"),
        "templates_dir": str(tmp_path / "templates"),
        "lock_timeout": 0.2,
        "execution": {"sudo": False},
        "preflight": {"os_release": str(os_release), "disk_path": str(tmp_path)},
        "timeouts": {"auth": 1.0, "readiness": 0.05, "poll_interval": 0.01},
        "systemd": {"unit_dir": str(etc / "systemd")},
        "nginx": {
            "sites_available": str(etc / "nginx" / "sites-available"),
            "sites_enabled": str(etc / "nginx" / "sites-enabled"),
            "conf_dir": str(etc / "nginx" / "conf.d"),
            "htpasswd": str(etc / "nginx" / ".htpasswd"),
            "webroot": str(tmp_path / "www"),
        },
        "certbot": {"live_dir": str(etc / "letsencrypt" / "live")},
        "desktop": {
            "guacamole_dir": str(tmp_path / "home" / "guacamole"),
            "xrdp_ini": str(etc / "xrdp" / "xrdp.ini"),
        },
        "vscode": {
            "keyring": str(etc / "apt" / "trusted.gpg.d" / "packages.microsoft.gpg"),
            "sources_list": str(etc / "apt" / "sources.list.d" / "vscode.list"),
        },
    }


def build_config(tmp_path: Path, overrides: Mapping[str, object] | None = None) -> AppConfig:
    """Return configuration with every host path redirected under *tmp_path*."""
    return load_config(
        config_file=tmp_path / "missing.yml",
        env={},
        overrides=_merge(config_values(tmp_path), overrides or {}),
    )


def _merge(base: Mapping[str, object], extra: Mapping[str, object]) -> dict[str, object]:
    merged = dict(base)
    for key, value in extra.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = _merge(current, value)
        else:
            merged[key] = value
    return merged


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    """Return a configuration rooted in the temporary directory."""
    return build_config(tmp_path)


@pytest.fixture
def logger(app_config: AppConfig) -> StructuredLogger:
    """Return a logger writing beneath the temporary logs directory."""
    return StructuredLogger(app_config.logs_dir)


@pytest.fixture
def runner(logger: StructuredLogger) -> RecordingRunner:
    """Return a recording runner that executes nothing."""
    return RecordingRunner(logger=logger, sudo=False)


@pytest.fixture
def host(tmp_path: Path) -> ScriptedHost:
    """Return host facts for a healthy Ubuntu 24.04 machine."""
    home = tmp_path / "home"
    home.mkdir(exist_ok=True)
    return ScriptedHost(home_dir=home)


@pytest.fixture
def make_session(
    app_config: AppConfig,
    logger: StructuredLogger,
    runner: RecordingRunner,
    host: ScriptedHost,
) -> Callable[..., Session]:
    """Return a factory building sessions around the shared fakes."""

    def factory(operator: ScriptedOperator | None = None, **kwargs: object) -> Session:
        return Session(
            app=app_config,
            logger=logger,
            runner=runner,
            operator=operator or ScriptedOperator(),
            host=host,  # type: ignore[arg-type]
            **kwargs,  # type: ignore[arg-type]
        )

    return factory


def make_certificate(
    *names: str,
    valid_from: datetime | None = None,
    valid_to: datetime | None = None,
) -> tuple[str, str]:
    """Return a self-signed PEM certificate and its private key covering *names*."""
    now = datetime.now(UTC)
    valid_from = valid_from or (now - timedelta(days=1))
    valid_to = valid_to or (now + timedelta(days=90))
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    subject = issuer = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, names[0])])
    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(valid_from)
        .not_valid_after(valid_to)
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(
            x509.SubjectAlternativeName([x509.DNSName(name) for name in names]),
            critical=False,
        )
    )
    cert = builder.sign(key, hashes.SHA256())
    key_pem = key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return cert.public_bytes(serialization.Encoding.PEM).decode("ascii"), key_pem.decode("ascii")


@pytest.fixture(scope="session")
def certificate_pem() -> tuple[str, str]:
    """Return a certificate and key for code.example.com."""
    return make_certificate("code.example.com")
