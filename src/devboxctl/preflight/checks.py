"""Precondition checks run before a workflow mutates the host."""

from __future__ import annotations

from collections.abc import Callable, Sequence

from packaging.version import InvalidVersion, Version

from ..validation import is_valid_domain
from .models import (
    CheckDefinition,
    CheckKind,
    CheckResult,
    CheckStatus,
    PreflightContext,
)

_GIB = 1024**3


def _make_check(
    check_id: str,
    kind: CheckKind,
    handler: Callable[[PreflightContext], CheckResult],
    *,
    remedy_prompt: str | None = None,
    remedy: Callable[[PreflightContext], None] | None = None,
) -> CheckDefinition:
    return CheckDefinition(
        id=check_id, kind=kind, run=handler, remedy_prompt=remedy_prompt, remedy=remedy
    )


def _outcome(
    check_id: str,
    kind: CheckKind,
    ok: bool,
    message: str,
    *,
    remediation: str | None = None,
    data: dict[str, object] | None = None,
) -> CheckResult:
    if ok:
        status = CheckStatus.PASS
    else:
        status = CheckStatus.FAIL if kind is CheckKind.HARD else CheckStatus.WARN
    return CheckResult(
        id=check_id,
        kind=kind,
        status=status,
        message=message,
        remediation=None if ok else remediation,
        data=data,
    )


# ---------------------------------------------------------------------------
# Hard checks
# ---------------------------------------------------------------------------


def check_not_root(context: PreflightContext) -> CheckResult:
    """The workflows manage files in the invoking user's home; refuse root."""
    uid = context.host.effective_uid()
    if uid == 0:
        return _outcome(
            "not-root",
            CheckKind.HARD,
            False,
            "This workflow must not be run as root.",
            remediation="Run devboxctl as a regular user with sudo privileges.",
        )
    return _outcome("not-root", CheckKind.HARD, True, "Running as a regular user.")


def check_sudo(context: PreflightContext) -> CheckResult:
    """Elevated commands are issued through sudo."""
    ok = context.host.has_sudo()
    return _outcome(
        "sudo",
        CheckKind.HARD,
        ok,
        "sudo privileges confirmed." if ok else "This user does not have sudo privileges.",
        remediation="Add the user to the sudo group or run with an account that has it.",
    )


def check_connectivity(context: PreflightContext) -> CheckResult:
    target = context.config.preflight.connectivity_host
    ok = context.host.can_reach(target)
    return _outcome(
        "connectivity",
        CheckKind.HARD,
        ok,
        f"Outbound connectivity to {target} confirmed."
        if ok
        else f"No internet connectivity (ping {target} failed).",
        remediation="Check the network configuration and outbound firewall rules.",
    )


def check_disk_space(context: PreflightContext) -> CheckResult:
    settings = context.config.preflight
    try:
        free = context.host.free_bytes(settings.disk_path)
    except OSError as exc:
        return _outcome(
            "disk-space",
            CheckKind.HARD,
            False,
            f"Unable to inspect free space on {settings.disk_path}: {exc}",
        )
    ok = free >= settings.min_free_bytes
    return _outcome(
        "disk-space",
        CheckKind.HARD,
        ok,
        f"{free / _GIB:.1f} GiB free on {settings.disk_path}."
        if ok
        else (
            f"Insufficient disk space on {settings.disk_path}: {free / _GIB:.1f} GiB free, "
            f"{settings.min_free_bytes / _GIB:.1f} GiB required."
        ),
        remediation="Free up disk space or grow the volume.",
        data={"free_bytes": free, "required_bytes": settings.min_free_bytes},
    )


def check_domain_syntax(context: PreflightContext) -> CheckResult:
    domain = context.domain or ""
    ok = is_valid_domain(domain)
    return _outcome(
        "domain-syntax",
        CheckKind.HARD,
        ok,
        f"Domain {domain} is well formed." if ok else f"Invalid domain name format: {domain!r}",
        remediation="Use a fully qualified domain name such as code.example.com.",
    )


# ---------------------------------------------------------------------------
# Soft checks
# ---------------------------------------------------------------------------


def check_os_version(context: PreflightContext) -> CheckResult:
    settings = context.config.preflight
    found = context.host.os_version(settings.os_release)
    expected = settings.expected_os_version
    if found is None:
        return _outcome(
            "os-version",
            CheckKind.SOFT,
            False,
            f"Unable to determine the OS version from {settings.os_release}.",
            remediation=f"This tool is tested on Ubuntu {expected}.",
        )
    try:
        ok = Version(found) == Version(expected)
    except InvalidVersion:
        ok = found == expected
    return _outcome(
        "os-version",
        CheckKind.SOFT,
        ok,
        f"Ubuntu {found} detected."
        if ok
        else f"This tool is designed for Ubuntu {expected}; detected version {found}.",
        remediation=f"Use an Ubuntu {expected} host for a supported setup.",
        data={"found": found, "expected": expected},
    )


def check_password_set(context: PreflightContext) -> CheckResult:
    """RDP logins need the account to have a usable password."""
    user = context.login_user or context.host.login_user()
    status = context.host.password_status(user)
    ok = status == "P"
    return _outcome(
        "password-set",
        CheckKind.SOFT,
        ok,
        f"User {user} has a password set."
        if ok
        else f"User {user} does not have a password set. RDP requires a password.",
        remediation="Run `passwd` to set a password before connecting over RDP.",
        data={"user": user, "status": status},
    )


def check_domain_resolves(context: PreflightContext) -> CheckResult:
    """DNS propagation lag is expected, so a mismatch only warns."""
    domain = context.domain or ""
    addresses = context.host.resolve(domain)
    public_ip = context.host.public_ip(context.config.preflight.public_ip_urls)
    data: dict[str, object] = {
        "domain": domain,
        "resolved": list(addresses),
        "public_ip": public_ip,
    }
    if not addresses:
        message = f"Domain {domain} does not resolve to any address."
        ok = False
    elif public_ip is None:
        message = f"Unable to determine this server's public IP to compare with {domain}."
        ok = False
    elif public_ip in addresses:
        message = f"Domain {domain} resolves to this server ({public_ip})."
        ok = True
    else:
        message = (
            f"Domain {domain} resolves to {', '.join(addresses)}, "
            f"but this server's public IP is {public_ip}."
        )
        ok = False
    return _outcome(
        "domain-dns",
        CheckKind.SOFT,
        ok,
        message,
        remediation="Point the DNS A record at this server; certificate issuance will fail "
        "until it resolves here.",
        data=data,
    )


def _set_password(context: PreflightContext) -> None:
    context.host.set_password()


# ---------------------------------------------------------------------------
# Check sets
# ---------------------------------------------------------------------------


def generic_checks(
    *,
    connectivity: bool = True,
    disk: bool = True,
    os_version: bool = True,
) -> Sequence[CheckDefinition]:
    """Return the host checks shared by every workflow."""
    checks: list[CheckDefinition] = [
        _make_check("not-root", CheckKind.HARD, check_not_root),
        _make_check("sudo", CheckKind.HARD, check_sudo),
    ]
    if connectivity:
        checks.append(_make_check("connectivity", CheckKind.HARD, check_connectivity))
    if disk:
        checks.append(_make_check("disk-space", CheckKind.HARD, check_disk_space))
    if os_version:
        checks.append(_make_check("os-version", CheckKind.SOFT, check_os_version))
    return tuple(checks)


def password_checks() -> Sequence[CheckDefinition]:
    return (
        _make_check(
            "password-set",
            CheckKind.SOFT,
            check_password_set,
            remedy_prompt="Would you like to set a password now?",
            remedy=_set_password,
        ),
    )


def domain_checks(*, syntax: bool = True) -> Sequence[CheckDefinition]:
    """Return the syntax (hard) and DNS (soft) checks for the chosen domain."""
    checks = [_make_check("domain-dns", CheckKind.SOFT, check_domain_resolves)]
    if syntax:
        checks.insert(0, _make_check("domain-syntax", CheckKind.HARD, check_domain_syntax))
    return tuple(checks)


__all__ = [
    "check_connectivity",
    "check_disk_space",
    "check_domain_resolves",
    "check_domain_syntax",
    "check_not_root",
    "check_os_version",
    "check_password_set",
    "check_sudo",
    "domain_checks",
    "generic_checks",
    "password_checks",
]
