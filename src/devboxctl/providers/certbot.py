"""Certbot provider for Let's Encrypt certificates."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from ..runner import CommandRunner
from ..tls import CertificatePaths, CertificateReport, inspect_certificate


@dataclass(slots=True)
class CertbotProvider:
    """Issue, renew and read certificates managed by certbot."""

    runner: CommandRunner
    certbot_bin: str = "certbot"
    live_dir: Path = Path("/etc/letsencrypt/live")

    def paths(self, domain: str) -> CertificatePaths:
        """Return the live certificate paths for *domain*."""
        return CertificatePaths.for_domain(self.live_dir, domain)

    def has_certificate(self, domain: str) -> bool:
        """Return ``True`` when certbot already manages *domain*."""
        # The live directory is root-only, so the test runs through sudo.
        return self.runner.probe(["test", "-d", str(self.live_dir / domain)], privileged=True)

    def issue(self, domain: str, email: str, *, standalone: bool = False) -> None:
        """Request a certificate using the nginx or standalone authenticator."""
        args = [self.certbot_bin]
        if standalone:
            args.extend(["certonly", "--standalone"])
        else:
            args.append("--nginx")
        args.extend(
            [
                "-d",
                domain,
                "--non-interactive",
                "--agree-tos",
                "-m",
                email,
            ]
        )
        self.runner.run(args, privileged=True)

    def renew(self) -> None:
        """Renew certificates that are close to expiry."""
        self.runner.run([self.certbot_bin, "renew", "--quiet"], privileged=True)

    def verify(self, domain: str) -> CertificateReport:
        """Load the issued certificate and key and check they are usable."""
        paths = self.paths(domain)
        cert_pem = self.runner.run(["cat", str(paths.fullchain)], privileged=True).stdout
        key_pem = self.runner.run(["cat", str(paths.privkey)], privileged=True).stdout
        return inspect_certificate(
            cert_pem.encode("utf-8"),
            domain=domain,
            key_data=key_pem.encode("utf-8"),
        )


__all__ = ["CertbotProvider"]
