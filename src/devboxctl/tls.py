"""Certificate verification for issued Let's Encrypt material."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol, cast

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.x509.oid import NameOID

from .errors import DevboxError


class CertificateError(DevboxError):
    """Raised when an issued certificate is missing, unreadable or unusable."""


class PublicKeyProtocol(Protocol):
    """Protocol covering public keys exposing ``public_bytes``."""

    def public_bytes(
        self,
        *,
        encoding: serialization.Encoding,
        format: serialization.PublicFormat,
    ) -> bytes:
        """Return the public key bytes in the requested encoding/format."""


class PrivateKeyProtocol(Protocol):
    """Protocol for private keys that can provide a matching public key."""

    def public_key(self) -> PublicKeyProtocol:
        """Return the associated public key object."""


@dataclass(frozen=True)
class CertificatePaths:
    """Locations of the live certificate files for a domain."""

    fullchain: Path
    privkey: Path

    @classmethod
    def for_domain(cls, live_dir: Path, domain: str) -> CertificatePaths:
        """Return the certbot ``live`` paths for *domain*."""
        base = live_dir / domain
        return cls(fullchain=base / "fullchain.pem", privkey=base / "privkey.pem")


@dataclass(frozen=True)
class CertificateReport:
    """Facts extracted from a verified certificate."""

    subject: str
    names: tuple[str, ...]
    not_valid_before: datetime
    not_valid_after: datetime
    key_matches: bool | None

    def days_remaining(self, now: datetime | None = None) -> int:
        """Return whole days until expiry."""
        now = now or datetime.now(UTC)
        return (self.not_valid_after - now).days


def inspect_certificate(
    cert_data: bytes,
    *,
    domain: str,
    key_data: bytes | None = None,
    now: datetime | None = None,
) -> CertificateReport:
    """Verify *cert_data* covers *domain*, is current and matches *key_data*."""
    now = now or datetime.now(UTC)
    try:
        certificate = _load_certificate(cert_data)
    except ValueError as exc:
        raise CertificateError(f"Failed to parse certificate for {domain}: {exc}") from exc

    names = _subject_names(certificate)
    if not any(_name_matches(name, domain) for name in names):
        raise CertificateError(
            f"Certificate does not cover {domain} (names: {', '.join(names) or 'none'})."
        )

    not_before = _as_utc(certificate.not_valid_before_utc)
    not_after = _as_utc(certificate.not_valid_after_utc)
    if not_after <= now:
        raise CertificateError(f"Certificate for {domain} expired on {not_after.isoformat()}.")
    if not_before > now:
        raise CertificateError(
            f"Certificate for {domain} is not valid until {not_before.isoformat()}."
        )

    key_matches: bool | None = None
    if key_data is not None:
        try:
            private_key = _load_private_key(key_data)
        except ValueError as exc:
            raise CertificateError(f"Failed to parse private key for {domain}: {exc}") from exc
        key_matches = _public_keys_match(certificate, private_key)
        if not key_matches:
            raise CertificateError(f"Certificate for {domain} does not match its private key.")

    return CertificateReport(
        subject=certificate.subject.rfc4514_string(),
        names=tuple(names),
        not_valid_before=not_before,
        not_valid_after=not_after,
        key_matches=key_matches,
    )


def _load_certificate(data: bytes) -> x509.Certificate:
    try:
        return x509.load_pem_x509_certificate(data)
    except ValueError:
        return x509.load_der_x509_certificate(data)


def _load_private_key(data: bytes) -> PrivateKeyProtocol:
    private_key = serialization.load_pem_private_key(data, password=None)
    return cast(PrivateKeyProtocol, private_key)


def _subject_names(certificate: x509.Certificate) -> list[str]:
    names: list[str] = []
    try:
        extension = certificate.extensions.get_extension_for_class(x509.SubjectAlternativeName)
    except x509.ExtensionNotFound:
        pass
    else:
        names.extend(extension.value.get_values_for_type(x509.DNSName))
    if not names:
        for attribute in certificate.subject.get_attributes_for_oid(NameOID.COMMON_NAME):
            names.append(str(attribute.value))
    return names


def _name_matches(pattern: str, domain: str) -> bool:
    pattern = pattern.lower().rstrip(".")
    domain = domain.lower().rstrip(".")
    if pattern.startswith("*."):
        suffix = pattern[1:]
        head, _, _ = domain.partition(".")
        return domain.endswith(suffix) and bool(head) and domain.count(".") == pattern.count(".")
    return pattern == domain


def _public_keys_match(cert: x509.Certificate, private_key: PrivateKeyProtocol) -> bool:
    cert_bytes = cert.public_key().public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    key_bytes = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return cert_bytes == key_bytes


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)


__all__ = [
    "CertificateError",
    "CertificatePaths",
    "CertificateReport",
    "inspect_certificate",
]
