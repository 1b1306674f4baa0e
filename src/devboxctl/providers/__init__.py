"""Providers wrapping the external tools devboxctl drives."""
from __future__ import annotations

from .apt import AptProvider
from .certbot import CertbotProvider
from .compose import ComposeProvider
from .cron import CrontabProvider
from .nginx import NginxProvider
from .systemd import SystemdProvider
from .vscode import VSCodeCLI

__all__ = [
    "AptProvider",
    "CertbotProvider",
    "ComposeProvider",
    "CrontabProvider",
    "NginxProvider",
    "SystemdProvider",
    "VSCodeCLI",
]
