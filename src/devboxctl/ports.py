"""Bounded free-port search with bind-and-hold leases."""
from __future__ import annotations

import socket
from collections.abc import Callable
from dataclasses import dataclass, field

from .errors import DevboxError
from .logging import StructuredLogger

Binder = Callable[[str, int], socket.socket]


class PortAllocationError(DevboxError):
    """Raised when no free port exists in the search window."""


def bind_port(host: str, port: int) -> socket.socket:
    """Bind a TCP socket to ``host:port``; raise :class:`OSError` when taken."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.bind((host, port))
    except OSError:
        sock.close()
        raise
    return sock


@dataclass(slots=True)
class PortLease:
    """A port confirmed free, optionally still held by the probing socket."""

    name: str
    port: int
    host: str = "0.0.0.0"  # noqa: S104
    binder: Binder = bind_port
    _socket: socket.socket | None = field(default=None, repr=False)

    @property
    def held(self) -> bool:
        """Return ``True`` while the probing socket is still bound."""
        return self._socket is not None

    def release(self) -> None:
        """Close the probing socket so the consuming service can bind."""
        if self._socket is not None:
            self._socket.close()
            self._socket = None

    def confirm(self) -> int:
        """Release the lease and re-check the port is still free."""
        self.release()
        try:
            probe = self.binder(self.host, self.port)
        except OSError as exc:
            raise PortAllocationError(
                f"Port {self.port} reserved for {self.name or 'service'} was taken "
                f"before use: {exc}"
            ) from exc
        probe.close()
        return self.port


class PortAllocator:
    """Find the smallest free port in ``[start, start + window]``."""

    def __init__(
        self,
        logger: StructuredLogger,
        *,
        window: int = 100,
        host: str = "0.0.0.0",  # noqa: S104
        binder: Binder = bind_port,
    ) -> None:
        """Store the search window and the socket binder used for probing."""
        if window < 0:
            raise PortAllocationError("Port search window must be non-negative.")
        self.logger = logger
        self.window = window
        self.host = host
        self.binder = binder

    def candidates(self, start: int) -> range:
        """Return the inclusive candidate range starting at *start*."""
        if start < 1 or start > 65535:
            raise PortAllocationError(f"Start port must be between 1 and 65535. Got {start}.")
        return range(start, min(start + self.window, 65535) + 1)

    def find_free(self, start: int) -> int:
        """Return the first free port, logging a warning for each busy one."""
        lease = self.lease(start)
        lease.release()
        return lease.port

    def lease(self, start: int, *, name: str = "") -> PortLease:
        """Return a :class:`PortLease` that keeps the chosen port bound."""
        candidates = self.candidates(start)
        for port in candidates:
            try:
                sock = self.binder(self.host, port)
            except OSError:
                self.logger.warn(f"Port {port} is in use, trying {port + 1}")
                continue
            if port != start:
                self.logger.info(f"Using port {port} instead of {start}")
            return PortLease(
                name=name, port=port, host=self.host, binder=self.binder, _socket=sock
            )
        raise PortAllocationError(
            f"No free port between {candidates.start} and {candidates.stop - 1}."
        )


__all__ = ["PortAllocationError", "PortAllocator", "PortLease", "bind_port"]
