"""Connectivity probes consulted before a request family starts its first attempt."""

from __future__ import annotations

import socket
import threading
from typing import Callable, Protocol, runtime_checkable

__all__ = [
    "CallableConnectivityProbe",
    "ConnectivityProbe",
    "SocketConnectivityProbe",
    "StaticConnectivityProbe",
]


@runtime_checkable
class ConnectivityProbe(Protocol):
    """Read-only reachability check; must be safe to call from any thread."""

    def is_connected(self) -> bool:  # pragma: no cover - protocol
        ...


class StaticConnectivityProbe:
    """Probe returning a fixed answer that can be flipped at runtime."""

    def __init__(self, connected: bool = True) -> None:
        self._connected = threading.Event()
        if connected:
            self._connected.set()

    def set_connected(self, connected: bool) -> None:
        if connected:
            self._connected.set()
        else:
            self._connected.clear()

    def is_connected(self) -> bool:
        return self._connected.is_set()


class CallableConnectivityProbe:
    """Adapt a host-supplied ``() -> bool`` callable to the probe protocol."""

    def __init__(self, check: Callable[[], bool]) -> None:
        self._check = check

    def is_connected(self) -> bool:
        return bool(self._check())


class SocketConnectivityProbe:
    """Report connectivity by opening a short TCP connection to a known host.

    Any ``OSError`` (DNS failure, refused connection, timeout) counts as
    offline.
    """

    def __init__(self, host: str = "1.1.1.1", port: int = 53, timeout: float = 1.5) -> None:
        self.host = host
        self.port = port
        self.timeout = timeout

    def is_connected(self) -> bool:
        try:
            with socket.create_connection((self.host, self.port), timeout=self.timeout):
                return True
        except OSError:
            return False
