"""Shared fixtures: a scripted fake transport with echoing streams."""

from __future__ import annotations

import socket
import threading
import time

import pytest

from ssh_socks_proxy.core.exceptions import ProbeTimeoutError, TransportUnavailableError
from ssh_socks_proxy.core.lib.proxy_stats import ProxyStats


def _echo(peer: socket.socket) -> None:
    try:
        while True:
            data = peer.recv(65536)
            if not data:
                break
            peer.sendall(data)
    except OSError:
        pass
    finally:
        peer.close()


class FakeTransport:
    """In-memory transport whose streams are socketpairs echoing back their input.

    ``probe_results`` is consumed one entry per probe: True acknowledges,
    False times out and an exception instance is raised as-is. Once it is
    empty, probes succeed unless ``fail_probes`` is set.
    """

    endpoint = "fake.example:22"

    def __init__(self, probe_results=None, refuse=None, open_delay: float = 0.0) -> None:
        self.probe_results = list(probe_results or [])
        self.refuse = dict(refuse or {})
        self.open_delay = open_delay
        self.fail_probes = False
        self.probe_calls = 0
        self.close_calls = 0
        self.open_calls: list[tuple[str, str]] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def probe(self, timeout: float) -> float:
        self.probe_calls += 1
        if self.probe_results:
            outcome = self.probe_results.pop(0)
        else:
            outcome = not self.fail_probes
        if isinstance(outcome, BaseException):
            raise outcome
        if not outcome:
            raise ProbeTimeoutError(f"no heartbeat reply within {timeout}s")
        return 0.001

    def open_stream(self, network: str, address: str) -> socket.socket:
        self.open_calls.append((network, address))
        if self._closed:
            raise TransportUnavailableError("fake transport closed")
        if self.open_delay:
            time.sleep(self.open_delay)
        if address in self.refuse:
            raise self.refuse[address]
        local, peer = socket.socketpair()
        threading.Thread(target=_echo, args=(peer,), daemon=True).start()
        return local

    def close(self) -> None:
        self.close_calls += 1
        self._closed = True


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def stats() -> ProxyStats:
    return ProxyStats()
