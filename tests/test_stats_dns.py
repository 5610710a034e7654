"""Tests for the statistics tracker and local DNS resolution."""

from __future__ import annotations

import socket

import dns.exception
import pytest

from ssh_socks_proxy.core.exceptions import DNSResolutionError
from ssh_socks_proxy.core.lib.dns_handler import DNSResolver


def test_counters(stats):
    stats.connection_started()
    stats.connection_started()
    stats.connection_ended()
    stats.dial_started()
    stats.dial_failed()
    stats.heartbeat_failed()
    stats.update_bytes(sent=1000, received=4000)

    assert stats.active_connections == 1
    assert stats.dials_total == 1
    assert stats.dials_failed == 1
    assert stats.heartbeat_failures == 1
    assert stats.total_bytes_sent == 1000
    assert stats.total_bytes_received == 4000
    assert stats.get_bandwidth() == pytest.approx(1000.0)
    assert stats.uptime >= 0


@pytest.fixture
def resolver(monkeypatch):
    monkeypatch.setattr(DNSResolver, "_resolve_cache", {})
    return DNSResolver(nameservers=["192.0.2.53"])


def test_system_resolution_is_cached(resolver, monkeypatch):
    lookups = []

    def fake_lookup(name):
        lookups.append(name)
        return "192.0.2.10"

    monkeypatch.setattr(socket, "gethostbyname", fake_lookup)

    assert resolver.resolve("intranet.example") == "192.0.2.10"
    assert resolver.resolve("intranet.example") == "192.0.2.10"
    assert lookups == ["intranet.example"]


def test_falls_back_to_configured_nameservers(resolver, monkeypatch):
    def no_system_dns(name):
        raise socket.gaierror("no address")

    monkeypatch.setattr(socket, "gethostbyname", no_system_dns)
    monkeypatch.setattr(resolver.resolver, "resolve", lambda name, rdtype: ["198.51.100.4"])

    assert resolver.resolve("example.org") == "198.51.100.4"


def test_unresolvable_name(resolver, monkeypatch):
    def no_system_dns(name):
        raise socket.gaierror("no address")

    def no_answer(name, rdtype):
        raise dns.exception.Timeout()

    monkeypatch.setattr(socket, "gethostbyname", no_system_dns)
    monkeypatch.setattr(resolver.resolver, "resolve", no_answer)

    with pytest.raises(DNSResolutionError):
        resolver.resolve("missing.invalid")


def test_cache_evicts_oldest_entry(resolver, monkeypatch):
    monkeypatch.setattr("ssh_socks_proxy.core.lib.dns_handler.CACHE_SIZE", 2)
    lookups = []

    def fake_lookup(name):
        lookups.append(name)
        return "192.0.2.10"

    monkeypatch.setattr(socket, "gethostbyname", fake_lookup)

    for name in ("a.example", "b.example", "c.example"):
        resolver.resolve(name)

    assert list(DNSResolver._resolve_cache) == ["b.example", "c.example"]
    resolver.resolve("a.example")
    assert lookups == ["a.example", "b.example", "c.example", "a.example"]
