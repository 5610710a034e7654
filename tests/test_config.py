"""Tests for configuration parsing and address helpers."""

from __future__ import annotations

from pathlib import Path

import pytest

from ssh_socks_proxy.core.config import (
    DEFAULT_HEARTBEAT_INTERVAL,
    DEFAULT_MAX_HEARTBEAT_FAILURES,
    HostKeyPolicy,
    ResolveMode,
    TunnelConfig,
)
from ssh_socks_proxy.core.exceptions import ConfigError
from ssh_socks_proxy.core.network import NetworkInterface, is_local_address
from ssh_socks_proxy.core.utils.utils import format_bytes, join_host_port, split_host_port


@pytest.mark.parametrize(
    "address, default_port, expected",
    [
        ("example.com:22", None, ("example.com", 22)),
        ("example.com", 22, ("example.com", 22)),
        ("10.0.0.1:2222", 22, ("10.0.0.1", 2222)),
        ("[::1]:1080", None, ("::1", 1080)),
        ("[2001:db8::1]", 22, ("2001:db8::1", 22)),
        ("2001:db8::1", 22, ("2001:db8::1", 22)),
        (":1080", None, ("", 1080)),
        ("  127.0.0.1:0 ", None, ("127.0.0.1", 0)),
    ],
)
def test_split_host_port(address, default_port, expected):
    assert split_host_port(address, default_port) == expected


@pytest.mark.parametrize(
    "address",
    ["", "example.com", "example.com:http", "example.com:70000", "[::1", "[::1]x", "[::1]"],
)
def test_split_host_port_rejects(address):
    with pytest.raises(ValueError):
        split_host_port(address)


def test_join_host_port_brackets_ipv6():
    assert join_host_port("10.0.0.1", 80) == "10.0.0.1:80"
    assert join_host_port("2001:db8::1", 443) == "[2001:db8::1]:443"


def test_format_bytes():
    assert format_bytes(512) == "512.0 B"
    assert format_bytes(2048) == "2.0 KB"
    assert format_bytes(5 * 1024**3) == "5.0 GB"


@pytest.fixture
def key_file(tmp_path) -> Path:
    key = tmp_path / "id_ed25519"
    key.write_text("placeholder")
    return key


def _config(key_file, **overrides) -> TunnelConfig:
    options = {"key_path": key_file, "ssh_address": "bastion.example.com", "listen_address": "127.0.0.1:1080"}
    options.update(overrides)
    return TunnelConfig(**options)


class TestTunnelConfig:
    def test_defaults(self, key_file):
        config = _config(key_file)
        config.validate()
        assert config.ssh_endpoint == ("bastion.example.com", 22)
        assert config.listen_endpoint == ("127.0.0.1", 1080)
        assert config.host_key_policy is HostKeyPolicy.STRICT
        assert config.resolve is ResolveMode.REMOTE
        assert config.heartbeat_interval == DEFAULT_HEARTBEAT_INTERVAL
        assert config.max_heartbeat_failures == DEFAULT_MAX_HEARTBEAT_FAILURES

    def test_user_defaults_to_local_login(self, key_file, monkeypatch):
        monkeypatch.setattr("getpass.getuser", lambda: "alice")
        assert _config(key_file).user == "alice"
        assert _config(key_file, user="tunnel").user == "tunnel"

    def test_strings_are_coerced_to_enums(self, key_file):
        config = _config(key_file, host_key_policy="warn", resolve="local")
        assert config.host_key_policy is HostKeyPolicy.WARN
        assert config.resolve is ResolveMode.LOCAL

    @pytest.mark.parametrize("field, value", [("host_key_policy", "trust-me"), ("resolve", "both")])
    def test_unknown_enum_values(self, key_file, field, value):
        with pytest.raises(ConfigError):
            _config(key_file, **{field: value})

    def test_key_path_is_expanded(self, key_file):
        config = _config(key_file, key_path="~/.ssh/id_rsa")
        assert "~" not in str(config.key_path)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"ssh_address": ":22"},
            {"ssh_address": "bastion:notaport"},
            {"listen_address": "127.0.0.1"},
            {"listen_address": "127.0.0.1:99999"},
            {"heartbeat_interval": 0},
            {"heartbeat_timeout": -1},
            {"handshake_timeout": 0},
            {"dial_timeout": 0},
            {"max_heartbeat_failures": 0},
        ],
    )
    def test_validate_rejects(self, key_file, overrides):
        with pytest.raises(ConfigError):
            _config(key_file, **overrides).validate()

    def test_missing_key(self, tmp_path):
        config = _config(tmp_path / "missing")
        with pytest.raises(ConfigError, match="Private key not found"):
            config.validate()
        config.validate(check_key=False)

    def test_missing_known_hosts(self, key_file, tmp_path):
        with pytest.raises(ConfigError):
            _config(key_file, known_hosts=tmp_path / "known_hosts").validate()


@pytest.mark.parametrize("host", ["", "0.0.0.0", "::", "localhost", "127.0.0.1", "127.0.0.2", "::1"])
def test_loopback_and_wildcard_are_local(host):
    assert is_local_address(host)


def test_documentation_address_is_not_local():
    assert not is_local_address("203.0.113.77")


@pytest.mark.parametrize("is_up, expected", [(True, True), (False, False)])
def test_interface_address_must_be_up(monkeypatch, is_up, expected):
    interfaces = [NetworkInterface(name="eth0", ip="192.0.2.33", is_up=is_up)]
    monkeypatch.setattr("ssh_socks_proxy.core.network.local_interfaces", lambda: interfaces)
    assert is_local_address("192.0.2.33") is expected
