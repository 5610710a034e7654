"""Tests for the paramiko-backed transport handle."""

from __future__ import annotations

import threading
import time
from unittest.mock import MagicMock

import paramiko
import pytest

from ssh_socks_proxy.core.config import HostKeyPolicy, TunnelConfig
from ssh_socks_proxy.core.exceptions import (
    ConfigError,
    HandshakeError,
    ProbeTimeoutError,
    StreamOpenError,
    TransportError,
    TransportUnavailableError,
    UnsupportedNetworkError,
)
from ssh_socks_proxy.core.lib.socks_handler import RESP_GENERAL_FAILURE, reply_code_for
from ssh_socks_proxy.core.transport import (
    KEEPALIVE_REQUEST,
    ORIGIN_ADDR,
    SSHTransport,
    Stream,
    TransportHandle,
    connect_transport,
    load_private_key,
)


@pytest.fixture
def paramiko_transport():
    transport = MagicMock(spec=paramiko.Transport)
    transport.is_active.return_value = True
    transport.global_request.return_value = paramiko.Message()
    return transport


@pytest.fixture
def client():
    return MagicMock(spec=paramiko.SSHClient)


@pytest.fixture
def transport(paramiko_transport, client):
    return SSHTransport(paramiko_transport, "bastion.example.com:22", client=client, dial_timeout=5)


class TestProbe:
    def test_reply_is_an_ack(self, transport, paramiko_transport):
        rtt = transport.probe(timeout=1)
        assert rtt >= 0
        paramiko_transport.global_request.assert_called_once_with(KEEPALIVE_REQUEST, wait=True)

    def test_refused_request_on_live_session_is_an_ack(self, transport, paramiko_transport):
        paramiko_transport.global_request.return_value = None
        assert transport.probe(timeout=1) >= 0

    def test_dead_session_fails_without_sending(self, transport, paramiko_transport):
        paramiko_transport.is_active.return_value = False
        with pytest.raises(TransportError):
            transport.probe(timeout=1)
        paramiko_transport.global_request.assert_not_called()

    def test_session_drop_during_probe_is_a_failure(self, transport, paramiko_transport):
        paramiko_transport.global_request.return_value = None
        paramiko_transport.is_active.side_effect = [True, False]
        with pytest.raises(TransportError):
            transport.probe(timeout=1)

    def test_request_error_is_a_transport_error(self, transport, paramiko_transport):
        paramiko_transport.global_request.side_effect = EOFError("socket closed")
        with pytest.raises(TransportError):
            transport.probe(timeout=1)

    def test_no_reply_times_out_and_blocks_next_probe(self, transport, paramiko_transport):
        release = threading.Event()

        def hang(*args, **kwargs):
            release.wait(5)
            return paramiko.Message()

        paramiko_transport.global_request.side_effect = hang

        with pytest.raises(ProbeTimeoutError):
            transport.probe(timeout=0.05)
        with pytest.raises(ProbeTimeoutError):
            transport.probe(timeout=0.05)
        assert paramiko_transport.global_request.call_count == 1

        release.set()
        paramiko_transport.global_request.side_effect = None
        for _ in range(50):
            try:
                transport.probe(timeout=1)
                break
            except ProbeTimeoutError:
                time.sleep(0.02)
        else:
            pytest.fail("heartbeats never resumed after the pending reply arrived")


class TestOpenStream:
    def test_opens_direct_tcpip_channel(self, transport, paramiko_transport):
        channel = MagicMock(spec=paramiko.Channel)
        paramiko_transport.open_channel.return_value = channel

        assert transport.open_stream("tcp", "10.0.0.5:80") is channel
        paramiko_transport.open_channel.assert_called_once_with(
            "direct-tcpip", dest_addr=("10.0.0.5", 80), src_addr=ORIGIN_ADDR, timeout=5
        )
        assert transport.open_streams == 1

    def test_ipv6_destination(self, transport, paramiko_transport):
        transport.open_stream("tcp6", "[2001:db8::1]:443")
        _, kwargs = paramiko_transport.open_channel.call_args
        assert kwargs["dest_addr"] == ("2001:db8::1", 443)

    def test_udp_is_unsupported(self, transport, paramiko_transport):
        with pytest.raises(UnsupportedNetworkError):
            transport.open_stream("udp", "10.0.0.5:53")
        paramiko_transport.open_channel.assert_not_called()

    def test_refusal_maps_to_stream_open_error(self, transport, paramiko_transport):
        paramiko_transport.open_channel.side_effect = paramiko.ChannelException(2, "Connect failed")
        with pytest.raises(StreamOpenError) as excinfo:
            transport.open_stream("tcp", "10.0.0.5:81")
        assert excinfo.value.code == 2
        assert excinfo.value.reason == "Connect failed"

    def test_session_failure_maps_to_transport_error(self, transport, paramiko_transport):
        paramiko_transport.open_channel.side_effect = paramiko.SSHException("SSH session not active")
        with pytest.raises(TransportError):
            transport.open_stream("tcp", "10.0.0.5:80")

    @pytest.mark.parametrize("error", [EOFError(), ConnectionResetError(104, "Connection reset by peer")])
    def test_dropped_session_maps_to_transport_error(self, transport, paramiko_transport, error):
        paramiko_transport.open_channel.side_effect = error
        with pytest.raises(TransportError) as excinfo:
            transport.open_stream("tcp", "10.0.0.5:80")
        assert excinfo.value.__cause__ is error
        assert reply_code_for(excinfo.value) == RESP_GENERAL_FAILURE

    def test_malformed_address(self, transport):
        with pytest.raises(ValueError):
            transport.open_stream("tcp", "no-port-here")

    def test_closed_transport_refuses(self, transport, paramiko_transport):
        transport.close()
        with pytest.raises(TransportUnavailableError):
            transport.open_stream("tcp", "10.0.0.5:80")
        paramiko_transport.open_channel.assert_not_called()


class TestClose:
    def test_closes_channels_then_client(self, transport, paramiko_transport, client):
        channels = [MagicMock(spec=paramiko.Channel) for _ in range(3)]
        paramiko_transport.open_channel.side_effect = channels
        for i in range(3):
            transport.open_stream("tcp", f"10.0.0.{i}:80")

        transport.close()
        transport.close()

        for channel in channels:
            channel.close.assert_called_once()
        client.close.assert_called_once()
        assert transport.closed
        assert transport.open_streams == 0

    def test_without_client_closes_transport(self, paramiko_transport):
        transport = SSHTransport(paramiko_transport, "bastion.example.com:22")
        transport.close()
        paramiko_transport.close.assert_called_once()

    def test_closed_reflects_session_state(self, transport, paramiko_transport):
        assert not transport.closed
        paramiko_transport.is_active.return_value = False
        assert transport.closed


def test_load_private_key_wraps_errors(tmp_path):
    key = tmp_path / "id_broken"
    key.write_text("not a key")
    with pytest.raises(ConfigError):
        load_private_key(key)


class TestConnect:
    @pytest.fixture
    def config(self, tmp_path):
        key = tmp_path / "id_ed25519"
        key.write_text("placeholder")
        return TunnelConfig(
            key_path=key,
            ssh_address="bastion.example.com:2222",
            listen_address="127.0.0.1:1080",
            user="tunnel",
            host_key_policy=HostKeyPolicy.INSECURE,
            handshake_timeout=3,
            dial_timeout=4,
        )

    @pytest.fixture
    def ssh_client(self, monkeypatch):
        client = MagicMock(spec=paramiko.SSHClient)
        monkeypatch.setattr("ssh_socks_proxy.core.transport.load_private_key", lambda *a: "pkey")
        monkeypatch.setattr(paramiko, "SSHClient", lambda: client)
        return client

    def test_connects_with_key_only(self, config, ssh_client):
        session = MagicMock(spec=paramiko.Transport)
        session.is_active.return_value = True
        ssh_client.get_transport.return_value = session

        transport = connect_transport(config)

        assert transport.endpoint == "bastion.example.com:2222"
        assert transport.dial_timeout == 4
        _, kwargs = ssh_client.connect.call_args
        assert kwargs["port"] == 2222
        assert kwargs["username"] == "tunnel"
        assert kwargs["pkey"] == "pkey"
        assert kwargs["allow_agent"] is False
        assert kwargs["look_for_keys"] is False
        policy = ssh_client.set_missing_host_key_policy.call_args.args[0]
        assert isinstance(policy, paramiko.AutoAddPolicy)

    @pytest.mark.parametrize(
        "error",
        [
            paramiko.AuthenticationException("denied"),
            paramiko.SSHException("banner timeout"),
            ConnectionRefusedError("refused"),
        ],
    )
    def test_failures_become_handshake_errors(self, config, ssh_client, error):
        ssh_client.connect.side_effect = error
        with pytest.raises(HandshakeError):
            connect_transport(config)
        ssh_client.close.assert_called_once()

    def test_inactive_session_after_auth(self, config, ssh_client):
        ssh_client.get_transport.return_value = None
        with pytest.raises(HandshakeError):
            connect_transport(config)


def test_transports_satisfy_handle_protocol(transport, fake_transport):
    assert isinstance(transport, TransportHandle)
    assert isinstance(fake_transport, TransportHandle)
    assert not isinstance(object(), TransportHandle)


def test_streams_satisfy_stream_protocol(fake_transport):
    stream = fake_transport.open_stream("tcp", "10.0.0.5:80")
    try:
        assert isinstance(stream, Stream)
    finally:
        stream.close()
    assert isinstance(MagicMock(spec=paramiko.Channel), Stream)
