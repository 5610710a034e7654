"""SOCKS protocol handler implementation for the tunnel proxy.

This module implements the SOCKS5 protocol according to RFC 1928, providing:
- Protocol negotiation and handshaking
- Authentication methods (currently no-auth)
- Address type handling (IPv4, IPv6 and domain names)
- Optional local DNS resolution
- Outbound connections through the server's dialer
- Bi-directional data forwarding
- Mapping of dial failures to SOCKS reply codes

The handler never opens sockets to the destination itself. Every CONNECT is
handed to ``server.dialer.dial``, which carries it over the SSH tunnel.

Example:
    # The handler is automatically used by the SocksProxy server class
    server = SocksProxy((host, port), SocksHandler, dialer=dialer)
    server.serve_forever()
"""

import socket
import socketserver
import struct
import threading
from typing import Final

from loguru import logger

from ssh_socks_proxy.core.dialer import force_close
from ssh_socks_proxy.core.exceptions import (
    DNSResolutionError,
    StreamOpenError,
    TransportError,
    UnsupportedNetworkError,
)
from ssh_socks_proxy.core.lib.proxy_stats import proxy_stats
from ssh_socks_proxy.core.utils.prompt.socks_ui import socks_ui
from ssh_socks_proxy.core.utils.utils import join_host_port

# SOCKS protocol constants
SOCKS_VERSION: Final = 5
CONNECT_CMD: Final = 1
ADDR_TYPE_IPV4: Final = 1
ADDR_TYPE_DOMAIN: Final = 3
ADDR_TYPE_IPV6: Final = 4
AUTH_NONE: Final = 0
AUTH_NO_ACCEPTABLE: Final = 0xFF

# Response codes
RESP_SUCCESS: Final = 0
RESP_GENERAL_FAILURE: Final = 1
RESP_NOT_ALLOWED: Final = 2
RESP_NETWORK_UNREACHABLE: Final = 3
RESP_HOST_UNREACHABLE: Final = 4
RESP_CONNECTION_REFUSED: Final = 5
RESP_CMD_NOT_SUPPORTED: Final = 7
RESP_ADDR_NOT_SUPPORTED: Final = 8

# SSH channel open failure code (RFC 4254)
OPEN_ADMINISTRATIVELY_PROHIBITED: Final = 1

# Tunneled streams have no local socket address to report
DEFAULT_BIND_ADDR: Final = "0.0.0.0"
BUFFER_SIZE: Final = 65536


def reply_code_for(error: Exception) -> int:
    """Translate a dial failure into a SOCKS5 reply code."""
    if isinstance(error, UnsupportedNetworkError):
        return RESP_CMD_NOT_SUPPORTED
    if isinstance(error, StreamOpenError):
        if error.code == OPEN_ADMINISTRATIVELY_PROHIBITED:
            return RESP_NOT_ALLOWED
        reason = error.reason.lower()
        if "refused" in reason:
            return RESP_CONNECTION_REFUSED
        if "network is unreachable" in reason:
            return RESP_NETWORK_UNREACHABLE
        return RESP_HOST_UNREACHABLE
    if isinstance(error, ConnectionRefusedError):
        return RESP_CONNECTION_REFUSED
    if isinstance(error, TransportError):
        return RESP_GENERAL_FAILURE
    if isinstance(error, (DNSResolutionError, OSError)):
        return RESP_HOST_UNREACHABLE
    return RESP_GENERAL_FAILURE


class SocksHandler(socketserver.BaseRequestHandler):
    """Handle incoming SOCKS5 connections."""

    def _recv_exact(self, size: int) -> bytes:
        """Read exactly ``size`` bytes from the client."""
        data = b""
        while len(data) < size:
            chunk = self.request.recv(size - len(data))
            if not chunk:
                raise ConnectionError("client closed the connection during negotiation")
            data += chunk
        return data

    def _negotiate(self) -> bool:
        """Perform SOCKS5 method negotiation."""
        version, nmethods = struct.unpack("!BB", self._recv_exact(2))
        if version != SOCKS_VERSION:
            return False

        methods = self._recv_exact(nmethods)
        if AUTH_NONE not in methods:
            self.request.sendall(struct.pack("!BB", SOCKS_VERSION, AUTH_NO_ACCEPTABLE))
            return False

        self.request.sendall(struct.pack("!BB", SOCKS_VERSION, AUTH_NONE))
        return True

    def _send_response(self, status: int, bind_addr: str = DEFAULT_BIND_ADDR, bind_port: int = 0) -> None:
        """Send SOCKS5 response."""
        response = struct.pack("!BBBB", SOCKS_VERSION, status, 0, ADDR_TYPE_IPV4)
        response += socket.inet_aton(bind_addr) + struct.pack("!H", bind_port)
        self.request.sendall(response)

    def _read_address(self, addr_type: int) -> str | None:
        """Read the destination host for the given address type."""
        if addr_type == ADDR_TYPE_IPV4:
            return socket.inet_ntop(socket.AF_INET, self._recv_exact(4))
        if addr_type == ADDR_TYPE_IPV6:
            return socket.inet_ntop(socket.AF_INET6, self._recv_exact(16))
        if addr_type == ADDR_TYPE_DOMAIN:
            domain_len = struct.unpack("!B", self._recv_exact(1))[0]
            return self._recv_exact(domain_len).decode("idna")
        return None

    def handle_connect(self, host: str, port: int, is_domain: bool = False) -> None:
        """Handle CONNECT command by dialing through the tunnel."""
        dialer = self.server.dialer
        target = join_host_port(host, port)

        try:
            resolver = getattr(self.server, "resolver", None)
            if is_domain and resolver is not None:
                host = resolver.resolve(host)
            stream = dialer.dial("tcp", join_host_port(host, port))
        except Exception as exc:
            code = reply_code_for(exc)
            logger.info(f"CONNECT {target} from {self.client_address[0]} failed: {exc} (reply {code})")
            self._send_response(code)
            return

        logger.debug(f"CONNECT {target} from {self.client_address[0]} established")
        socks_ui.target_connected(self.client_address, target)
        try:
            self._send_response(RESP_SUCCESS)
            self.forward(self.request, stream)
        finally:
            release = getattr(dialer, "release", None)
            if release is not None:
                release(stream)
            force_close(stream)

    def handle(self) -> None:
        """Handle incoming SOCKS5 connection."""
        client_addr = self.client_address
        socks_ui.connection_started(client_addr)
        proxy_stats.connection_started()
        try:
            if not self._negotiate():
                return

            version, cmd, _, addr_type = struct.unpack("!BBBB", self._recv_exact(4))
            if version != SOCKS_VERSION:
                return

            host = self._read_address(addr_type)
            if host is None:
                self._send_response(RESP_ADDR_NOT_SUPPORTED)
                return
            port = struct.unpack("!H", self._recv_exact(2))[0]

            if cmd != CONNECT_CMD:
                self._send_response(RESP_CMD_NOT_SUPPORTED)
                return

            self.handle_connect(host, port, is_domain=addr_type == ADDR_TYPE_DOMAIN)

        except (ConnectionError, UnicodeError, struct.error) as exc:
            logger.debug(f"SOCKS negotiation with {client_addr[0]} aborted: {exc}")
        except OSError as exc:
            logger.debug(f"SOCKS connection with {client_addr[0]} failed: {exc}")
        except Exception:
            logger.exception(f"Error handling SOCKS connection from {client_addr[0]}")
        finally:
            socks_ui.connection_ended(client_addr)
            proxy_stats.connection_ended()

    def _pipe(self, src, dst, outbound: bool) -> None:
        """Copy bytes from ``src`` to ``dst`` until either side stops."""
        try:
            while True:
                data = src.recv(BUFFER_SIZE)
                if not data:
                    break
                dst.sendall(data)
                if outbound:
                    proxy_stats.update_bytes(len(data), 0)
                else:
                    proxy_stats.update_bytes(0, len(data))
        except (OSError, EOFError) as sock_error:
            logger.debug(f"Forward error: {sock_error}")
        finally:
            # Wake the opposite direction, which may be blocked in recv
            for sock in (src, dst):
                try:
                    sock.shutdown(socket.SHUT_RDWR)
                except (OSError, EOFError):
                    pass

    def forward(self, local: socket.socket, remote) -> None:
        """Forward data between the client socket and the tunneled stream."""
        upstream = threading.Thread(
            target=self._pipe,
            args=(local, remote, True),
            name=f"relay-{self.client_address[1]}",
            daemon=True,
        )
        upstream.start()
        self._pipe(remote, local, False)
        upstream.join()
