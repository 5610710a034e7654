"""Custom exceptions for the tunnel proxy.

This module defines the exception hierarchy used throughout the proxy.
The exceptions separate failures by how far they are allowed to spread:
- Configuration and handshake errors stop the process at startup
- Transport errors describe a broken or closed SSH session
- Stream open errors belong to a single dial and a single client
- DNS errors belong to a single client request

The SOCKS front-end catches these per connection and turns them into
protocol replies, so none of them ever take down unrelated connections.

Example:
    try:
        stream = dialer.dial("tcp", "example.com:443")
    except TransportUnavailableError:
        # tunnel is gone, reply with a general failure
        ...
"""


class ProxyError(Exception):
    """Base exception for proxy errors."""


class ConfigError(ProxyError):
    """Raised when the tunnel configuration is invalid."""


class HandshakeError(ProxyError):
    """Raised when the SSH transport cannot be established."""


class TransportError(ProxyError):
    """Raised when the SSH transport is broken or closed."""


class TransportUnavailableError(TransportError):
    """Raised when dialing through a transport that has been terminated."""


class ProbeTimeoutError(TransportError):
    """Raised when a heartbeat gets no acknowledgement in time."""


class StreamOpenError(ProxyError):
    """Raised when the remote end refuses to open a stream.

    Attributes:
        code: SSH channel open failure code (RFC 4254 section 5.1)
        reason: Human readable reason sent by the server
    """

    def __init__(self, code: int, reason: str) -> None:
        super().__init__(f"{reason} (code {code})")
        self.code = code
        self.reason = reason


class UnsupportedNetworkError(ProxyError):
    """Raised when a dial asks for a network the transport cannot carry."""


class DNSResolutionError(ProxyError):
    """Raised when DNS resolution fails."""
