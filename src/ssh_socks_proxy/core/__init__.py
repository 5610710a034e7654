"""Core tunnel proxy implementation.

This package contains the core components of the tunnel proxy:
- The SSH transport handle (paramiko)
- The liveness supervisor driving heartbeats
- The dial multiplexer shared by all client connections
- The SOCKS5 protocol handler and threaded server
- Statistics tracking and user interface components
- Configuration and exception handling

The core package provides all the fundamental functionality needed
to run the proxy, while keeping the implementation details
separate from the command-line interface.
"""
