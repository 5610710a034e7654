"""Command line interface modules.

This package provides the command-line tools and utilities for:
- Starting the tunneled SOCKS proxy
- Checking heartbeat round trips to the SSH server
- Reporting startup errors and exit codes

The command modules provide user-friendly interfaces to the core
proxy functionality, making it easy to start and manage
the proxy from the command line.
"""
