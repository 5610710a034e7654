"""Utility functions and helpers."""

from ssh_socks_proxy.core.utils.utils import format_bytes, join_host_port, split_host_port

__all__ = ["format_bytes", "join_host_port", "split_host_port"]
