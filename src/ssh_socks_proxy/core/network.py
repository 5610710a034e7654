"""Local network interface checks.

This module provides functionality for:
- Listing the IP addresses assigned to local interfaces
- Validating that a listen address can actually be bound here

The SOCKS listener is meant to be reachable only from this machine or the
local network, so binding to an address that belongs to no interface is
almost always a typo in the configuration.

Example:
    if not is_local_address("127.0.0.1"):
        logger.warning("listen address is not on this machine")
"""

import ipaddress
import socket
from dataclasses import dataclass

import psutil

ALWAYS_LOCAL = ("", "0.0.0.0", "::", "localhost")


@dataclass
class NetworkInterface:
    """Network interface representation with its key properties.

    Attributes:
        name: Interface name (e.g., 'lo', 'eth0')
        ip: Address assigned to the interface
        is_up: Boolean indicating if the interface is up and running
    """

    name: str
    ip: str
    is_up: bool


def local_interfaces() -> list[NetworkInterface]:
    """Return every IPv4 and IPv6 address assigned to a local interface."""
    stats = psutil.net_if_stats()
    interfaces = []
    for name, addrs in psutil.net_if_addrs().items():
        iface_stats = stats.get(name)
        for addr in addrs:
            if addr.family not in (socket.AF_INET, socket.AF_INET6):
                continue
            ip = addr.address.split("%", 1)[0]  # strip IPv6 zone id
            interfaces.append(
                NetworkInterface(
                    name=name,
                    ip=ip,
                    is_up=bool(iface_stats and iface_stats.isup),
                )
            )
    return interfaces


def is_local_address(host: str) -> bool:
    """Check whether ``host`` can be bound on this machine.

    Wildcard addresses and localhost always pass. Other addresses must
    belong to an interface that is up. Hostnames are resolved first.
    """
    if host in ALWAYS_LOCAL:
        return True
    try:
        parsed = ipaddress.ip_address(host)
    except ValueError:
        try:
            parsed = ipaddress.ip_address(socket.gethostbyname(host))
        except OSError:
            return False
    # Linux routes the whole 127.0.0.0/8 block to lo
    if parsed.is_loopback:
        return True
    return any(iface.ip == str(parsed) and iface.is_up for iface in local_interfaces())
