"""Common utility functions."""

from typing import Final

# Size constants
BYTES_PER_KB: Final = 1024
BYTES_PER_MB: Final = BYTES_PER_KB * 1024
BYTES_PER_GB: Final = BYTES_PER_MB * 1024
BYTES_PER_TB: Final = BYTES_PER_GB * 1024

# Size units
SIZE_UNITS: Final = [
    ("B", 1),
    ("KB", BYTES_PER_KB),
    ("MB", BYTES_PER_MB),
    ("GB", BYTES_PER_GB),
    ("TB", BYTES_PER_TB),
]

MAX_PORT: Final = 65535


def format_bytes(bytes_: float) -> str:
    """Format bytes into human readable format.

    Args:
        bytes_: Number of bytes to format

    Returns:
        str: Formatted string with appropriate unit
    """
    for unit, divisor in SIZE_UNITS:
        if bytes_ < divisor * BYTES_PER_KB:
            return f"{bytes_ / divisor:.1f} {unit}"
    return f"{bytes_ / BYTES_PER_TB:.1f} TB"


def split_host_port(address: str, default_port: int | None = None) -> tuple[str, int]:
    """Split a ``host:port`` string into its parts.

    IPv6 literals must be bracketed when a port is given (``[::1]:22``).
    When ``default_port`` is set the port may be omitted.

    Args:
        address: Address to split
        default_port: Port to use when the address has none

    Returns:
        tuple[str, int]: Host and port

    Raises:
        ValueError: If the address is malformed or the port is out of range
    """
    address = address.strip()
    if not address:
        raise ValueError("empty address")

    if address.startswith("["):
        end = address.find("]")
        if end == -1:
            raise ValueError(f"missing ']' in address {address!r}")
        host = address[1:end]
        rest = address[end + 1 :]
        if not rest:
            port_str = None
        elif rest.startswith(":"):
            port_str = rest[1:]
        else:
            raise ValueError(f"unexpected text after ']' in address {address!r}")
    elif address.count(":") == 1:
        host, port_str = address.split(":")
    elif ":" in address:
        # bare IPv6 literal without a port
        host, port_str = address, None
    else:
        host, port_str = address, None

    if port_str is None:
        if default_port is None:
            raise ValueError(f"missing port in address {address!r}")
        port = default_port
    else:
        if not port_str.isdigit():
            raise ValueError(f"invalid port in address {address!r}")
        port = int(port_str)

    if not 0 <= port <= MAX_PORT:
        raise ValueError(f"port out of range in address {address!r}")

    return host, port


def join_host_port(host: str, port: int) -> str:
    """Join host and port, bracketing IPv6 literals."""
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"
