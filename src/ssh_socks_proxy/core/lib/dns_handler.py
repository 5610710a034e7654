"""Local DNS resolution using dnspython.

Only used when the proxy runs with ``resolve=local``. By default domain
names travel through the tunnel unresolved and the SSH server looks them up.
"""

import socket
import threading
from typing import TYPE_CHECKING, ClassVar, Final, cast

import dns.exception
import dns.resolver
from loguru import logger

from ssh_socks_proxy.core.exceptions import DNSResolutionError

if TYPE_CHECKING:
    from dns.resolver import Resolver

# DNS resolver constants
DEFAULT_TIMEOUT: Final = 1.0  # seconds
DEFAULT_LIFETIME: Final = 3.0  # seconds
DEFAULT_NAMESERVERS: Final = [
    "1.1.1.1",  # Cloudflare
    "8.8.8.8",  # Google
    "9.9.9.9",  # Quad9
]
RECORD_TYPES: Final = ("A", "AAAA")
CACHE_SIZE: Final = 1024  # entries, oldest evicted first


class DNSResolver:
    """Resolve SOCKS domain targets on this machine before dialing."""

    # Shared across instances and bounded by CACHE_SIZE
    _resolve_cache: ClassVar[dict[str, str]] = {}
    _cache_lock: ClassVar[threading.Lock] = threading.Lock()

    def __init__(self, nameservers: list[str] | None = None) -> None:
        """Create a resolver that falls back to ``nameservers`` when system DNS fails."""
        self.resolver = cast("Resolver", dns.resolver.Resolver(configure=False))
        self.resolver.timeout = DEFAULT_TIMEOUT
        self.resolver.lifetime = DEFAULT_LIFETIME
        self.resolver.nameservers = nameservers or DEFAULT_NAMESERVERS

    def _try_system_dns(self, domain: str) -> str | None:
        try:
            return socket.gethostbyname(domain)
        except (socket.gaierror, UnicodeError) as e:
            logger.debug(f"System DNS resolution failed for {domain}: {e}")
            return None

    def _try_configured_resolver(self, domain: str) -> str | None:
        """Ask the fallback nameservers, IPv4 first."""
        for rdtype in RECORD_TYPES:
            try:
                answer = self.resolver.resolve(domain, rdtype)
            except dns.exception.DNSException as e:
                logger.debug(f"Fallback {rdtype} lookup failed for {domain}: {e}")
                continue
            return str(answer[0])
        return None

    def resolve(self, domain: str) -> str:
        """Resolve domain name to an IP address.

        Args:
            domain: Domain name to resolve

        Returns:
            str: IPv4 address, or IPv6 when the name has no A record

        Raises:
            DNSResolutionError: If every lookup fails
        """
        with self._cache_lock:
            cached = self._resolve_cache.get(domain)
        if cached is not None:
            return cached

        ip = self._try_system_dns(domain) or self._try_configured_resolver(domain)
        if not ip:
            logger.warning(f"Could not resolve {domain} locally")
            raise DNSResolutionError(f"Could not resolve {domain} using system DNS or {self.resolver.nameservers}")

        with self._cache_lock:
            if len(self._resolve_cache) >= CACHE_SIZE:
                # dicts keep insertion order
                del self._resolve_cache[next(iter(self._resolve_cache))]
            self._resolve_cache[domain] = ip
        return ip


# Global resolver instance
dns_resolver = DNSResolver()
