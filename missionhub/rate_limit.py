"""Rate limiting for the MissionHub API.

Requests are bucketed by client IP. ``X-Forwarded-For`` is honoured only
when the direct peer sits in ``TRUSTED_PROXY_CIDRS``, otherwise any caller
could pick its own bucket.
"""

import ipaddress
from functools import lru_cache

from slowapi import Limiter
from slowapi.util import get_remote_address

from .config import get_settings
from .logging_config import get_logger

logger = get_logger("rate_limit")

Network = ipaddress.IPv4Network | ipaddress.IPv6Network


def _load_trusted_cidrs(cidrs) -> list[Network]:
    """Parse CIDR strings, logging and skipping the ones that don't parse."""
    networks = []
    for cidr in cidrs:
        try:
            networks.append(ipaddress.ip_network(cidr.strip(), strict=False))
        except ValueError:
            logger.warning(f"Ignoring invalid trusted proxy CIDR: {cidr!r}")
    return networks


@lru_cache
def _trusted_networks(cidrs: tuple[str, ...]) -> tuple[Network, ...]:
    return tuple(_load_trusted_cidrs(cidrs))


def _is_trusted_proxy(ip_str: str) -> bool:
    networks = _trusted_networks(tuple(get_settings().trusted_proxy_cidrs))
    try:
        peer = ipaddress.ip_address(ip_str)
    except ValueError:
        return False
    return any(peer in network for network in networks)


def get_client_ip(request) -> str:
    """Rate-limit key: leftmost forwarded address behind a trusted proxy, else the peer."""
    peer = get_remote_address(request)
    if not _is_trusted_proxy(peer):
        return peer
    forwarded = request.headers.get("x-forwarded-for", "")
    return forwarded.split(",")[0].strip() or peer


limiter = Limiter(key_func=get_client_ip, enabled=get_settings().rate_limit_enabled)
