"""Rate limiting for the Gigboard backend.

Clients are keyed by IP. ``X-Forwarded-For`` is honoured only when the
direct peer is a trusted proxy, so callers cannot spoof their key.
"""

import ipaddress
import os

from slowapi import Limiter
from slowapi.util import get_remote_address

from .logging_config import get_logger

logger = get_logger("gigboard.rate_limit")

# Per-route limits
FEED_RATE = "60/minute"
APPLY_RATE = "30/minute"
OWNER_ACTION_RATE = "20/minute"
ADMIN_RATE = "10/minute"

# Override with TRUSTED_PROXY_CIDRS env var (comma-separated CIDRs).
_DEFAULT_TRUSTED_CIDRS = [
    "10.0.0.0/8",
    "172.16.0.0/12",
    "192.168.0.0/16",
    "127.0.0.0/8",
    "::1/128",
]

Network = ipaddress.IPv4Network | ipaddress.IPv6Network

_trusted_networks: list[Network] | None = None


def _load_trusted_cidrs(raw: str | None = None) -> list[Network]:
    """Parse trusted proxy CIDRs, skipping malformed entries."""
    if raw is None:
        raw = os.environ.get("TRUSTED_PROXY_CIDRS", "")
    cidrs = [s.strip() for s in raw.split(",") if s.strip()] or _DEFAULT_TRUSTED_CIDRS
    networks = []
    for cidr in cidrs:
        try:
            networks.append(ipaddress.ip_network(cidr, strict=False))
        except ValueError:
            logger.warning(f"Ignoring invalid trusted proxy CIDR: {cidr!r}")
    return networks


def _get_trusted_networks() -> list[Network]:
    global _trusted_networks
    if _trusted_networks is None:
        _trusted_networks = _load_trusted_cidrs()
    return _trusted_networks


def _is_trusted_proxy(ip_str: str) -> bool:
    try:
        addr = ipaddress.ip_address(ip_str)
    except ValueError:
        return False
    return any(addr in network for network in _get_trusted_networks())


def get_client_ip(request) -> str:
    """Resolve the client IP used as the rate-limit key.

    Behind a trusted proxy the leftmost ``X-Forwarded-For`` entry wins;
    otherwise the direct peer address is used.
    """
    direct_ip = get_remote_address(request)

    if _is_trusted_proxy(direct_ip):
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            client_ip = forwarded_for.split(",")[0].strip()
            if client_ip:
                return client_ip

    return direct_ip


limiter = Limiter(key_func=get_client_ip)
