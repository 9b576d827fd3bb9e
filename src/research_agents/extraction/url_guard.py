"""URL validation that keeps extraction away from local and private networks."""

from __future__ import annotations

import ipaddress
import re
import socket
from urllib.parse import urlparse

from research_agents.framework.errors import ExtractionError, ExtractionFailure

_BLOCKED_HOSTNAMES = frozenset({"localhost", "localhost.localdomain", "ip6-localhost"})
_BLOCKED_SUFFIXES = (".localhost", ".local", ".internal")
_LEGACY_IPV4_RE = re.compile(r"(?:0x[0-9a-f]+|\d+)(?:\.(?:0x[0-9a-f]+|\d+)){0,3}")


def validate_url(url: str) -> str:
    """Return the normalized URL or raise ``ExtractionError``.

    Hosts are checked literally, numeric IPv4 shorthands included; names are
    not resolved.
    """

    candidate = (url or "").strip()
    try:
        parsed = urlparse(candidate)
        hostname = parsed.hostname
    except ValueError as exc:
        raise _invalid(candidate, f"Invalid URL format: {exc}") from exc

    if parsed.scheme not in {"http", "https"}:
        raise _invalid(candidate, "Only HTTP and HTTPS URLs are supported")
    if not hostname:
        raise _invalid(candidate, "Invalid URL format: missing host")

    if is_private_host(hostname):
        raise ExtractionError(
            "Local and private network URLs are not allowed",
            reason=ExtractionFailure.PRIVATE_NETWORK,
            source=candidate,
        )
    return candidate


def is_private_host(hostname: str) -> bool:
    host = hostname.strip("[]").rstrip(".").lower()
    if host in _BLOCKED_HOSTNAMES or host.endswith(_BLOCKED_SUFFIXES):
        return True
    address = _parse_address(host)
    if address is None:
        return False
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped is not None:
        address = address.ipv4_mapped
    return (
        address.is_private
        or address.is_loopback
        or address.is_link_local
        or address.is_unspecified
        or address.is_reserved
        or address.is_multicast
    )


def _parse_address(host: str) -> ipaddress.IPv4Address | ipaddress.IPv6Address | None:
    try:
        return ipaddress.ip_address(host)
    except ValueError:
        pass
    # Shorthand, integer, hex and octal IPv4 forms that resolvers still accept.
    if not _LEGACY_IPV4_RE.fullmatch(host):
        return None
    try:
        return ipaddress.IPv4Address(socket.inet_aton(host))
    except OSError:
        return None


def _invalid(url: str, message: str) -> ExtractionError:
    return ExtractionError(message, reason=ExtractionFailure.INVALID_URL, source=url)
