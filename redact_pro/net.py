"""Host checks shared by the remote fetch proxy and the local AI endpoint."""

from __future__ import annotations
import ipaddress
import re
import socket
from urllib.parse import SplitResult, urlsplit

from .exceptions import ExternalCallError, ExternalCallErrorKind

_BLOCKED_NETWORKS = tuple(
    ipaddress.ip_network(n)
    for n in (
        "10.0.0.0/8",
        "172.16.0.0/12",
        "192.168.0.0/16",
        "127.0.0.0/8",
        "169.254.0.0/16",
        "0.0.0.0/8",
        "100.64.0.0/10",
        "198.18.0.0/15",
    )
)
_METADATA_HOSTS = frozenset({"metadata.google.internal", "metadata.google.com", "metadata"})
_LOCAL_ENDPOINT_HOSTS = frozenset({"localhost", "127.0.0.1", "::1", "[::1]", "0.0.0.0"})
# shorthand IPv4 forms: 2130706433, 127.1, 0x7f000001, 0177.0.0.1
_NUMERIC_HOST = re.compile(r"^(?:0x[0-9a-f]*|\d+)(?:\.(?:0x[0-9a-f]*|\d+)){0,3}$")


def _bare_host(hostname: str) -> str:
    return (hostname or "").strip().lower().rstrip(".").removeprefix("[").removesuffix("]")


def is_private_or_reserved_host(hostname: str) -> bool:
    """True for loopback, private, link-local, CGNAT and cloud-metadata hosts.

    Only the literal host is checked; names are not resolved.
    """
    host = _bare_host(hostname)
    if not host:
        return True
    if host == "localhost" or host.endswith((".localhost", ".local")):
        return True
    if host in _METADATA_HOSTS:
        return True
    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        if not _NUMERIC_HOST.match(host):
            return False
        try:
            ip = ipaddress.IPv4Address(socket.inet_aton(host))
        except OSError:
            # malformed numeric host
            return True
    if isinstance(ip, ipaddress.IPv6Address):
        if ip.ipv4_mapped is not None:
            ip = ip.ipv4_mapped
        else:
            return bool(ip.is_private or ip.is_loopback or ip.is_link_local or ip.is_unspecified)
    return any(ip in net for net in _BLOCKED_NETWORKS)


def validate_target_url(raw: str) -> SplitResult:
    """Return the parsed URL, or raise ExternalCallError(BLOCKED_SSRF)."""
    try:
        parsed = urlsplit(raw.strip())
        hostname = parsed.hostname
    except ValueError as exc:
        raise ExternalCallError(ExternalCallErrorKind.BLOCKED_SSRF, "Invalid URL format") from exc
    if parsed.scheme not in ("http", "https"):
        raise ExternalCallError(
            ExternalCallErrorKind.BLOCKED_SSRF, f"Protocol not allowed: {parsed.scheme or '(none)'}"
        )
    if not hostname:
        raise ExternalCallError(ExternalCallErrorKind.BLOCKED_SSRF, "Invalid URL format")
    if is_private_or_reserved_host(hostname):
        raise ExternalCallError(
            ExternalCallErrorKind.BLOCKED_SSRF, "Access to internal/private addresses is not allowed"
        )
    if parsed.username or parsed.password:
        raise ExternalCallError(
            ExternalCallErrorKind.BLOCKED_SSRF, "URLs with credentials are not allowed"
        )
    return parsed


def is_allowed_local_endpoint(endpoint: str) -> bool:
    """Only exact loopback hosts; look-alikes such as localhost.evil.example are refused."""
    try:
        parsed = urlsplit(endpoint.strip())
        host = (parsed.hostname or "").lower()
    except ValueError:
        return False
    if parsed.scheme not in ("http", "https"):
        return False
    return host in _LOCAL_ENDPOINT_HOSTS
