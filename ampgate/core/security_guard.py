"""SSRF policy for URLs the gateway fetches on behalf of local tools.

Only the literal host in the URL is judged; names are never resolved, so a
public name that resolves into a private range still passes.
"""

from __future__ import annotations

import ipaddress
import re
import socket
from urllib.parse import urlsplit

import httpx

from ampgate.core.errors import SecurityRejectedError
from ampgate.util.logger import logger

_ALLOWED_SCHEMES = frozenset({"http", "https"})
_BLOCKED_HOST_SUFFIXES = (".local", ".internal", ".localhost")
_CGN_NETWORK = ipaddress.ip_network("100.64.0.0/10")
_RFC1918_NETWORKS = (
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("192.168.0.0/16"),
)
_BROADCAST = ipaddress.IPv4Address("255.255.255.255")
_IPV6_ULA = ipaddress.ip_network("fc00::/7")
_IPV6_LINK_LOCAL = ipaddress.ip_network("fe80::/10")
# 127.1 / 0x7f.0.0.1 / 2130706433: forms inet_aton (and therefore the socket layer) accepts
_LEGACY_IPV4_RE = re.compile(r"^(?:0x[0-9a-f]+|[0-9]+)(?:\.(?:0x[0-9a-f]+|[0-9]+)){0,3}$", re.IGNORECASE)


def is_forbidden_ipv4(ip: ipaddress.IPv4Address) -> bool:
    return (
        ip.is_loopback
        or any(ip in network for network in _RFC1918_NETWORKS)
        or ip.is_link_local
        or ip == _BROADCAST
        or ip.is_unspecified
        or ip.is_multicast
        or ip in _CGN_NETWORK
    )


def is_forbidden_ipv6(ip: ipaddress.IPv6Address) -> bool:
    mapped = ip.ipv4_mapped
    if mapped is not None:
        return is_forbidden_ipv4(mapped)
    return (
        ip.is_loopback
        or ip.is_unspecified
        or ip.is_multicast
        or ip in _IPV6_ULA
        or ip in _IPV6_LINK_LOCAL
    )


def parse_ip_literal(host: str) -> ipaddress.IPv4Address | ipaddress.IPv6Address | None:
    candidate = host.strip("[]")
    try:
        return ipaddress.ip_address(candidate)
    except ValueError:
        pass
    if _LEGACY_IPV4_RE.match(candidate):
        try:
            return ipaddress.IPv4Address(socket.inet_aton(candidate))
        except OSError:
            return None
    return None


def validate_url(url: str) -> str:
    """Check *url* against the SSRF policy and return its normalized host.

    Raises SecurityRejectedError when the scheme, userinfo or host is not allowed.
    """
    try:
        parsed = urlsplit(url.strip())
        host = parsed.hostname
        # .port raises on malformed ports, which is a parse failure as well
        _ = parsed.port
    except ValueError as exc:
        raise SecurityRejectedError(f"url parse failed: {exc}") from exc
    try:
        # 出站请求由 httpx 构造，它拒绝的 URL（控制字符等）在这里就拦下
        httpx.URL(url)
    except httpx.InvalidURL as exc:
        raise SecurityRejectedError(f"url parse failed: {exc}") from exc

    scheme = parsed.scheme.lower()
    if scheme not in _ALLOWED_SCHEMES:
        raise SecurityRejectedError(f"unsupported scheme: {scheme or '<empty>'}")

    if parsed.username or parsed.password is not None:
        raise SecurityRejectedError("userinfo is not allowed in url")

    if not host:
        raise SecurityRejectedError("url has no host")

    ip = parse_ip_literal(host)
    if ip is not None:
        forbidden = is_forbidden_ipv4(ip) if isinstance(ip, ipaddress.IPv4Address) else is_forbidden_ipv6(ip)
        if forbidden:
            logger.warning("ssrf guard rejected address host=%s", host)
            raise SecurityRejectedError(f"access to internal address is forbidden: {host}")
        return str(ip)

    name = host.lower().rstrip(".")
    if name == "localhost" or name.endswith(_BLOCKED_HOST_SUFFIXES):
        logger.warning("ssrf guard rejected name host=%s", host)
        raise SecurityRejectedError(f"access to internal host name is forbidden: {host}")
    return name
