"""Outbound HTTP plumbing shared by the preview fetcher and the image proxy."""

import ipaddress
import re
import socket
from collections.abc import Awaitable, Callable

import httpx

HTML_ACCEPT = "text/html,application/xhtml+xml,application/xml"
IMAGE_ACCEPT = "image/avif,image/webp,image/apng,image/*,*/*;q=0.8"

# Hostnames that always resolve to the local machine
LOCAL_HOSTNAMES = {"localhost", "localhost.localdomain", "ip6-localhost"}

# Digits, hex and octal parts joined by dots, as inet_aton reads them
_IPV4_SHORTHAND_REGEX = re.compile(
    r"(?:0x[0-9a-f]*|[0-9]+)(?:\.(?:0x[0-9a-f]*|[0-9]+)){0,3}", re.IGNORECASE
)
_FORBIDDEN_HOST_CHARS = set("#/<>?@[\\]^|%\"`{}")

RequestHook = Callable[[httpx.Request], Awaitable[None]]


def build_async_client(
    *,
    timeout: float,
    user_agent: str,
    accept: str | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    request_hooks: list[RequestHook] | None = None,
) -> httpx.AsyncClient:
    """Create an AsyncClient that follows redirects and sends our user agent.

    Args:
        timeout: Per-operation timeout in seconds (callers also bound the total)
        user_agent: User-Agent header value
        accept: Optional Accept header value
        transport: Optional transport override (tests use httpx.MockTransport)
        request_hooks: Awaited with every outgoing request, redirect hops included
    """
    headers = {"User-Agent": user_agent}
    if accept:
        headers["Accept"] = accept
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout),
        follow_redirects=True,
        headers=headers,
        transport=transport,
        event_hooks={"request": list(request_hooks or [])},
    )


def host_matches(hostname: str | None, domain: str) -> bool:
    """True when hostname is ``domain`` or one of its subdomains."""
    if not hostname:
        return False
    hostname = hostname.lower().rstrip(".")
    return hostname == domain or hostname.endswith("." + domain)


def parse_ip_host(hostname: str) -> ipaddress.IPv4Address | ipaddress.IPv6Address | None:
    """Interpret a host as an IP literal, including IPv4 shorthand the resolver accepts.

    ``2130706433``, ``0x7f.1`` and ``127.1`` all name 127.0.0.1.
    """
    try:
        return ipaddress.ip_address(hostname.strip("[]"))
    except ValueError:
        pass
    if not _IPV4_SHORTHAND_REGEX.fullmatch(hostname):
        return None
    try:
        return ipaddress.IPv4Address(socket.inet_aton(hostname))
    except OSError:
        return None


def is_valid_hostname(hostname: str | None) -> bool:
    """Reject hosts a browser URL parser would refuse (whitespace, controls, delimiters)."""
    if not hostname:
        return False
    if any(ch.isspace() or ord(ch) < 0x20 or ord(ch) == 0x7F for ch in hostname):
        return False
    if any(ch in _FORBIDDEN_HOST_CHARS for ch in hostname):
        return False
    if ":" in hostname:
        # Only bracketed IPv6 literals may carry colons
        try:
            ipaddress.IPv6Address(hostname)
        except ValueError:
            return False
    return True


def is_private_host(hostname: str | None) -> bool:
    """True for localhost names and IP literals outside the public address space."""
    if not hostname:
        return True
    hostname = hostname.lower().rstrip(".")
    if hostname in LOCAL_HOSTNAMES or hostname.endswith(".localhost"):
        return True
    address = parse_ip_host(hostname)
    if address is None:
        # Numeric hosts that are not valid addresses never name a public site
        return bool(_IPV4_SHORTHAND_REGEX.fullmatch(hostname))
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped is not None:
        address = address.ipv4_mapped
    return not address.is_global
