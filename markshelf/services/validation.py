from __future__ import annotations

import ipaddress
import socket
from urllib.parse import SplitResult, urlsplit

from markshelf.services.errors import InvalidURL

ALLOWED_SCHEMES = {"http", "https"}

_LOOPBACK_LITERALS = {"127.0.0.1", "0.0.0.0", "::1"}


def _ip_literal(hostname: str):
    try:
        return ipaddress.ip_address(hostname)
    except ValueError:
        pass
    # "127.1", "2130706433" and "0x7f.0.0.1" all name 127.0.0.1.
    try:
        return ipaddress.IPv4Address(socket.inet_aton(hostname))
    except (OSError, ValueError):
        return None


def is_private_hostname(hostname: str) -> bool:
    if hostname == "localhost":
        return True

    address = _ip_literal(hostname)
    if address is None:
        return False
    if str(address) in _LOOPBACK_LITERALS:
        return True
    if address.version != 4:
        return False

    octets = str(address).split(".")
    if octets[0] == "10":
        return True
    if octets[0] == "192" and octets[1] == "168":
        return True
    if octets[0] == "172" and 16 <= int(octets[1]) <= 31:
        return True
    return False


def validate_url(raw: str) -> SplitResult:
    """Parse ``raw`` as an absolute public HTTP(S) URL.

    Raises ``InvalidURL`` for anything unparsable, for schemes other than
    http/https, and for localhost or private-network IP literals.
    """
    if not isinstance(raw, str) or not raw.strip():
        raise InvalidURL(str(raw or ""), "URL is required")

    try:
        parsed = urlsplit(raw.strip())
        hostname = parsed.hostname
        parsed.port  # raises on a non-numeric or out-of-range port
    except ValueError as exc:
        raise InvalidURL(raw, f"Malformed URL: {exc}") from exc

    if not parsed.scheme or not parsed.netloc:
        raise InvalidURL(raw, "URL must be absolute")
    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        raise InvalidURL(raw, "Only HTTP(S) URLs are allowed")
    if not hostname:
        raise InvalidURL(raw, "URL must include a hostname")
    if is_private_hostname(hostname):
        raise InvalidURL(raw, "Private network URLs are not allowed")
    return parsed
