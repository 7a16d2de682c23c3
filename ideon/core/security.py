"""Request security helpers: client address resolution and token hashing."""

from __future__ import annotations

import hashlib
import ipaddress
from typing import Mapping

DEFAULT_CLIENT_IP = "127.0.0.1"


def is_private_ip(value: str) -> bool:
    """Return True for private, loopback and link-local addresses.

    Such hops are treated as our own proxies when walking ``X-Forwarded-For``.
    Unparseable values count as private so they are never picked as the client.
    """
    try:
        ip = ipaddress.ip_address(value)
    except ValueError:
        return True
    return ip.is_private or ip.is_loopback or ip.is_link_local


def get_client_ip(headers: Mapping[str, str], fallback: str | None = None) -> str:
    """Extract the real client IP, skipping trusted proxies.

    ``X-Forwarded-For`` is walked right to left (most recent proxy first) and
    the first public address wins. When every hop is private the left-most
    entry (the original client) is returned.

    Args:
        headers: Request headers (case-insensitive mapping or plain dict).
        fallback: Socket peer address to use when no header is present.

    Returns:
        The client IP, or ``127.0.0.1`` if nothing is known.
    """
    forwarded_for = headers.get("x-forwarded-for") or headers.get("X-Forwarded-For") or ""
    ips = [ip.strip() for ip in forwarded_for.split(",") if ip.strip()]

    if not ips:
        return fallback or DEFAULT_CLIENT_IP

    for ip in reversed(ips):
        if not is_private_ip(ip):
            return ip

    return ips[0]


def hash_token(token: str) -> str:
    """Stable sha256 digest used to store opaque tokens at rest."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def fingerprint(value: str) -> str:
    """Short hash for logging identifiers without exposing them."""
    return hash_token(value)[:16]
