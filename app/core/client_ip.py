"""Client IP extraction for rate limit identifiers.

Proxy headers are consulted in priority order:

1. ``X-Forwarded-For`` (first hop, the original client)
2. ``CF-Connecting-IP`` (Cloudflare)
3. ``X-Real-IP`` (nginx)
4. ``X-Client-IP``

Anything that is not a plain IPv4/IPv6 address, or that carries characters
associated with header or shell injection, collapses to ``127.0.0.1`` so the
limiter always receives a well-formed key.
"""

from __future__ import annotations

import ipaddress
import logging

from fastapi import Request

from app.core.logging import hash_for_log

logger = logging.getLogger(__name__)

FALLBACK_IP = "127.0.0.1"

_SUSPICIOUS_CHARS = frozenset("\r\n<>;|&$`\\'\"(){}*?! ")


def _first_candidate(request: Request) -> str | None:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0]

    for header in ("cf-connecting-ip", "x-real-ip", "x-client-ip"):
        value = request.headers.get(header)
        if value:
            return value

    return None


def sanitize_ip(candidate: str | None) -> str:
    """Return ``candidate`` if it is a clean IP address, else the fallback.

    Examples:
        >>> sanitize_ip(" 203.0.113.7 ")
        '203.0.113.7'
        >>> sanitize_ip("::1")
        '::1'
        >>> sanitize_ip("203.0.113.7\\r\\nSet-Cookie: x")
        '127.0.0.1'
        >>> sanitize_ip("999.1.1.1")
        '127.0.0.1'
    """
    if not candidate:
        return FALLBACK_IP

    cleaned = candidate.strip()
    if not cleaned:
        return FALLBACK_IP

    if any(ch in _SUSPICIOUS_CHARS for ch in cleaned):
        logger.warning(
            "client_ip.suspicious",
            extra={"candidate_hash": hash_for_log(cleaned), "fallback": FALLBACK_IP},
        )
        return FALLBACK_IP

    try:
        ipaddress.ip_address(cleaned)
    except ValueError:
        logger.warning(
            "client_ip.invalid",
            extra={"candidate_hash": hash_for_log(cleaned), "fallback": FALLBACK_IP},
        )
        return FALLBACK_IP

    return cleaned


def get_client_ip(request: Request) -> str:
    """Extract the client IP from proxy headers, falling back to loopback."""
    return sanitize_ip(_first_candidate(request))


def get_rate_limit_identifier(request: Request, prefix: str | None = None) -> str:
    """Build the limiter key for a request, optionally namespaced.

    Args:
        request: Incoming request.
        prefix: Optional namespace joined with ``:`` (e.g., ``upload``).

    Returns:
        ``"{prefix}:{ip}"`` or just the IP.
    """
    ip = get_client_ip(request)
    return f"{prefix}:{ip}" if prefix else ip
