"""Domain helpers: base domain resolution and subdomain extraction."""
from __future__ import annotations

import ipaddress
import logging
import re
import urllib.parse as urlparse
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

# Second-level labels that make a three-label registrable domain (example.co.uk).
SECOND_LEVEL_LABELS = frozenset({"co", "gov", "ac"})
STANDARD_PORTS = frozenset({80, 443})

LEADING_LABEL_RE = re.compile(r"^([a-z0-9\-]+)\.(.+)$")


@dataclass(frozen=True)
class BaseDomain:
    with_port: str
    without_port: str


def _split_host(value: str) -> tuple[str, Optional[int]]:
    raw = (value or "").strip()
    if not raw:
        return "", None
    if "://" not in raw and not raw.startswith("//"):
        raw = "//" + raw
    try:
        parsed = urlparse.urlsplit(raw)
        port = parsed.port
    except ValueError:
        return "", None
    return (parsed.hostname or "").lower(), port


def resolve_base_domain(value: str) -> Optional[BaseDomain]:
    """
    Strip subdomains from a URL or bare host, keeping non-standard ports.

    "https://foo.example.co.uk:8080/x" -> BaseDomain("example.co.uk:8080", "example.co.uk")
    Returns None (and logs) when no host can be parsed.
    """
    host, port = _split_host(value)
    if not host:
        logger.warning("Invalid URL, no host found: %s", value)
        return None

    labels = host.split(".")
    if "localhost" in host:
        base = "localhost"
    elif len(labels) > 2 and labels[-2] in SECOND_LEVEL_LABELS:
        base = ".".join(labels[-3:])
    elif len(labels) > 2:
        base = ".".join(labels[-2:])
    else:
        base = host

    suffix = f":{port}" if port is not None and port not in STANDARD_PORTS else ""
    return BaseDomain(with_port=base + suffix, without_port=base)


def _is_ip(host: str) -> bool:
    try:
        ipaddress.ip_address(host.strip("[]"))
    except ValueError:
        return False
    return True


def extract_subdomain(host: str | None) -> Optional[str]:
    """
    Return the single leading label of host, or None when there is none.

    A subdomain exists only when the host is exactly one label followed by its
    base domain: "blog.example.com" -> "blog", "blog-dev.localhost:81" ->
    "blog-dev", while "example.com" and "a.b.example.com" have none.
    """
    hostname, _port = _split_host(host or "")
    if not hostname or hostname == "localhost" or _is_ip(hostname):
        return None
    match = LEADING_LABEL_RE.match(hostname)
    if not match:
        return None
    base = resolve_base_domain(hostname)
    if base is None or match.group(2) != base.without_port:
        return None
    return match.group(1)
