"""Host extraction and URL canonicalization used by the scanner.

Canonical form keeps only ``scheme://host/path`` lower-cased: query strings
and fragments never distinguish two articles in the feeds we consume, while
they often carry tracking parameters.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Iterable
from urllib.parse import urlparse


def host_of(url: str) -> str:
    """Lower-case hostname without ``www.``; empty string for invalid input."""
    if not url:
        return ""
    try:
        hostname = urlparse(url.strip()).hostname
    except ValueError:
        return ""
    if not hostname:
        return ""
    hostname = hostname.lower()
    return hostname[4:] if hostname.startswith("www.") else hostname


@lru_cache(maxsize=4096)
def canonical_url(url: str) -> str:
    if not url:
        return ""
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return url.lower()
    if not parsed.scheme or not parsed.netloc:
        return url.lower()
    return f"{parsed.scheme}://{parsed.netloc}{parsed.path}".lower()


def normalize_host(value: str) -> str:
    """
    Accept either a bare host or a URL/path (``nytimes.com/section/tech``)
    and return the bare host. NewsAPI rejects domain lists with paths.
    """
    if not value:
        return ""
    text = value.strip().lower()
    if "://" not in text:
        text = "https://" + text
    return host_of(text)


def normalize_hosts(values: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for value in values or []:
        host = normalize_host(value)
        if host and "." in host:
            seen.setdefault(host, None)
    return list(seen)


def host_matches(host: str, domains: Iterable[str]) -> bool:
    """True when ``host`` equals one of ``domains`` or is a subdomain of it."""
    if not host:
        return False
    host = host.lower()
    return any(host == d or host.endswith("." + d) for d in domains)


__all__ = [
    "canonical_url",
    "host_matches",
    "host_of",
    "normalize_host",
    "normalize_hosts",
]
