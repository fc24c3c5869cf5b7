"""
URL helpers for page naming and request attribution.
"""

from __future__ import annotations

import re
from urllib import parse

EXTENSION_SCHEME = "chrome-extension://"

_TWO_PART_TLDS = frozenset([
    "co.uk", "com.au", "co.nz", "co.jp", "com.br",
    "co.in", "org.uk", "net.uk", "gov.uk",
])


def extract_domain(url: str) -> str:
    """Extract the hostname from a URL string."""
    try:
        parsed = parse.urlparse(url)
        return parsed.hostname or "unknown"
    except ValueError:
        return "unknown"


def get_base_domain(domain: str) -> str:
    """Extract the registrable base domain from a full hostname.

    Handles common multi-part TLDs (e.g. ``co.uk``) and strips a
    leading ``www.`` prefix.
    """
    clean = re.sub(r"^www\.", "", domain).lower()
    parts = clean.split(".")
    if len(parts) >= 2:
        last_two = ".".join(parts[-2:])
        if last_two in _TWO_PART_TLDS and len(parts) >= 3:
            return ".".join(parts[-3:])
        return last_two
    return clean


def page_name(url: str) -> str:
    """Return a short display name (``host/path``) for a test page."""
    try:
        parsed = parse.urlparse(url)
    except ValueError:
        return url
    if not parsed.hostname:
        return url
    return parsed.hostname + (parsed.path or "/")


def is_extension_url(url: str | None, extension_id: str) -> bool:
    """Return ``True`` if *url* belongs to the extension's origin."""
    if not url or not extension_id:
        return False
    return url.startswith(f"{EXTENSION_SCHEME}{extension_id}")


def is_web_url(url: str) -> bool:
    """Return ``True`` for http(s) URLs (third-party domain candidates)."""
    return url.startswith(("http://", "https://"))
