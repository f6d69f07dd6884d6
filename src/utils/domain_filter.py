"""
Domain Matching Utilities

Shared domain normalization used wherever an engine's observed URLs are
compared against a project's tracked domain:
- Recommendation engine (uncited rule)
- Live engine adapters (presence/position detection)

Matching policy:
1. Scheme, credentials, port, path, query and trailing slashes are ignored
2. Case-insensitive, leading "www." stripped on both sides
3. Subdomains count (docs.example.com is a citation of example.com)
4. A different registrable name never matches (notexample.com != example.com)
"""

import logging
from typing import Iterable, Optional
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)


def normalize_domain(value: Optional[str]) -> str:
    """
    Reduce a domain or URL to a bare lowercase host.

    Examples:
        "https://www.Example.com/pricing/" -> "example.com"
        "example.com:8443"                 -> "example.com"
        "vercel.com"                       -> "vercel.com"

    Returns an empty string for empty or unparseable input.
    """
    if not value:
        return ""

    raw = value.strip().lower()
    if not raw:
        return ""

    # urlsplit only finds the host after a "//"
    if "://" not in raw and not raw.startswith("//"):
        raw = "//" + raw

    try:
        host = urlsplit(raw).hostname or ""
    except ValueError:
        logger.debug(f"Could not parse URL for domain matching: {value!r}")
        return ""

    host = host.rstrip(".")
    if host.startswith("www."):
        host = host[4:]
    return host


def url_matches_domain(url: Optional[str], domain: Optional[str]) -> bool:
    """Check whether a URL (or bare host) belongs to the tracked domain."""
    target = normalize_domain(domain)
    host = normalize_domain(url)
    if not target or not host:
        return False
    return host == target or host.endswith("." + target)


def is_domain_cited(urls: Iterable[str], domain: Optional[str]) -> bool:
    """True if any observed URL belongs to the tracked domain."""
    return any(url_matches_domain(url, domain) for url in (urls or []))


def first_citation_position(urls: Iterable[str], domain: Optional[str]) -> Optional[int]:
    """1-based index of the first URL on the tracked domain, or None."""
    for i, url in enumerate(urls or []):
        if url_matches_domain(url, domain):
            return i + 1
    return None
