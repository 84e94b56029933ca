"""
URL helpers: domain extraction, sanitizing and relative-URL resolution.
"""

from typing import Optional
from urllib.parse import parse_qsl, urlencode, urljoin, urlparse, urlunparse

TRACKING_PARAMS = {
    "utm_source", "utm_medium", "utm_campaign", "utm_content", "utm_term",
    "fbclid", "gclid", "ref", "source", "campaign", "medium",
}


def extract_domain(url: str) -> str:
    """Lower-cased host without a leading ``www.``; empty string if unparsable."""
    try:
        host = urlparse(url).hostname or ""
    except ValueError:
        return ""
    host = host.lower()
    if host.startswith("www."):
        host = host[4:]
    return host


def sanitize_url(url: Optional[str]) -> Optional[str]:
    """
    Normalize a candidate URL.

    Adds a missing scheme, drops tracking parameters and fragments.
    Returns None for anything that is not an http(s) URL with a host.
    """
    if not url or not url.strip():
        return None
    cleaned = url.strip()
    if not cleaned.startswith(("http://", "https://")):
        if "://" in cleaned:
            return None
        cleaned = "https://" + cleaned
    try:
        parsed = urlparse(cleaned)
    except ValueError:
        return None
    if not parsed.hostname:
        return None

    query = [
        (k, v) for k, v in parse_qsl(parsed.query, keep_blank_values=True)
        if k.lower() not in TRACKING_PARAMS
    ]
    return urlunparse(parsed._replace(query=urlencode(query), fragment=""))


def resolve_url(candidate: str, base_url: str) -> Optional[str]:
    """Resolve a possibly relative URL against the page it was found on."""
    candidate = (candidate or "").strip()
    if not candidate or candidate.startswith("data:"):
        return None
    if candidate.startswith("//"):
        return "https:" + candidate
    if candidate.startswith(("http://", "https://")):
        return candidate
    return urljoin(base_url, candidate)
