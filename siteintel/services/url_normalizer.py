"""
URL Normalizer — canonical fetch URL + comparison key for a raw domain/URL.

    normalize_url("Example.com")         → "https://www.example.com"
    domain_key("https://www.Example.com/") → "example.com"

Best-effort: malformed input is returned as-is rather than raising.
"""

import logging
from urllib.parse import urlsplit, urlunsplit

logger = logging.getLogger("siteintel.url")


def _split(raw: str):
    """Split a raw string into a SplitResult, adding https:// if no scheme is present."""
    value = (raw or "").strip()
    if not value.lower().startswith(("http://", "https://")):
        value = f"https://{value}"
    return urlsplit(value)


def normalize_url(raw: str) -> str:
    """Return an absolute https URL, prefixing www. on bare two-label hosts."""
    value = (raw or "").strip()
    if not value:
        return value
    try:
        parts = _split(value)
        host = parts.hostname or ""
        if not host:
            return value
        netloc = parts.netloc.lower()
        labels = host.split(".")
        if len(labels) == 2 and all(labels) and netloc.startswith(host):
            netloc = f"www.{netloc}"
        return urlunsplit((parts.scheme.lower(), netloc, parts.path, parts.query, ""))
    except ValueError as e:
        logger.debug("Could not normalize %r: %s", raw, e)
        return value


def domain_key(raw: str) -> str:
    """Lower-cased hostname with any leading www. removed."""
    value = (raw or "").strip()
    if not value:
        return ""
    try:
        host = _split(value).hostname or ""
    except ValueError:
        host = value.split("/")[0]
    host = host.lower().strip(".")
    if host.startswith("www."):
        host = host[4:]
    return host
