"""URL validation, normalization and sanitization utilities."""

import re
from typing import Iterable, Optional
from urllib.parse import urljoin, urlparse, urlunparse

from partscrape.errors import ParseError

__all__ = [
    "URLValidationError",
    "sanitize_url",
    "normalize_url",
    "canonical_url",
    "validate_url",
    "validate_image_url",
]


class URLValidationError(ParseError):
    """Raised when URL validation fails."""


IMAGE_URL_PATTERN = re.compile(
    r"^https?://[^/]+/.*\.(jpg|jpeg|png|webp|avif|gif)(\?.*)?$",
    re.IGNORECASE,
)

DANGEROUS_SCHEMES = {"javascript", "data", "vbscript", "file", "mailto"}

SUSPICIOUS_PATTERNS = (
    r"\.\./",
    r"%2e%2e",
    r"<script",
    r"javascript:",
)


def sanitize_url(url: str) -> str:
    """Strip whitespace, control characters and null bytes from a URL."""
    if not url:
        return ""
    url = url.strip()
    url = re.sub(r"[\x00-\x1f\x7f-\x9f]", "", url)
    return url.replace("%00", "")


def normalize_url(href: str, base_url: str) -> str:
    """Resolve a (possibly relative) href against the vendor base URL.

    Protocol-relative links ("//cdn...") get https. Returns "" for hrefs
    that cannot be resolved.
    """
    href = sanitize_url(href)
    if not href:
        return ""
    if href.startswith("//"):
        return "https:" + href
    if href.startswith(("http://", "https://")):
        return href
    try:
        return urljoin(base_url if base_url.endswith("/") else base_url + "/", href)
    except ValueError:
        return ""


def canonical_url(url: str) -> str:
    """Key used by the crawler's visited set.

    Lowercases scheme and host, drops the fragment and a trailing slash so
    that "/products/x/" and "/products/x#reviews" count as the same page.
    """
    parsed = urlparse(sanitize_url(url))
    path = parsed.path.rstrip("/") or "/"
    return urlunparse((
        parsed.scheme.lower(),
        parsed.netloc.lower(),
        path,
        parsed.params,
        parsed.query,
        "",
    ))


def validate_url(
    url: str,
    allowed_domains: Optional[Iterable[str]] = None,
    require_https: bool = False,
) -> str:
    """Validate a URL for crawling.

    Args:
        url: URL to validate
        allowed_domains: Hostnames the URL may point at (None: any host)
        require_https: Whether to require the https scheme

    Returns:
        The sanitized URL

    Raises:
        URLValidationError: If the URL is malformed, unsafe or off-domain
    """
    if not url:
        raise URLValidationError("URL is empty")

    url = sanitize_url(url)
    parsed = urlparse(url)

    scheme = parsed.scheme.lower()
    if scheme in DANGEROUS_SCHEMES:
        raise URLValidationError(f"Dangerous URL scheme: {scheme}")
    if scheme not in ("http", "https"):
        raise URLValidationError(f"Invalid URL scheme: {scheme or '(none)'}")
    if require_https and scheme != "https":
        raise URLValidationError(f"URL must use HTTPS, got: {scheme}")

    host = (parsed.hostname or "").lower()
    if not host:
        raise URLValidationError("URL has no domain")

    if allowed_domains is not None:
        allowed = {d.lower() for d in allowed_domains}
        bare = host[4:] if host.startswith("www.") else host
        if host not in allowed and bare not in allowed and f"www.{bare}" not in allowed:
            raise URLValidationError(f"URL domain '{host}' not in allowed domains: {sorted(allowed)}")

    url_lower = url.lower()
    for pattern in SUSPICIOUS_PATTERNS:
        if re.search(pattern, url_lower):
            raise URLValidationError(f"URL contains suspicious pattern: {pattern}")

    return url


def validate_image_url(url: str) -> str:
    """Validate an image URL. Empty input returns ""."""
    if not url:
        return ""

    url = sanitize_url(url)
    scheme = urlparse(url).scheme.lower()
    if scheme in DANGEROUS_SCHEMES:
        raise URLValidationError(f"Dangerous URL scheme in image: {scheme}")
    if scheme not in ("http", "https"):
        raise URLValidationError(f"Invalid image URL scheme: {scheme or '(none)'}")

    # CDN URLs without an extension are accepted when they look like asset paths
    if not IMAGE_URL_PATTERN.match(url):
        lowered = url.lower()
        if not any(token in lowered for token in ("cdn", "assets", "media", "images", "files")):
            raise URLValidationError(f"URL does not look like an image: {url}")

    return url
