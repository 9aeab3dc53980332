"""URL helpers for submitted sites and discovered competitor domains.

ERROR LOGGING REQUIREMENTS:
- Log validation failures with field names and rejected values
"""

from urllib.parse import urlparse

from app.core.logging import get_logger

logger = get_logger("url")


class InvalidURLError(ValueError):
    """Raised when a URL has no usable host."""

    def __init__(self, value: str, message: str) -> None:
        self.value = value
        self.message = message
        super().__init__(f"Invalid URL {value!r}: {message}")


def ensure_scheme(url: str) -> str:
    """Prefix https:// when the URL has no scheme.

    Raises:
        InvalidURLError: If the URL is empty or has no host.
    """
    candidate = (url or "").strip()
    if not candidate:
        logger.warning(
            "URL validation failed: empty URL",
            extra={"field": "url", "rejected_value": repr(url)},
        )
        raise InvalidURLError(repr(url), "URL cannot be empty")

    if not candidate.lower().startswith(("http://", "https://")):
        candidate = f"https://{candidate}"

    parsed = urlparse(candidate)
    if not parsed.netloc or ("." not in parsed.netloc and parsed.netloc != "localhost"):
        logger.warning(
            "URL validation failed: missing host",
            extra={"field": "url", "rejected_value": url[:200]},
        )
        raise InvalidURLError(url, "URL must include a host name")

    return candidate


def domain_of(url: str) -> str:
    """Return the lowercase host of a URL or bare domain, without www."""
    candidate = url.strip()
    if "://" not in candidate:
        candidate = f"https://{candidate}"
    host = urlparse(candidate).netloc.lower()
    if host.startswith("www."):
        host = host[4:]
    return host.split(":")[0]


def domain_stem(url: str) -> str:
    """Return the registrable name of a domain ("shop.example.com" -> "example")."""
    host = domain_of(url)
    parts = [p for p in host.split(".") if p]
    if len(parts) >= 2:
        return parts[-2]
    return parts[0] if parts else url


def with_www(url: str) -> str | None:
    """Return the URL with a www. host prefix, or None if it already has one."""
    parsed = urlparse(ensure_scheme(url))
    if parsed.netloc.lower().startswith("www."):
        return None
    return parsed._replace(netloc=f"www.{parsed.netloc}").geturl()
