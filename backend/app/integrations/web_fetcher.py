"""Raw HTML fetcher for the lightweight content acquisition strategy.

Features:
- Async HTTP GET using httpx with a browser-like User-Agent
- Hard timeout on every request
- Visible text extraction with BeautifulSoup (see app.utils.text_extraction)
- Reachability checks (HEAD, retried with a www. prefix)

Fetch failures are returned as FetchResult(success=False); callers decide
whether a failure aborts their stage.
"""

import time
from dataclasses import dataclass

import httpx

from app.core.config import get_settings
from app.core.logging import get_logger
from app.utils.text_extraction import extract_visible_text
from app.utils.url import InvalidURLError, ensure_scheme, with_www

logger = get_logger(__name__)


@dataclass
class FetchResult:
    """Result of a page fetch."""

    success: bool
    url: str
    text: str = ""
    status_code: int | None = None
    error: str | None = None
    duration_ms: float = 0.0


class WebFetcher:
    """Fetches pages and reduces them to visible text."""

    def __init__(
        self,
        timeout: float | None = None,
        max_chars: int | None = None,
        user_agent: str | None = None,
    ) -> None:
        settings = get_settings()
        self._timeout = timeout or settings.fetch_timeout
        self._max_chars = max_chars or settings.fetch_max_chars
        self._user_agent = user_agent or settings.fetch_user_agent
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={
                    "User-Agent": self._user_agent,
                    "Accept": "text/html,application/xhtml+xml",
                },
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
        logger.info("Web fetcher closed")

    async def fetch_text(self, url: str) -> FetchResult:
        """GET a page and return its visible text.

        Non-2xx responses, timeouts and network errors produce
        success=False with no partial text.
        """
        start_time = time.monotonic()
        client = await self._get_client()
        logger.debug("Fetching page", extra={"target_url": url[:200]})

        try:
            response = await client.get(url)
        except httpx.TimeoutException:
            duration_ms = (time.monotonic() - start_time) * 1000
            logger.warning(
                "Page fetch timed out",
                extra={
                    "target_url": url[:200],
                    "timeout_seconds": self._timeout,
                    "duration_ms": round(duration_ms, 2),
                },
            )
            return FetchResult(
                success=False,
                url=url,
                error=f"Timed out after {self._timeout}s",
                duration_ms=duration_ms,
            )
        except httpx.RequestError as e:
            duration_ms = (time.monotonic() - start_time) * 1000
            logger.warning(
                "Page fetch failed",
                extra={
                    "target_url": url[:200],
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                    "duration_ms": round(duration_ms, 2),
                },
            )
            return FetchResult(
                success=False,
                url=url,
                error=f"Request failed: {e}",
                duration_ms=duration_ms,
            )

        duration_ms = (time.monotonic() - start_time) * 1000
        if not response.is_success:
            logger.warning(
                "Page fetch returned error status",
                extra={
                    "target_url": url[:200],
                    "status_code": response.status_code,
                    "duration_ms": round(duration_ms, 2),
                },
            )
            return FetchResult(
                success=False,
                url=url,
                status_code=response.status_code,
                error=f"HTTP {response.status_code}",
                duration_ms=duration_ms,
            )

        text = extract_visible_text(response.text, self._max_chars)
        logger.debug(
            "Page fetched",
            extra={
                "target_url": url[:200],
                "status_code": response.status_code,
                "text_length": len(text),
                "duration_ms": round(duration_ms, 2),
            },
        )
        return FetchResult(
            success=True,
            url=url,
            text=text,
            status_code=response.status_code,
            duration_ms=duration_ms,
        )

    async def is_reachable(self, url: str, timeout: float | None = None) -> bool:
        """Check that a site answers a HEAD request, retrying with www."""
        try:
            target = ensure_scheme(url)
        except InvalidURLError:
            return False

        client = await self._get_client()
        candidates = [target]
        www_url = with_www(target)
        if www_url:
            candidates.append(www_url)

        for candidate in candidates:
            try:
                response = await client.head(
                    candidate, timeout=httpx.Timeout(timeout or self._timeout)
                )
                if response.status_code < 400:
                    return True
            except httpx.HTTPError as e:
                logger.debug(
                    "Reachability check failed",
                    extra={
                        "target_url": candidate[:200],
                        "error_type": type(e).__name__,
                    },
                )
        return False
