"""Firecrawl integration client for schema-driven structured extraction.

Features:
- Async HTTP client using httpx
- Circuit breaker for fault tolerance
- Retry logic with exponential backoff on 5xx and timeouts
- Never raises on extraction failure: a response with success=false,
  a timeout, or a network error yields ExtractResult(success=False, data={})

ERROR LOGGING REQUIREMENTS:
- Log all outbound API calls with endpoint, target URL, timing
- Log and handle: timeouts, auth failures (401/403), success=false payloads
- Include retry attempt number in logs
- Mask API keys in all logs
- Log circuit breaker state changes

RAILWAY DEPLOYMENT REQUIREMENTS:
- API key via environment variable (FIRECRAWL_API_KEY)
- Hard timeout on every request
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any

import httpx

from app.core.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from app.core.config import get_settings
from app.core.logging import firecrawl_logger, get_logger

logger = get_logger(__name__)

SCRAPE_ENDPOINT = "/v1/scrape"


@dataclass
class ExtractResult:
    """Result of a structured extraction request."""

    success: bool
    url: str
    data: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    status_code: int | None = None
    duration_ms: float = 0.0


class FirecrawlClient:
    """Async client for the Firecrawl scrape/extract API."""

    def __init__(
        self,
        api_key: str | None = None,
        api_url: str | None = None,
        timeout: float | None = None,
        wait_for_ms: int | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
    ) -> None:
        settings = get_settings()

        self._api_key = api_key or settings.firecrawl_api_key
        self._api_url = api_url or settings.firecrawl_api_url
        self._timeout = timeout or settings.firecrawl_timeout
        self._wait_for_ms = (
            wait_for_ms if wait_for_ms is not None else settings.firecrawl_wait_for_ms
        )
        self._max_retries = (
            max_retries if max_retries is not None else settings.firecrawl_max_retries
        )
        self._retry_delay = (
            retry_delay if retry_delay is not None else settings.firecrawl_retry_delay
        )

        self._circuit_breaker = CircuitBreaker(
            CircuitBreakerConfig(
                failure_threshold=settings.firecrawl_circuit_failure_threshold,
                recovery_timeout=settings.firecrawl_circuit_recovery_timeout,
            ),
            name="firecrawl",
            event_logger=firecrawl_logger,
        )

        self._client: httpx.AsyncClient | None = None
        self._available = bool(self._api_key)

    @property
    def available(self) -> bool:
        """Check if Firecrawl is configured."""
        return self._available

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        """Get the circuit breaker instance."""
        return self._circuit_breaker

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._api_url,
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {self._api_key}",
                },
                timeout=httpx.Timeout(self._timeout),
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
        logger.info("Firecrawl client closed")

    async def extract(
        self,
        url: str,
        schema: dict[str, Any],
        prompt: str,
        timeout: float | None = None,
    ) -> ExtractResult:
        """Extract structured data from a page.

        Args:
            url: Page to scrape
            schema: JSON schema describing the data to extract
            prompt: Natural-language extraction instructions
            timeout: Hard timeout in seconds (overrides default)

        Returns:
            ExtractResult; data is empty whenever success is False
        """
        if not self._available:
            return ExtractResult(
                success=False,
                url=url,
                error="Firecrawl not configured (missing API key)",
            )

        if not await self._circuit_breaker.can_execute():
            return ExtractResult(success=False, url=url, error="Circuit breaker is open")

        request_timeout = timeout or self._timeout
        start_time = time.monotonic()
        client = await self._get_client()
        body = {
            "url": url,
            "formats": ["json"],
            "jsonOptions": {"schema": schema, "prompt": prompt},
            "waitFor": self._wait_for_ms,
        }
        last_error = "Request failed after all retries"
        last_status: int | None = None

        for attempt in range(max(self._max_retries, 1)):
            attempt_start = time.monotonic()
            firecrawl_logger.api_call_start(SCRAPE_ENDPOINT, url, retry_attempt=attempt)

            try:
                response = await client.post(
                    SCRAPE_ENDPOINT,
                    json=body,
                    timeout=httpx.Timeout(request_timeout),
                )
                duration_ms = (time.monotonic() - attempt_start) * 1000
                last_status = response.status_code

                if response.status_code in (401, 403):
                    firecrawl_logger.auth_failure(response.status_code)
                    await self._circuit_breaker.record_failure()
                    return ExtractResult(
                        success=False,
                        url=url,
                        error=f"Authentication failed ({response.status_code})",
                        status_code=response.status_code,
                        duration_ms=(time.monotonic() - start_time) * 1000,
                    )

                if response.status_code >= 500 or response.status_code == 429:
                    last_error = f"Server error ({response.status_code})"
                    firecrawl_logger.api_call_error(
                        SCRAPE_ENDPOINT,
                        url,
                        duration_ms,
                        response.status_code,
                        last_error,
                        "ServerError",
                        retry_attempt=attempt,
                    )
                    await self._circuit_breaker.record_failure()
                    if attempt < self._max_retries - 1:
                        await asyncio.sleep(self._retry_delay * (2**attempt))
                        continue
                    break

                try:
                    payload = response.json() if response.content else {}
                except ValueError:
                    payload = {"error": "Malformed response body"}
                if response.status_code >= 400 or not payload.get("success"):
                    error = payload.get("error") or f"Extraction failed ({response.status_code})"
                    firecrawl_logger.extraction_unsuccessful(url, error)
                    # The page was unreadable, not the API; keep the circuit closed
                    await self._circuit_breaker.record_success()
                    return ExtractResult(
                        success=False,
                        url=url,
                        error=error,
                        status_code=response.status_code,
                        duration_ms=(time.monotonic() - start_time) * 1000,
                    )

                data = (payload.get("data") or {}).get("json") or {}
                firecrawl_logger.api_call_success(
                    SCRAPE_ENDPOINT, url, duration_ms, response.status_code
                )
                await self._circuit_breaker.record_success()
                return ExtractResult(
                    success=True,
                    url=url,
                    data=data if isinstance(data, dict) else {},
                    status_code=response.status_code,
                    duration_ms=(time.monotonic() - start_time) * 1000,
                )

            except httpx.TimeoutException:
                firecrawl_logger.timeout(url, request_timeout)
                await self._circuit_breaker.record_failure()
                last_error = f"Request timed out after {request_timeout}s"
                if attempt < self._max_retries - 1:
                    await asyncio.sleep(self._retry_delay * (2**attempt))
                    continue

            except httpx.RequestError as e:
                duration_ms = (time.monotonic() - attempt_start) * 1000
                firecrawl_logger.api_call_error(
                    SCRAPE_ENDPOINT,
                    url,
                    duration_ms,
                    None,
                    str(e),
                    type(e).__name__,
                    retry_attempt=attempt,
                )
                await self._circuit_breaker.record_failure()
                last_error = f"Request failed: {e}"
                if attempt < self._max_retries - 1:
                    await asyncio.sleep(self._retry_delay * (2**attempt))
                    continue

        return ExtractResult(
            success=False,
            url=url,
            error=last_error,
            status_code=last_status,
            duration_ms=(time.monotonic() - start_time) * 1000,
        )
