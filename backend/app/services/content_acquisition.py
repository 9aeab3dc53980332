"""Content acquisition for the primary site and competitor pages.

Two strategies feed the rest of the pipeline:
- raw: GET the page and keep its visible text (WebFetcher)
- structured: schema-driven extraction of business and shipping
  details (FirecrawlClient)

A raw fetch failure on the primary site raises AcquisitionError; the
pipeline turns that into a failed analysis. A failed structured extraction
of the primary site returns empty data with the error attached.
Competitor-level acquisition goes through extract_structured(), which
never raises.

ERROR LOGGING REQUIREMENTS:
- Log method entry/exit at DEBUG level with parameters (sanitized)
- Log all exceptions with context
- Add timing logs for operations >1 second
"""

import time
from dataclasses import dataclass, field
from typing import Any

from app.core.logging import get_logger
from app.integrations.firecrawl import ExtractResult, FirecrawlClient
from app.integrations.web_fetcher import WebFetcher
from app.services.errors import AcquisitionError
from app.utils.url import InvalidURLError, ensure_scheme

logger = get_logger(__name__)

SLOW_OPERATION_THRESHOLD_MS = 1000

STRATEGY_RAW = "raw"
STRATEGY_STRUCTURED = "structured"
STRATEGY_AUTO = "auto"

SHIPPING_INFO_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "has_free_shipping": {"type": "boolean"},
        "free_shipping_threshold": {"type": "number"},
        "free_shipping_conditions": {"type": "string"},
        "shipping_policy": {"type": "string"},
        "delivery_timeframe": {"type": "string"},
        "promotions": {"type": "string"},
    },
    "required": ["has_free_shipping", "shipping_policy"],
}

BUSINESS_EXTRACTION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "business_name": {"type": "string"},
        "business_description": {"type": "string"},
        "business_summary": {"type": "string"},
        "target_audience": {"type": "string"},
        "price_range": {"type": "string"},
        "unique_selling_points": {"type": "array", "items": {"type": "string"}},
        "products": {"type": "array", "items": {"type": "string"}},
        "product_categories": {"type": "array", "items": {"type": "string"}},
        "shipping_info": SHIPPING_INFO_SCHEMA,
        "return_policy": {"type": "string"},
        "customer_service": {"type": "string"},
        "promotions": {"type": "array", "items": {"type": "string"}},
    },
    "required": ["business_name", "business_description", "shipping_info"],
}

BUSINESS_EXTRACTION_PROMPT = (
    "Extract business intelligence and shipping information from this website. "
    "Shipping: detect any free or discounted shipping even if the phrase "
    "'free shipping' is not used, the minimum order amount for free shipping, "
    "delivery timeframes and current shipping promotions. Business: name, "
    "description, target audience, products and categories, price range, "
    "unique selling points, return policy and customer service details. "
    "Search banners, footers, policy pages and FAQs."
)

# Labels used when flattening structured data into prompt text
_FIELD_LABELS: dict[str, str] = {
    "business_name": "Business Name",
    "business_description": "Description",
    "business_summary": "Summary",
    "target_audience": "Target Audience",
    "price_range": "Price Range",
    "unique_selling_points": "Unique Selling Points",
    "products": "Products",
    "product_categories": "Product Categories",
    "return_policy": "Return Policy",
    "customer_service": "Customer Service",
    "promotions": "Promotions",
}

_SHIPPING_LABELS: dict[str, str] = {
    "has_free_shipping": "Has Free Shipping",
    "free_shipping_threshold": "Free Shipping Threshold",
    "free_shipping_conditions": "Free Shipping Conditions",
    "shipping_policy": "Shipping Policy",
    "delivery_timeframe": "Delivery Timeframe",
    "promotions": "Shipping Promotions",
}


def _format_value(value: Any) -> str:
    if isinstance(value, list):
        return ", ".join(str(v) for v in value if v)
    return str(value)


@dataclass
class AcquiredContent:
    """Content acquired for a site by one of the strategies."""

    url: str
    text: str = ""
    structured: dict[str, Any] = field(default_factory=dict)
    strategy: str = STRATEGY_RAW
    error: str | None = None

    @property
    def shipping_info(self) -> dict[str, Any]:
        """Structured shipping info, empty for raw content."""
        info = self.structured.get("shipping_info")
        return info if isinstance(info, dict) else {}

    def as_prompt_text(self, limit: int) -> str:
        """Render the content as text for an LLM prompt.

        Structured data is flattened to ``Label: value`` lines so both
        strategies can feed business profiling.
        """
        if self.text:
            return self.text[:limit]

        lines: list[str] = []
        for key, label in _FIELD_LABELS.items():
            value = self.structured.get(key)
            if value not in (None, "", []):
                lines.append(f"{label}: {_format_value(value)}")
        for key, label in _SHIPPING_LABELS.items():
            value = self.shipping_info.get(key)
            if value not in (None, "", []):
                lines.append(f"{label}: {_format_value(value)}")
        return "\n".join(lines)[:limit]


def normalize_url(url: str | None) -> str:
    """Return the URL with a scheme.

    Raises:
        AcquisitionError: If the URL is empty or has no host.
    """
    try:
        return ensure_scheme(url or "")
    except InvalidURLError as e:
        raise AcquisitionError(str(url), e.message) from e


class ContentAcquisitionService:
    """Acquires site content with the configured strategy."""

    def __init__(
        self,
        fetcher: WebFetcher,
        firecrawl: FirecrawlClient | None = None,
        strategy: str = STRATEGY_AUTO,
    ) -> None:
        self._fetcher = fetcher
        self._firecrawl = firecrawl
        self._strategy = strategy

    @property
    def structured_available(self) -> bool:
        """Whether structured extraction is configured."""
        return self._firecrawl is not None and self._firecrawl.available

    def resolve_strategy(self, comprehensive: bool) -> str:
        """Pick the strategy for the primary site.

        auto means structured for comprehensive runs when a scrape API key
        exists, raw otherwise. An explicit structured setting still falls
        back to raw without an API key.
        """
        if self._strategy == STRATEGY_RAW or not self.structured_available:
            return STRATEGY_RAW
        if self._strategy == STRATEGY_STRUCTURED:
            return STRATEGY_STRUCTURED
        return STRATEGY_STRUCTURED if comprehensive else STRATEGY_RAW

    async def acquire(self, url: str, comprehensive: bool = False) -> AcquiredContent:
        """Acquire the content of the primary site.

        Args:
            url: Normalized site URL
            comprehensive: Whether the run is in comprehensive mode

        Returns:
            AcquiredContent with text (raw) or structured data. An
            unsuccessful structured extraction yields empty structured
            data with error set.

        Raises:
            AcquisitionError: If the raw fetch hits a network error, a
                timeout or a non-2xx response
        """
        strategy = self.resolve_strategy(comprehensive)
        start_time = time.monotonic()
        logger.debug(
            "Acquiring site content",
            extra={"target_url": url[:200], "strategy": strategy},
        )

        if strategy == STRATEGY_STRUCTURED:
            result = await self.extract_structured(url)
            if result.success:
                content = AcquiredContent(
                    url=url, structured=result.data, strategy=STRATEGY_STRUCTURED
                )
            else:
                logger.warning(
                    "Structured extraction failed, continuing without site data",
                    extra={
                        "target_url": url[:200],
                        "status_code": result.status_code,
                        "error_message": result.error,
                    },
                )
                content = AcquiredContent(
                    url=url,
                    strategy=STRATEGY_STRUCTURED,
                    error=result.error or "Extraction failed",
                )
        else:
            fetched = await self._fetcher.fetch_text(url)
            if not fetched.success:
                raise AcquisitionError(
                    url, fetched.error or "Fetch failed", fetched.status_code
                )
            content = AcquiredContent(url=url, text=fetched.text, strategy=STRATEGY_RAW)

        duration_ms = (time.monotonic() - start_time) * 1000
        log = logger.warning if duration_ms > SLOW_OPERATION_THRESHOLD_MS else logger.debug
        log(
            "Site content acquired",
            extra={
                "target_url": url[:200],
                "strategy": strategy,
                "text_length": len(content.text),
                "structured_keys": len(content.structured),
                "duration_ms": round(duration_ms, 2),
            },
        )
        return content

    async def extract_structured(
        self,
        url: str,
        timeout: float | None = None,
        schema: dict[str, Any] | None = None,
    ) -> ExtractResult:
        """Run structured extraction; never raises."""
        if self._firecrawl is None:
            return ExtractResult(
                success=False, url=url, error="Structured extraction not configured"
            )
        try:
            target = normalize_url(url)
        except AcquisitionError as e:
            return ExtractResult(success=False, url=url, error=e.message)
        return await self._firecrawl.extract(
            target,
            schema or BUSINESS_EXTRACTION_SCHEMA,
            BUSINESS_EXTRACTION_PROMPT,
            timeout=timeout,
        )
