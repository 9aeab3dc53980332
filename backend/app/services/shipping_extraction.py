"""Per-competitor shipping extraction.

Fast mode asks a web-connected LLM (Perplexity) for each competitor's
shipping policy and a second completion for its name and products.
Comprehensive mode runs structured extraction on each competitor site.

extract_all() fans out with settle-all semantics: every candidate gets a
result at its original index, and a failed or timed-out candidate yields
ShippingProfile.failed(note) instead of aborting the batch.

Threshold semantics:
- 0 means free shipping on all orders
- None means undetermined
"""

import asyncio
import re
import time
from dataclasses import dataclass
from typing import Any

from app.core.logging import get_logger, pipeline_logger
from app.integrations.openai import OpenAIClient
from app.integrations.perplexity import PerplexityClient
from app.services.competitor_discovery import CompetitorCandidate
from app.services.content_acquisition import ContentAcquisitionService
from app.services.errors import ExtractionPartialFailure
from app.utils.url import domain_stem

logger = get_logger(__name__)

MAX_THRESHOLD = 500.0

TIMEOUT_NOTE = "Analysis failed due to timeout"
NO_DATA_TEXT = "No shipping data found"
FREE_ON_ALL_ORDERS = "Free shipping on all orders"
POLICY_NOT_SPECIFIED = "Policy not specified"
DEFAULT_PRODUCTS = "Various products and services"

FAST_FALLBACK_TEXT = (
    "Free shipping: Information not available\n"
    "Standard delivery: Contact store for details\n"
    "Express options: Check website for current offers"
)

_BLANKET_PHRASES = ("free shipping on all orders", "all orders qualify", "no minimum")

_AMOUNT = r"\$\s?(\d+(?:,\d{3})*(?:\.\d{1,2})?)"

# Ordered; the first pattern that matches decides the threshold
_THRESHOLD_PATTERNS = [
    re.compile(rf"free shipping (?:on|for) orders (?:over|above) {_AMOUNT}", re.IGNORECASE),
    re.compile(rf"orders (?:over|above) {_AMOUNT}.*?free shipping", re.IGNORECASE | re.DOTALL),
    re.compile(rf"{_AMOUNT} (?:or )?(?:more|above).*?free shipping", re.IGNORECASE | re.DOTALL),
    re.compile(_AMOUNT),
]

_CITATION_MARKER = re.compile(r"\[\d+\]")
_MARKDOWN_CHARS = re.compile(r"[*#]")
_NAME_LINE = re.compile(r"NAME:\s*(.+)", re.IGNORECASE)
_PRODUCTS_LINE = re.compile(r"PRODUCTS:\s*(.+)", re.IGNORECASE)


def _labelled_line(text: str, label: str) -> str | None:
    match = re.search(rf"^\s*[-•]?\s*{label}\s*:\s*(.+)$", text, re.IGNORECASE | re.MULTILINE)
    return match.group(1).strip() if match else None


@dataclass(frozen=True)
class ShippingProfile:
    """Shipping policy of one site."""

    threshold: float | None = None
    policy_text: str = ""
    delivery_timeframe: str | None = None
    promotions: str | None = None
    has_free_shipping: bool | None = None
    failure_note: str | None = None

    @classmethod
    def failed(cls, note: str) -> "ShippingProfile":
        """Profile for a competitor whose extraction failed."""
        return cls(failure_note=note)

    @property
    def has_data(self) -> bool:
        return bool(
            self.policy_text or self.delivery_timeframe or self.threshold is not None
        )


@dataclass(frozen=True)
class CompetitorShipping:
    """A competitor paired with its extracted shipping profile."""

    candidate: CompetitorCandidate
    shipping: ShippingProfile


def extract_threshold(text: str | None, has_free_shipping: bool | None = None) -> float | None:
    """Derive the free-shipping threshold from policy text.

    Returns:
        0 for free shipping on all orders, the dollar amount when one
        accepted pattern matches with 0 < N <= 500, otherwise None
    """
    if has_free_shipping is False or not text:
        return None

    lowered = text.lower()
    if any(phrase in lowered for phrase in _BLANKET_PHRASES):
        return 0.0

    for pattern in _THRESHOLD_PATTERNS:
        match = pattern.search(text)
        if match:
            amount = float(match.group(1).replace(",", ""))
            return amount if 0 < amount <= MAX_THRESHOLD else None
    return None


def strip_markdown(text: str | None) -> str:
    """Remove markdown emphasis, headings and [n] citation markers."""
    if not text:
        return ""
    cleaned = _CITATION_MARKER.sub("", text)
    cleaned = _MARKDOWN_CHARS.sub("", cleaned)
    lines = [line.strip() for line in cleaned.splitlines()]
    return "\n".join(line for line in lines if line).strip()


def format_threshold(threshold: float | None) -> str:
    if threshold is None:
        return "Not specified"
    if threshold == 0:
        return FREE_ON_ALL_ORDERS
    return f"${threshold:g}"


def format_policy(profile: ShippingProfile) -> str:
    """Render a shipping profile as display text."""
    if profile.failure_note:
        return profile.failure_note
    if not profile.has_data:
        return NO_DATA_TEXT

    policy = profile.policy_text or (
        FREE_ON_ALL_ORDERS if profile.threshold == 0 else POLICY_NOT_SPECIFIED
    )
    return (
        f"Policy: {policy} | "
        f"Threshold: {format_threshold(profile.threshold)} | "
        f"Delivery: {profile.delivery_timeframe or 'Not specified'}"
    )


def shipping_profile_from_research(text: str | None) -> ShippingProfile:
    """Build a profile from the prose of a shipping research answer."""
    cleaned = strip_markdown(text) or FAST_FALLBACK_TEXT
    free_line = _labelled_line(cleaned, "Free shipping")
    return ShippingProfile(
        threshold=extract_threshold(free_line or cleaned),
        policy_text=cleaned,
        delivery_timeframe=_labelled_line(cleaned, "Standard delivery"),
        promotions=_labelled_line(cleaned, "Promotions"),
    )


def shipping_profile_from_structured(info: dict[str, Any]) -> ShippingProfile:
    """Build a profile from extracted shipping_info."""
    has_free = info.get("has_free_shipping")
    has_free = has_free if isinstance(has_free, bool) else None

    parts = [
        str(info[key]).strip()
        for key in ("free_shipping_conditions", "shipping_policy")
        if info.get(key)
    ]
    policy_text = " ".join(parts)

    threshold: float | None = None
    raw = info.get("free_shipping_threshold")
    if has_free is not False and isinstance(raw, int | float) and not isinstance(raw, bool):
        if raw == 0 and has_free:
            threshold = 0.0
        elif 0 < raw <= MAX_THRESHOLD:
            threshold = float(raw)
    if threshold is None:
        threshold = extract_threshold(policy_text, has_free)

    return ShippingProfile(
        threshold=threshold,
        policy_text=policy_text,
        delivery_timeframe=info.get("delivery_timeframe") or None,
        promotions=info.get("promotions") or None,
        has_free_shipping=has_free,
    )


def parse_company_info(text: str | None, website: str) -> tuple[str, str]:
    """Parse NAME:/PRODUCTS: lines, falling back to the domain stem."""
    name_match = _NAME_LINE.search(text or "")
    products_match = _PRODUCTS_LINE.search(text or "")
    name = name_match.group(1).strip() if name_match else ""
    products = products_match.group(1).strip() if products_match else ""
    return name or domain_stem(website), products or DEFAULT_PRODUCTS


class ShippingExtractionService:
    """Extracts shipping profiles for discovered competitors."""

    def __init__(
        self,
        llm: OpenAIClient,
        research: PerplexityClient | None = None,
        acquisition: ContentAcquisitionService | None = None,
        fast_timeout: float = 18,
        comprehensive_timeout: float = 25,
    ) -> None:
        self._llm = llm
        self._research = research
        self._acquisition = acquisition
        self._fast_timeout = fast_timeout
        self._comprehensive_timeout = comprehensive_timeout

    async def extract_all(
        self,
        candidates: list[CompetitorCandidate],
        comprehensive: bool = False,
    ) -> list[CompetitorShipping]:
        """Extract every candidate concurrently with settle-all semantics.

        Returns:
            One CompetitorShipping per candidate, in input order
        """
        timeout = self._comprehensive_timeout if comprehensive else self._fast_timeout
        start_time = time.monotonic()

        results = await asyncio.gather(
            *(
                asyncio.wait_for(self.extract_one(candidate, comprehensive), timeout)
                for candidate in candidates
            ),
            return_exceptions=True,
        )

        settled: list[CompetitorShipping] = []
        failures = 0
        for candidate, result in zip(candidates, results, strict=True):
            if isinstance(result, CompetitorShipping):
                settled.append(result)
                continue
            failures += 1
            note = TIMEOUT_NOTE if isinstance(result, TimeoutError) else str(result)
            logger.warning(
                "Competitor shipping extraction failed",
                extra={
                    "competitor": candidate.name,
                    "website": candidate.website,
                    "error_type": type(result).__name__,
                    "error_message": note,
                },
            )
            settled.append(CompetitorShipping(candidate, ShippingProfile.failed(note)))

        pipeline_logger.stage_complete(
            "extraction",
            (time.monotonic() - start_time) * 1000,
            competitor_count=len(candidates),
            failure_count=failures,
        )
        return settled

    async def extract_one(
        self, candidate: CompetitorCandidate, comprehensive: bool = False
    ) -> CompetitorShipping:
        """Extract one competitor.

        Raises:
            ExtractionPartialFailure: If the competitor could not be analyzed
        """
        if comprehensive:
            return await self._extract_structured(candidate)
        return await self._extract_research(candidate)

    async def _extract_research(self, candidate: CompetitorCandidate) -> CompetitorShipping:
        if self._research is None:
            raise ExtractionPartialFailure(candidate.website, "Shipping research not configured")

        research = await self._research.research_shipping(
            candidate.website, timeout=self._fast_timeout
        )
        if not research.success:
            raise ExtractionPartialFailure(
                candidate.website, research.error or "Shipping research failed"
            )

        info = await self._llm.complete(
            user_prompt=(
                f"Based on the website {candidate.website}, provide:\n"
                "1. Company name (just the brand name, not the URL)\n"
                "2. Brief product description (what they sell in 1-2 lines)\n\n"
                "Format:\nNAME: [company name]\nPRODUCTS: [product description]"
            ),
            max_tokens=150,
            temperature=0.3,
            timeout=self._fast_timeout,
        )
        name, products = parse_company_info(
            info.text if info.success else None, candidate.website
        )
        return CompetitorShipping(
            candidate=CompetitorCandidate(
                name=name, website=candidate.website, products=products
            ),
            shipping=shipping_profile_from_research(research.text),
        )

    async def _extract_structured(self, candidate: CompetitorCandidate) -> CompetitorShipping:
        if self._acquisition is None:
            raise ExtractionPartialFailure(candidate.website, "Structured extraction not configured")

        result = await self._acquisition.extract_structured(
            candidate.website, timeout=self._comprehensive_timeout
        )
        if not result.success:
            raise ExtractionPartialFailure(candidate.website, result.error or "Extraction failed")

        info = result.data.get("shipping_info")
        shipping = (
            shipping_profile_from_structured(info)
            if isinstance(info, dict)
            else ShippingProfile()
        )
        products = candidate.products
        if not products and isinstance(result.data.get("products"), list):
            products = ", ".join(str(p) for p in result.data["products"][:5])
        return CompetitorShipping(
            candidate=CompetitorCandidate(
                name=candidate.name,
                website=candidate.website,
                products=products or DEFAULT_PRODUCTS,
            ),
            shipping=shipping,
        )
