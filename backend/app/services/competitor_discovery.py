"""Competitor discovery from a business profile.

Two response formats are supported:
- URL list (fast mode): one competitor URL per line
- JSON (comprehensive mode): ``{"competitors": [{name, website, products}]}``
  or a bare array of the same objects

Parsing never raises. Candidates are capped with a deterministic slice,
and zero candidates is a valid degenerate outcome that is logged rather
than raised.
"""

import json
import re
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, TypeAdapter, ValidationError, field_validator

from app.core.logging import get_logger, pipeline_logger
from app.integrations.openai import OpenAIClient, json_schema_format
from app.integrations.web_fetcher import WebFetcher
from app.services.business_profiling import BusinessProfile
from app.services.errors import DiscoveryEmpty
from app.utils.url import domain_stem

logger = get_logger(__name__)

FAST_PROFILE_LIMIT = 800
COMPREHENSIVE_PROFILE_LIMIT = 2000

_ARRAY_PATTERN = re.compile(r"\[[\s\S]*\]")

COMPETITOR_LIST_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "competitors": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "website": {"type": "string"},
                    "products": {"type": "string"},
                },
                "required": ["name", "website", "products"],
                "additionalProperties": False,
            },
        }
    },
    "required": ["competitors"],
    "additionalProperties": False,
}


@dataclass(frozen=True)
class CompetitorCandidate:
    """A competitor suggested by discovery."""

    name: str
    website: str
    products: str = ""


@dataclass(frozen=True)
class DiscoveryParseResult:
    """Outcome of parsing a discovery completion."""

    ok: bool
    candidates: tuple[CompetitorCandidate, ...] = ()
    reason: str | None = None


class CompetitorSuggestion(BaseModel):
    """One competitor object in a JSON discovery response."""

    name: str
    website: str
    products: str = ""

    @field_validator("name", "website")
    @classmethod
    def not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


_suggestions_adapter = TypeAdapter(list[CompetitorSuggestion])


def _validate_suggestions(data: Any) -> tuple[CompetitorCandidate, ...]:
    if isinstance(data, dict) and "competitors" in data:
        data = data["competitors"]
    suggestions = _suggestions_adapter.validate_python(data)
    return tuple(
        CompetitorCandidate(name=s.name, website=s.website, products=s.products.strip())
        for s in suggestions
    )


def parse_competitor_json(text: str | None) -> DiscoveryParseResult:
    """Parse a JSON discovery completion.

    Tries the whole completion first, then the greedy bracket scan for an
    embedded array.
    """
    if not text or not text.strip():
        return DiscoveryParseResult(ok=False, reason="Empty response")

    try:
        return DiscoveryParseResult(
            ok=True, candidates=_validate_suggestions(json.loads(text))
        )
    except (ValueError, ValidationError) as e:
        logger.debug(
            "Strict competitor parse failed, scanning for array",
            extra={"error_type": type(e).__name__},
        )

    match = _ARRAY_PATTERN.search(text)
    if not match:
        return DiscoveryParseResult(ok=False, reason="No JSON array found in response")

    try:
        return DiscoveryParseResult(
            ok=True, candidates=_validate_suggestions(json.loads(match.group(0)))
        )
    except (ValueError, ValidationError) as e:
        return DiscoveryParseResult(ok=False, reason=f"Invalid competitor JSON: {e}")


def parse_url_list(text: str | None, limit: int) -> list[CompetitorCandidate]:
    """Keep lines that start with http, trimmed, capped at limit."""
    urls = [
        line.strip()
        for line in (text or "").splitlines()
        if line.strip().startswith("http")
    ]
    return [CompetitorCandidate(name=domain_stem(url), website=url) for url in urls[:limit]]


def over_ask_count(count: int) -> int:
    """Number of candidates to request when filtering by reachability."""
    return max(2 * count - 5, count)


class CompetitorDiscoveryService:
    """Asks an LLM for competitors of the analyzed business."""

    def __init__(
        self,
        llm: OpenAIClient,
        fetcher: WebFetcher | None = None,
        verify_urls: bool = False,
        verify_timeout: float = 10,
        max_count: int = 10,
    ) -> None:
        self._llm = llm
        self._fetcher = fetcher
        self._verify_urls = verify_urls and fetcher is not None
        self._verify_timeout = verify_timeout
        self._max_count = max_count

    async def discover(
        self,
        profile: BusinessProfile,
        website_url: str,
        count: int,
        comprehensive: bool = False,
        timeout: float | None = None,
    ) -> list[CompetitorCandidate]:
        """Discover up to count competitors.

        Returns:
            Ordered candidates; empty on LLM or parse failure
        """
        count = min(count, self._max_count)
        requested = over_ask_count(count) if self._verify_urls else count

        if comprehensive:
            candidates = await self._discover_json(profile, website_url, requested, timeout)
        else:
            candidates = await self._discover_urls(profile, requested, timeout)

        if self._verify_urls:
            candidates = await self._keep_reachable(candidates, count)

        candidates = candidates[:count]
        if not candidates:
            pipeline_logger.stage_degraded(
                "discovery", str(DiscoveryEmpty("No competitors discovered"))
            )
        return candidates

    async def _discover_urls(
        self, profile: BusinessProfile, count: int, timeout: float | None
    ) -> list[CompetitorCandidate]:
        example_lines = "\n".join(f"https://competitor{i}.com" for i in range(1, count + 1))
        prompt = (
            f'Based on this business analysis: "{profile.text[:FAST_PROFILE_LIMIT]}"\n\n'
            f"Please identify {count} direct competitor websites that offer similar "
            "products/services. Focus on well-known brands in the same industry.\n\n"
            f"List the competitor websites as URLs only, one per line:\n{example_lines}"
        )
        result = await self._llm.complete(
            user_prompt=prompt, max_tokens=300, temperature=0.1, timeout=timeout
        )
        if not result.success:
            pipeline_logger.stage_degraded("discovery", result.error or "LLM call failed")
            return []
        return parse_url_list(result.text, count)

    async def _discover_json(
        self,
        profile: BusinessProfile,
        website_url: str,
        count: int,
        timeout: float | None,
    ) -> list[CompetitorCandidate]:
        prompt = (
            f"Business website: {website_url}\n"
            f"Business profile:\n{profile.text[:COMPREHENSIVE_PROFILE_LIMIT]}\n\n"
            f"Identify exactly {count} direct competitors that sell similar products "
            "to similar customers in a similar price range. Only include legitimate, "
            "established businesses with active websites, not suppliers.\n\n"
            "For each competitor return name, website (domain only, no https:// "
            "and no www) and products (what they sell that competes)."
        )
        result = await self._llm.complete(
            user_prompt=prompt,
            max_tokens=2000,
            temperature=0.1,
            response_format=json_schema_format("competitors", COMPETITOR_LIST_SCHEMA),
            timeout=timeout,
        )
        if not result.success:
            pipeline_logger.stage_degraded("discovery", result.error or "LLM call failed")
            return []

        parsed = parse_competitor_json(result.text)
        if not parsed.ok:
            pipeline_logger.stage_degraded("discovery", parsed.reason or "Parse failed")
            return []
        return list(parsed.candidates[:count])

    async def _keep_reachable(
        self, candidates: list[CompetitorCandidate], count: int
    ) -> list[CompetitorCandidate]:
        if self._fetcher is None:
            return candidates
        verified: list[CompetitorCandidate] = []
        for candidate in candidates:
            if len(verified) >= count:
                break
            if await self._fetcher.is_reachable(
                candidate.website, timeout=self._verify_timeout
            ):
                verified.append(candidate)
            else:
                logger.info(
                    "Competitor URL failed verification",
                    extra={"competitor": candidate.name, "website": candidate.website},
                )
        return verified
