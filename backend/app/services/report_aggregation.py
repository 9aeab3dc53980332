"""Report aggregation: averages, ordering and recommendations.

The average threshold is the mean of the known (non-None) competitor
thresholds rounded to 2 decimals, and 0 when none is known. Competitors
are ordered by threshold ascending with unknown thresholds last; the sort
is stable so ties keep discovery order.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol, TypeVar

from app.core.logging import get_logger, pipeline_logger
from app.integrations.openai import OpenAIClient
from app.services.business_profiling import BusinessProfile
from app.services.shipping_extraction import (
    CompetitorShipping,
    ShippingProfile,
    format_policy,
    format_threshold,
)

logger = get_logger(__name__)

UNKNOWN_THRESHOLD_SORT_KEY = 999
RECOMMENDATIONS_FALLBACK = "Recommendations unavailable due to API limitations"


class HasThreshold(Protocol):
    threshold: float | None


T = TypeVar("T", bound=HasThreshold)


@dataclass(frozen=True)
class CompetitorReport:
    """One competitor row of the report."""

    name: str
    website: str
    products: str
    shipping_incentives: str
    threshold: float | None

    @classmethod
    def from_shipping(cls, entry: CompetitorShipping) -> "CompetitorReport":
        return cls(
            name=entry.candidate.name,
            website=entry.candidate.website,
            products=entry.candidate.products,
            shipping_incentives=format_policy(entry.shipping),
            threshold=entry.shipping.threshold,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "website": self.website,
            "products": self.products,
            "shipping_incentives": self.shipping_incentives,
            "threshold": self.threshold,
        }


@dataclass(frozen=True)
class UserShipping:
    """Shipping summary of the analyzed site itself."""

    threshold: float | None
    analysis: str

    @classmethod
    def from_profile(cls, profile: ShippingProfile) -> "UserShipping":
        return cls(threshold=profile.threshold, analysis=format_policy(profile))

    def to_dict(self) -> dict[str, Any]:
        return {"threshold": self.threshold, "analysis": self.analysis}


@dataclass(frozen=True)
class ShippingReport:
    """Aggregated analysis result."""

    business_profile: BusinessProfile
    competitors: list[CompetitorReport] = field(default_factory=list)
    average_threshold: float = 0.0
    user_shipping: UserShipping | None = None
    recommendations: str | None = None


def average_threshold(thresholds: Iterable[float | None]) -> float:
    """Mean of known thresholds, 0 when none is known."""
    known = [t for t in thresholds if t is not None]
    if not known:
        return 0.0
    return round(sum(known) / len(known), 2)


def sort_by_threshold(entries: Sequence[T]) -> list[T]:
    """Sort ascending by threshold; unknown thresholds sort as 999."""
    return sorted(
        entries,
        key=lambda e: UNKNOWN_THRESHOLD_SORT_KEY if e.threshold is None else e.threshold,
    )


def build_report(
    business_profile: BusinessProfile,
    competitors: Sequence[CompetitorShipping],
    user_shipping: UserShipping | None = None,
    recommendations: str | None = None,
) -> ShippingReport:
    """Assemble the report from pipeline stage outputs."""
    rows = [CompetitorReport.from_shipping(entry) for entry in competitors]
    return ShippingReport(
        business_profile=business_profile,
        competitors=sort_by_threshold(rows),
        average_threshold=average_threshold(row.threshold for row in rows),
        user_shipping=user_shipping,
        recommendations=recommendations,
    )


class RecommendationService:
    """Best-effort narrative recommendations for comprehensive runs."""

    def __init__(self, llm: OpenAIClient) -> None:
        self._llm = llm

    async def recommend(
        self,
        business_profile: BusinessProfile,
        competitors: Sequence[CompetitorReport],
        average: float,
        user_shipping: UserShipping | None = None,
        timeout: float | None = None,
    ) -> str:
        """Generate 5-7 strategic shipping recommendations.

        Returns:
            Recommendation text, or RECOMMENDATIONS_FALLBACK on failure
        """
        competitor_lines = "\n".join(
            f"- {c.name} ({c.website}): {c.shipping_incentives}" for c in competitors
        )
        user_line = (
            f"Current shipping policy: {user_shipping.analysis}"
            if user_shipping
            else "Current shipping policy: unknown"
        )
        known = any(c.threshold is not None for c in competitors)
        prompt = (
            "Based on this competitive shipping analysis, provide 5-7 strategic "
            "recommendations for the business's shipping strategy.\n\n"
            f"Business profile:\n{business_profile.text[:2000]}\n\n"
            f"{user_line}\n"
            f"Average competitor free shipping threshold: {format_threshold(average if known else None)}\n\n"
            f"Competitors:\n{competitor_lines or '- none found'}"
        )
        result = await self._llm.complete(
            user_prompt=prompt,
            max_tokens=1000,
            temperature=0.3,
            timeout=timeout,
        )
        if not result.success or not (result.text or "").strip():
            pipeline_logger.stage_degraded(
                "recommendations", result.error or "Empty recommendations response"
            )
            return RECOMMENDATIONS_FALLBACK
        return result.text.strip()
