"""Tests for report aggregation and recommendations."""

from app.services.business_profiling import BusinessProfile
from app.services.competitor_discovery import CompetitorCandidate
from app.services.report_aggregation import (
    RECOMMENDATIONS_FALLBACK,
    CompetitorReport,
    RecommendationService,
    UserShipping,
    average_threshold,
    build_report,
    sort_by_threshold,
)
from app.services.shipping_extraction import (
    TIMEOUT_NOTE,
    CompetitorShipping,
    ShippingProfile,
)


def entry(name: str, threshold: float | None, note: str | None = None) -> CompetitorShipping:
    shipping = (
        ShippingProfile.failed(note)
        if note
        else ShippingProfile(threshold=threshold, policy_text=f"{name} policy")
    )
    return CompetitorShipping(
        candidate=CompetitorCandidate(name=name, website=f"{name.lower()}.com", products="Gear"),
        shipping=shipping,
    )


class TestAverageThreshold:
    def test_ignores_unknown(self) -> None:
        assert average_threshold([50.0, None, 0.0]) == 25.0

    def test_zero_when_nothing_known(self) -> None:
        assert average_threshold([None, None]) == 0.0
        assert average_threshold([]) == 0.0

    def test_rounds_to_cents(self) -> None:
        assert average_threshold([10.0, 20.0, 25.0]) == 18.33


def test_sort_puts_unknown_last_and_is_stable() -> None:
    rows = [
        CompetitorReport("A", "a.com", "", "", None),
        CompetitorReport("B", "b.com", "", "", 50.0),
        CompetitorReport("C", "c.com", "", "", 0.0),
        CompetitorReport("D", "d.com", "", "", 50.0),
        CompetitorReport("E", "e.com", "", "", None),
    ]

    assert [r.name for r in sort_by_threshold(rows)] == ["C", "B", "D", "A", "E"]


class TestBuildReport:
    def test_orders_rows_and_averages(self) -> None:
        profile = BusinessProfile(text="Outdoor gear retailer")

        report = build_report(
            profile,
            [entry("A", 50.0), entry("B", None), entry("C", 0.0)],
            user_shipping=UserShipping(threshold=40.0, analysis="Policy: x"),
        )

        assert [c.name for c in report.competitors] == ["C", "A", "B"]
        assert report.average_threshold == 25.0
        assert report.business_profile is profile
        assert report.user_shipping.threshold == 40.0
        assert report.recommendations is None

    def test_failed_competitor_row(self) -> None:
        report = build_report(BusinessProfile(text="x"), [entry("A", None, TIMEOUT_NOTE)])

        row = report.competitors[0]
        assert row.shipping_incentives == TIMEOUT_NOTE
        assert row.threshold is None
        assert row.to_dict() == {
            "name": "A",
            "website": "a.com",
            "products": "Gear",
            "shipping_incentives": TIMEOUT_NOTE,
            "threshold": None,
        }

    def test_empty_competitors(self) -> None:
        report = build_report(BusinessProfile.placeholder(), [])

        assert report.competitors == []
        assert report.average_threshold == 0.0


def test_user_shipping_from_profile() -> None:
    user = UserShipping.from_profile(
        ShippingProfile(threshold=0.0, policy_text="Free shipping on all orders")
    )

    assert user.to_dict() == {
        "threshold": 0.0,
        "analysis": (
            "Policy: Free shipping on all orders | "
            "Threshold: Free shipping on all orders | Delivery: Not specified"
        ),
    }


class TestRecommendationService:
    async def test_returns_llm_text(self, make_llm, make_completion) -> None:
        llm = make_llm(make_completion("  1. Lower your threshold to $45  "))
        service = RecommendationService(llm)
        rows = [CompetitorReport("A", "a.com", "Gear", "Policy: a", 50.0)]

        text = await service.recommend(BusinessProfile(text="Gear shop"), rows, 50.0)

        assert text == "1. Lower your threshold to $45"
        prompt = llm.complete.call_args.kwargs["user_prompt"]
        assert "- A (a.com): Policy: a" in prompt
        assert "Average competitor free shipping threshold: $50" in prompt
        assert "Current shipping policy: unknown" in prompt

    async def test_unknown_average_is_not_reported_as_free(self, make_llm, make_completion) -> None:
        llm = make_llm(make_completion("ok"))
        rows = [CompetitorReport("A", "a.com", "", "No shipping data found", None)]

        await RecommendationService(llm).recommend(BusinessProfile(text="x"), rows, 0.0)

        prompt = llm.complete.call_args.kwargs["user_prompt"]
        assert "Average competitor free shipping threshold: Not specified" in prompt

    async def test_failure_returns_fallback(self, make_llm, make_completion) -> None:
        service = RecommendationService(make_llm(make_completion(error="Rate limit exceeded")))

        text = await service.recommend(BusinessProfile(text="x"), [], 0.0)

        assert text == RECOMMENDATIONS_FALLBACK
