"""Tests for report email rendering and sending."""

from unittest.mock import AsyncMock, MagicMock

from app.integrations.email import EmailResult
from app.models.analysis import AnalysisRecord
from app.services.action_plan import build_action_plan
from app.services.report_email import (
    ReportEmailService,
    render_report_email,
    substitute_variables,
)


def make_record(competitors: list[dict] | None = None, average: float = 62.5) -> AnalysisRecord:
    return AnalysisRecord(
        id="analysis-1",
        website_url="https://trailco.com",
        analysis_type="fast_competitor_analysis",
        status="completed",
        competitors_data=competitors
        if competitors is not None
        else [
            {
                "name": "<Alpha & Co>",
                "website": "alpha.com",
                "products": "Tents",
                "shipping_incentives": "Policy: Free over $50 | Threshold: $50 | Delivery: 3 days",
                "threshold": 50.0,
            },
            {
                "name": "Beta",
                "website": "beta.com",
                "products": "Packs",
                "shipping_incentives": "Policy: Free over $75 | Threshold: $75 | Delivery: 5 days",
                "threshold": 75.0,
            },
        ],
        average_threshold=average,
    )


class TestSubstituteVariables:
    def test_known_and_unknown(self) -> None:
        result = substitute_variables(
            "Hi {{name}}, see {{link}}. {{empty}}!", {"name": "Sam", "empty": None}
        )

        assert result == "Hi Sam, see {{link}}. !"


class TestRender:
    def test_subject_and_greeting(self) -> None:
        record = make_record()
        plan = build_action_plan(100.0, [50.0, 75.0])

        rendered = render_report_email(record, plan)

        assert rendered.subject == "Your Shipping Action Plan for https://trailco.com"
        assert "Hi there," in rendered.body_text
        assert "Hi there," in rendered.body_html

    def test_text_body(self) -> None:
        plan = build_action_plan(100.0, [50.0, 75.0])

        text = render_report_email(make_record(), plan, name="Sam").body_text

        assert "Hi Sam," in text
        assert f"Competitive grade: {plan.grade.grade}" in text
        assert "Average competitor free shipping threshold: $62.5" in text
        assert "- <Alpha & Co> (alpha.com): Policy: Free over $50" in text
        assert f"- ${plan.options[0].amount}: {plan.options[0].description}" in text
        assert "{{" not in text

    def test_html_is_escaped(self) -> None:
        plan = build_action_plan(100.0, [50.0, 75.0])

        body = render_report_email(make_record(), plan, name="<b>Sam</b>").body_html

        assert "&lt;Alpha &amp; Co&gt;" in body
        assert "<Alpha & Co>" not in body
        assert "Hi &lt;b&gt;Sam&lt;/b&gt;" in body
        assert "{{" not in body

    def test_no_known_thresholds(self) -> None:
        record = make_record(
            competitors=[
                {"name": "A", "website": "a.com", "shipping_incentives": "No shipping data found", "threshold": None}
            ],
            average=0.0,
        )
        plan = build_action_plan(None, [None])

        text = render_report_email(record, plan).body_text

        assert "Average competitor free shipping threshold: Not available" in text

    def test_no_competitors(self) -> None:
        plan = build_action_plan(None, [])

        text = render_report_email(make_record(competitors=[]), plan).body_text

        assert "- No competitors found" in text


class TestReportEmailService:
    async def test_send_report(self) -> None:
        client = MagicMock()
        client.available = True
        client.send = AsyncMock(
            return_value=EmailResult(success=True, recipient="sam@trailco.com", subject="s")
        )
        service = ReportEmailService(client)

        result = await service.send_report(
            make_record(), "sam@trailco.com", name="Sam", user_threshold=0.0
        )

        assert result.success is True
        assert service.available is True
        kwargs = client.send.call_args.kwargs
        assert kwargs["recipient"] == "sam@trailco.com"
        assert kwargs["subject"] == "Your Shipping Action Plan for https://trailco.com"
        # Free shipping on all orders keeps the optimal plan
        assert "Competitive grade: A+" in kwargs["body_text"]
        assert "Maintain Current Strategy" in kwargs["body_text"]

    def test_available_follows_client(self) -> None:
        client = MagicMock()
        client.available = False

        assert ReportEmailService(client).available is False
