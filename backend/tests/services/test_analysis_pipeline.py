"""End-to-end tests for the analysis pipeline.

External APIs are faked at the client boundary (chat completions,
shipping research, page fetches, structured extraction); every service
in between is real, and records are written to SQLite.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.integrations.firecrawl import ExtractResult
from app.integrations.openai import CompletionResult
from app.integrations.web_fetcher import FetchResult
from app.repositories.analysis import AnalysisRepository, AnalysisStore
from app.services.analysis_pipeline import (
    AnalysisMode,
    AnalysisPipeline,
    AnalysisRequest,
)
from app.services.business_profiling import PLACEHOLDER_TEXT, BusinessProfilingService
from app.services.competitor_discovery import CompetitorDiscoveryService
from app.services.content_acquisition import ContentAcquisitionService
from app.services.errors import AnalysisFailed, ConfigurationError, PersistenceError
from app.services.report_aggregation import RecommendationService
from app.services.shipping_extraction import ShippingExtractionService

NARRATIVE = "**Industry:** Outdoor gear\n**Product Focus:** Tents"


def scripted_llm(available: bool = True, discovery_text: str | None = None) -> MagicMock:
    """Chat client answering by prompt type."""

    async def complete(user_prompt: str, **kwargs) -> CompletionResult:
        if user_prompt.startswith("Analyze this business"):
            return CompletionResult(success=True, text=NARRATIVE)
        if user_prompt.startswith("Based on this analysis"):
            return CompletionResult(success=True, text="Trail Co sells ultralight tents.")
        if "direct competitor websites" in user_prompt:
            return CompletionResult(
                success=True,
                text=discovery_text or "https://a.com\nhttps://b.com\nhttps://c.com",
            )
        if user_prompt.startswith("Business website:"):
            return CompletionResult(
                success=True,
                text=(
                    '{"competitors": ['
                    '{"name": "Alpha", "website": "a.com", "products": "Tents"},'
                    '{"name": "Beta", "website": "b.com", "products": "Packs"}]}'
                ),
            )
        if user_prompt.startswith("Based on the website "):
            website = user_prompt.split("Based on the website ")[1].split(",")[0]
            name = website.removeprefix("https://").split(".")[0].upper()
            return CompletionResult(success=True, text=f"NAME: {name}\nPRODUCTS: Gear")
        if "strategic recommendations" in user_prompt:
            return CompletionResult(success=True, text="1. Lower your threshold.")
        raise AssertionError(f"Unexpected prompt: {user_prompt[:80]}")

    llm = MagicMock()
    llm.available = available
    llm.complete = AsyncMock(side_effect=complete)
    return llm


def scripted_research(answers: dict[str, str], available: bool = True) -> MagicMock:
    async def research_shipping(website: str, timeout: float | None = None) -> CompletionResult:
        return CompletionResult(success=True, text=answers[website])

    research = MagicMock()
    research.available = available
    research.research_shipping = AsyncMock(side_effect=research_shipping)
    return research


def page_fetcher(result: FetchResult | None = None) -> MagicMock:
    fetcher = MagicMock()
    fetcher.fetch_text = AsyncMock(
        return_value=result
        or FetchResult(success=True, url="u", text="Trail Co ultralight tents. Free shipping over $75.")
    )
    return fetcher


def build_pipeline(
    llm: MagicMock,
    research: MagicMock | None = None,
    fetcher: MagicMock | None = None,
    firecrawl: MagicMock | None = None,
    store=None,
    **overrides,
) -> AnalysisPipeline:
    acquisition = ContentAcquisitionService(fetcher or page_fetcher(), firecrawl)
    services = {
        "llm": llm,
        "research": research,
        "acquisition": acquisition,
        "profiling": BusinessProfilingService(llm),
        "discovery": CompetitorDiscoveryService(llm),
        "extraction": ShippingExtractionService(
            llm, research=research, acquisition=acquisition, fast_timeout=5
        ),
        "recommendations": RecommendationService(llm),
        "store": store,
        "fast_count": 3,
        "comprehensive_count": 2,
    }
    services.update(overrides)
    return AnalysisPipeline(**services)


FAST_RESEARCH = {
    "https://a.com": "Free shipping: Free shipping on orders over $50",
    "https://b.com": "Free shipping: Not offered\nStandard delivery: 5-7 days",
    "https://c.com": "Free shipping: Free shipping on all orders",
}


async def load(factory: async_sessionmaker[AsyncSession], analysis_id: str):
    async with factory() as session:
        return await AnalysisRepository(session).get_by_id(analysis_id)


class TestFastMode:
    async def test_full_run(self, async_session_factory) -> None:
        pipeline = build_pipeline(
            scripted_llm(),
            research=scripted_research(FAST_RESEARCH),
            store=AnalysisStore(async_session_factory),
        )

        outcome = await pipeline.run(AnalysisRequest(url="trailco.com", user_id="user-1"))

        response = outcome.to_response()
        assert response["success"] is True
        assert response["business_analysis"] == NARRATIVE
        assert response["business_summary"] == "Trail Co sells ultralight tents."
        assert [c["name"] for c in response["competitors"]] == ["C", "A", "B"]
        assert [c["threshold"] for c in response["competitors"]] == [0.0, 50.0, None]
        assert response["average_threshold"] == 25.0
        assert response["user_shipping"] is None
        assert response["recommendations"] is None
        assert outcome.website_url == "https://trailco.com"

        record = await load(async_session_factory, outcome.analysis_id)
        assert record.status == "completed"
        assert record.analysis_type == "fast_competitor_analysis"
        assert record.competitor_count == 3
        assert record.average_threshold == 25.0
        assert record.business_summary == "Trail Co sells ultralight tents."
        assert record.competitors_data == response["competitors"]

    async def test_anonymous_run_is_not_persisted(self, async_session_factory) -> None:
        store = MagicMock()
        store.create = AsyncMock()
        pipeline = build_pipeline(
            scripted_llm(), research=scripted_research(FAST_RESEARCH), store=store
        )

        outcome = await pipeline.run(AnalysisRequest(url="trailco.com"))

        assert outcome.analysis_id is None
        store.create.assert_not_called()

    async def test_no_competitors_found(self) -> None:
        pipeline = build_pipeline(
            scripted_llm(discovery_text="I could not find any competitors."),
            research=scripted_research({}),
        )

        outcome = await pipeline.run(AnalysisRequest(url="trailco.com"))

        assert outcome.report.competitors == []
        assert outcome.report.average_threshold == 0.0


class TestComprehensiveMode:
    async def test_full_run(self, async_session_factory) -> None:
        extractions = {
            "https://trailco.com": ExtractResult(
                success=True,
                url="https://trailco.com",
                data={
                    "business_name": "Trail Co",
                    "business_description": "Ultralight tents",
                    "shipping_info": {
                        "has_free_shipping": True,
                        "free_shipping_threshold": 100,
                        "shipping_policy": "Free shipping over $100",
                    },
                },
            ),
            "https://a.com": ExtractResult(
                success=True,
                url="https://a.com",
                data={"shipping_info": {"has_free_shipping": True, "free_shipping_threshold": 40}},
            ),
            "https://b.com": ExtractResult(success=False, url="https://b.com", error="Blocked"),
        }
        firecrawl = MagicMock()
        firecrawl.available = True
        firecrawl.extract = AsyncMock(
            side_effect=lambda url, schema, prompt, timeout=None: extractions[url]
        )
        fetcher = page_fetcher()
        pipeline = build_pipeline(
            scripted_llm(),
            fetcher=fetcher,
            firecrawl=firecrawl,
            store=AnalysisStore(async_session_factory),
        )

        outcome = await pipeline.run(
            AnalysisRequest(url="trailco.com", user_id="user-1", mode=AnalysisMode.COMPREHENSIVE)
        )

        response = outcome.to_response()
        assert [c["name"] for c in response["competitors"]] == ["Alpha", "Beta"]
        assert response["competitors"][1]["shipping_incentives"] == (
            "Shipping extraction failed for b.com: Blocked"
        )
        assert response["average_threshold"] == 40.0
        assert response["user_shipping"]["threshold"] == 100.0
        assert response["recommendations"] == "1. Lower your threshold."
        assert response["business_summary"] is None
        fetcher.fetch_text.assert_not_called()

        record = await load(async_session_factory, outcome.analysis_id)
        assert record.analysis_type == "comprehensive_competitor_analysis"
        assert record.status == "completed"

    async def test_runs_without_structured_extraction(self, async_session_factory) -> None:
        fetcher = page_fetcher()
        pipeline = build_pipeline(
            scripted_llm(), fetcher=fetcher, store=AnalysisStore(async_session_factory)
        )

        outcome = await pipeline.run(
            AnalysisRequest(url="trailco.com", user_id="user-1", mode=AnalysisMode.COMPREHENSIVE)
        )

        response = outcome.to_response()
        fetcher.fetch_text.assert_awaited_once()
        assert response["business_analysis"] == NARRATIVE
        assert [c["name"] for c in response["competitors"]] == ["Alpha", "Beta"]
        assert all(
            "Structured extraction not configured" in c["shipping_incentives"]
            for c in response["competitors"]
        )
        assert response["user_shipping"] is None
        record = await load(async_session_factory, outcome.analysis_id)
        assert record.status == "completed"

    async def test_primary_extraction_failure_degrades(self, async_session_factory) -> None:
        extractions = {
            "https://trailco.com": ExtractResult(
                success=False, url="https://trailco.com", status_code=403, error="Blocked"
            ),
            "https://a.com": ExtractResult(
                success=True,
                url="https://a.com",
                data={"shipping_info": {"has_free_shipping": True, "free_shipping_threshold": 40}},
            ),
            "https://b.com": ExtractResult(
                success=True,
                url="https://b.com",
                data={"shipping_info": {"has_free_shipping": True, "free_shipping_threshold": 60}},
            ),
        }
        firecrawl = MagicMock()
        firecrawl.available = True
        firecrawl.extract = AsyncMock(
            side_effect=lambda url, schema, prompt, timeout=None: extractions[url]
        )
        fetcher = page_fetcher()
        pipeline = build_pipeline(
            scripted_llm(),
            fetcher=fetcher,
            firecrawl=firecrawl,
            store=AnalysisStore(async_session_factory),
        )

        outcome = await pipeline.run(
            AnalysisRequest(url="trailco.com", user_id="user-1", mode=AnalysisMode.COMPREHENSIVE)
        )

        response = outcome.to_response()
        assert response["success"] is True
        assert response["user_shipping"] is None
        assert response["average_threshold"] == 50.0
        assert len(response["competitors"]) == 2
        fetcher.fetch_text.assert_not_called()
        record = await load(async_session_factory, outcome.analysis_id)
        assert record.status == "completed"
        assert record.error_message is None


class TestFailures:
    async def test_missing_keys(self) -> None:
        pipeline = build_pipeline(scripted_llm(available=False), research=None)

        with pytest.raises(ConfigurationError) as exc_info:
            await pipeline.run(AnalysisRequest(url="trailco.com"))

        assert exc_info.value.missing == ["OPENAI_API_KEY", "PERPLEXITY_API_KEY"]

    async def test_invalid_url(self) -> None:
        pipeline = build_pipeline(scripted_llm(), research=scripted_research({}))

        with pytest.raises(AnalysisFailed):
            await pipeline.run(AnalysisRequest(url="   "))

    async def test_primary_fetch_failure_short_circuits(self, async_session_factory) -> None:
        discovery = MagicMock(discover=AsyncMock())
        extraction = MagicMock(extract_all=AsyncMock())
        pipeline = build_pipeline(
            scripted_llm(),
            research=scripted_research({}),
            fetcher=page_fetcher(
                FetchResult(success=False, url="u", status_code=404, error="HTTP 404")
            ),
            store=AnalysisStore(async_session_factory),
            discovery=discovery,
            extraction=extraction,
        )

        with pytest.raises(AnalysisFailed) as exc_info:
            await pipeline.run(AnalysisRequest(url="trailco.com", user_id="user-1"))

        discovery.discover.assert_not_called()
        extraction.extract_all.assert_not_called()
        record = await load(async_session_factory, exc_info.value.analysis_id)
        assert record.status == "failed"
        assert "HTTP 404" in record.error_message

    async def test_unexpected_error_marks_record_failed(self, async_session_factory) -> None:
        extraction = MagicMock(extract_all=AsyncMock(side_effect=RuntimeError("worker crashed")))
        pipeline = build_pipeline(
            scripted_llm(),
            research=scripted_research(FAST_RESEARCH),
            store=AnalysisStore(async_session_factory),
            extraction=extraction,
        )

        with pytest.raises(AnalysisFailed, match="worker crashed") as exc_info:
            await pipeline.run(AnalysisRequest(url="trailco.com", user_id="user-1"))

        record = await load(async_session_factory, exc_info.value.analysis_id)
        assert record.status == "failed"
        assert record.error_message == "worker crashed"

    async def test_persistence_failure_does_not_fail_run(self) -> None:
        store = MagicMock()
        store.create = AsyncMock(side_effect=PersistenceError("create", "db down"))
        store.mark_completed = AsyncMock()
        pipeline = build_pipeline(
            scripted_llm(), research=scripted_research(FAST_RESEARCH), store=store
        )

        outcome = await pipeline.run(AnalysisRequest(url="trailco.com", user_id="user-1"))

        assert outcome.analysis_id is None
        assert len(outcome.report.competitors) == 3
        store.mark_completed.assert_not_called()

    async def test_completion_write_failure_is_swallowed(self) -> None:
        store = MagicMock()
        store.create = AsyncMock(return_value="analysis-1")
        store.mark_completed = AsyncMock(side_effect=PersistenceError("transition", "db down"))
        pipeline = build_pipeline(
            scripted_llm(), research=scripted_research(FAST_RESEARCH), store=store
        )

        outcome = await pipeline.run(AnalysisRequest(url="trailco.com", user_id="user-1"))

        assert outcome.analysis_id == "analysis-1"
        store.mark_completed.assert_awaited_once()


def hanging_on(llm: MagicMock, prefix: str) -> MagicMock:
    """Make the scripted client hang on prompts starting with prefix."""
    answer = llm.complete.side_effect

    async def complete(user_prompt: str, **kwargs) -> CompletionResult:
        if user_prompt.startswith(prefix):
            await asyncio.Event().wait()
        return await answer(user_prompt, **kwargs)

    llm.complete = AsyncMock(side_effect=complete)
    return llm


class TestStageTimeouts:
    async def test_hanging_profile_falls_back_to_placeholder(self, async_session_factory) -> None:
        pipeline = build_pipeline(
            hanging_on(scripted_llm(), "Analyze this business"),
            research=scripted_research(FAST_RESEARCH),
            store=AnalysisStore(async_session_factory),
            stage_timeout=0.05,
        )

        outcome = await pipeline.run(AnalysisRequest(url="trailco.com", user_id="user-1"))

        response = outcome.to_response()
        assert response["business_analysis"] == PLACEHOLDER_TEXT
        assert response["business_summary"] is None
        assert len(response["competitors"]) == 3
        record = await load(async_session_factory, outcome.analysis_id)
        assert record.status == "completed"

    async def test_hanging_discovery_yields_no_competitors(self) -> None:
        pipeline = build_pipeline(
            hanging_on(scripted_llm(), "Based on this business analysis"),
            research=scripted_research(FAST_RESEARCH),
            stage_timeout=0.05,
        )

        outcome = await pipeline.run(AnalysisRequest(url="trailco.com"))

        assert outcome.report.competitors == []
        assert outcome.report.business_profile.text == NARRATIVE

    async def test_hanging_fetch_short_circuits(self, async_session_factory) -> None:
        async def hang(url: str, **kwargs) -> FetchResult:
            await asyncio.Event().wait()

        fetcher = MagicMock(fetch_text=AsyncMock(side_effect=hang))
        discovery = MagicMock(discover=AsyncMock())
        pipeline = build_pipeline(
            scripted_llm(),
            research=scripted_research({}),
            fetcher=fetcher,
            store=AnalysisStore(async_session_factory),
            discovery=discovery,
            stage_timeout=0.05,
        )

        with pytest.raises(AnalysisFailed, match="Timed out after 0.05s") as exc_info:
            await pipeline.run(AnalysisRequest(url="trailco.com", user_id="user-1"))

        discovery.discover.assert_not_called()
        record = await load(async_session_factory, exc_info.value.analysis_id)
        assert record.status == "failed"
        assert "Timed out" in record.error_message
