"""Competitor shipping analysis pipeline.

Stage order:
1. Configuration check (ConfigurationError before anything runs)
2. Record creation (processing) when a user_id is given
3. Content acquisition of the primary site
4. Business profiling (+ summary in fast mode)
5. Competitor discovery
6. Per-competitor shipping extraction (settle-all fan-out)
7. Aggregation (+ recommendations and user shipping in comprehensive mode)
8. Record completion

A primary acquisition failure short-circuits the run: discovery and
extraction never start, the record is marked failed and AnalysisFailed
is raised. Persistence failures are logged and never fail the run.

Every stage runs under stage_timeout. Acquisition running over it
short-circuits like any other acquisition failure; profiling, summary,
discovery and recommendations fall back to their degraded result.
Extraction is bounded per competitor by ShippingExtractionService.

ERROR LOGGING REQUIREMENTS:
- Log stage timings with analysis_id
- Log degraded stages and short-circuits with the stage name
- Log status transitions at INFO level
"""

import asyncio
import time
from collections.abc import Awaitable
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, TypeVar

from app.core.logging import get_logger, pipeline_logger
from app.integrations.openai import OpenAIClient
from app.integrations.perplexity import PerplexityClient
from app.models.analysis import AnalysisType
from app.repositories.analysis import AnalysisStore
from app.services.business_profiling import BusinessProfile, BusinessProfilingService
from app.services.competitor_discovery import CompetitorDiscoveryService
from app.services.content_acquisition import (
    AcquiredContent,
    ContentAcquisitionService,
    normalize_url,
)
from app.services.errors import (
    AcquisitionError,
    AnalysisFailed,
    ConfigurationError,
    PersistenceError,
)
from app.services.report_aggregation import (
    RecommendationService,
    ShippingReport,
    UserShipping,
    build_report,
)
from app.services.shipping_extraction import (
    ShippingExtractionService,
    shipping_profile_from_structured,
)

logger = get_logger(__name__)

T = TypeVar("T")


class AnalysisMode(str, Enum):
    """Pipeline variant."""

    FAST = "fast"
    COMPREHENSIVE = "comprehensive"

    @property
    def analysis_type(self) -> AnalysisType:
        if self is AnalysisMode.COMPREHENSIVE:
            return AnalysisType.COMPREHENSIVE
        return AnalysisType.FAST


@dataclass(frozen=True)
class AnalysisRequest:
    url: str
    user_id: str | None = None
    mode: AnalysisMode = AnalysisMode.FAST


@dataclass(frozen=True)
class AnalysisOutcome:
    """Result of a successful pipeline run."""

    report: ShippingReport
    analysis_time_ms: float
    mode: AnalysisMode
    website_url: str
    analysis_id: str | None = None

    def to_response(self) -> dict[str, Any]:
        """Render the analyze endpoint's success payload."""
        profile = self.report.business_profile
        return {
            "success": True,
            "business_analysis": profile.text,
            "business_summary": profile.summary,
            "competitors": [c.to_dict() for c in self.report.competitors],
            "user_shipping": (
                self.report.user_shipping.to_dict() if self.report.user_shipping else None
            ),
            "average_threshold": self.report.average_threshold,
            "recommendations": self.report.recommendations,
            "analysis_time_ms": round(self.analysis_time_ms),
            "analysis_id": self.analysis_id,
        }


class AnalysisPipeline:
    """Runs an analysis end to end."""

    def __init__(
        self,
        llm: OpenAIClient,
        research: PerplexityClient | None,
        acquisition: ContentAcquisitionService,
        profiling: BusinessProfilingService,
        discovery: CompetitorDiscoveryService,
        extraction: ShippingExtractionService,
        recommendations: RecommendationService,
        store: AnalysisStore | None = None,
        fast_count: int = 6,
        comprehensive_count: int = 8,
        stage_timeout: float = 25.0,
    ) -> None:
        self._llm = llm
        self._research = research
        self._acquisition = acquisition
        self._profiling = profiling
        self._discovery = discovery
        self._extraction = extraction
        self._recommendations = recommendations
        self._store = store
        self._fast_count = fast_count
        self._comprehensive_count = comprehensive_count
        self._stage_timeout = stage_timeout

    def check_configuration(self, mode: AnalysisMode) -> None:
        """Raise ConfigurationError when a required API key is missing."""
        missing: list[str] = []
        if not self._llm.available:
            missing.append("OPENAI_API_KEY")
        if mode is AnalysisMode.FAST and not (self._research and self._research.available):
            missing.append("PERPLEXITY_API_KEY")
        if missing:
            raise ConfigurationError(missing)
        if mode is AnalysisMode.COMPREHENSIVE and not self._acquisition.structured_available:
            logger.warning(
                "Structured extraction not configured, comprehensive run uses raw content",
                extra={"missing_key": "FIRECRAWL_API_KEY"},
            )

    async def run(self, request: AnalysisRequest) -> AnalysisOutcome:
        """Run the pipeline.

        Raises:
            ConfigurationError: If required API keys are missing
            AnalysisFailed: If the primary site cannot be acquired or an
                unexpected error aborts the run
        """
        start_time = time.monotonic()
        mode = request.mode
        comprehensive = mode is AnalysisMode.COMPREHENSIVE

        self.check_configuration(mode)

        try:
            url = normalize_url(request.url)
        except AcquisitionError as e:
            raise AnalysisFailed(e.message) from e

        analysis_id = await self._create_record(url, mode, request.user_id)
        pipeline_logger.analysis_start(url, mode.value, analysis_id)

        stage_start = time.monotonic()
        try:
            content = await self._acquire(url, comprehensive)
        except AcquisitionError as e:
            pipeline_logger.short_circuit("acquisition", str(e), analysis_id)
            await self._mark_failed(analysis_id, str(e))
            pipeline_logger.analysis_complete(
                url, (time.monotonic() - start_time) * 1000, False, 0, analysis_id
            )
            raise AnalysisFailed(str(e), analysis_id) from e
        pipeline_logger.stage_complete(
            "acquisition",
            (time.monotonic() - stage_start) * 1000,
            analysis_id,
            strategy=content.strategy,
        )
        if content.error:
            pipeline_logger.stage_degraded("acquisition", content.error, analysis_id)

        try:
            report = await self._analyze(content, url, comprehensive, analysis_id)
        except Exception as e:
            logger.error(
                "Analysis aborted by unexpected error",
                extra={
                    "analysis_id": analysis_id,
                    "target_url": url[:200],
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                },
                exc_info=True,
            )
            await self._mark_failed(analysis_id, str(e))
            raise AnalysisFailed(str(e), analysis_id) from e

        await self._mark_completed(analysis_id, report)

        analysis_time_ms = (time.monotonic() - start_time) * 1000
        pipeline_logger.analysis_complete(
            url, analysis_time_ms, True, len(report.competitors), analysis_id
        )
        return AnalysisOutcome(
            report=report,
            analysis_time_ms=analysis_time_ms,
            mode=mode,
            website_url=url,
            analysis_id=analysis_id,
        )

    async def _acquire(self, url: str, comprehensive: bool) -> AcquiredContent:
        """Acquire the primary site within the stage timeout.

        Raises:
            AcquisitionError: On acquisition failure or timeout
        """
        try:
            return await asyncio.wait_for(
                self._acquisition.acquire(url, comprehensive=comprehensive),
                self._stage_timeout,
            )
        except TimeoutError as e:
            raise AcquisitionError(
                url, f"Timed out after {self._stage_timeout:g}s"
            ) from e

    async def _bounded(
        self,
        stage: str,
        awaitable: Awaitable[T],
        fallback: T,
        analysis_id: str | None,
    ) -> T:
        """Await a stage, returning fallback when it exceeds the stage timeout."""
        try:
            return await asyncio.wait_for(awaitable, self._stage_timeout)
        except TimeoutError:
            pipeline_logger.stage_degraded(
                stage, f"Timed out after {self._stage_timeout:g}s", analysis_id
            )
            return fallback

    async def _analyze(
        self,
        content: AcquiredContent,
        url: str,
        comprehensive: bool,
        analysis_id: str | None,
    ) -> ShippingReport:
        stage_start = time.monotonic()
        profile = await self._bounded(
            "profiling",
            self._profiling.profile(content, comprehensive=comprehensive),
            BusinessProfile.placeholder(),
            analysis_id,
        )
        if not comprehensive:
            summary = await self._bounded(
                "summary", self._profiling.summarize(profile), None, analysis_id
            )
            if summary:
                profile = replace(profile, summary=summary)
        pipeline_logger.stage_complete(
            "profiling",
            (time.monotonic() - stage_start) * 1000,
            analysis_id,
            profile_available=profile.available,
        )

        stage_start = time.monotonic()
        count = self._comprehensive_count if comprehensive else self._fast_count
        candidates = await self._bounded(
            "discovery",
            self._discovery.discover(profile, url, count, comprehensive=comprehensive),
            [],
            analysis_id,
        )
        pipeline_logger.stage_complete(
            "discovery",
            (time.monotonic() - stage_start) * 1000,
            analysis_id,
            candidate_count=len(candidates),
        )

        competitors = await self._extraction.extract_all(
            candidates, comprehensive=comprehensive
        )

        user_shipping: UserShipping | None = None
        recommendations: str | None = None
        if comprehensive:
            if content.shipping_info:
                user_shipping = UserShipping.from_profile(
                    shipping_profile_from_structured(content.shipping_info)
                )
            draft = build_report(profile, competitors, user_shipping)
            stage_start = time.monotonic()
            recommendations = await self._bounded(
                "recommendations",
                self._recommendations.recommend(
                    profile, draft.competitors, draft.average_threshold, user_shipping
                ),
                None,
                analysis_id,
            )
            pipeline_logger.stage_complete(
                "recommendations", (time.monotonic() - stage_start) * 1000, analysis_id
            )

        return build_report(profile, competitors, user_shipping, recommendations)

    async def _create_record(
        self, url: str, mode: AnalysisMode, user_id: str | None
    ) -> str | None:
        if not user_id or self._store is None:
            return None
        try:
            return await self._store.create(
                website_url=url,
                analysis_type=mode.analysis_type.value,
                user_id=user_id,
            )
        except PersistenceError as e:
            pipeline_logger.persistence_failure("create", e)
            return None

    async def _mark_failed(self, analysis_id: str | None, error_message: str) -> None:
        if analysis_id is None or self._store is None:
            return
        try:
            await self._store.mark_failed(analysis_id, error_message)
        except PersistenceError as e:
            pipeline_logger.persistence_failure("mark_failed", e, analysis_id)

    async def _mark_completed(self, analysis_id: str | None, report: ShippingReport) -> None:
        if analysis_id is None or self._store is None:
            return
        try:
            await self._store.mark_completed(
                analysis_id,
                business_analysis=report.business_profile.text,
                business_summary=report.business_profile.summary,
                competitors_data=[c.to_dict() for c in report.competitors],
                competitor_count=len(report.competitors),
                average_threshold=report.average_threshold,
            )
        except PersistenceError as e:
            pipeline_logger.persistence_failure("mark_completed", e, analysis_id)
