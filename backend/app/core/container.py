"""Service container built in the application lifespan.

Clients and services are constructed once per application and stored on
``app.state.container``. Endpoints resolve them with ``get_container``,
and tests swap in a stand-in on ``app.state``.
"""

from dataclasses import dataclass
from typing import Any

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import Settings, get_settings
from app.core.logging import get_logger
from app.integrations.email import EmailClient
from app.integrations.firecrawl import FirecrawlClient
from app.integrations.openai import OpenAIClient
from app.integrations.perplexity import PerplexityClient
from app.integrations.web_fetcher import WebFetcher
from app.repositories.analysis import AnalysisStore
from app.services.analysis_pipeline import AnalysisPipeline
from app.services.business_profiling import BusinessProfilingService
from app.services.competitor_discovery import CompetitorDiscoveryService
from app.services.content_acquisition import ContentAcquisitionService
from app.services.report_aggregation import RecommendationService
from app.services.report_email import ReportEmailService
from app.services.shipping_extraction import ShippingExtractionService
from app.services.stale_analysis_reaper import StaleAnalysisReaper

logger = get_logger(__name__)


@dataclass
class ServiceContainer:
    """Application-scoped clients and services."""

    settings: Settings
    session_factory: async_sessionmaker[AsyncSession]
    openai: OpenAIClient
    perplexity: PerplexityClient
    firecrawl: FirecrawlClient
    fetcher: WebFetcher
    email: EmailClient
    pipeline: AnalysisPipeline
    reaper: StaleAnalysisReaper
    report_email: ReportEmailService

    @classmethod
    def build(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings | None = None,
    ) -> "ServiceContainer":
        """Wire every client and service from settings."""
        settings = settings or get_settings()

        openai = OpenAIClient()
        perplexity = PerplexityClient()
        firecrawl = FirecrawlClient()
        fetcher = WebFetcher()
        email = EmailClient()

        acquisition = ContentAcquisitionService(
            fetcher, firecrawl, strategy=settings.content_strategy
        )
        pipeline = AnalysisPipeline(
            llm=openai,
            research=perplexity,
            acquisition=acquisition,
            profiling=BusinessProfilingService(openai),
            discovery=CompetitorDiscoveryService(
                openai,
                fetcher=fetcher,
                verify_urls=settings.discovery_verify_urls,
                verify_timeout=settings.discovery_verify_timeout,
                max_count=settings.discovery_max_count,
            ),
            extraction=ShippingExtractionService(
                openai,
                research=perplexity,
                acquisition=acquisition,
                fast_timeout=settings.extraction_fast_timeout,
                comprehensive_timeout=settings.extraction_comprehensive_timeout,
            ),
            recommendations=RecommendationService(openai),
            store=AnalysisStore(session_factory),
            fast_count=settings.discovery_fast_count,
            comprehensive_count=settings.discovery_comprehensive_count,
            stage_timeout=settings.pipeline_stage_timeout,
        )

        container = cls(
            settings=settings,
            session_factory=session_factory,
            openai=openai,
            perplexity=perplexity,
            firecrawl=firecrawl,
            fetcher=fetcher,
            email=email,
            pipeline=pipeline,
            reaper=StaleAnalysisReaper(
                session_factory,
                stale_after_minutes=settings.reaper_stale_after_minutes,
            ),
            report_email=ReportEmailService(email),
        )
        logger.info(
            "Service container built",
            extra=container.integration_status(),
        )
        return container

    def integration_status(self) -> dict[str, Any]:
        """Configuration and circuit state of each external integration."""
        clients: dict[str, Any] = {
            "openai": self.openai,
            "perplexity": self.perplexity,
            "firecrawl": self.firecrawl,
            "email": self.email,
        }
        return {
            name: {
                "available": client.available,
                "circuit_state": client.circuit_breaker.state.value,
            }
            for name, client in clients.items()
        }

    async def close(self) -> None:
        """Close every HTTP client."""
        for client in (self.openai, self.perplexity, self.firecrawl, self.fetcher):
            try:
                await client.close()
            except Exception as e:
                logger.warning(
                    "Error closing client",
                    extra={
                        "client": type(client).__name__,
                        "error_type": type(e).__name__,
                        "error_message": str(e),
                    },
                )


def get_container(request: Request) -> ServiceContainer:
    """FastAPI dependency returning the application's ServiceContainer."""
    container: ServiceContainer = request.app.state.container
    return container
