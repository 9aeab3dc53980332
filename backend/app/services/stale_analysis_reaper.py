"""Stale analysis reaper.

Analyses left in 'processing' (process restarts, crashes, requests cut
off by the client) are failed once they are older than the staleness
window. The reaper runs on a schedule and on demand from the
cleanup-stale endpoint.

The update is conditional on status='processing', so a record the
pipeline completes concurrently is never overwritten.

ERROR LOGGING REQUIREMENTS:
- Log method entry/exit at DEBUG level with parameters (sanitized)
- Log all exceptions with full stack trace and context
- Include entity IDs (analysis_id) in all service logs
- Log state transitions at INFO level
- Add timing logs for operations >1 second
"""

import time
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.database import transaction
from app.core.logging import get_logger
from app.repositories.analysis import AnalysisRepository

logger = get_logger(__name__)

SLOW_OPERATION_THRESHOLD_MS = 1000  # 1 second

DEFAULT_STALE_AFTER_MINUTES = 3

STALE_ERROR_MESSAGE = "Analysis timed out"


@dataclass
class ReapedAnalysis:
    """An analysis the reaper moved to failed."""

    analysis_id: str
    website_url: str
    user_id: str | None
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.analysis_id,
            "website_url": self.website_url,
            "user_id": self.user_id,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class ReapSummary:
    """Summary of one reaper pass."""

    cutoff: datetime
    reaped: list[ReapedAnalysis] = field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def cleaned_count(self) -> int:
        return len(self.reaped)

    @property
    def message(self) -> str:
        if not self.reaped:
            return "No stuck analyses found"
        return f"Successfully cleaned up {self.cleaned_count} stuck analyses"


class StaleAnalysisReaper:
    """Fails analyses stuck in processing past the staleness window."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        stale_after_minutes: int = DEFAULT_STALE_AFTER_MINUTES,
    ) -> None:
        self._session_factory = session_factory
        self.stale_after_minutes = stale_after_minutes

    async def reap(self, now: datetime | None = None) -> ReapSummary:
        """Run one reaper pass in its own transaction.

        Args:
            now: Reference time (defaults to the current UTC time)

        Returns:
            ReapSummary listing the analyses this pass failed

        Raises:
            SQLAlchemyError: On database errors
        """
        start_time = time.monotonic()
        cutoff = (now or datetime.now(UTC)) - timedelta(minutes=self.stale_after_minutes)
        summary = ReapSummary(cutoff=cutoff)
        logger.debug(
            "Starting stale analysis reap",
            extra={"cutoff": cutoff.isoformat()},
        )

        try:
            async with self._session_factory() as session:
                async with transaction(session, table=AnalysisRepository.TABLE_NAME):
                    records = await AnalysisRepository(
                        session
                    ).mark_stale_processing_as_failed(cutoff, STALE_ERROR_MESSAGE)
                    summary.reaped = [
                        ReapedAnalysis(
                            analysis_id=record.id,
                            website_url=record.website_url,
                            user_id=record.user_id,
                            created_at=record.created_at,
                        )
                        for record in records
                    ]
        except Exception as e:
            logger.error(
                "Stale analysis reap failed",
                extra={
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                },
                exc_info=True,
            )
            raise

        summary.duration_ms = (time.monotonic() - start_time) * 1000
        log = logger.info if summary.reaped else logger.debug
        log(
            "Stale analysis reap completed",
            extra={
                "cleaned_count": summary.cleaned_count,
                "analysis_ids": [r.analysis_id for r in summary.reaped],
                "duration_ms": round(summary.duration_ms, 2),
            },
        )
        if summary.duration_ms > SLOW_OPERATION_THRESHOLD_MS:
            logger.warning(
                "Slow stale analysis reap",
                extra={"duration_ms": round(summary.duration_ms, 2)},
            )
        return summary


async def reap_stale_analyses_job(reaper: StaleAnalysisReaper) -> int:
    """Scheduled job entry point.

    Returns:
        Number of analyses failed by this pass
    """
    summary = await reaper.reap()
    return summary.cleaned_count
