"""AnalysisRepository for analysis record persistence.

Handles all database operations for AnalysisRecord entities.
Follows the layered architecture pattern: API -> Service -> Repository -> Database.

Status writes are conditional: every transition is an
``UPDATE ... WHERE status = 'processing'`` so concurrent writers (the
pipeline and the stale analysis reaper) cannot move a terminal record.

ERROR LOGGING REQUIREMENTS:
- Log method entry/exit at DEBUG level with parameters (sanitized)
- Log all exceptions with full stack trace and context
- Include entity IDs (analysis_id, user_id) in all logs
- Log state transitions (status changes) at INFO level
- Add timing logs for operations >1 second
"""

import time
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.database import transaction
from app.core.logging import db_logger, get_logger, pipeline_logger
from app.models.analysis import AnalysisRecord, AnalysisStatus
from app.services.analysis_status import validate_status_transition
from app.services.errors import PersistenceError

logger = get_logger(__name__)


class AnalysisRepository:
    """Repository for AnalysisRecord CRUD and status operations.

    All methods accept an AsyncSession and leave commit/rollback to the
    caller (see app.core.database.transaction).
    """

    TABLE_NAME = "analysis_records"
    SLOW_OPERATION_THRESHOLD_MS = 1000  # 1 second

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            session: Async SQLAlchemy session for database operations
        """
        self.session = session

    def _check_slow(self, query: str, start_time: float) -> float:
        duration_ms = (time.monotonic() - start_time) * 1000
        if duration_ms > self.SLOW_OPERATION_THRESHOLD_MS:
            db_logger.slow_query(
                query=query,
                duration_ms=duration_ms,
                table=self.TABLE_NAME,
            )
        return duration_ms

    async def create(
        self,
        website_url: str,
        analysis_type: str,
        user_id: str | None = None,
    ) -> AnalysisRecord:
        """Create a new analysis record in processing state.

        Args:
            website_url: Normalized URL being analyzed
            analysis_type: fast_competitor_analysis or comprehensive_competitor_analysis
            user_id: Owner of the analysis

        Returns:
            Created AnalysisRecord instance

        Raises:
            SQLAlchemyError: On database errors
        """
        start_time = time.monotonic()
        logger.debug(
            "Creating analysis record",
            extra={
                "user_id": user_id,
                "website_url": website_url[:200],
                "analysis_type": analysis_type,
            },
        )

        try:
            record = AnalysisRecord(
                user_id=user_id,
                website_url=website_url,
                analysis_type=analysis_type,
                status=AnalysisStatus.PROCESSING.value,
                competitor_count=0,
            )
            self.session.add(record)
            await self.session.flush()
            await self.session.refresh(record)

            duration_ms = self._check_slow("INSERT INTO analysis_records", start_time)
            logger.debug(
                "Analysis record created",
                extra={
                    "analysis_id": record.id,
                    "user_id": user_id,
                    "duration_ms": round(duration_ms, 2),
                },
            )
            return record

        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e,
                table=self.TABLE_NAME,
                context=f"Creating analysis record for user_id={user_id}",
            )
            raise

    async def get_by_id(self, analysis_id: str) -> AnalysisRecord | None:
        """Get an analysis record by ID.

        Raises:
            SQLAlchemyError: On database errors
        """
        start_time = time.monotonic()
        logger.debug("Fetching analysis record", extra={"analysis_id": analysis_id})

        try:
            result = await self.session.execute(
                select(AnalysisRecord).where(AnalysisRecord.id == analysis_id)
            )
            record = result.scalar_one_or_none()
            self._check_slow(
                f"SELECT FROM analysis_records WHERE id={analysis_id}", start_time
            )
            return record

        except SQLAlchemyError as e:
            logger.error(
                "Failed to fetch analysis record",
                extra={
                    "analysis_id": analysis_id,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                },
                exc_info=True,
            )
            raise

    async def list_by_user(
        self,
        user_id: str,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[AnalysisRecord], int]:
        """List a user's analysis records, most recent first.

        Args:
            user_id: Owner of the records
            page: 1-based page number
            limit: Page size

        Returns:
            Tuple of (records on the page, total record count)

        Raises:
            SQLAlchemyError: On database errors
        """
        start_time = time.monotonic()
        offset = (page - 1) * limit
        logger.debug(
            "Listing analysis records",
            extra={"user_id": user_id, "page": page, "limit": limit},
        )

        try:
            total = await self.session.scalar(
                select(func.count())
                .select_from(AnalysisRecord)
                .where(AnalysisRecord.user_id == user_id)
            )
            result = await self.session.execute(
                select(AnalysisRecord)
                .where(AnalysisRecord.user_id == user_id)
                .order_by(AnalysisRecord.created_at.desc())
                .offset(offset)
                .limit(limit)
            )
            records = list(result.scalars().all())
            self._check_slow(
                f"SELECT FROM analysis_records WHERE user_id={user_id}", start_time
            )
            return records, total or 0

        except SQLAlchemyError as e:
            logger.error(
                "Failed to list analysis records",
                extra={
                    "user_id": user_id,
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                },
                exc_info=True,
            )
            raise

    async def transition_status(
        self,
        analysis_id: str,
        to_status: AnalysisStatus | str,
        **fields: Any,
    ) -> bool:
        """Move a processing record to a terminal status.

        The update only applies while the record is still processing.

        Args:
            analysis_id: Record to update
            to_status: completed or failed
            **fields: Additional columns to write with the status

        Returns:
            True if the record changed, False if it was already terminal
            or does not exist

        Raises:
            InvalidStatusTransitionError: If to_status is not reachable
                from processing
            SQLAlchemyError: On database errors
        """
        validate_status_transition(AnalysisStatus.PROCESSING, to_status)
        target = AnalysisStatus(to_status)
        start_time = time.monotonic()

        try:
            result = await self.session.execute(
                update(AnalysisRecord)
                .where(
                    AnalysisRecord.id == analysis_id,
                    AnalysisRecord.status == AnalysisStatus.PROCESSING.value,
                )
                .values(
                    status=target.value,
                    updated_at=datetime.now(UTC),
                    **fields,
                )
                .execution_options(synchronize_session=False)
            )
            applied = result.rowcount == 1
            self._check_slow(
                f"UPDATE analysis_records SET status={target.value}", start_time
            )
            pipeline_logger.status_transition(
                analysis_id,
                AnalysisStatus.PROCESSING.value,
                target.value,
                applied,
            )
            return applied

        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e,
                table=self.TABLE_NAME,
                context=f"Transitioning analysis_id={analysis_id} to {target.value}",
            )
            raise

    async def mark_stale_processing_as_failed(
        self,
        cutoff: datetime,
        error_message: str = "Analysis timed out",
    ) -> list[AnalysisRecord]:
        """Fail every record still processing that was created before cutoff.

        Returns:
            The records this call moved to failed

        Raises:
            InvalidStatusTransitionError: If processing -> failed is not allowed
            SQLAlchemyError: On database errors
        """
        validate_status_transition(AnalysisStatus.PROCESSING, AnalysisStatus.FAILED)
        start_time = time.monotonic()
        logger.debug(
            "Marking stale analyses as failed",
            extra={"cutoff": cutoff.isoformat()},
        )

        try:
            result = await self.session.scalars(
                update(AnalysisRecord)
                .where(
                    AnalysisRecord.status == AnalysisStatus.PROCESSING.value,
                    AnalysisRecord.created_at < cutoff,
                )
                .values(
                    status=AnalysisStatus.FAILED.value,
                    error_message=error_message,
                    updated_at=datetime.now(UTC),
                )
                .returning(AnalysisRecord)
            )
            records = list(result.all())
            self._check_slow("UPDATE analysis_records (stale)", start_time)
            for record in records:
                pipeline_logger.status_transition(
                    record.id,
                    AnalysisStatus.PROCESSING.value,
                    AnalysisStatus.FAILED.value,
                    True,
                )
            return records

        except SQLAlchemyError as e:
            db_logger.transaction_failure(
                e,
                table=self.TABLE_NAME,
                context="Marking stale processing analyses as failed",
            )
            raise


class AnalysisStore:
    """Short-lived-session facade over AnalysisRepository for the pipeline.

    Each call opens its own session and transaction, so a slow analysis
    never holds a connection. Database failures surface as
    PersistenceError.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create(
        self,
        website_url: str,
        analysis_type: str,
        user_id: str | None = None,
    ) -> str:
        """Create a processing record and return its ID."""
        try:
            async with self._session_factory() as session:
                async with transaction(session, table=AnalysisRepository.TABLE_NAME):
                    record = await AnalysisRepository(session).create(
                        website_url=website_url,
                        analysis_type=analysis_type,
                        user_id=user_id,
                    )
                    return record.id
        except SQLAlchemyError as e:
            raise PersistenceError("create", str(e)) from e

    async def transition(
        self,
        analysis_id: str,
        to_status: AnalysisStatus,
        **fields: Any,
    ) -> bool:
        """Apply a conditional status transition in its own transaction."""
        try:
            async with self._session_factory() as session:
                async with transaction(session, table=AnalysisRepository.TABLE_NAME):
                    return await AnalysisRepository(session).transition_status(
                        analysis_id, to_status, **fields
                    )
        except SQLAlchemyError as e:
            raise PersistenceError(f"transition to {to_status.value}", str(e)) from e

    async def mark_completed(self, analysis_id: str, **fields: Any) -> bool:
        """Mark a record completed with its results."""
        return await self.transition(analysis_id, AnalysisStatus.COMPLETED, **fields)

    async def mark_failed(self, analysis_id: str, error_message: str) -> bool:
        """Mark a record failed with the reason."""
        return await self.transition(
            analysis_id, AnalysisStatus.FAILED, error_message=error_message
        )
