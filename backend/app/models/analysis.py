"""AnalysisRecord model for persisted competitor shipping analyses.

An AnalysisRecord is written when an analysis starts (status=processing)
and updated exactly once when it finishes:
- status: processing -> completed | failed, never back to processing
- business_analysis / business_summary: profiling narrative
- competitors_data: list of {name, website, products, shipping_incentives, threshold}
- average_threshold: mean of known competitor thresholds (0 when none known)
- error_message: set when the analysis failed or was reaped
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from sqlalchemy import DateTime, Float, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class AnalysisStatus(str, Enum):
    """Status lifecycle for analysis records."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class AnalysisType(str, Enum):
    """Kind of analysis a record holds, one per pipeline mode."""

    FAST = "fast_competitor_analysis"
    COMPREHENSIVE = "comprehensive_competitor_analysis"


class AnalysisRecord(Base):
    """Persisted result of a competitor shipping analysis.

    Attributes:
        id: UUID primary key
        user_id: Owner of the analysis (nullable for anonymous runs)
        website_url: Normalized URL that was analyzed
        analysis_type: fast_competitor_analysis or comprehensive_competitor_analysis
        status: processing, completed or failed
        business_analysis: Business profile narrative
        business_summary: Short business summary (fast mode)
        competitors_data: Competitor rows as rendered in the report
        competitor_count: Number of competitors in competitors_data
        average_threshold: Mean known competitor free-shipping threshold
        error_message: Failure reason for failed analyses
        created_at: Timestamp when record was created
        updated_at: Timestamp when record was last updated
    """

    __tablename__ = "analysis_records"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
        server_default=text("gen_random_uuid()"),
    )

    user_id: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        index=True,
    )

    website_url: Mapped[str] = mapped_column(
        String(2048),
        nullable=False,
    )

    analysis_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=AnalysisType.FAST.value,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=AnalysisStatus.PROCESSING.value,
        server_default=text("'processing'"),
        index=True,
    )

    business_analysis: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    business_summary: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    competitors_data: Mapped[list[dict[str, Any]] | None] = mapped_column(
        JSONB,
        nullable=True,
    )

    competitor_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )

    average_threshold: Mapped[float | None] = mapped_column(
        Float,
        nullable=True,
    )

    error_message: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        server_default=text("now()"),
        index=True,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        server_default=text("now()"),
        onupdate=lambda: datetime.now(UTC),
    )

    @property
    def is_terminal(self) -> bool:
        """Whether the record has reached completed or failed."""
        return self.status != AnalysisStatus.PROCESSING.value

    def __repr__(self) -> str:
        return (
            f"<AnalysisRecord(id={self.id!r}, url={self.website_url!r}, "
            f"status={self.status!r})>"
        )
