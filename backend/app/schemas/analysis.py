"""Pydantic schemas for the analysis API.

Defines request/response models for the analyze and analysis record
endpoints. The analyze request accepts both ``userId`` and ``user_id``.
"""

import re
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.services.analysis_pipeline import AnalysisMode

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class AnalyzeRequest(BaseModel):
    """Request body for POST /analyze.

    url is optional at the schema level so that a missing URL produces
    the endpoint's 400 error body instead of a validation error.
    """

    model_config = ConfigDict(populate_by_name=True)

    url: str | None = Field(None, max_length=2048, description="Website to analyze")
    user_id: str | None = Field(
        None,
        alias="userId",
        max_length=255,
        description="Owner of the analysis; enables persistence when set",
    )
    mode: AnalysisMode = Field(
        default=AnalysisMode.FAST,
        description="fast or comprehensive",
    )

    @field_validator("url", "user_id")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        """Treat whitespace-only values as missing."""
        if v is None:
            return None
        v = v.strip()
        return v or None


class CompetitorResponse(BaseModel):
    name: str
    website: str
    products: str
    shipping_incentives: str
    threshold: float | None = None


class UserShippingResponse(BaseModel):
    threshold: float | None = None
    analysis: str


class AnalyzeResponse(BaseModel):
    """Success body of POST /analyze."""

    success: bool = True
    business_analysis: str
    business_summary: str | None = None
    competitors: list[CompetitorResponse] = Field(default_factory=list)
    user_shipping: UserShippingResponse | None = None
    average_threshold: float = 0.0
    recommendations: str | None = None
    analysis_time_ms: int
    analysis_id: str | None = None


class AnalysisRecordResponse(BaseModel):
    """A persisted analysis record."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str | None = None
    website_url: str
    analysis_type: str
    status: str
    business_analysis: str | None = None
    business_summary: str | None = None
    competitors_data: list[dict[str, Any]] | None = None
    competitor_count: int = 0
    average_threshold: float | None = None
    error_message: str | None = None
    created_at: datetime
    updated_at: datetime


class AnalysisHistoryResponse(BaseModel):
    """Paginated analysis history of a user."""

    history: list[AnalysisRecordResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class ReapedAnalysisResponse(BaseModel):
    id: str
    website_url: str
    user_id: str | None = None
    created_at: str


class CleanupStaleResponse(BaseModel):
    """Result of POST /analyses/cleanup-stale."""

    success: bool = True
    message: str
    cleaned_count: int
    cleaned_analyses: list[ReapedAnalysisResponse] = Field(default_factory=list)


class EmailReportRequest(BaseModel):
    """Request body for POST /analyses/{analysis_id}/email."""

    email: str = Field(..., max_length=320)
    name: str | None = Field(None, max_length=255)
    user_threshold: float | None = Field(
        None,
        ge=0,
        description="The site's own free shipping threshold (0 = free on all orders)",
    )

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        """Basic email address shape check."""
        v = v.strip()
        if not _EMAIL_PATTERN.match(v):
            raise ValueError("email must be a valid email address")
        return v


class EmailReportResponse(BaseModel):
    success: bool = True
    recipient: str


class ErrorResponse(BaseModel):
    """Structured API error."""

    error: str
    code: str
    request_id: str
