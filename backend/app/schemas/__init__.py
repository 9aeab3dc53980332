"""Schemas layer - Pydantic models for API validation.

Schemas define the shape of data for API requests and responses.
They handle validation, serialization, and documentation.
"""

from app.schemas.analysis import (
    AnalysisHistoryResponse,
    AnalysisRecordResponse,
    AnalyzeRequest,
    AnalyzeResponse,
    CleanupStaleResponse,
    CompetitorResponse,
    EmailReportRequest,
    EmailReportResponse,
    ErrorResponse,
    ReapedAnalysisResponse,
    UserShippingResponse,
)

__all__ = [
    "AnalysisHistoryResponse",
    "AnalysisRecordResponse",
    "AnalyzeRequest",
    "AnalyzeResponse",
    "CleanupStaleResponse",
    "CompetitorResponse",
    "EmailReportRequest",
    "EmailReportResponse",
    "ErrorResponse",
    "ReapedAnalysisResponse",
    "UserShippingResponse",
]
