"""Analysis record API endpoints.

- GET /api/v1/analyses/{analysis_id} - Get one analysis record
- GET /api/v1/analyses?user_id=... - Paginated analysis history of a user
- POST /api/v1/analyses/cleanup-stale - Fail analyses stuck in processing
- POST /api/v1/analyses/{analysis_id}/email - Email the action plan

Error Logging Requirements:
- Log all incoming requests with method, path, request_id
- Return structured error responses: {"error": str, "code": str, "request_id": str}
- Log 4xx errors at WARNING, 5xx at ERROR
"""

import math

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.container import ServiceContainer, get_container
from app.core.database import get_session
from app.core.logging import get_logger
from app.models.analysis import AnalysisStatus
from app.repositories.analysis import AnalysisRepository
from app.schemas.analysis import (
    AnalysisHistoryResponse,
    AnalysisRecordResponse,
    CleanupStaleResponse,
    EmailReportRequest,
    EmailReportResponse,
    ReapedAnalysisResponse,
)

logger = get_logger(__name__)

router = APIRouter()


def _get_request_id(request: Request) -> str:
    """Get request_id from request state."""
    return getattr(request.state, "request_id", "unknown")


def _error(status_code: int, error: str, code: str, request_id: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "code": code, "request_id": request_id},
    )


@router.get(
    "",
    response_model=AnalysisHistoryResponse,
    summary="List analysis history",
    description="Analyses of a user, most recent first.",
)
async def list_analyses(
    request: Request,
    user_id: str = Query(..., min_length=1, max_length=255),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
) -> AnalysisHistoryResponse:
    request_id = _get_request_id(request)
    logger.debug(
        "Listing analyses",
        extra={"request_id": request_id, "user_id": user_id, "page": page},
    )

    records, total = await AnalysisRepository(session).list_by_user(
        user_id, page=page, limit=limit
    )
    return AnalysisHistoryResponse(
        history=[AnalysisRecordResponse.model_validate(r) for r in records],
        total=total,
        page=page,
        limit=limit,
        total_pages=math.ceil(total / limit) if total else 0,
    )


@router.post(
    "/cleanup-stale",
    response_model=CleanupStaleResponse,
    summary="Clean up stuck analyses",
    description="Mark analyses stuck in processing past the staleness window as failed.",
)
async def cleanup_stale_analyses(
    request: Request,
    container: ServiceContainer = Depends(get_container),
) -> CleanupStaleResponse | JSONResponse:
    request_id = _get_request_id(request)

    try:
        summary = await container.reaper.reap()
    except Exception as e:
        logger.error(
            "Stale analysis cleanup failed",
            extra={
                "request_id": request_id,
                "error_type": type(e).__name__,
                "error_message": str(e),
            },
            exc_info=True,
        )
        return _error(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Failed to clean up stuck analyses",
            "CLEANUP_FAILED",
            request_id,
        )

    return CleanupStaleResponse(
        message=summary.message,
        cleaned_count=summary.cleaned_count,
        cleaned_analyses=[
            ReapedAnalysisResponse(**r.to_dict()) for r in summary.reaped
        ],
    )


@router.get(
    "/{analysis_id}",
    response_model=AnalysisRecordResponse,
    summary="Get an analysis",
    responses={
        404: {
            "description": "Analysis not found",
            "content": {
                "application/json": {
                    "example": {
                        "error": "Analysis not found: <uuid>",
                        "code": "NOT_FOUND",
                        "request_id": "<request_id>",
                    }
                }
            },
        },
    },
)
async def get_analysis(
    request: Request,
    analysis_id: str,
    session: AsyncSession = Depends(get_session),
) -> AnalysisRecordResponse | JSONResponse:
    request_id = _get_request_id(request)

    record = await AnalysisRepository(session).get_by_id(analysis_id)
    if record is None:
        logger.warning(
            "Analysis not found",
            extra={"request_id": request_id, "analysis_id": analysis_id},
        )
        return _error(
            status.HTTP_404_NOT_FOUND,
            f"Analysis not found: {analysis_id}",
            "NOT_FOUND",
            request_id,
        )

    return AnalysisRecordResponse.model_validate(record)


@router.post(
    "/{analysis_id}/email",
    response_model=EmailReportResponse,
    summary="Email the shipping action plan",
    description=(
        "Render the competitive grade, threshold options and competitor table "
        "of a completed analysis and send it by email."
    ),
    responses={
        404: {"description": "Analysis not found"},
        409: {"description": "Analysis is not completed"},
        502: {"description": "Email could not be sent"},
    },
)
async def email_analysis_report(
    request: Request,
    analysis_id: str,
    data: EmailReportRequest,
    session: AsyncSession = Depends(get_session),
    container: ServiceContainer = Depends(get_container),
) -> EmailReportResponse | JSONResponse:
    request_id = _get_request_id(request)

    record = await AnalysisRepository(session).get_by_id(analysis_id)
    if record is None:
        logger.warning(
            "Analysis not found",
            extra={"request_id": request_id, "analysis_id": analysis_id},
        )
        return _error(
            status.HTTP_404_NOT_FOUND,
            f"Analysis not found: {analysis_id}",
            "NOT_FOUND",
            request_id,
        )

    if record.status != AnalysisStatus.COMPLETED.value:
        logger.warning(
            "Email requested for unfinished analysis",
            extra={
                "request_id": request_id,
                "analysis_id": analysis_id,
                "status": record.status,
            },
        )
        return _error(
            status.HTTP_409_CONFLICT,
            f"Analysis is {record.status}, not completed",
            "INVALID_STATE",
            request_id,
        )

    if not container.report_email.available:
        logger.error(
            "Email delivery not configured",
            extra={"request_id": request_id, "analysis_id": analysis_id},
        )
        return _error(
            status.HTTP_502_BAD_GATEWAY,
            "Email delivery is not configured",
            "EMAIL_FAILED",
            request_id,
        )

    result = await container.report_email.send_report(
        record,
        data.email,
        name=data.name,
        user_threshold=data.user_threshold,
    )
    if not result.success:
        logger.error(
            "Report email failed",
            extra={
                "request_id": request_id,
                "analysis_id": analysis_id,
                "error_message": result.error,
            },
        )
        return _error(
            status.HTTP_502_BAD_GATEWAY,
            result.error or "Failed to send email",
            "EMAIL_FAILED",
            request_id,
        )

    return EmailReportResponse(recipient=data.email)
