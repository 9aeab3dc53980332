"""Analyze endpoint.

- POST /api/v1/analyze - Run a competitor shipping analysis for a website

The error bodies of this endpoint carry ``analysis_time_ms`` instead of
the structured ``code``/``request_id`` shape used by the other routes.

Error Logging Requirements:
- Log all incoming requests with method, path, request_id
- Log response status and timing for every request
- Log 4xx errors at WARNING, 5xx at ERROR
"""

import time

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse

from app.core.container import ServiceContainer, get_container
from app.core.logging import get_logger
from app.schemas.analysis import AnalyzeRequest, AnalyzeResponse
from app.services.analysis_pipeline import AnalysisRequest
from app.services.errors import AnalysisFailed, ConfigurationError

logger = get_logger(__name__)

router = APIRouter()


def _get_request_id(request: Request) -> str:
    """Get request_id from request state."""
    return getattr(request.state, "request_id", "unknown")


def _elapsed_ms(start_time: float) -> int:
    return round((time.monotonic() - start_time) * 1000)


@router.post(
    "",
    response_model=AnalyzeResponse,
    summary="Analyze competitor shipping",
    description=(
        "Profile the website, discover competitors and extract their free "
        "shipping thresholds. Persists the analysis when a user id is given."
    ),
    responses={
        400: {
            "description": "Missing URL",
            "content": {
                "application/json": {
                    "example": {
                        "error": "Website URL is required",
                        "analysis_time_ms": 0,
                    }
                }
            },
        },
        500: {
            "description": "Analysis failed or service not configured",
            "content": {
                "application/json": {
                    "example": {
                        "error": "Analysis failed",
                        "details": "Failed to acquire https://example.com: HTTP 503",
                        "analysis_time_ms": 812,
                    }
                }
            },
        },
    },
)
async def analyze(
    request: Request,
    body: AnalyzeRequest | None = None,
    container: ServiceContainer = Depends(get_container),
) -> AnalyzeResponse | JSONResponse:
    """Run the analysis pipeline for one website."""
    request_id = _get_request_id(request)
    start_time = time.monotonic()

    if body is None or not body.url:
        logger.warning(
            "Analyze request without URL",
            extra={"request_id": request_id},
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "error": "Website URL is required",
                "analysis_time_ms": _elapsed_ms(start_time),
            },
        )

    logger.debug(
        "Analyze request",
        extra={
            "request_id": request_id,
            "target_url": body.url[:200],
            "mode": body.mode.value,
            "has_user_id": body.user_id is not None,
        },
    )

    try:
        outcome = await container.pipeline.run(
            AnalysisRequest(url=body.url, user_id=body.user_id, mode=body.mode)
        )
    except ConfigurationError as e:
        logger.error(
            "Analysis service not configured",
            extra={"request_id": request_id, "missing": e.missing},
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Analysis service not configured",
                "details": str(e),
                "analysis_time_ms": _elapsed_ms(start_time),
            },
        )
    except AnalysisFailed as e:
        logger.error(
            "Analysis failed",
            extra={
                "request_id": request_id,
                "analysis_id": e.analysis_id,
                "error_message": str(e),
            },
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Analysis failed",
                "details": str(e),
                "analysis_time_ms": _elapsed_ms(start_time),
            },
        )
    except Exception as e:
        logger.error(
            "Unexpected error during analysis",
            extra={
                "request_id": request_id,
                "error_type": type(e).__name__,
                "error_message": str(e),
            },
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Analysis failed",
                "details": str(e),
                "analysis_time_ms": _elapsed_ms(start_time),
            },
        )

    return AnalyzeResponse.model_validate(outcome.to_response())
