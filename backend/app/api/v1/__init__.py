"""API v1 router and endpoint organization."""

from fastapi import APIRouter

from app.api.v1.endpoints import analyses, analyze

router = APIRouter(tags=["v1"])

router.include_router(analyze.router, prefix="/analyze", tags=["Analyze"])
router.include_router(analyses.router, prefix="/analyses", tags=["Analyses"])
