"""API routers, mounted under ``/api``."""

from fastapi import APIRouter

from interview_analyzer.routers.features import router as features_router
from interview_analyzer.routers.transcripts import router as transcripts_router

router = APIRouter(prefix="/api")
router.include_router(transcripts_router, prefix="/transcripts", tags=["transcripts"])
router.include_router(features_router, prefix="/features", tags=["features"])
