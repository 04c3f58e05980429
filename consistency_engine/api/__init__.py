"""API router for v1 endpoints."""

from fastapi import APIRouter

from consistency_engine.api import analyze, patch, sessions, suggest

router = APIRouter()

# Text capabilities
router.include_router(analyze.router, tags=["analyze"])
router.include_router(patch.router, tags=["patch"])
router.include_router(suggest.router, tags=["suggest"])

# Editing sessions and dirty queues
router.include_router(sessions.router, tags=["sessions"])
