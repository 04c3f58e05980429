"""API endpoint for the consistency analyzer capability."""

from fastapi import APIRouter, HTTPException

from consistency_engine.chains.analyze_consistency import analyze_consistency
from consistency_engine.core.config import get_settings
from consistency_engine.core.exceptions import CapabilityNotConfiguredError
from consistency_engine.core.llm import get_anthropic_client
from consistency_engine.core.logging import get_logger
from consistency_engine.core.schemas_audit import AnalyzeRequest, ConflictAnalysis

logger = get_logger(__name__)

router = APIRouter()


@router.post("/analyze", response_model=list[ConflictAnalysis])
async def analyze(request: AnalyzeRequest) -> list[ConflictAnalysis]:
    """
    Classify candidate chunks against an edit.

    Raises:
        HTTPException 400: If editedChunkAfter or chunks is missing
        HTTPException 500: If the analyzer is not configured or fails
    """
    settings = get_settings()

    try:
        client = get_anthropic_client("analyzer", settings)
    except CapabilityNotConfiguredError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e

    if not request.edited_chunk_after or not request.chunks:
        raise HTTPException(status_code=400, detail="Missing editedChunkAfter or chunks")

    try:
        return await analyze_consistency(request, settings=settings, client=client)
    except Exception as e:
        logger.exception("Analyze request failed")
        raise HTTPException(status_code=500, detail=str(e) or "Unknown error") from e
