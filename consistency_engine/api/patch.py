"""API endpoint for the chunk patcher capability (streamed plain text)."""

from collections.abc import AsyncGenerator

from fastapi import APIRouter, HTTPException
from fastapi.responses import StreamingResponse

from consistency_engine.chains.generate_chunk_patch import stream_chunk_patch
from consistency_engine.core.config import get_settings
from consistency_engine.core.exceptions import CapabilityNotConfiguredError
from consistency_engine.core.llm import get_anthropic_client
from consistency_engine.core.logging import get_logger
from consistency_engine.core.schemas_audit import PatchRequest

logger = get_logger(__name__)

router = APIRouter()


@router.post("/patch")
async def patch(request: PatchRequest) -> StreamingResponse:
    """
    Stream replacement text for one chunk.

    Raises:
        HTTPException 400: If chunkContent is missing
        HTTPException 500: If the patcher is not configured
    """
    settings = get_settings()

    try:
        client = get_anthropic_client("patcher", settings)
    except CapabilityNotConfiguredError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e

    if not request.chunk_content:
        raise HTTPException(status_code=400, detail="Missing chunkContent")

    async def generate() -> AsyncGenerator[str, None]:
        try:
            async for text in stream_chunk_patch(request, settings=settings, client=client):
                yield text
        except Exception as e:
            logger.error(f"Patch stream failed: {e}", exc_info=True)
            raise

    return StreamingResponse(generate(), media_type="text/plain; charset=utf-8")
