"""API endpoint for the completion capability (streamed plain text)."""

from collections.abc import AsyncGenerator

from fastapi import APIRouter, HTTPException
from fastapi.responses import StreamingResponse

from consistency_engine.chains.suggest_completion import stream_completion
from consistency_engine.core.config import get_settings
from consistency_engine.core.exceptions import CapabilityNotConfiguredError
from consistency_engine.core.llm import get_anthropic_client
from consistency_engine.core.logging import get_logger
from consistency_engine.core.schemas_audit import SuggestRequest

logger = get_logger(__name__)

router = APIRouter()


@router.post("/suggest")
async def suggest(request: SuggestRequest) -> StreamingResponse:
    """Stream a complete edited version of the document."""
    settings = get_settings()

    try:
        client = get_anthropic_client("completion", settings)
    except CapabilityNotConfiguredError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e

    async def generate() -> AsyncGenerator[str, None]:
        try:
            async for text in stream_completion(request.content, settings=settings, client=client):
                yield text
        except Exception as e:
            logger.error(f"Completion stream failed: {e}", exc_info=True)
            raise

    return StreamingResponse(generate(), media_type="text/plain; charset=utf-8")
