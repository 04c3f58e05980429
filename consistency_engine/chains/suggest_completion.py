"""Completion chain: propose an edited version of the whole document."""

from collections.abc import AsyncIterator

from anthropic import AsyncAnthropic

from consistency_engine.core.config import Settings, get_settings
from consistency_engine.core.llm import get_anthropic_client
from consistency_engine.core.logging import get_logger

logger = get_logger(__name__)


SYSTEM_PROMPT = """You are a planning assistant that helps improve project planning documents.

Your job is to suggest edits to the document. You can:
- Add new content (like tech stack suggestions)
- Modify existing content to improve it
- Remove content that's no longer relevant

IMPORTANT: Return the COMPLETE edited document, not just the changes.

Guidelines:
- Keep the user's original intent and voice
- Be concise and practical
- If the document describes a project, you may suggest a tech stack
- If tech stack already exists and project scope changes, update the tech stack accordingly
- Write in plain text, no markdown formatting symbols
- Use bullet points (•) for lists"""


def build_completion_prompt(content: str) -> str:
    return (
        f'Here is the current document:\n\n"""\n{content}\n"""\n\n'
        "Suggest improvements or additions to this document. "
        "Return the complete edited version of the document."
    )


async def stream_completion(
    content: str,
    *,
    settings: Settings | None = None,
    client: AsyncAnthropic | None = None,
) -> AsyncIterator[str]:
    """
    Stream a complete replacement document.

    Raises:
        CapabilityNotConfiguredError: If ANTHROPIC_API_KEY is not set
    """
    settings = settings or get_settings()
    client = client or get_anthropic_client("completion", settings)

    logger.debug("Streaming completion", extra={"chars": len(content)})

    async with client.messages.stream(
        model=settings.ANTHROPIC_MODEL,
        max_tokens=settings.SUGGEST_MAX_TOKENS,
        system=SYSTEM_PROMPT,
        messages=[{"role": "user", "content": build_completion_prompt(content)}],
    ) as stream:
        async for event in stream:
            if event.type == "content_block_delta" and hasattr(event.delta, "text"):
                yield event.delta.text
