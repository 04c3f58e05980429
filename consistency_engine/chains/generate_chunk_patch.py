"""Patch chain: regenerate one flagged chunk so it matches a recent edit."""

from collections.abc import AsyncIterator

from anthropic import AsyncAnthropic

from consistency_engine.core.config import Settings, get_settings
from consistency_engine.core.llm import get_anthropic_client
from consistency_engine.core.logging import get_logger
from consistency_engine.core.schemas_audit import CursorContext, PatchRequest, RefactoringDirective

logger = get_logger(__name__)


SYSTEM_PROMPT = """You are a document consistency assistant. Update text to match recent changes.

RULES:
- Output ONLY the updated text
- No explanations or metadata
- Preserve style, tone, formatting
- Minimal changes for consistency
- PLAIN TEXT ONLY (no markdown)
- Follow output length guidance in user prompt"""

POSITION_PROMPTS: dict[CursorContext, str] = {
    "mid-sentence": (
        "OUTPUT LENGTH: Complete the current sentence naturally. 1-10 words max.\n"
        "Do not start new sentences. Blend seamlessly."
    ),
    "end-of-sentence": (
        "OUTPUT LENGTH: Generate 1-2 new sentences. 15-30 words.\n"
        "Keep same style and tone."
    ),
    "end-of-line": "OUTPUT LENGTH: Generate 1-2 sentences at paragraph end. 15-30 words.",
    "new-block": (
        "OUTPUT LENGTH: Generate a new paragraph (2-4 sentences, 30-60 words).\n"
        "Start fresh but maintain document consistency."
    ),
}


def format_directive(directive: RefactoringDirective) -> str | None:
    """Render one directive as a prompt instruction line."""
    if directive.action == "replace":
        if not directive.replacement:
            return None
        return f'  • REPLACE "{directive.target}" WITH "{directive.replacement}": {directive.rationale}'
    if directive.action == "rephrase":
        return f'  • REPHRASE "{directive.target}": {directive.rationale}'
    if directive.action == "remove":
        return f'  • REMOVE "{directive.target}": {directive.rationale}'
    return f'  • KEEP "{directive.target}" unchanged: {directive.rationale}'


def build_patch_prompt(request: PatchRequest) -> str:
    """Assemble the patch prompt from the windowed context and verdict."""
    position_prompt = POSITION_PROMPTS[request.cursor_context or "end-of-sentence"]

    prompt = (
        f"{position_prompt}\n\n"
        f"PRIMARY INTENT: {request.global_context}\n"
        f"REASON: {request.reason}\n\n"
    )

    analysis = request.conflict_analysis
    if analysis and analysis.conflict_type == "needs_update":
        prompt += f"CONFLICT: {analysis.details}\n\n"
        lines = [line for line in map(format_directive, analysis.refactoring_directives) if line]
        if lines:
            prompt += "DIRECTIVES:\n" + "\n".join(lines) + "\n\n"

    if request.prefix.strip():
        prompt += f'TEXT BEFORE:\n"""\n{request.prefix}\n"""\n\n'

    prompt += f'CHUNK TO UPDATE:\n"""\n{request.chunk_content}\n"""\n\n'

    if request.suffix.strip():
        prompt += f'TEXT AFTER:\n"""\n{request.suffix}\n"""\n\n'

    prompt += "Output ONLY the updated text."
    return prompt


async def stream_chunk_patch(
    request: PatchRequest,
    *,
    settings: Settings | None = None,
    client: AsyncAnthropic | None = None,
) -> AsyncIterator[str]:
    """
    Stream replacement text for request.chunk_content.

    Yields:
        Text deltas as they arrive

    Raises:
        CapabilityNotConfiguredError: If ANTHROPIC_API_KEY is not set
    """
    settings = settings or get_settings()
    client = client or get_anthropic_client("patcher", settings)

    logger.debug(
        "Streaming chunk patch",
        extra={"cursor_context": request.cursor_context, "chars": len(request.chunk_content)},
    )

    async with client.messages.stream(
        model=settings.ANTHROPIC_MODEL,
        max_tokens=settings.PATCH_MAX_TOKENS,
        system=SYSTEM_PROMPT,
        messages=[{"role": "user", "content": build_patch_prompt(request)}],
    ) as stream:
        async for event in stream:
            if event.type == "content_block_delta" and hasattr(event.delta, "text"):
                yield event.delta.text
