"""Consistency analyzer chain: which chunks conflict with an edit."""

import json

from anthropic import AsyncAnthropic
from pydantic import ValidationError

from consistency_engine.core.config import Settings, get_settings
from consistency_engine.core.exceptions import AnalyzerOutputError
from consistency_engine.core.llm import get_anthropic_client, parse_llm_json, response_text
from consistency_engine.core.logging import get_logger
from consistency_engine.core.schemas_audit import (
    AnalyzeRequest,
    AnalyzerOutput,
    AnalyzerVerdict,
    ConflictAnalysis,
    RefactoringDirective,
)

logger = get_logger(__name__)


SYSTEM_PROMPT = """You are a document consistency analyzer. The user has made an edit to their document. Your job is to check if other parts of the document are now inconsistent with this edit.

IMPORTANT: Focus on LOGICAL consistency, not just word matching. For example:
- If user changes "React" to "Vue.js", any chunk mentioning React-specific concepts (useState, JSX syntax, etc.) needs updating
- If user changes "2023" to "2024", dates and timeframes may need updating
- If user changes a character's name, all references to that character need updating
- If user changes a technical approach, related explanations may be outdated

For each chunk, determine:
- needs_update: The chunk contains information that conflicts with or is inconsistent with the edit
- consistent: The chunk is fine as-is, no conflicts

Be thorough but precise. Only mark chunks that truly conflict.

You MUST output ONLY valid JSON matching this exact schema:
```json
{
  "analyses": [
    {
      "chunkId": "string - chunk id from the input",
      "conflictType": "needs_update|consistent",
      "reason": "string - brief explanation of why this chunk needs/doesn't need updating",
      "suggestedChange": "string or null - if needs_update, what should change"
    }
  ]
}
```
"""

FIX_SCHEMA_PROMPT = """The previous output failed schema validation.
Error details:
{error}

Please fix the output to match the required JSON schema exactly. Output ONLY valid JSON."""


def build_analyze_prompt(request: AnalyzeRequest) -> str:
    """Render the edit and the candidate chunks for the analyzer."""
    before = request.edited_chunk_before or "(new content added)"
    prompt = (
        "THE EDIT THAT WAS MADE:\n\n"
        f'BEFORE:\n"""\n{before}\n"""\n\n'
        f'AFTER:\n"""\n{request.edited_chunk_after}\n"""\n\n'
        "OTHER CHUNKS TO CHECK FOR CONSISTENCY:\n"
    )

    for chunk in request.chunks:
        prompt += f'\n---\nChunk ID: {chunk.chunk_id}\nContent:\n"""\n{chunk.content}\n"""\n'

    prompt += (
        "\nAnalyze each chunk. Does it contain anything that now conflicts with "
        "or is inconsistent with the edit above?"
    )
    return prompt


def to_conflict_analysis(verdict: AnalyzerVerdict) -> ConflictAnalysis:
    """A suggested change becomes a single rephrase directive on the whole chunk."""
    directives = []
    if verdict.suggested_change:
        directives.append(
            RefactoringDirective(
                action="rephrase",
                target="chunk",
                replacement=verdict.suggested_change,
                rationale=verdict.reason,
            )
        )
    return ConflictAnalysis(
        chunk_id=verdict.chunk_id,
        conflict_type=verdict.conflict_type,
        details=verdict.reason,
        refactoring_directives=directives,
    )


async def analyze_consistency(
    request: AnalyzeRequest,
    *,
    settings: Settings | None = None,
    client: AsyncAnthropic | None = None,
) -> list[ConflictAnalysis]:
    """
    Ask the model which candidate chunks conflict with an edit.

    Args:
        request: Edited chunk before/after plus candidate chunks
        settings: Settings override (defaults to cached settings)
        client: Client override (defaults to a client built from settings)

    Returns:
        One ConflictAnalysis per verdict the model returned

    Raises:
        CapabilityNotConfiguredError: If ANTHROPIC_API_KEY is not set
        AnalyzerOutputError: If model output cannot be validated after retry
    """
    settings = settings or get_settings()
    client = client or get_anthropic_client("analyzer", settings)
    user_prompt = build_analyze_prompt(request)

    logger.info(
        f"Calling {settings.ANTHROPIC_MODEL} for consistency analysis",
        extra={"chunk_count": len(request.chunks)},
    )

    messages = [{"role": "user", "content": user_prompt}]
    response = await client.messages.create(
        model=settings.ANTHROPIC_MODEL,
        max_tokens=settings.ANALYZE_MAX_TOKENS,
        temperature=0,
        system=SYSTEM_PROMPT,
        messages=messages,
    )
    raw_output = response_text(response)

    try:
        output = parse_llm_json(raw_output, AnalyzerOutput)
        return [to_conflict_analysis(v) for v in output.analyses]
    except (json.JSONDecodeError, ValidationError) as e:
        error_msg = str(e)
        logger.warning(f"First analyzer attempt failed validation: {error_msg}")

    # One retry with fix-to-schema prompt
    logger.info("Attempting retry with fix-to-schema prompt")

    retry_response = await client.messages.create(
        model=settings.ANTHROPIC_MODEL,
        max_tokens=settings.ANALYZE_MAX_TOKENS,
        temperature=0,
        system=SYSTEM_PROMPT,
        messages=[
            *messages,
            {"role": "assistant", "content": raw_output or "{}"},
            {"role": "user", "content": FIX_SCHEMA_PROMPT.format(error=error_msg)},
        ],
    )
    retry_output = response_text(retry_response)

    try:
        output = parse_llm_json(retry_output, AnalyzerOutput)
        logger.info("Analyzer retry succeeded")
        return [to_conflict_analysis(v) for v in output.analyses]
    except (json.JSONDecodeError, ValidationError) as e:
        logger.error(f"Second analyzer attempt failed validation: {e}")
        raise AnalyzerOutputError("Analyzer output could not be validated to schema") from e
