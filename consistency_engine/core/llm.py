"""Anthropic client utilities and LLM output parsing."""

import json
import re
from typing import TypeVar

from anthropic import AsyncAnthropic
from pydantic import BaseModel

from consistency_engine.core.config import Settings, get_settings
from consistency_engine.core.exceptions import CapabilityNotConfiguredError

T = TypeVar("T", bound=BaseModel)


def get_anthropic_client(capability: str, settings: Settings | None = None) -> AsyncAnthropic:
    """
    Get a configured async Anthropic client.

    Args:
        capability: Name of the capability asking for a client (for error reporting)
        settings: Settings override (defaults to cached settings)

    Returns:
        AsyncAnthropic instance configured with the API key

    Raises:
        CapabilityNotConfiguredError: If ANTHROPIC_API_KEY is not set
    """
    settings = settings or get_settings()
    if not settings.ANTHROPIC_API_KEY:
        raise CapabilityNotConfiguredError(capability)

    return AsyncAnthropic(api_key=settings.ANTHROPIC_API_KEY)


FENCE_PATTERN = re.compile(r"```(?:json)?\s*\n?(.*?)```", re.DOTALL)


def extract_json_text(raw_output: str) -> str:
    """
    Pull the JSON payload out of a model reply.

    Prefers the first fenced block; otherwise takes the span from the first
    opening brace or bracket to the last matching closer, which drops any
    prose the model wrapped around the object.
    """
    cleaned = raw_output.strip()

    fence_match = FENCE_PATTERN.search(cleaned)
    if fence_match:
        return fence_match.group(1).strip()

    starts = [i for i in (cleaned.find("{"), cleaned.find("[")) if i >= 0]
    if not starts:
        return cleaned
    start = min(starts)
    end = cleaned.rfind("}" if cleaned[start] == "{" else "]")
    if end < start:
        return cleaned
    return cleaned[start:end + 1]


def parse_llm_json(raw_output: str, model: type[T]) -> T:
    """
    Parse a model reply as JSON and validate it against a Pydantic model.

    Args:
        raw_output: Raw text from the model
        model: Pydantic model class to validate against

    Returns:
        Validated model instance

    Raises:
        json.JSONDecodeError: If no valid JSON can be extracted
        pydantic.ValidationError: If the JSON doesn't match the schema
    """
    return model.model_validate(json.loads(extract_json_text(raw_output)))


def response_text(response) -> str:
    """Concatenate the text blocks of an Anthropic message response."""
    return "".join(
        block.text for block in (response.content or []) if getattr(block, "type", "") == "text"
    )
