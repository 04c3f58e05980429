"""Completion triggering: debounce, single-flight requests and post-accept suppression."""

import asyncio
import re
import uuid
from collections.abc import AsyncIterator, Callable

from consistency_engine.core.config import Settings
from consistency_engine.core.diff import compute_diff, has_changes
from consistency_engine.core.logging import get_logger
from consistency_engine.core.schemas_audit import DiffSegment, Suggestion

logger = get_logger(__name__)

Completion = Callable[[str], AsyncIterator[str]]

TRIGGER_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"my project is",
        r"building a",
        r"creating a",
        r"i want to build",
        r"application for",
        r"app for",
        r"i(')?m making",
        r"we(')?re building",
    )
]

NO_SUGGESTION_ERROR = "No suggestion generated"


def should_trigger_suggestion(
    content: str,
    min_length: int = 20,
    require_trigger_phrase: bool = True,
) -> bool:
    """Whether content is long enough (and, optionally, phrased) to ask for a completion."""
    if len(content) < min_length:
        return False
    if not require_trigger_phrase:
        return True
    return any(pattern.search(content) for pattern in TRIGGER_PATTERNS)


class SuggestionController:
    """
    Owns the pending completion for one editing session.

    Manual edits schedule a request after an idle delay. Starting a request
    cancels the one in flight, so the latest request wins. After a suggestion
    is accepted or rejected, automatic triggers stay off until the next
    genuine manual edit.
    """

    def __init__(self, completion: Completion, settings: Settings, session_id: str = ""):
        self.settings = settings
        self.session_id = session_id
        self.suggestion: Suggestion | None = None
        self.error: str | None = None
        self.suppressed = False

        self._completion = completion
        self._last_content = ""
        self._debounce_task: asyncio.Task | None = None
        self._request_task: asyncio.Task | None = None

    @property
    def is_generating(self) -> bool:
        return self._request_task is not None and not self._request_task.done()

    @property
    def diff_segments(self) -> list[DiffSegment]:
        return list(self.suggestion.diff) if self.suggestion else []

    def on_content_changed(
        self, content: str, cursor_position: int = 0, manual: bool = True
    ) -> asyncio.Task | None:
        """
        Register a document change.

        Programmatic changes (manual=False) only record the content. A manual
        change that differs from the recorded content lifts suppression and
        may schedule a debounced request.

        Returns:
            The debounce task, if one was scheduled
        """
        self._cancel_debounce()

        if not manual:
            self._last_content = content
            return None

        if self.suppressed:
            if content == self._last_content:
                return None
            self.suppressed = False

        self._last_content = content

        if not should_trigger_suggestion(
            content,
            min_length=self.settings.MIN_CONTENT_LENGTH_FOR_SUGGESTION,
            require_trigger_phrase=self.settings.REQUIRE_TRIGGER_PHRASE,
        ):
            return None

        self._debounce_task = asyncio.create_task(self._debounced(content, cursor_position))
        return self._debounce_task

    async def _debounced(self, content: str, cursor_position: int) -> None:
        await asyncio.sleep(self.settings.SUGGESTION_DEBOUNCE_SECONDS)
        self.request_now(content, cursor_position)

    def request_now(self, content: str, cursor_position: int = 0) -> asyncio.Task:
        """Start a completion request immediately, cancelling any in flight."""
        self._cancel_request()
        self._last_content = content
        self.error = None
        self._request_task = asyncio.create_task(self._fetch(content, cursor_position))
        return self._request_task

    async def _fetch(self, content: str, cursor_position: int) -> Suggestion | None:
        try:
            parts = [text async for text in self._completion(content)]
        except Exception as e:
            logger.warning(
                f"Completion request failed: {e}",
                extra={"session_id": self.session_id},
            )
            self.error = str(e) or "Failed to generate suggestion"
            return None

        new_content = "".join(parts).strip()
        if not new_content:
            self.error = NO_SUGGESTION_ERROR
            return None

        if content != self._last_content:
            logger.info(
                "Document changed while generating, discarding suggestion",
                extra={"session_id": self.session_id},
            )
            return None

        diff = compute_diff(content, new_content)
        if not has_changes(diff):
            logger.debug("Completion made no changes", extra={"session_id": self.session_id})
            return None

        self.suggestion = Suggestion(
            id=str(uuid.uuid4()),
            original_content=content,
            new_content=new_content,
            diff=diff,
            cursor_position=cursor_position,
        )
        return self.suggestion

    def accept(self) -> Suggestion | None:
        """Take the pending suggestion and suppress automatic triggers."""
        suggestion = self.suggestion
        if suggestion is None:
            return None
        self.cancel()
        self.suppressed = True
        return suggestion

    def reject(self) -> None:
        self.cancel()
        self.suppressed = True

    def cancel(self) -> None:
        """Drop the pending suggestion and any scheduled or in-flight request."""
        self._cancel_debounce()
        self._cancel_request()
        self.suggestion = None

    def _cancel_debounce(self) -> None:
        if self._debounce_task is not None and not self._debounce_task.done():
            self._debounce_task.cancel()
        self._debounce_task = None

    def _cancel_request(self) -> None:
        if self._request_task is not None and not self._request_task.done():
            self._request_task.cancel()
        self._request_task = None
