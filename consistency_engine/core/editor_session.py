"""Editing session: one document, its completion controller and its audit session."""

import asyncio

from consistency_engine.core.audit_orchestrator import AuditSession
from consistency_engine.core.chunk_patcher import Patcher
from consistency_engine.core.config import Settings
from consistency_engine.core.conflict_classifier import Analyzer, ConflictClassifier
from consistency_engine.core.embeddings import EmbeddingIndex
from consistency_engine.core.logging import get_logger
from consistency_engine.core.schemas_audit import DiffSegment, DirtyChunk
from consistency_engine.core.schemas_sessions import SessionSnapshot
from consistency_engine.core.similarity import SimilarityScorer
from consistency_engine.core.suggestion_controller import Completion, SuggestionController

logger = get_logger(__name__)


class EditorSession:
    """
    Single-writer state for one document.

    Accepting a completion replaces the document and starts an audit pass;
    the audit's dirty queue is then walked with accept/skip/dismiss.
    """

    def __init__(
        self,
        session_id: str,
        settings: Settings,
        analyzer: Analyzer,
        patcher: Patcher,
        completion: Completion,
        embedding_index: EmbeddingIndex | None = None,
        content: str = "",
    ):
        self.session_id = session_id
        self.settings = settings
        self.embedding_index = embedding_index

        classifier = ConflictClassifier(
            analyzer,
            SimilarityScorer(embedding_index=embedding_index),
            heuristic_fallback=settings.HEURISTIC_FALLBACK_ENABLED,
        )
        self.audit = AuditSession(classifier, patcher, settings, session_id=session_id)
        self.suggestions = SuggestionController(completion, settings, session_id=session_id)

        self.audit.set_content(content)
        self.suggestions.on_content_changed(content, manual=False)

    @property
    def content(self) -> str:
        return self.audit.content

    @property
    def diff_segments(self) -> list[DiffSegment]:
        return self.suggestions.diff_segments

    @property
    def current_dirty_chunk(self) -> DirtyChunk | None:
        return self.audit.current_dirty_chunk

    def edit(self, content: str, cursor_position: int | None = None, manual: bool = True) -> asyncio.Task | None:
        """Apply a document change; manual edits may schedule a completion."""
        self.audit.set_content(content, cursor_position)
        return self.suggestions.on_content_changed(
            content, self.audit.last_edit_position, manual=manual
        )

    def request_suggestion(self) -> asyncio.Task:
        return self.suggestions.request_now(self.content, self.audit.last_edit_position)

    def accept_suggestion(self) -> asyncio.Task | None:
        """
        Replace the document with the pending suggestion and audit it.

        Returns:
            The audit task, or None if there was nothing to accept or an
            audit is already running
        """
        # The document must not change without being audited
        if self.audit.is_auditing:
            logger.info(
                "Audit already running, keeping suggestion pending",
                extra={"session_id": self.session_id},
            )
            return None

        suggestion = self.suggestions.accept()
        if suggestion is None:
            return None

        if suggestion.original_content != self.content:
            logger.info(
                "Suggestion no longer matches the document, ignoring accept",
                extra={"session_id": self.session_id},
            )
            return None

        old_content = self.content
        self.suggestions.on_content_changed(
            suggestion.new_content, suggestion.cursor_position, manual=False
        )
        return self.audit.start_audit(old_content, suggestion.new_content, suggestion.cursor_position)

    def reject_suggestion(self) -> None:
        self.suggestions.reject()

    def check_consistency(self, anchor_offset: int | None = None) -> asyncio.Task | None:
        return self.audit.audit_document(anchor_offset)

    def ensure_current_patch(self) -> asyncio.Task | None:
        return self.audit.ensure_current_patch()

    def accept_current(self) -> DirtyChunk | None:
        current = self.audit.accept_current()
        # Patched text replaces the document programmatically
        self.suggestions.on_content_changed(self.content, manual=False)
        return current

    def skip(self) -> DirtyChunk | None:
        return self.audit.skip()

    def dismiss_all(self) -> None:
        self.audit.dismiss_all()

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            session_id=self.session_id,
            content=self.content,
            chunks=self.audit.chunks,
            audit_state=self.audit.state,
            is_auditing=self.audit.is_auditing,
            is_generating=self.suggestions.is_generating,
            suggestions_suppressed=self.suggestions.suppressed,
            suggestion=self.suggestions.suggestion,
            diff_segments=self.diff_segments,
            error=self.suggestions.error,
            current_dirty_chunk=self.audit.current_dirty_chunk,
            queue_progress=self.audit.queue_progress,
            patch_pending=self.audit.patch_pending,
        )

    async def close(self) -> None:
        self.suggestions.cancel()
        await self.audit.close()
        if self.embedding_index is not None:
            self.embedding_index.clear()
