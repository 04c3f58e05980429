"""
Audit orchestrator for one document.

State machine:
    idle -> auditing -> idle          (no conflicts)
    idle -> auditing -> queue_active  (dirty queue installed)
    queue_active -> queue_active      (accept / skip)
    queue_active -> idle              (queue exhausted or dismissed)
    queue_active -> auditing          (new audit discards the old queue)

Concurrency rules:
- At most one audit pass in flight; a trigger while auditing is dropped.
- At most one patch task, tied to the item under the queue cursor. Results
  that arrive after the cursor moved are discarded.
- Queue items are matched to chunks by the content they were flagged with,
  since chunk ids shift when an applied patch re-chunks the document.
- State is committed only when a task completes.
"""

import asyncio
import logging
import uuid
from typing import Literal

from consistency_engine.core.chunk_patcher import (
    Patcher,
    apply_patch,
    generate_chunk_patch,
    locate_chunk,
    simple_term_replace,
)
from consistency_engine.core.chunking import chunk_document
from consistency_engine.core.config import Settings
from consistency_engine.core.conflict_classifier import ConflictClassifier
from consistency_engine.core.dirty_queue import DirtyQueue
from consistency_engine.core.logging import get_logger, log_with_context
from consistency_engine.core.schemas_audit import (
    Chunk,
    ChunkPatch,
    DirtyChunk,
    QueueProgress,
)
from consistency_engine.core.term_changes import TermChange, extract_term_change
from consistency_engine.graphs.audit_graph import AuditPassState, build_audit_graph

logger = get_logger(__name__)

AuditState = Literal["idle", "auditing", "queue_active"]


class AuditSession:
    """Owns the live document, its chunks, the dirty queue and in-flight audit work."""

    def __init__(
        self,
        classifier: ConflictClassifier,
        patcher: Patcher,
        settings: Settings,
        session_id: str = "",
    ):
        self.settings = settings
        self.session_id = session_id
        self.content = ""
        self.chunks: list[Chunk] = []
        self.queue = DirtyQueue()
        self.patch_context = ""
        self.last_edit_position = 0
        self.term_change: TermChange | None = None
        self.is_auditing = False

        self._graph = build_audit_graph(classifier, settings)
        self._patcher = patcher
        self._audit_task: asyncio.Task | None = None
        self._patch_task: asyncio.Task | None = None
        self._patch_version = -1

    def _chunk(self, content: str) -> list[Chunk]:
        return chunk_document(
            content,
            min_chars=self.settings.MIN_CHUNK_CHARS,
            max_chars=self.settings.MAX_CHUNK_CHARS,
            min_chunks=self.settings.MIN_CHUNKS_FOR_COMPARISON,
        )

    @property
    def state(self) -> AuditState:
        if self.is_auditing:
            return "auditing"
        if self.queue.is_active:
            return "queue_active"
        return "idle"

    @property
    def current_dirty_chunk(self) -> DirtyChunk | None:
        return self.queue.current

    @property
    def queue_progress(self) -> QueueProgress:
        return self.queue.progress

    @property
    def patch_pending(self) -> bool:
        return self._patch_task is not None and not self._patch_task.done()

    def set_content(self, content: str, edit_position: int | None = None) -> None:
        """Replace the live document and recompute its chunks."""
        self.content = content
        self.chunks = self._chunk(content)
        if edit_position is not None:
            self.last_edit_position = edit_position

    # ------------------------------------------------------------------
    # Audit passes
    # ------------------------------------------------------------------

    def start_audit(self, old_content: str, new_content: str, edit_position: int = 0) -> asyncio.Task | None:
        """
        Audit the document after an accepted edit.

        Returns:
            The audit task, or None if an audit is already running
        """
        self.set_content(new_content, edit_position)
        return self._launch(
            AuditPassState(old_content=old_content, new_content=new_content)
        )

    def audit_document(self, anchor_offset: int | None = None) -> asyncio.Task | None:
        """
        Audit the whole document against the chunk at anchor_offset.

        Defaults to the last edit position; falls back to the first chunk.
        """
        anchor = self.last_edit_position if anchor_offset is None else anchor_offset
        return self._launch(
            AuditPassState(new_content=self.content, anchor_offset=anchor)
        )

    def _launch(self, state: AuditPassState) -> asyncio.Task | None:
        if self.is_auditing:
            logger.info(
                "Audit already running, dropping trigger",
                extra={"session_id": self.session_id},
            )
            return None

        # The previous queue was computed against an older document
        self._cancel_patch_task()
        self.queue.clear()

        state.audit_id = str(uuid.uuid4())
        self.is_auditing = True
        self._audit_task = asyncio.create_task(self._run_audit(state))
        return self._audit_task

    async def _run_audit(self, state: AuditPassState) -> list[DirtyChunk]:
        logger.info(
            "Audit started",
            extra={"session_id": self.session_id, "audit_id": state.audit_id},
        )
        try:
            result = await self._graph.ainvoke(state)
        except Exception:
            logger.exception(
                "Audit pass failed",
                extra={"session_id": self.session_id, "audit_id": state.audit_id},
            )
            return []
        finally:
            self.is_auditing = False

        if self.content != state.new_content:
            logger.info(
                "Document changed during audit, discarding result",
                extra={"session_id": self.session_id, "audit_id": state.audit_id},
            )
            return []

        dirty_chunks: list[DirtyChunk] = result["dirty_chunks"]
        self.chunks = result["new_chunks"]
        self.patch_context = result["patch_context"]
        self.term_change = (
            extract_term_change(result["edited_before"], result["edited_after"])
            if result["edited_before"]
            else None
        )
        self._cancel_patch_task()
        self.queue.replace(dirty_chunks)

        log_with_context(
            logger,
            logging.INFO,
            f"Audit finished with {len(dirty_chunks)} dirty chunks",
            session_id=self.session_id,
            audit_id=state.audit_id,
            exit_reason=result.get("exit_reason"),
        )
        return dirty_chunks

    # ------------------------------------------------------------------
    # Lazy patch generation
    # ------------------------------------------------------------------

    def ensure_current_patch(self) -> asyncio.Task | None:
        """
        Start patch generation for the item under the cursor if needed.

        Returns:
            The outstanding patch task, or None when there is no current item
            or it already has a patch
        """
        current = self.queue.current
        if current is None or current.patch is not None:
            return None

        if self.patch_pending and self._patch_version == self.queue.version:
            return self._patch_task

        self._cancel_patch_task()
        self._patch_version = self.queue.version
        self._patch_task = asyncio.create_task(
            self._generate_patch(current, self.chunks, self.patch_context, self.queue.version)
        )
        return self._patch_task

    async def _generate_patch(
        self,
        dirty_chunk: DirtyChunk,
        chunks: list[Chunk],
        global_context: str,
        version: int,
    ) -> ChunkPatch | None:
        try:
            patch = await generate_chunk_patch(
                dirty_chunk,
                chunks,
                global_context,
                self._patcher,
                window=self.settings.PATCH_CONTEXT_CHUNKS,
            )
        except Exception as e:
            logger.warning(
                f"Patch generation failed for {dirty_chunk.chunk_id}: {e}",
                extra={"session_id": self.session_id},
            )
            patch = None

        if patch is None:
            patch = self._term_replace_patch(dirty_chunk, chunks)

        if version != self.queue.version or chunks is not self.chunks:
            logger.info(
                f"Discarding stale patch for {dirty_chunk.chunk_id}",
                extra={"session_id": self.session_id},
            )
            return None

        if patch is not None:
            self.queue.attach_patch(dirty_chunk.chunk_id, patch)
        return patch

    def _term_replace_patch(self, dirty_chunk: DirtyChunk, chunks: list[Chunk]) -> ChunkPatch | None:
        if self.term_change is None:
            return None
        index = locate_chunk(chunks, dirty_chunk.chunk_id, dirty_chunk.original_content)
        if index < 0:
            return None
        return simple_term_replace(
            chunks[index].content, self.term_change.old_term, self.term_change.new_term
        )

    def _cancel_patch_task(self) -> None:
        if self._patch_task is not None and not self._patch_task.done():
            self._patch_task.cancel()
        self._patch_task = None

    # ------------------------------------------------------------------
    # Queue operations
    # ------------------------------------------------------------------

    def accept_current(self) -> DirtyChunk | None:
        """
        Apply the current item's patch (if any) and advance.

        Returns:
            The new current item, or None when the queue is exhausted
        """
        current = self.queue.current
        if current is None:
            return None

        if current.patch is not None:
            index = locate_chunk(self.chunks, current.chunk_id, current.patch.before)
            if index >= 0:
                self.content = apply_patch(self.content, self.chunks[index], current.patch)
                self.chunks = self._chunk(self.content)
            else:
                logger.info(
                    f"Chunk {current.chunk_id} changed since patching, not applying",
                    extra={"session_id": self.session_id},
                )

        self._cancel_patch_task()
        return self.queue.advance()

    def skip(self) -> DirtyChunk | None:
        """Leave the current item unchanged and advance."""
        self._cancel_patch_task()
        return self.queue.advance()

    def dismiss_all(self) -> None:
        self._cancel_patch_task()
        self.queue.clear()

    async def close(self) -> None:
        """Cancel in-flight audit and patch work."""
        self._cancel_patch_task()
        if self._audit_task is not None and not self._audit_task.done():
            self._audit_task.cancel()
            try:
                await self._audit_task
            except asyncio.CancelledError:
                pass
        self.is_auditing = False
