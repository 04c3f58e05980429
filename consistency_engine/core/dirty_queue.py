"""Dirty queue: prioritized, bounded list of chunks awaiting review."""

from consistency_engine.core.conflict_classifier import ClassifiedChunk, merge_verdicts
from consistency_engine.core.schemas_audit import (
    PRIORITY_ORDER,
    AtRiskChunk,
    ChunkPatch,
    ConflictAnalysis,
    DirtyChunk,
    EditContext,
    QueueProgress,
)

MAX_DIRTY_QUEUE = 10


def sort_dirty_chunks(dirty_chunks: list[DirtyChunk]) -> list[DirtyChunk]:
    """Sort by priority (P0 first), then similarity descending."""
    return sorted(dirty_chunks, key=lambda d: (PRIORITY_ORDER[d.priority], -d.similarity))


def build_dirty_queue(
    classified: list[ClassifiedChunk],
    max_items: int = MAX_DIRTY_QUEUE,
) -> list[DirtyChunk]:
    """
    Turn needs-update verdicts into queue items.

    Args:
        classified: Candidates judged to need an update
        max_items: Queue length cap

    Returns:
        At most max_items DirtyChunks, one per chunk id, P0 before P1 and
        higher similarity first within a priority
    """
    seen: set[str] = set()
    dirty_chunks: list[DirtyChunk] = []

    for item in classified:
        if item.at_risk.chunk_id in seen:
            continue
        seen.add(item.at_risk.chunk_id)
        dirty_chunks.append(
            DirtyChunk(
                chunk_id=item.at_risk.chunk_id,
                priority=item.priority,
                reason=item.reason,
                similarity=item.at_risk.similarity,
                original_content=item.at_risk.chunk.content,
                conflict_analysis=item.analysis,
            )
        )

    return sort_dirty_chunks(dirty_chunks)[:max_items]


def filter_dirty_chunks(
    at_risk_chunks: list[AtRiskChunk],
    edit_context: EditContext,
    conflict_analyses: list[ConflictAnalysis] | None = None,
    max_items: int = MAX_DIRTY_QUEUE,
) -> list[DirtyChunk]:
    """
    Score candidates with analyzer verdicts and heuristics in one step.

    Analyzer verdicts are used where present; remaining candidates go
    through the heuristic rules.
    """
    classified = merge_verdicts(at_risk_chunks, edit_context, conflict_analyses or [])
    return build_dirty_queue(classified, max_items=max_items)


class DirtyQueue:
    """
    Ordered dirty chunks plus a single cursor.

    Created empty, replaced wholesale by each audit, advanced by accept/skip
    and cleared when the cursor passes the last item or on dismissal.
    """

    def __init__(self) -> None:
        self._items: list[DirtyChunk] = []
        self._cursor = 0
        # Bumped whenever the item under the cursor changes
        self.version = 0

    @property
    def items(self) -> list[DirtyChunk]:
        return list(self._items)

    @property
    def cursor(self) -> int:
        return self._cursor

    def __len__(self) -> int:
        return len(self._items)

    @property
    def is_active(self) -> bool:
        return bool(self._items)

    @property
    def current(self) -> DirtyChunk | None:
        if self._cursor < len(self._items):
            return self._items[self._cursor]
        return None

    @property
    def progress(self) -> QueueProgress:
        if not self._items:
            return QueueProgress(current=0, total=0)
        return QueueProgress(current=self._cursor + 1, total=len(self._items))

    def replace(self, items: list[DirtyChunk]) -> None:
        """Install a new queue, discarding any remaining items."""
        self._items = list(items)
        self._cursor = 0
        self.version += 1

    def advance(self) -> DirtyChunk | None:
        """Move past the current item; clear the queue when exhausted."""
        if self._cursor < len(self._items) - 1:
            self._cursor += 1
            self.version += 1
        else:
            self.clear()
        return self.current

    def clear(self) -> None:
        self._items = []
        self._cursor = 0
        self.version += 1

    def attach_patch(self, chunk_id: str, patch: ChunkPatch) -> bool:
        """Attach a patch to the item with chunk_id. Returns False if it is gone."""
        for index, item in enumerate(self._items):
            if item.chunk_id == chunk_id:
                self._items[index] = item.model_copy(update={"patch": patch})
                return True
        return False
