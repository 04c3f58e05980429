"""Audit pass graph.

5-node LangGraph StateGraph:
1. chunk_documents - chunk the old and new document text
2. detect_modified - find the edited chunk (or the anchor chunk for a manual check)
3. select_candidates - every other chunk, scored for similarity to the edit
4. classify - analyzer verdicts with heuristic fallback
5. build_queue - sorted, capped dirty queue

Exits early when no chunk was modified or there is nothing to compare against.
"""

from dataclasses import dataclass, field
from typing import Any

from langgraph.graph import END, StateGraph

from consistency_engine.core.chunk_patcher import build_anchor_context, build_global_context
from consistency_engine.core.chunking import (
    chunk_document,
    find_edited_chunk_ids,
    get_chunk_at_offset,
    get_chunk_by_id,
)
from consistency_engine.core.config import Settings
from consistency_engine.core.conflict_classifier import ClassifiedChunk, ConflictClassifier
from consistency_engine.core.dirty_queue import build_dirty_queue
from consistency_engine.core.logging import get_logger
from consistency_engine.core.schemas_audit import AtRiskChunk, Chunk, DirtyChunk

logger = get_logger(__name__)

MAX_STEPS = 8


@dataclass
class AuditPassState:
    """State for one audit pass."""

    # Input
    audit_id: str = ""
    old_content: str = ""
    new_content: str = ""
    anchor_offset: int | None = None  # set for a manual consistency check
    step_count: int = 0

    # Chunking
    old_chunks: list[Chunk] = field(default_factory=list)
    new_chunks: list[Chunk] = field(default_factory=list)

    # Detection
    modified_ids: list[str] = field(default_factory=list)
    edited_before: str = ""
    edited_after: str = ""
    patch_context: str = ""

    # Classification
    candidates: list[AtRiskChunk] = field(default_factory=list)
    classified: list[ClassifiedChunk] = field(default_factory=list)

    # Output
    dirty_chunks: list[DirtyChunk] = field(default_factory=list)
    exit_reason: str | None = None


def _check_max_steps(state: AuditPassState) -> AuditPassState:
    """Check and increment step count."""
    state.step_count += 1
    if state.step_count > MAX_STEPS:
        raise RuntimeError(f"Exceeded max steps ({MAX_STEPS})")
    return state


def should_continue(state: AuditPassState) -> str:
    """Stop once a node has recorded an exit reason."""
    if state.exit_reason:
        return "finalize"
    return "continue"


def build_audit_graph(classifier: ConflictClassifier, settings: Settings):
    """
    Build and compile the audit pass graph.

    Args:
        classifier: Session-owned conflict classifier
        settings: Chunker, queue and detection settings

    Returns:
        Compiled graph; run with `await graph.ainvoke(AuditPassState(...))`
    """

    def _chunk(content: str) -> list[Chunk]:
        return chunk_document(
            content,
            min_chars=settings.MIN_CHUNK_CHARS,
            max_chars=settings.MAX_CHUNK_CHARS,
            min_chunks=settings.MIN_CHUNKS_FOR_COMPARISON,
        )

    async def chunk_documents(state: AuditPassState) -> dict[str, Any]:
        """Node 1: chunk both document versions."""
        state = _check_max_steps(state)
        new_chunks = _chunk(state.new_content)
        old_chunks = [] if state.anchor_offset is not None else _chunk(state.old_content)

        logger.info(
            f"Audit chunks: old={len(old_chunks)} new={len(new_chunks)}",
            extra={"audit_id": state.audit_id},
        )
        return {"step_count": state.step_count, "old_chunks": old_chunks, "new_chunks": new_chunks}

    async def detect_modified(state: AuditPassState) -> dict[str, Any]:
        """Node 2: locate the edited chunk."""
        state = _check_max_steps(state)

        if state.anchor_offset is not None:
            if len(state.new_chunks) < settings.MIN_CHUNKS_FOR_COMPARISON:
                return {"step_count": state.step_count, "exit_reason": "too_few_chunks"}

            anchor = get_chunk_at_offset(state.new_chunks, state.anchor_offset) or state.new_chunks[0]
            return {
                "step_count": state.step_count,
                "modified_ids": [anchor.id],
                "edited_before": "",
                "edited_after": anchor.content,
                "patch_context": build_anchor_context(anchor.content),
            }

        modified_ids = find_edited_chunk_ids(
            state.old_chunks, state.new_chunks, strategy=settings.MODIFIED_CHUNK_STRATEGY
        )
        if not modified_ids:
            logger.info("No modified chunks", extra={"audit_id": state.audit_id})
            return {"step_count": state.step_count, "exit_reason": "no_modified_chunks"}

        edited_id = modified_ids[0]
        old_chunk = get_chunk_by_id(state.old_chunks, edited_id)
        new_chunk = get_chunk_by_id(state.new_chunks, edited_id)
        edited_before = old_chunk.content if old_chunk else ""
        edited_after = new_chunk.content if new_chunk else ""

        return {
            "step_count": state.step_count,
            "modified_ids": modified_ids,
            "edited_before": edited_before,
            "edited_after": edited_after,
            "patch_context": build_global_context(edited_before, edited_after),
        }

    async def select_candidates(state: AuditPassState) -> dict[str, Any]:
        """Node 3: every chunk outside the edit, with similarity scores."""
        state = _check_max_steps(state)
        modified = set(state.modified_ids)
        others = [c for c in state.new_chunks if c.id not in modified]

        if not others:
            logger.info("No other chunks to check", extra={"audit_id": state.audit_id})
            return {"step_count": state.step_count, "exit_reason": "no_candidates"}

        candidates = await classifier.score_candidates(state.edited_after, others)
        return {"step_count": state.step_count, "candidates": candidates}

    async def classify(state: AuditPassState) -> dict[str, Any]:
        """Node 4: decide which candidates need an update."""
        state = _check_max_steps(state)
        classified = await classifier.classify(
            state.edited_before, state.edited_after, state.candidates
        )
        return {"step_count": state.step_count, "classified": classified}

    async def build_queue(state: AuditPassState) -> dict[str, Any]:
        """Node 5: prioritized, capped dirty queue."""
        state = _check_max_steps(state)
        dirty_chunks = build_dirty_queue(state.classified, max_items=settings.MAX_DIRTY_QUEUE)

        logger.info(
            f"Dirty queue built with {len(dirty_chunks)} items",
            extra={
                "audit_id": state.audit_id,
                "p0": sum(1 for d in dirty_chunks if d.priority == "P0"),
            },
        )
        return {"step_count": state.step_count, "dirty_chunks": dirty_chunks}

    async def finalize(state: AuditPassState) -> dict[str, Any]:
        """Early exit: nothing to queue."""
        logger.info(
            f"Audit finished early: {state.exit_reason}",
            extra={"audit_id": state.audit_id},
        )
        return {"dirty_chunks": []}

    graph = StateGraph(AuditPassState)

    graph.add_node("chunk_documents", chunk_documents)
    graph.add_node("detect_modified", detect_modified)
    graph.add_node("select_candidates", select_candidates)
    graph.add_node("classify", classify)
    graph.add_node("build_queue", build_queue)
    graph.add_node("finalize", finalize)

    graph.set_entry_point("chunk_documents")
    graph.add_edge("chunk_documents", "detect_modified")
    graph.add_conditional_edges(
        "detect_modified",
        should_continue,
        {"continue": "select_candidates", "finalize": "finalize"},
    )
    graph.add_conditional_edges(
        "select_candidates",
        should_continue,
        {"continue": "classify", "finalize": "finalize"},
    )
    graph.add_edge("classify", "build_queue")
    graph.add_edge("build_queue", END)
    graph.add_edge("finalize", END)

    return graph.compile()
