"""Pydantic schemas for editing session endpoints."""

from typing import Literal

from pydantic import Field

from consistency_engine.core.schemas_audit import (
    CamelModel,
    Chunk,
    DiffSegment,
    DirtyChunk,
    QueueProgress,
    Suggestion,
)


class CreateSessionRequest(CamelModel):
    """Request body for opening an editing session."""

    content: str = Field(default="", description="Initial document text")


class UpdateContentRequest(CamelModel):
    """Request body for replacing session content."""

    content: str = Field(..., description="Full document text after the edit")
    cursor_position: int | None = Field(default=None, ge=0, description="Cursor offset after the edit")
    manual: bool = Field(default=True, description="False for programmatic replacements")


class AuditRequest(CamelModel):
    """Request body for a manual consistency check."""

    anchor_offset: int | None = Field(
        default=None, ge=0, description="Offset of the anchor chunk (defaults to last edit)"
    )


class SessionSnapshot(CamelModel):
    """Everything the UI needs to render one editing session."""

    session_id: str
    content: str
    chunks: list[Chunk] = Field(default_factory=list)
    audit_state: Literal["idle", "auditing", "queue_active"] = "idle"
    is_auditing: bool = False
    is_generating: bool = False
    suggestions_suppressed: bool = False
    suggestion: Suggestion | None = None
    diff_segments: list[DiffSegment] = Field(default_factory=list)
    error: str | None = None
    current_dirty_chunk: DirtyChunk | None = None
    queue_progress: QueueProgress = Field(default_factory=QueueProgress)
    patch_pending: bool = False
