"""Pydantic schemas for chunks, diffs, conflict analysis and the dirty queue."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DiffType = Literal["unchanged", "added", "removed"]
ConflictType = Literal["needs_update", "consistent"]
DirtyPriority = Literal["P0", "P1"]
DirectiveAction = Literal["replace", "rephrase", "remove", "keep"]
CursorContext = Literal["mid-sentence", "end-of-sentence", "end-of-line", "new-block"]

PRIORITY_ORDER: dict[str, int] = {"P0": 0, "P1": 1}


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Chunk(CamelModel):
    """Contiguous, offset-addressed span of a document."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str = Field(..., description="Positional id (chunk_0..chunk_n-1)")
    content: str = Field(..., description="Exact text of the span")
    start_offset: int = Field(..., ge=0, description="Inclusive start offset in the document")
    end_offset: int = Field(..., ge=0, description="Exclusive end offset in the document")


class DiffSegment(CamelModel):
    """A run of tokens sharing one diff type."""

    type: DiffType = Field(..., description="unchanged, added or removed")
    text: str = Field(..., description="Segment text")


class RefactoringDirective(CamelModel):
    """Advisory instruction for patch generation."""

    action: DirectiveAction = Field(..., description="What to do with the target")
    target: str = Field(..., description="Text the directive is about")
    replacement: str | None = Field(default=None, description="Replacement text if any")
    rationale: str = Field(default="", description="Why the directive exists")


class ConflictAnalysis(CamelModel):
    """Verdict for one candidate chunk in one audit pass."""

    chunk_id: str = Field(..., description="Id of the analyzed chunk")
    conflict_type: ConflictType = Field(..., description="needs_update or consistent")
    details: str = Field(default="", description="Rationale for the verdict")
    refactoring_directives: list[RefactoringDirective] = Field(
        default_factory=list, description="Fine-grained instructions for the patcher"
    )


class ChunkPatch(CamelModel):
    """Replacement text for a chunk."""

    before: str = Field(..., description="Chunk content the patch was generated from")
    after: str = Field(..., description="Replacement content")


class DirtyChunk(CamelModel):
    """A chunk flagged as inconsistent with a recent edit."""

    chunk_id: str = Field(..., description="Id of the flagged chunk")
    priority: DirtyPriority = Field(..., description="P0 (high confidence) or P1")
    reason: str = Field(..., description="Human readable reason")
    similarity: float = Field(default=0.0, description="Similarity to the edited chunk")
    original_content: str = Field(default="", description="Chunk content when flagged")
    patch: ChunkPatch | None = Field(default=None, description="Lazily generated patch")
    conflict_analysis: ConflictAnalysis | None = Field(
        default=None, description="Analyzer verdict, kept for patch prompting"
    )


class AtRiskChunk(CamelModel):
    """Candidate chunk with its similarity to the edited chunk."""

    chunk_id: str
    chunk: Chunk
    similarity: float = 0.0


class EditContext(CamelModel):
    """Text of an edit used for key-term heuristics."""

    old_content: str = ""
    new_content: str = ""
    modified_chunk_content: str = ""


class QueueProgress(CamelModel):
    """Position of the cursor within the dirty queue (1-based current)."""

    current: int = 0
    total: int = 0


class AnalyzeCandidate(CamelModel):
    """Chunk sent to the analyzer."""

    chunk_id: str = Field(..., description="Chunk id to join verdicts by")
    content: str = Field(..., description="Chunk content")


class AnalyzeRequest(CamelModel):
    """Analyzer capability request."""

    edited_chunk_before: str = Field(default="", description="Edited chunk before the edit")
    edited_chunk_after: str = Field(default="", description="Edited chunk after the edit")
    chunks: list[AnalyzeCandidate] = Field(default_factory=list, description="Chunks to check")


class PatchRequest(CamelModel):
    """Patcher capability request."""

    chunk_content: str = Field(default="", description="Chunk to regenerate")
    prefix: str = Field(default="", description="Preceding chunks")
    suffix: str = Field(default="", description="Following chunks")
    global_context: str = Field(default="", description="Summary of the triggering edit")
    reason: str = Field(default="", description="Why the chunk was flagged")
    conflict_analysis: ConflictAnalysis | None = Field(default=None)
    cursor_context: CursorContext | None = Field(default=None)


class SuggestRequest(CamelModel):
    """Completion capability request."""

    content: str = Field(default="", description="Current document text")


class Suggestion(CamelModel):
    """A pending completion: full replacement document plus its diff."""

    id: str
    original_content: str
    new_content: str
    diff: list[DiffSegment] = Field(default_factory=list)
    cursor_position: int = 0


class AnalyzerVerdict(CamelModel):
    """One verdict in the analyzer's JSON output."""

    chunk_id: str = Field(..., description="Chunk id copied from the request")
    conflict_type: ConflictType = Field(..., description="needs_update or consistent")
    reason: str = Field(default="", description="Why the chunk does or does not need updating")
    suggested_change: str | None = Field(default=None, description="What should change, if anything")


class AnalyzerOutput(CamelModel):
    """Schema the analyzer model must answer with."""

    analyses: list[AnalyzerVerdict] = Field(default_factory=list)
