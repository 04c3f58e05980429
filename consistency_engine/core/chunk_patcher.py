"""Patch generation and application for dirty chunks."""

import re
from collections.abc import AsyncIterator, Callable

from consistency_engine.core.chunking import get_chunk_index
from consistency_engine.core.logging import get_logger
from consistency_engine.core.schemas_audit import (
    Chunk,
    ChunkPatch,
    CursorContext,
    DirtyChunk,
    PatchRequest,
)

logger = get_logger(__name__)

Patcher = Callable[[PatchRequest], AsyncIterator[str]]

PATCH_CONTEXT_CHUNKS = 2
CONTEXT_SEPARATOR = "\n\n"
CONTEXT_PREVIEW_CHARS = 100


def detect_cursor_context(chunk: Chunk) -> CursorContext:
    """Classify a chunk by how its text ends, to bound patch length."""
    content = chunk.content.rstrip(" \t")
    if content.endswith("\n\n"):
        return "new-block"
    if content.endswith("\n"):
        return "end-of-line"
    if re.search(r"[.!?]$", content):
        return "end-of-sentence"
    return "mid-sentence"


def build_global_context(edit_before: str, edit_after: str) -> str:
    """One-line summary of the triggering edit for patch prompts."""
    return (
        f'The user changed: "{edit_before[:CONTEXT_PREVIEW_CHARS]}..." '
        f'to "{edit_after[:CONTEXT_PREVIEW_CHARS]}..."'
    )


def build_anchor_context(anchor_content: str) -> str:
    """Summary used when auditing the document against one anchor chunk."""
    return f'Checking consistency with: "{anchor_content[:CONTEXT_PREVIEW_CHARS]}..."'


def locate_chunk(chunks: list[Chunk], chunk_id: str, content: str) -> int:
    """
    Find the chunk that still holds `content`.

    Chunk ids are positional and shift when an applied patch merges or
    splits chunks, so the id is only trusted while its content matches.
    Otherwise the first chunk with exactly that content is used. An empty
    `content` falls back to the id alone.

    Returns:
        Index into chunks, or -1 if no chunk holds the content
    """
    index = get_chunk_index(chunks, chunk_id)
    if not content:
        return index
    if index >= 0 and chunks[index].content == content:
        return index
    for i, chunk in enumerate(chunks):
        if chunk.content == content:
            return i
    return -1


def build_patch_request(
    dirty_chunk: DirtyChunk,
    chunks: list[Chunk],
    global_context: str,
    window: int = PATCH_CONTEXT_CHUNKS,
) -> PatchRequest | None:
    """
    Build the Patcher request for a dirty chunk.

    Args:
        dirty_chunk: Queue item to patch
        chunks: Current chunk array (must match the live document)
        global_context: Summary of the triggering edit
        window: Neighboring chunks to include on each side

    Returns:
        PatchRequest, or None if the flagged content no longer exists
    """
    index = locate_chunk(chunks, dirty_chunk.chunk_id, dirty_chunk.original_content)
    if index < 0:
        return None

    chunk = chunks[index]
    prefix_chunks = chunks[max(0, index - window):index]
    suffix_chunks = chunks[index + 1:index + 1 + window]

    return PatchRequest(
        chunk_content=chunk.content,
        prefix=CONTEXT_SEPARATOR.join(c.content for c in prefix_chunks),
        suffix=CONTEXT_SEPARATOR.join(c.content for c in suffix_chunks),
        global_context=global_context,
        reason=dirty_chunk.reason,
        conflict_analysis=dirty_chunk.conflict_analysis,
        cursor_context=detect_cursor_context(chunk),
    )


async def generate_chunk_patch(
    dirty_chunk: DirtyChunk,
    chunks: list[Chunk],
    global_context: str,
    patcher: Patcher,
    window: int = PATCH_CONTEXT_CHUNKS,
) -> ChunkPatch | None:
    """
    Generate a replacement for one dirty chunk.

    Collects the Patcher stream and trims it. Empty output, or output equal
    to the chunk content, means no change is needed and yields None.

    Raises:
        Exception: Patcher failures propagate to the caller
    """
    request = build_patch_request(dirty_chunk, chunks, global_context, window=window)
    if request is None:
        logger.info(f"Chunk {dirty_chunk.chunk_id} not found, skipping patch")
        return None

    parts: list[str] = []
    async for text in patcher(request):
        parts.append(text)

    patched = "".join(parts).strip()
    if not patched or patched == request.chunk_content:
        logger.debug(f"No change needed for {dirty_chunk.chunk_id}")
        return None

    return ChunkPatch(before=request.chunk_content, after=patched)


def _match_case(match: str, replacement: str) -> str:
    if match == match.upper():
        return replacement.upper()
    if match == match.lower():
        return replacement.lower()
    if match[0] == match[0].upper():
        return replacement[:1].upper() + replacement[1:]
    return replacement


def simple_term_replace(content: str, old_term: str, new_term: str) -> ChunkPatch | None:
    """
    Case-preserving find/replace of one term.

    Returns None when old_term does not occur or nothing would change.
    """
    if not old_term or old_term.lower() not in content.lower():
        return None

    pattern = re.compile(re.escape(old_term), re.IGNORECASE)
    after = pattern.sub(lambda m: _match_case(m.group(0), new_term), content)

    if after == content:
        return None
    return ChunkPatch(before=content, after=after)


def apply_patch(document: str, chunk: Chunk, patch: ChunkPatch) -> str:
    """
    Splice patch.after over the chunk's span.

    The chunk's offsets must have been measured against this exact document;
    re-chunk the result before using any offsets again.
    """
    return document[:chunk.start_offset] + patch.after + document[chunk.end_offset:]
