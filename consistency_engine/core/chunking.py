"""Document chunking for consistency tracking.

Strategy: split on blank-line paragraph boundaries, split oversized
paragraphs into sentences, fold small chunks into their successor, and
fall back to sentence-level chunking when a document would otherwise yield
a single comparison unit.

Every chunk satisfies `text[chunk.start_offset:chunk.end_offset] == chunk.content`
for the exact text it was computed from. Ids are positional and are not
stable across edits.
"""

import hashlib
import re

from consistency_engine.core.diff import lcs_index_pairs
from consistency_engine.core.schemas_audit import Chunk

MIN_CHUNK_CHARS = 50
MAX_CHUNK_CHARS = 500
MIN_CHUNKS_FOR_COMPARISON = 2

PARAGRAPH_BREAK = re.compile(r"\n\n+")
SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+")

Span = tuple[int, int]


def _split_spans(text: str, pattern: re.Pattern, start: int, end: int) -> list[Span]:
    """Split text[start:end] on a separator pattern, dropping blank pieces."""
    spans: list[Span] = []
    position = start
    for match in pattern.finditer(text, start, end):
        spans.append((position, match.start()))
        position = match.end()
    spans.append((position, end))
    return [(s, e) for s, e in spans if text[s:e].strip()]


def _merge_small_spans(
    spans: list[Span],
    min_chars: int,
    min_chunks: int,
) -> list[Span]:
    """
    Fold spans shorter than min_chars into their immediate successor.

    Each small span is merged at most once. A merge that would leave fewer
    than min_chunks spans is skipped.
    """
    if len(spans) <= 1:
        return spans

    merged: list[Span] = []
    remaining = len(spans)
    i = 0

    while i < len(spans):
        start, end = spans[i]
        has_next = i < len(spans) - 1
        if end - start < min_chars and has_next and remaining - 1 >= min_chunks:
            merged.append((start, spans[i + 1][1]))
            remaining -= 1
            i += 2
        else:
            merged.append((start, end))
            i += 1

    return merged


def _force_sentence_spans(text: str, min_chars: int, min_chunks: int) -> list[Span]:
    """Sentence-level spans for the whole text (single span if it has one sentence)."""
    sentences = _split_spans(text, SENTENCE_BREAK, 0, len(text))
    if len(sentences) < 2:
        return [(0, len(text))]

    spans: list[Span] = []
    for start, end in sentences:
        if len(text[start:end].strip()) >= min_chars or not spans:
            spans.append((start, end))
        else:
            # Small trailing sentence joins the previous span
            spans[-1] = (spans[-1][0], end)

    return _merge_small_spans(spans, min_chars, min_chunks)


def _to_chunks(text: str, spans: list[Span]) -> list[Chunk]:
    return [
        Chunk(id=f"chunk_{index}", content=text[start:end], start_offset=start, end_offset=end)
        for index, (start, end) in enumerate(spans)
    ]


def chunk_document(
    content: str,
    min_chars: int = MIN_CHUNK_CHARS,
    max_chars: int = MAX_CHUNK_CHARS,
    min_chunks: int = MIN_CHUNKS_FOR_COMPARISON,
) -> list[Chunk]:
    """
    Split document content into trackable chunks.

    Args:
        content: Full document text
        min_chars: Chunks shorter than this are merged into their successor
        max_chars: Paragraphs longer than this are split into sentences
        min_chunks: Minimum number of comparison units to aim for

    Returns:
        List of chunks with ids chunk_0..chunk_n-1 and offsets into `content`.
        Empty or whitespace-only content yields an empty list.
    """
    if not content.strip():
        return []

    spans: list[Span] = []
    for para_start, para_end in _split_spans(content, PARAGRAPH_BREAK, 0, len(content)):
        if para_end - para_start > max_chars:
            spans.extend(_split_spans(content, SENTENCE_BREAK, para_start, para_end))
        else:
            spans.append((para_start, para_end))

    spans = _merge_small_spans(spans, min_chars, min_chunks)

    # Single-unit documents cannot be audited internally; retry at sentence level
    if len(spans) < min_chunks and len(content) > min_chars:
        spans = _force_sentence_spans(content, min_chars, min_chunks)

    return _to_chunks(content, spans)


def get_chunk_by_id(chunks: list[Chunk], chunk_id: str) -> Chunk | None:
    """Get chunk by id."""
    return next((c for c in chunks if c.id == chunk_id), None)


def get_chunk_index(chunks: list[Chunk], chunk_id: str) -> int:
    """Index of a chunk by id, or -1."""
    return next((i for i, c in enumerate(chunks) if c.id == chunk_id), -1)


def get_chunk_at_offset(chunks: list[Chunk], offset: int) -> Chunk | None:
    """Get the first chunk whose span contains offset (end inclusive)."""
    return next((c for c in chunks if c.start_offset <= offset <= c.end_offset), None)


def find_modified_chunk_ids(old_chunks: list[Chunk], new_chunks: list[Chunk]) -> list[str]:
    """
    Find chunks in new_chunks that differ from the chunk at the same index.

    Comparison is positional: an index with no old counterpart counts as
    modified. Inserting or deleting a paragraph shifts every later index.
    """
    modified: list[str] = []
    for index, new_chunk in enumerate(new_chunks):
        old_chunk = old_chunks[index] if index < len(old_chunks) else None
        if old_chunk is None or old_chunk.content != new_chunk.content:
            modified.append(new_chunk.id)
    return modified


def _content_hash(chunk: Chunk) -> str:
    return hashlib.sha1(chunk.content.encode("utf-8")).hexdigest()


def find_modified_chunk_ids_aligned(
    old_chunks: list[Chunk], new_chunks: list[Chunk]
) -> list[str]:
    """
    Find new chunks with no unchanged counterpart, aligning by content.

    Old and new chunk lists are aligned by LCS over content hashes, so an
    inserted or deleted paragraph only flags itself rather than every chunk
    after it.
    """
    old_hashes = [_content_hash(c) for c in old_chunks]
    new_hashes = [_content_hash(c) for c in new_chunks]
    matched = {j for _, j in lcs_index_pairs(old_hashes, new_hashes)}
    return [chunk.id for index, chunk in enumerate(new_chunks) if index not in matched]


def find_edited_chunk_ids(
    old_chunks: list[Chunk],
    new_chunks: list[Chunk],
    strategy: str = "positional",
) -> list[str]:
    """Dispatch to the configured modified-chunk detector."""
    if strategy == "aligned":
        return find_modified_chunk_ids_aligned(old_chunks, new_chunks)
    return find_modified_chunk_ids(old_chunks, new_chunks)


def extract_key_terms(text: str) -> list[str]:
    """
    Extract key terms for heuristic matching.

    Keeps proper-noun-like words (capitalized, longer than 2 chars) and
    code-like words (camelCase, runs of capitals, underscores, digits),
    lower-cased and de-duplicated in order of first appearance.
    """
    terms: list[str] = []

    for word in text.split():
        cleaned = re.sub(r"[^a-zA-Z0-9\-_]", "", word)
        if not cleaned:
            continue

        if re.match(r"[A-Z][a-z]+", cleaned) and len(cleaned) > 2:
            terms.append(cleaned.lower())
        if re.search(r"[a-z][A-Z]|[A-Z]{2,}|_|\d", cleaned):
            terms.append(cleaned.lower())

    return list(dict.fromkeys(terms))
