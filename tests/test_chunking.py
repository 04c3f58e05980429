"""Tests for document chunking."""

from consistency_engine.core.chunking import (
    chunk_document,
    extract_key_terms,
    get_chunk_at_offset,
    get_chunk_by_id,
    get_chunk_index,
)


LONG_DOC = (
    "We are building a planning tool for small teams. The frontend uses React "
    "and TypeScript throughout.\n\n"
    "State management relies on React hooks and a small store. Components are "
    "kept small and testable.\n\n"
    "The backend is a FastAPI service with a Postgres database behind it."
)


def _assert_offsets(text, chunks):
    for chunk in chunks:
        assert text[chunk.start_offset:chunk.end_offset] == chunk.content


def test_two_short_paragraphs_stay_separate():
    """Test that two short paragraphs still give two comparison units."""
    text = "Para one.\n\nPara two."
    chunks = chunk_document(text)

    assert len(chunks) == 2
    assert chunks[0].id == "chunk_0"
    assert chunks[0].content == "Para one."
    assert (chunks[0].start_offset, chunks[0].end_offset) == (0, 9)
    assert chunks[1].id == "chunk_1"
    assert chunks[1].content == "Para two."
    assert (chunks[1].start_offset, chunks[1].end_offset) == (11, 20)


def test_short_single_sentence_is_one_chunk():
    """Test that a short unpunctuated document cannot be force split."""
    text = "a thirty character sentence xx"
    assert len(text) == 30

    chunks = chunk_document(text)

    assert len(chunks) == 1
    assert chunks[0].content == text
    assert (chunks[0].start_offset, chunks[0].end_offset) == (0, 30)


def test_empty_and_whitespace_documents():
    assert chunk_document("") == []
    assert chunk_document("   \n\n\t ") == []


def test_paragraph_chunks_have_exact_offsets():
    chunks = chunk_document(LONG_DOC)

    assert len(chunks) == 3
    _assert_offsets(LONG_DOC, chunks)
    assert [c.id for c in chunks] == ["chunk_0", "chunk_1", "chunk_2"]


def test_small_paragraph_folds_into_successor():
    """Test that a small chunk merges forward, not backward."""
    text = (
        "Intro.\n\n"
        "This paragraph is comfortably longer than the fifty character minimum.\n\n"
        "So is this closing paragraph, which also clears the minimum length."
    )
    chunks = chunk_document(text)

    assert len(chunks) == 2
    assert chunks[0].content.startswith("Intro.")
    assert chunks[0].content.endswith("minimum.")
    _assert_offsets(text, chunks)


def test_long_paragraph_splits_into_sentences():
    sentence = "This sentence is long enough to stand on its own as a chunk. "
    text = (sentence * 10).strip()
    assert len(text) > 500

    chunks = chunk_document(text)

    assert len(chunks) == 10
    _assert_offsets(text, chunks)


def test_single_paragraph_forced_to_sentences():
    """Test the two-unit guarantee for one paragraph with several sentences."""
    text = (
        "The first sentence describes the project in some detail here. "
        "The second sentence explains which stack the team has chosen."
    )
    chunks = chunk_document(text)

    assert len(chunks) == 2
    _assert_offsets(text, chunks)


def test_rechunking_is_stable():
    first = chunk_document(LONG_DOC)
    second = chunk_document(LONG_DOC)

    assert first == second


def test_chunk_lookups():
    chunks = chunk_document(LONG_DOC)

    assert get_chunk_by_id(chunks, "chunk_1") == chunks[1]
    assert get_chunk_by_id(chunks, "chunk_9") is None
    assert get_chunk_index(chunks, "chunk_2") == 2
    assert get_chunk_index(chunks, "missing") == -1
    assert get_chunk_at_offset(chunks, 0) == chunks[0]
    assert get_chunk_at_offset(chunks, chunks[1].start_offset + 3) == chunks[1]
    # End offsets are inclusive for lookups
    assert get_chunk_at_offset(chunks, chunks[0].end_offset) == chunks[0]
    assert get_chunk_at_offset(chunks, len(LONG_DOC) + 50) is None


def test_extract_key_terms():
    terms = extract_key_terms("We use React with useState, an API_KEY and Node18 today.")

    assert terms == ["react", "usestate", "api_key", "node18"]


def test_extract_key_terms_dedupes():
    assert extract_key_terms("React React react") == ["react"]
