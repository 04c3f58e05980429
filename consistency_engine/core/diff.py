"""Word-level diff engine.

Tokenizes text into words and single whitespace characters, aligns the two
token lists by Longest Common Subsequence and emits merged
unchanged/added/removed segments. Pure functions, total over all inputs.
"""

from collections.abc import Hashable, Sequence
from typing import TypeVar

from consistency_engine.core.schemas_audit import DiffSegment, DiffType

T = TypeVar("T", bound=Hashable)

WHITESPACE_CHARS = frozenset({" ", "\n", "\t"})


def tokenize_text(text: str) -> list[str]:
    """
    Split text into word tokens and single whitespace tokens.

    Each run of non-whitespace is one token; every space, newline and tab is
    its own token, so joining the tokens reproduces the input exactly.
    """
    tokens: list[str] = []
    current_word: list[str] = []

    for char in text:
        if char in WHITESPACE_CHARS:
            if current_word:
                tokens.append("".join(current_word))
                current_word = []
            tokens.append(char)
        else:
            current_word.append(char)

    if current_word:
        tokens.append("".join(current_word))

    return tokens


def _build_lcs_table(seq_a: Sequence[T], seq_b: Sequence[T]) -> list[list[int]]:
    """Dynamic programming table for LCS lengths."""
    length_a = len(seq_a)
    length_b = len(seq_b)
    table = [[0] * (length_b + 1) for _ in range(length_a + 1)]

    for i in range(1, length_a + 1):
        row = table[i]
        prev_row = table[i - 1]
        item_a = seq_a[i - 1]
        for j in range(1, length_b + 1):
            if item_a == seq_b[j - 1]:
                row[j] = prev_row[j - 1] + 1
            else:
                row[j] = max(prev_row[j], row[j - 1])

    return table


def lcs_index_pairs(seq_a: Sequence[T], seq_b: Sequence[T]) -> list[tuple[int, int]]:
    """
    Align two sequences by their longest common subsequence.

    Args:
        seq_a: First sequence
        seq_b: Second sequence

    Returns:
        Ordered (index_in_a, index_in_b) pairs of the matched elements
    """
    table = _build_lcs_table(seq_a, seq_b)
    pairs: list[tuple[int, int]] = []
    i = len(seq_a)
    j = len(seq_b)

    while i > 0 and j > 0:
        if seq_a[i - 1] == seq_b[j - 1]:
            pairs.append((i - 1, j - 1))
            i -= 1
            j -= 1
        elif table[i - 1][j] > table[i][j - 1]:
            i -= 1
        else:
            j -= 1

    pairs.reverse()
    return pairs


def longest_common_subsequence(seq_a: Sequence[T], seq_b: Sequence[T]) -> list[T]:
    """Return the LCS of two sequences as a list of elements."""
    return [seq_a[i] for i, _ in lcs_index_pairs(seq_a, seq_b)]


def _append_segment(segments: list[DiffSegment], segment_type: DiffType, text: str) -> None:
    """Append text, extending the last segment when it has the same type."""
    if segments and segments[-1].type == segment_type:
        segments[-1].text += text
    else:
        segments.append(DiffSegment(type=segment_type, text=text))


def _build_diff_segments(
    original_tokens: list[str],
    modified_tokens: list[str],
    common_sequence: list[str],
) -> list[DiffSegment]:
    segments: list[DiffSegment] = []
    original_index = 0
    modified_index = 0
    common_index = 0

    while original_index < len(original_tokens) or modified_index < len(modified_tokens):
        has_common = common_index < len(common_sequence)
        original_matches = (
            has_common
            and original_index < len(original_tokens)
            and original_tokens[original_index] == common_sequence[common_index]
        )
        modified_matches = (
            has_common
            and modified_index < len(modified_tokens)
            and modified_tokens[modified_index] == common_sequence[common_index]
        )

        if original_matches and modified_matches:
            _append_segment(segments, "unchanged", original_tokens[original_index])
            original_index += 1
            modified_index += 1
            common_index += 1
        elif not original_matches and original_index < len(original_tokens):
            _append_segment(segments, "removed", original_tokens[original_index])
            original_index += 1
        elif not modified_matches and modified_index < len(modified_tokens):
            _append_segment(segments, "added", modified_tokens[modified_index])
            modified_index += 1
        else:
            # Unreachable for a true LCS; consume both sides so the walk terminates
            if original_index < len(original_tokens):
                _append_segment(segments, "removed", original_tokens[original_index])
                original_index += 1
            if modified_index < len(modified_tokens):
                _append_segment(segments, "added", modified_tokens[modified_index])
                modified_index += 1

    return segments


def compute_diff(original: str, modified: str) -> list[DiffSegment]:
    """
    Compute word-level differences between two strings.

    Args:
        original: Text before the edit
        modified: Text after the edit

    Returns:
        Ordered segments; no two consecutive segments share a type.
        Non-removed text rebuilds `modified`, non-added text rebuilds `original`.
    """
    original_tokens = tokenize_text(original)
    modified_tokens = tokenize_text(modified)
    common_sequence = longest_common_subsequence(original_tokens, modified_tokens)
    return _build_diff_segments(original_tokens, modified_tokens, common_sequence)


def has_changes(diff: list[DiffSegment]) -> bool:
    """True if any segment is an addition or removal."""
    return any(segment.type != "unchanged" for segment in diff)


def reconstruct_original(diff: list[DiffSegment]) -> str:
    """Rebuild the original string from a diff."""
    return "".join(segment.text for segment in diff if segment.type != "added")


def reconstruct_modified(diff: list[DiffSegment]) -> str:
    """Rebuild the modified string from a diff."""
    return "".join(segment.text for segment in diff if segment.type != "removed")
