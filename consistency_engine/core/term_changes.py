"""Term-level helpers for describing and locating what an edit changed."""

from dataclasses import dataclass


@dataclass(frozen=True)
class TermChange:
    """Primary word run replaced by an edit."""
    old_term: str
    new_term: str


@dataclass(frozen=True)
class StaleReference:
    """An occurrence of an outdated term inside a chunk."""
    start: int
    end: int
    old_text: str
    new_text: str


def extract_term_change(old_content: str, new_content: str) -> TermChange | None:
    """
    Identify the first differing word run between two texts.

    Words are compared pairwise from the first mismatch until the two texts
    line up again. Returns None when nothing differs or one side of the change
    is empty.
    """
    old_words = old_content.split()
    new_words = new_content.split()

    diff_start = 0
    while diff_start < len(old_words) and diff_start < len(new_words):
        if old_words[diff_start] != new_words[diff_start]:
            break
        diff_start += 1

    if diff_start >= len(old_words) and diff_start >= len(new_words):
        return None

    old_end = diff_start
    new_end = diff_start
    while old_end < len(old_words) and new_end < len(new_words):
        if old_words[old_end] == new_words[new_end]:
            break
        old_end += 1
        new_end += 1

    old_term = " ".join(old_words[diff_start:max(diff_start + 1, old_end)])
    new_term = " ".join(new_words[diff_start:max(diff_start + 1, new_end)])

    if not old_term or not new_term:
        return None

    return TermChange(old_term=old_term, new_term=new_term)


def contains_term(text: str, term: str) -> bool:
    """Case-insensitive substring check."""
    return term.lower() in text.lower()


def find_stale_references(chunk_content: str, old_term: str, new_term: str) -> list[StaleReference]:
    """
    Find every case-insensitive occurrence of old_term in a chunk.

    Occurrences may overlap; offsets index into chunk_content.
    """
    references: list[StaleReference] = []
    if not old_term:
        return references

    lower_content = chunk_content.lower()
    lower_old = old_term.lower()

    index = lower_content.find(lower_old)
    while index != -1:
        references.append(
            StaleReference(
                start=index,
                end=index + len(old_term),
                old_text=chunk_content[index:index + len(old_term)],
                new_text=new_term,
            )
        )
        index = lower_content.find(lower_old, index + 1)

    return references
