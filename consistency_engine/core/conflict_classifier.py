"""Conflict classifier for post-edit consistency audits.

Decides which candidate chunks became inconsistent with an edit. The
analyzer (a language-model capability) gives the primary verdict; local
key-term heuristics cover candidates it could not judge.

Verdict sources, per candidate:
1. Analyzer verdict present -> definitive (needs_update or consistent)
2. Analyzer failed or omitted the candidate -> heuristic rules
3. Heuristics disabled -> conservative needs_update default
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Literal

from consistency_engine.core.chunking import extract_key_terms
from consistency_engine.core.logging import get_logger
from consistency_engine.core.schemas_audit import (
    AnalyzeCandidate,
    AnalyzeRequest,
    AtRiskChunk,
    Chunk,
    ConflictAnalysis,
    DirtyPriority,
    EditContext,
)
from consistency_engine.core.similarity import SimilarityScorer

logger = get_logger(__name__)

Analyzer = Callable[[AnalyzeRequest], Awaitable[list[ConflictAnalysis]]]
VerdictSource = Literal["analyzer", "heuristic", "default"]

# Heuristic similarity thresholds
SHARED_TERMS_SIMILARITY = 0.80
MODERATE_SIMILARITY = 0.75
HIGH_SIMILARITY = 0.85

DEFAULT_NEEDS_UPDATE_DETAILS = "Unable to analyze - defaulting to needs update"
DEFAULT_ANALYZER_REASON = "Needs update for consistency"


@dataclass
class HeuristicVerdict:
    """Conflict found by the local rules."""
    priority: DirtyPriority
    reason: str


@dataclass
class ClassifiedChunk:
    """A candidate judged to need an update, with where the verdict came from."""
    at_risk: AtRiskChunk
    priority: DirtyPriority
    reason: str
    source: VerdictSource
    analysis: ConflictAnalysis | None = None


@dataclass
class EditTerms:
    """Key-term sets describing one edit."""
    added: list[str]
    removed: list[str]
    modified: set[str]

    @classmethod
    def from_context(cls, edit_context: EditContext) -> "EditTerms":
        old_terms = extract_key_terms(edit_context.old_content)
        new_terms = extract_key_terms(edit_context.new_content)
        old_set = set(old_terms)
        new_set = set(new_terms)
        return cls(
            added=[t for t in new_terms if t not in old_set],
            removed=[t for t in old_terms if t not in new_set],
            modified=set(extract_key_terms(edit_context.modified_chunk_content)),
        )


def detect_conflict(at_risk: AtRiskChunk, edit_terms: EditTerms) -> HeuristicVerdict | None:
    """
    Apply heuristic conflict rules to one candidate.

    Rules, first match wins:
    - P0: chunk still mentions a term the edit removed (stale reference)
    - P1: shares key terms with the edited chunk and similarity >= 0.80
    - P1: shares key terms and similarity >= 0.75
    - P1: similarity >= 0.85 on its own
    - P1: a chunk term overlaps newly added vocabulary

    Returns:
        HeuristicVerdict, or None when the chunk looks consistent
    """
    chunk_content = at_risk.chunk.content.lower()
    chunk_terms = extract_key_terms(at_risk.chunk.content)
    similarity = at_risk.similarity

    for removed in edit_terms.removed:
        if removed.lower() in chunk_content:
            return HeuristicVerdict("P0", f'Contains outdated reference to "{removed}"')

    shared = [t for t in chunk_terms if t in edit_terms.modified]

    if shared and similarity >= SHARED_TERMS_SIMILARITY:
        return HeuristicVerdict("P1", f"Semantically related (shares: {', '.join(shared[:3])})")

    if shared and similarity >= MODERATE_SIMILARITY:
        return HeuristicVerdict("P1", f"May need review ({round(similarity * 100)}% similar)")

    if similarity >= HIGH_SIMILARITY:
        return HeuristicVerdict("P1", f"High semantic similarity ({round(similarity * 100)}%)")

    if any(added in term or term in added for term in chunk_terms for added in edit_terms.added):
        return HeuristicVerdict("P1", "Contains related terminology")

    return None


def analysis_priority(analysis: ConflictAnalysis) -> DirtyPriority:
    """P0 when the verdict carries refactoring directives, P1 otherwise."""
    return "P0" if analysis.refactoring_directives else "P1"


def default_analysis(chunk_id: str) -> ConflictAnalysis:
    """Conservative verdict used when nothing better is available."""
    return ConflictAnalysis(
        chunk_id=chunk_id,
        conflict_type="needs_update",
        details=DEFAULT_NEEDS_UPDATE_DETAILS,
        refactoring_directives=[],
    )


def merge_verdicts(
    at_risk_chunks: list[AtRiskChunk],
    edit_context: EditContext,
    analyses: list[ConflictAnalysis] | None,
    heuristic_enabled: bool = True,
) -> list[ClassifiedChunk]:
    """
    Combine analyzer verdicts with heuristic rules.

    Args:
        at_risk_chunks: Candidates with similarity scores
        edit_context: Edit text used by the heuristic rules
        analyses: Analyzer verdicts, or None if the analyzer call failed
        heuristic_enabled: Whether the heuristic path may be used

    Returns:
        Candidates judged to need an update, in candidate order
    """
    by_id: dict[str, ConflictAnalysis] = {}
    for analysis in analyses or []:
        by_id.setdefault(analysis.chunk_id, analysis)

    edit_terms = EditTerms.from_context(edit_context) if heuristic_enabled else None
    classified: list[ClassifiedChunk] = []

    for at_risk in at_risk_chunks:
        analysis = by_id.get(at_risk.chunk_id)

        if analysis is not None:
            if analysis.conflict_type == "needs_update":
                classified.append(
                    ClassifiedChunk(
                        at_risk=at_risk,
                        priority=analysis_priority(analysis),
                        reason=analysis.details or DEFAULT_ANALYZER_REASON,
                        source="analyzer",
                        analysis=analysis,
                    )
                )
            continue

        if edit_terms is not None:
            verdict = detect_conflict(at_risk, edit_terms)
            if verdict:
                classified.append(
                    ClassifiedChunk(
                        at_risk=at_risk,
                        priority=verdict.priority,
                        reason=verdict.reason,
                        source="heuristic",
                    )
                )
            continue

        fallback = default_analysis(at_risk.chunk_id)
        classified.append(
            ClassifiedChunk(
                at_risk=at_risk,
                priority=analysis_priority(fallback),
                reason=fallback.details,
                source="default",
                analysis=fallback,
            )
        )

    return classified


class ConflictClassifier:
    """
    Classifies candidate chunks against one edit.

    Owns its analyzer and similarity scorer; one instance per editing session.
    """

    def __init__(
        self,
        analyzer: Analyzer,
        similarity: SimilarityScorer | None = None,
        heuristic_fallback: bool = True,
    ):
        self.analyzer = analyzer
        self.similarity = similarity or SimilarityScorer()
        self.heuristic_fallback = heuristic_fallback

    async def score_candidates(self, edited_content: str, candidates: list[Chunk]) -> list[AtRiskChunk]:
        """Attach similarity-to-edit scores to candidate chunks."""
        if not candidates:
            return []
        scores = await self.similarity.score_many(edited_content, [c.content for c in candidates])
        return [
            AtRiskChunk(chunk_id=chunk.id, chunk=chunk, similarity=score)
            for chunk, score in zip(candidates, scores)
        ]

    async def classify(
        self,
        edited_before: str,
        edited_after: str,
        at_risk_chunks: list[AtRiskChunk],
    ) -> list[ClassifiedChunk]:
        """
        Classify candidates, returning only those that need an update.

        Analyzer failures are logged and degrade to the heuristic path (or
        the conservative default when heuristics are disabled). Cancellation
        propagates.
        """
        if not at_risk_chunks:
            return []

        request = AnalyzeRequest(
            edited_chunk_before=edited_before,
            edited_chunk_after=edited_after,
            chunks=[
                AnalyzeCandidate(chunk_id=c.chunk_id, content=c.chunk.content)
                for c in at_risk_chunks
            ],
        )

        analyses: list[ConflictAnalysis] | None
        try:
            analyses = await self.analyzer(request)
        except Exception as e:
            logger.warning(
                f"Analyzer failed, falling back: {e}",
                extra={"candidates": len(at_risk_chunks), "heuristic": self.heuristic_fallback},
            )
            analyses = None

        edit_context = EditContext(
            old_content=edited_before,
            new_content=edited_after,
            modified_chunk_content=edited_after,
        )
        classified = merge_verdicts(
            at_risk_chunks, edit_context, analyses, heuristic_enabled=self.heuristic_fallback
        )

        logger.info(
            f"Classified {len(at_risk_chunks)} candidates, {len(classified)} need updates",
            extra={"analyzer_ok": analyses is not None},
        )
        return classified
