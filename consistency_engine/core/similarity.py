"""
Chunk similarity scoring.

Scores how closely a candidate chunk relates to the edited chunk. The score
feeds the heuristic conflict rules and the dirty queue tie-break.

Strategies:
1. Exact match (after normalization)
2. Token set ratio (rapidfuzz) - handles word reordering
3. Partial ratio (rapidfuzz) - handles substrings
4. Weighted ratio (rapidfuzz) - general fuzzy matching
5. Key term overlap - Jaccard boosted by coverage
6. Embedding similarity (optional) - cosine over cached vectors

Usage:
    from consistency_engine.core.similarity import SimilarityScorer

    scorer = SimilarityScorer()
    score = await scorer.score("We use React hooks.", "React state lives in hooks.")
"""

import re
from dataclasses import dataclass
from enum import Enum

from rapidfuzz import fuzz

from consistency_engine.core.embeddings import EmbeddingIndex
from consistency_engine.core.logging import get_logger

logger = get_logger(__name__)


class MatchStrategy(Enum):
    """Available scoring strategies."""
    EXACT = "exact"
    TOKEN_SET = "token_set"
    PARTIAL = "partial"
    WRATIO = "wratio"
    KEY_TERMS = "key_terms"
    EMBEDDING = "embedding"


@dataclass
class ScoredPair:
    """Similarity score and the strategy that produced it."""
    score: float
    strategy: MatchStrategy


LEXICAL_STRATEGIES = [
    MatchStrategy.TOKEN_SET,
    MatchStrategy.PARTIAL,
    MatchStrategy.WRATIO,
    MatchStrategy.KEY_TERMS,
]

# Stop words for key term extraction
STOP_WORDS = {
    "a", "an", "the", "for", "and", "or", "of", "to", "in", "on", "with",
    "is", "are", "was", "were", "be", "been", "being", "have", "has", "had",
    "do", "does", "did", "will", "would", "could", "should", "may", "might",
    "must", "shall", "can", "that", "this", "these", "those", "it", "its",
    "as", "at", "by", "from", "into", "through", "during", "before", "after",
    "we", "our", "you", "your", "they", "their", "but", "not", "also", "then",
}


class SimilarityScorer:
    """
    Multi-strategy similarity scorer.

    Uses the embedding index when one is supplied, and lexical strategies
    otherwise or when the embedding call fails.
    """

    def __init__(
        self,
        embedding_index: EmbeddingIndex | None = None,
        strategies: list[MatchStrategy] | None = None,
        custom_stop_words: set[str] | None = None,
    ):
        self.embedding_index = embedding_index
        self.strategies = strategies or LEXICAL_STRATEGIES
        self.stop_words = STOP_WORDS | (custom_stop_words or set())

    def normalize_text(self, text: str) -> str:
        """
        Normalize text for comparison.

        - Lowercase
        - Remove punctuation (except spaces)
        - Normalize whitespace
        """
        if not text:
            return ""

        text = text.lower()
        text = re.sub(r"[^\w\s]", "", text)
        return " ".join(text.split())

    def content_words(self, text: str) -> set[str]:
        """Normalized words minus stop words and very short tokens."""
        words = self.normalize_text(text).split()
        return {w for w in words if w not in self.stop_words and len(w) > 2}

    def lexical_similarity(self, text_a: str, text_b: str) -> ScoredPair:
        """
        Compute lexical similarity between two texts.

        Returns the best score across the configured strategies.
        """
        if not text_a or not text_b:
            return ScoredPair(0.0, MatchStrategy.EXACT)

        norm_a = self.normalize_text(text_a)
        norm_b = self.normalize_text(text_b)

        if norm_a == norm_b:
            return ScoredPair(1.0, MatchStrategy.EXACT)

        best = ScoredPair(0.0, MatchStrategy.EXACT)

        scorers = {
            MatchStrategy.TOKEN_SET: fuzz.token_set_ratio,
            MatchStrategy.PARTIAL: fuzz.partial_ratio,
            MatchStrategy.WRATIO: fuzz.WRatio,
        }
        for strategy, scorer in scorers.items():
            if strategy in self.strategies:
                score = scorer(norm_a, norm_b) / 100.0
                if score > best.score:
                    best = ScoredPair(score, strategy)

        if MatchStrategy.KEY_TERMS in self.strategies:
            terms_a = self.content_words(text_a)
            terms_b = self.content_words(text_b)

            if terms_a and terms_b:
                intersection = terms_a & terms_b
                union = terms_a | terms_b
                jaccard = len(intersection) / len(union)

                # Coverage boost
                coverage = max(len(intersection) / len(terms_a), len(intersection) / len(terms_b))
                boosted = (jaccard + coverage) / 2

                if boosted > best.score:
                    best = ScoredPair(boosted, MatchStrategy.KEY_TERMS)

        return best

    async def score(self, text_a: str, text_b: str) -> float:
        """Similarity in [0, 1] between two chunk texts."""
        if self.embedding_index is not None:
            try:
                return await self.embedding_index.similarity(text_a, text_b)
            except Exception as e:
                logger.warning(f"Embedding similarity failed, using lexical score: {e}")

        return self.lexical_similarity(text_a, text_b).score

    async def score_many(self, anchor: str, texts: list[str]) -> list[float]:
        """Score each text against one anchor text."""
        if self.embedding_index is not None:
            try:
                return await self.embedding_index.similarities(anchor, texts)
            except Exception as e:
                logger.warning(f"Embedding similarity failed, using lexical scores: {e}")

        return [self.lexical_similarity(anchor, text).score for text in texts]
