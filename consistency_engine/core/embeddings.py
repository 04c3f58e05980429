"""OpenAI embeddings with a per-session vector cache."""

import asyncio
import hashlib

import numpy as np
from openai import OpenAI

from consistency_engine.core.config import Settings
from consistency_engine.core.logging import get_logger

logger = get_logger(__name__)


def cosine_similarity(vector_a: list[float], vector_b: list[float]) -> float:
    """
    Cosine similarity between two vectors.

    Returns 0.0 for mismatched lengths or zero vectors.
    """
    if len(vector_a) != len(vector_b):
        return 0.0

    a = np.asarray(vector_a, dtype=float)
    b = np.asarray(vector_b, dtype=float)
    denominator = float(np.linalg.norm(a) * np.linalg.norm(b))
    if denominator == 0.0:
        return 0.0
    return float(np.dot(a, b) / denominator)


class EmbeddingIndex:
    """
    Content-addressed embedding cache owned by one editing session.

    Vectors are keyed by a hash of the text, so re-chunking a document
    (which renumbers chunk ids) reuses vectors for unchanged content.
    """

    def __init__(self, settings: Settings, client: OpenAI | None = None):
        self.model = settings.EMBEDDING_MODEL
        self._client = client or OpenAI(api_key=settings.OPENAI_API_KEY)
        self._vectors: dict[str, list[float]] = {}

    @staticmethod
    def _key(text: str) -> str:
        return hashlib.sha256(text.encode("utf-8")).hexdigest()

    def __len__(self) -> int:
        return len(self._vectors)

    def clear(self) -> None:
        self._vectors.clear()

    def _embed(self, texts: list[str]) -> list[list[float]]:
        response = self._client.embeddings.create(model=self.model, input=texts)
        return [item.embedding for item in response.data]

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """
        Embed texts, calling the API only for texts not cached yet.

        Args:
            texts: Texts to embed

        Returns:
            One vector per input text, in input order

        Raises:
            Exception: If the OpenAI API call fails
        """
        missing = list(dict.fromkeys(t for t in texts if self._key(t) not in self._vectors))
        if missing:
            vectors = await asyncio.to_thread(self._embed, missing)
            for text, vector in zip(missing, vectors):
                self._vectors[self._key(text)] = vector
            logger.debug(
                f"Embedded {len(missing)} texts using {self.model}",
                extra={"cached": len(self._vectors)},
            )

        return [self._vectors[self._key(t)] for t in texts]

    async def similarity(self, text_a: str, text_b: str) -> float:
        vector_a, vector_b = await self.embed([text_a, text_b])
        return cosine_similarity(vector_a, vector_b)

    async def similarities(self, anchor: str, texts: list[str]) -> list[float]:
        vectors = await self.embed([anchor, *texts])
        return [cosine_similarity(vectors[0], v) for v in vectors[1:]]
