"""In-memory registry of editing sessions."""

import uuid
from functools import lru_cache, partial

from consistency_engine.chains.analyze_consistency import analyze_consistency
from consistency_engine.chains.generate_chunk_patch import stream_chunk_patch
from consistency_engine.chains.suggest_completion import stream_completion
from consistency_engine.core.config import Settings, get_settings
from consistency_engine.core.editor_session import EditorSession
from consistency_engine.core.embeddings import EmbeddingIndex
from consistency_engine.core.exceptions import SessionNotFoundError
from consistency_engine.core.logging import get_logger

logger = get_logger(__name__)


def create_editor_session(settings: Settings, session_id: str, content: str = "") -> EditorSession:
    """Build a session wired to the Anthropic chains and, if enabled, OpenAI embeddings."""
    embedding_index = None
    if settings.EMBEDDINGS_ENABLED and settings.OPENAI_API_KEY:
        embedding_index = EmbeddingIndex(settings)

    return EditorSession(
        session_id=session_id,
        settings=settings,
        analyzer=partial(analyze_consistency, settings=settings),
        patcher=partial(stream_chunk_patch, settings=settings),
        completion=partial(stream_completion, settings=settings),
        embedding_index=embedding_index,
        content=content,
    )


class SessionRegistry:
    """Editing sessions keyed by id. Not persisted."""

    def __init__(self, settings: Settings, factory=create_editor_session):
        self.settings = settings
        self._factory = factory
        self._sessions: dict[str, EditorSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def create(self, content: str = "") -> EditorSession:
        session_id = str(uuid.uuid4())
        session = self._factory(self.settings, session_id, content)
        self._sessions[session_id] = session
        logger.info("Session created", extra={"session_id": session_id})
        return session

    def get(self, session_id: str) -> EditorSession:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise SessionNotFoundError(session_id) from None

    async def remove(self, session_id: str) -> None:
        session = self.get(session_id)
        del self._sessions[session_id]
        await session.close()
        logger.info("Session closed", extra={"session_id": session_id})

    async def close_all(self) -> None:
        for session_id in list(self._sessions):
            await self.remove(session_id)


@lru_cache
def get_registry() -> SessionRegistry:
    """Process-wide session registry."""
    return SessionRegistry(get_settings())
