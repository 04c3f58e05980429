"""API endpoints for in-memory editing sessions and their dirty queues."""

import asyncio

from fastapi import APIRouter, Depends, HTTPException, Path, Query

from consistency_engine.core.editor_session import EditorSession
from consistency_engine.core.exceptions import SessionNotFoundError
from consistency_engine.core.logging import get_logger
from consistency_engine.core.schemas_sessions import (
    AuditRequest,
    CreateSessionRequest,
    SessionSnapshot,
    UpdateContentRequest,
)
from consistency_engine.core.session_registry import SessionRegistry, get_registry

logger = get_logger(__name__)

router = APIRouter()


def _get_session(session_id: str, registry: SessionRegistry) -> EditorSession:
    try:
        return registry.get(session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


async def _maybe_wait(task: asyncio.Task | None, wait: bool) -> None:
    """Await background work when the caller asked to block on it."""
    if task is None or not wait:
        return
    try:
        await asyncio.shield(task)
    except asyncio.CancelledError:
        # Superseded background work is not an error; our own cancellation is
        if not task.cancelled():
            raise


@router.post("/sessions", response_model=SessionSnapshot, status_code=201)
async def create_session(
    request: CreateSessionRequest,
    registry: SessionRegistry = Depends(get_registry),
) -> SessionSnapshot:
    session = registry.create(request.content)
    return session.snapshot()


@router.get("/sessions/{session_id}", response_model=SessionSnapshot)
async def get_session(
    session_id: str = Path(..., description="Session id"),
    registry: SessionRegistry = Depends(get_registry),
) -> SessionSnapshot:
    return _get_session(session_id, registry).snapshot()


@router.delete("/sessions/{session_id}", status_code=204)
async def delete_session(
    session_id: str = Path(..., description="Session id"),
    registry: SessionRegistry = Depends(get_registry),
) -> None:
    try:
        await registry.remove(session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


@router.put("/sessions/{session_id}/content", response_model=SessionSnapshot)
async def update_content(
    request: UpdateContentRequest,
    session_id: str = Path(..., description="Session id"),
    registry: SessionRegistry = Depends(get_registry),
) -> SessionSnapshot:
    """
    Replace the document text.

    Manual edits may schedule a debounced completion request.
    """
    session = _get_session(session_id, registry)
    session.edit(request.content, request.cursor_position, manual=request.manual)
    return session.snapshot()


@router.post("/sessions/{session_id}/suggestion", response_model=SessionSnapshot)
async def request_suggestion(
    session_id: str = Path(..., description="Session id"),
    wait: bool = Query(default=False, description="Block until the completion resolves"),
    registry: SessionRegistry = Depends(get_registry),
) -> SessionSnapshot:
    session = _get_session(session_id, registry)
    await _maybe_wait(session.request_suggestion(), wait)
    return session.snapshot()


@router.post("/sessions/{session_id}/suggestion/accept", response_model=SessionSnapshot)
async def accept_suggestion(
    session_id: str = Path(..., description="Session id"),
    wait: bool = Query(default=False, description="Block until the audit pass finishes"),
    registry: SessionRegistry = Depends(get_registry),
) -> SessionSnapshot:
    """
    Apply the pending suggestion and start the consistency audit.

    Raises:
        HTTPException 409: If there is no pending suggestion or an audit is running
    """
    session = _get_session(session_id, registry)
    if session.suggestions.suggestion is None:
        raise HTTPException(status_code=409, detail="No pending suggestion")
    if session.audit.is_auditing:
        raise HTTPException(status_code=409, detail="Audit already running")

    await _maybe_wait(session.accept_suggestion(), wait)
    return session.snapshot()


@router.post("/sessions/{session_id}/suggestion/reject", response_model=SessionSnapshot)
async def reject_suggestion(
    session_id: str = Path(..., description="Session id"),
    registry: SessionRegistry = Depends(get_registry),
) -> SessionSnapshot:
    session = _get_session(session_id, registry)
    session.reject_suggestion()
    return session.snapshot()


@router.post("/sessions/{session_id}/audit", response_model=SessionSnapshot)
async def check_consistency(
    request: AuditRequest,
    session_id: str = Path(..., description="Session id"),
    wait: bool = Query(default=False, description="Block until the audit pass finishes"),
    registry: SessionRegistry = Depends(get_registry),
) -> SessionSnapshot:
    """
    Audit the whole document against the anchor chunk.

    Raises:
        HTTPException 409: If an audit is already running
    """
    session = _get_session(session_id, registry)
    task = session.check_consistency(request.anchor_offset)
    if task is None:
        raise HTTPException(status_code=409, detail="Audit already running")

    await _maybe_wait(task, wait)
    return session.snapshot()


@router.post("/sessions/{session_id}/queue/patch", response_model=SessionSnapshot)
async def generate_current_patch(
    session_id: str = Path(..., description="Session id"),
    wait: bool = Query(default=False, description="Block until the patch resolves"),
    registry: SessionRegistry = Depends(get_registry),
) -> SessionSnapshot:
    session = _get_session(session_id, registry)
    await _maybe_wait(session.ensure_current_patch(), wait)
    return session.snapshot()


@router.post("/sessions/{session_id}/queue/accept", response_model=SessionSnapshot)
async def accept_current(
    session_id: str = Path(..., description="Session id"),
    registry: SessionRegistry = Depends(get_registry),
) -> SessionSnapshot:
    session = _get_session(session_id, registry)
    session.accept_current()
    return session.snapshot()


@router.post("/sessions/{session_id}/queue/skip", response_model=SessionSnapshot)
async def skip_current(
    session_id: str = Path(..., description="Session id"),
    registry: SessionRegistry = Depends(get_registry),
) -> SessionSnapshot:
    session = _get_session(session_id, registry)
    session.skip()
    return session.snapshot()


@router.post("/sessions/{session_id}/queue/dismiss", response_model=SessionSnapshot)
async def dismiss_queue(
    session_id: str = Path(..., description="Session id"),
    registry: SessionRegistry = Depends(get_registry),
) -> SessionSnapshot:
    session = _get_session(session_id, registry)
    session.dismiss_all()
    return session.snapshot()
