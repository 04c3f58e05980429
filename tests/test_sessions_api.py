"""Tests for the editing session endpoints."""

from functools import partial

import pytest
from fastapi.testclient import TestClient

from consistency_engine.core.editor_session import EditorSession
from consistency_engine.core.session_registry import SessionRegistry, get_registry
from consistency_engine.main import app
from tests.fakes.documents import FINAL_DOC, NEW_DOC, OLD_DOC, react_verdicts
from tests.fakes.fake_capabilities import FakeAnalyzer, FakeCompletion, FakePatcher


def fake_session(settings, session_id, content="", analyzer_delay=0.0):
    return EditorSession(
        session_id=session_id,
        settings=settings,
        analyzer=FakeAnalyzer(react_verdicts, delay=analyzer_delay),
        patcher=FakePatcher(),
        completion=FakeCompletion(lambda c: c.replace("with React and", "with Vue and")),
        content=content,
    )


@pytest.fixture
def client(settings):
    registry = SessionRegistry(settings, factory=fake_session)
    app.dependency_overrides[get_registry] = lambda: registry
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def slow_audit_client(settings):
    registry = SessionRegistry(settings, factory=partial(fake_session, analyzer_delay=0.5))
    app.dependency_overrides[get_registry] = lambda: registry
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def create(client, content=OLD_DOC) -> str:
    response = client.post("/v1/sessions", json={"content": content})
    assert response.status_code == 201
    return response.json()["sessionId"]


def test_create_and_get_session(client):
    session_id = create(client)

    response = client.get(f"/v1/sessions/{session_id}")

    assert response.status_code == 200
    data = response.json()
    assert data["content"] == OLD_DOC
    assert data["auditState"] == "idle"
    assert [c["id"] for c in data["chunks"]] == ["chunk_0", "chunk_1", "chunk_2", "chunk_3"]
    assert data["queueProgress"] == {"current": 0, "total": 0}


def test_unknown_session_returns_404(client):
    response = client.get("/v1/sessions/missing")

    assert response.status_code == 404
    assert response.json()["detail"] == "Session missing not found"


def test_delete_session(client):
    session_id = create(client)

    assert client.delete(f"/v1/sessions/{session_id}").status_code == 204
    assert client.get(f"/v1/sessions/{session_id}").status_code == 404
    assert client.delete(f"/v1/sessions/{session_id}").status_code == 404


def test_update_content(client):
    session_id = create(client)

    response = client.put(
        f"/v1/sessions/{session_id}/content",
        json={"content": NEW_DOC, "cursorPosition": 5, "manual": False},
    )

    assert response.status_code == 200
    assert response.json()["content"] == NEW_DOC


def test_accept_without_suggestion_conflicts(client):
    session_id = create(client)

    response = client.post(f"/v1/sessions/{session_id}/suggestion/accept")

    assert response.status_code == 409


def test_suggestion_accept_audit_and_queue_flow(client):
    session_id = create(client)

    data = client.post(f"/v1/sessions/{session_id}/suggestion?wait=true").json()
    assert data["suggestion"]["newContent"] == NEW_DOC

    data = client.post(f"/v1/sessions/{session_id}/suggestion/accept?wait=true").json()
    assert data["content"] == NEW_DOC
    assert data["auditState"] == "queue_active"
    assert data["currentDirtyChunk"]["chunkId"] == "chunk_3"
    assert data["currentDirtyChunk"]["priority"] == "P0"

    data = client.post(f"/v1/sessions/{session_id}/queue/patch?wait=true").json()
    assert data["currentDirtyChunk"]["patch"]["after"] == (
        "The mobile team reuses Vue components for shared screens."
    )

    data = client.post(f"/v1/sessions/{session_id}/queue/accept").json()
    assert data["queueProgress"] == {"current": 2, "total": 2}

    data = client.post(f"/v1/sessions/{session_id}/queue/skip").json()
    assert data["auditState"] == "idle"
    assert data["content"] != FINAL_DOC
    assert "Vue components" in data["content"]


def test_reject_suggestion(client):
    session_id = create(client)
    client.post(f"/v1/sessions/{session_id}/suggestion?wait=true")

    data = client.post(f"/v1/sessions/{session_id}/suggestion/reject").json()

    assert data["suggestion"] is None
    assert data["suggestionsSuppressed"] is True


def test_manual_check_and_dismiss(client):
    session_id = create(client, NEW_DOC)

    data = client.post(f"/v1/sessions/{session_id}/audit?wait=true", json={"anchorOffset": 0}).json()
    assert data["queueProgress"]["total"] == 2

    data = client.post(f"/v1/sessions/{session_id}/queue/dismiss").json()
    assert data["auditState"] == "idle"
    assert data["currentDirtyChunk"] is None


def test_accept_suggestion_rejected_while_auditing(slow_audit_client):
    client = slow_audit_client
    session_id = create(client)
    client.post(f"/v1/sessions/{session_id}/suggestion?wait=true")
    response = client.post(f"/v1/sessions/{session_id}/audit", json={"anchorOffset": 0})
    assert response.json()["auditState"] == "auditing"

    response = client.post(f"/v1/sessions/{session_id}/suggestion/accept")

    assert response.status_code == 409
    assert response.json()["detail"] == "Audit already running"
    data = client.get(f"/v1/sessions/{session_id}").json()
    assert data["content"] == OLD_DOC
    assert data["suggestion"]["newContent"] == NEW_DOC
    assert client.delete(f"/v1/sessions/{session_id}").status_code == 204
