"""Tests for AuditSession: audit passes, lazy patches and queue walking."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from consistency_engine.core.audit_orchestrator import AuditSession
from consistency_engine.core.conflict_classifier import ConflictClassifier
from consistency_engine.core.schemas_audit import QueueProgress
from tests.fakes.documents import (
    BILLING,
    FINAL_DOC,
    HOOKS,
    INTRO_NEW,
    INTRO_OLD,
    MOBILE,
    NEW_DOC,
    OLD_DOC,
    react_verdicts,
)
from tests.fakes.fake_capabilities import FakeAnalyzer, FakePatcher, consistent, needs_update


def make_session(settings, analyzer=None, patcher=None) -> AuditSession:
    classifier = ConflictClassifier(analyzer or FakeAnalyzer(react_verdicts))
    return AuditSession(classifier, patcher or FakePatcher(), settings, session_id="test")


async def audited_session(settings, **kwargs) -> AuditSession:
    session = make_session(settings, **kwargs)
    session.set_content(OLD_DOC)
    await session.start_audit(OLD_DOC, NEW_DOC, edit_position=30)
    return session


@pytest.mark.asyncio
async def test_audit_installs_prioritized_queue(settings):
    session = await audited_session(settings)

    assert session.state == "queue_active"
    assert session.is_auditing is False
    assert session.content == NEW_DOC
    assert session.queue_progress == QueueProgress(current=1, total=2)
    assert session.current_dirty_chunk.chunk_id == "chunk_3"
    assert session.current_dirty_chunk.original_content == MOBILE
    assert (session.term_change.old_term, session.term_change.new_term) == ("React", "Vue")


@pytest.mark.asyncio
async def test_walk_queue_accepting_patches(settings):
    patcher = FakePatcher()
    session = await audited_session(settings, patcher=patcher)

    patch = await session.ensure_current_patch()
    assert patch.after == "The mobile team reuses Vue components for shared screens."
    assert session.current_dirty_chunk.patch == patch
    assert patcher.requests[0].cursor_context == "end-of-sentence"
    assert "Billing runs monthly" in patcher.requests[0].prefix

    next_item = session.accept_current()
    assert next_item.chunk_id == "chunk_1"
    assert session.queue_progress == QueueProgress(current=2, total=2)

    await session.ensure_current_patch()
    assert session.accept_current() is None

    assert session.content == FINAL_DOC
    assert session.state == "idle"
    assert session.queue_progress == QueueProgress(current=0, total=0)


@pytest.mark.asyncio
async def test_ensure_current_patch_is_single_flight(settings):
    session = await audited_session(settings, patcher=FakePatcher(delay=0.05))

    first = session.ensure_current_patch()
    second = session.ensure_current_patch()

    assert first is second
    assert session.patch_pending is True
    await first
    assert session.patch_pending is False
    assert session.ensure_current_patch() is None


@pytest.mark.asyncio
async def test_skip_leaves_document_unchanged(settings):
    session = await audited_session(settings)

    assert session.skip().chunk_id == "chunk_1"
    assert session.skip() is None
    assert session.content == NEW_DOC
    assert session.state == "idle"


@pytest.mark.asyncio
async def test_skip_cancels_outstanding_patch(settings):
    session = await audited_session(settings, patcher=FakePatcher(delay=1.0))

    task = session.ensure_current_patch()
    session.skip()
    await asyncio.sleep(0)

    assert task.cancelled()
    assert session.current_dirty_chunk.patch is None


@pytest.mark.asyncio
async def test_dismiss_all_clears_queue(settings):
    session = await audited_session(settings)

    session.dismiss_all()

    assert session.state == "idle"
    assert session.current_dirty_chunk is None


@pytest.mark.asyncio
async def test_patch_discarded_when_document_changes(settings):
    session = await audited_session(settings, patcher=FakePatcher(delay=0.05))

    task = session.ensure_current_patch()
    session.set_content(NEW_DOC + "\n\nA new closing paragraph typed while the patch streamed.")

    assert await task is None
    assert session.current_dirty_chunk.patch is None


@pytest.mark.asyncio
async def test_patcher_failure_falls_back_to_term_replace(settings):
    session = await audited_session(settings, patcher=FakePatcher(error=RuntimeError("overloaded")))

    patch = await session.ensure_current_patch()

    assert patch.before == MOBILE
    assert patch.after == "The mobile team reuses Vue components for shared screens."


@pytest.mark.asyncio
async def test_no_patch_when_patcher_returns_input_and_no_term_change(settings):
    session = make_session(settings, patcher=FakePatcher(rewrite=lambda content: content))
    session.set_content(NEW_DOC)
    await session.audit_document(anchor_offset=0)

    assert session.term_change is None
    assert await session.ensure_current_patch() is None
    assert session.current_dirty_chunk.patch is None


@pytest.mark.asyncio
async def test_accept_skips_patch_when_chunk_changed(settings):
    session = await audited_session(settings)
    await session.ensure_current_patch()

    edited = NEW_DOC.replace(MOBILE, "The mobile team now builds every screen natively.")
    session.set_content(edited)
    session.accept_current()

    assert session.content == edited
    assert session.current_dirty_chunk.chunk_id == "chunk_1"


@pytest.mark.asyncio
async def test_second_trigger_dropped_while_auditing(settings):
    session = make_session(settings, analyzer=FakeAnalyzer(react_verdicts, delay=0.05))
    session.set_content(OLD_DOC)

    task = session.start_audit(OLD_DOC, NEW_DOC)
    assert session.state == "auditing"
    assert session.audit_document() is None

    await task
    assert session.state == "queue_active"


@pytest.mark.asyncio
async def test_audit_result_discarded_after_concurrent_edit(settings):
    session = make_session(settings, analyzer=FakeAnalyzer(react_verdicts, delay=0.05))

    task = session.start_audit(OLD_DOC, NEW_DOC)
    session.set_content(FINAL_DOC)

    assert await task == []
    assert session.state == "idle"
    assert session.content == FINAL_DOC


@pytest.mark.asyncio
async def test_failed_audit_returns_to_idle(settings):
    classifier = ConflictClassifier(FakeAnalyzer(react_verdicts))
    session = AuditSession(classifier, FakePatcher(), settings)
    classifier.score_candidates = AsyncMock(side_effect=RuntimeError("boom"))

    result = await session.start_audit(OLD_DOC, NEW_DOC)

    assert result == []
    assert session.is_auditing is False
    assert session.state == "idle"


@pytest.mark.asyncio
async def test_close_cancels_running_audit(settings):
    session = make_session(settings, analyzer=FakeAnalyzer(react_verdicts, delay=1.0))
    task = session.start_audit(OLD_DOC, NEW_DOC)
    await asyncio.sleep(0)

    await session.close()

    assert task.cancelled()
    assert session.is_auditing is False


@pytest.mark.asyncio
async def test_new_audit_discards_previous_queue(settings):
    session = await audited_session(
        settings,
        analyzer=FakeAnalyzer(react_verdicts, delay=0.05),
        patcher=FakePatcher(delay=1.0),
    )
    patch_task = session.ensure_current_patch()

    task = session.start_audit(NEW_DOC, FINAL_DOC)
    await asyncio.sleep(0)

    assert patch_task.cancelled()
    assert session.state == "auditing"
    assert session.current_dirty_chunk is None

    session.set_content(FINAL_DOC + "\n\nA closing paragraph typed while the audit ran.")

    assert await task == []
    assert session.state == "idle"
    assert session.queue_progress == QueueProgress(current=0, total=0)
    assert session.accept_current() is None


@pytest.mark.asyncio
async def test_failed_audit_does_not_restore_previous_queue(settings):
    classifier = ConflictClassifier(FakeAnalyzer(react_verdicts))
    session = AuditSession(classifier, FakePatcher(), settings)
    session.set_content(OLD_DOC)
    await session.start_audit(OLD_DOC, NEW_DOC)
    assert session.state == "queue_active"

    classifier.score_candidates = AsyncMock(side_effect=RuntimeError("boom"))
    result = await session.start_audit(NEW_DOC, FINAL_DOC)

    assert result == []
    assert session.state == "idle"
    assert session.current_dirty_chunk is None
    assert session.content == FINAL_DOC


LEGACY = "A legacy React widget is kept for the admin settings page."
SHORT_HOOKS = "Vue hooks hold state."


def hooks_and_mobile_verdicts(request):
    verdicts = []
    for candidate in request.chunks:
        if "hooks" in candidate.content:
            verdicts.append(needs_update(candidate.chunk_id, "Hooks are React specific", directive=True))
        elif "mobile" in candidate.content:
            verdicts.append(needs_update(candidate.chunk_id, "Mobile reuses React"))
        else:
            verdicts.append(consistent(candidate.chunk_id))
    return verdicts


def shorten_hooks(content: str) -> str:
    if "hooks" in content:
        return SHORT_HOOKS
    return content.replace("React", "Vue")


@pytest.mark.asyncio
async def test_queue_follows_chunks_after_patch_merges_them(settings):
    old_doc = "\n\n".join([INTRO_OLD, HOOKS, LEGACY, MOBILE, BILLING])
    new_doc = "\n\n".join([INTRO_NEW, HOOKS, LEGACY, MOBILE, BILLING])
    patcher = FakePatcher(rewrite=shorten_hooks)
    session = make_session(
        settings, analyzer=FakeAnalyzer(hooks_and_mobile_verdicts), patcher=patcher
    )
    session.set_content(old_doc)
    await session.start_audit(old_doc, new_doc)

    assert [session.current_dirty_chunk.chunk_id, session.queue.items[1].chunk_id] == ["chunk_1", "chunk_3"]

    patch = await session.ensure_current_patch()
    assert patch.after == SHORT_HOOKS
    assert session.accept_current().chunk_id == "chunk_3"

    # The short rewrite folded into the legacy paragraph, so ids shifted down
    assert len(session.chunks) == 4
    assert session.chunks[2].content == MOBILE

    patch = await session.ensure_current_patch()
    assert patcher.requests[1].chunk_content == MOBILE
    assert patch.before == MOBILE
    assert session.accept_current() is None

    assert session.content == "\n\n".join(
        [INTRO_NEW, SHORT_HOOKS, LEGACY, MOBILE.replace("React", "Vue"), BILLING]
    )


@pytest.mark.asyncio
async def test_no_patch_when_flagged_content_was_edited_away(settings):
    patcher = FakePatcher()
    session = await audited_session(settings, patcher=patcher)
    session.set_content(NEW_DOC.replace(MOBILE, "The mobile team now builds every screen natively."))

    assert await session.ensure_current_patch() is None
    assert patcher.requests == []
    assert session.current_dirty_chunk.patch is None
