"""Tests for the audit pass graph with fake analyzer verdicts."""

import pytest

from consistency_engine.core.conflict_classifier import ConflictClassifier
from consistency_engine.graphs.audit_graph import AuditPassState, build_audit_graph
from tests.fakes.documents import HOOKS, INTRO_NEW, INTRO_OLD, NEW_DOC, OLD_DOC, react_verdicts
from tests.fakes.fake_capabilities import FakeAnalyzer


async def run_pass(settings, analyzer, **state):
    graph = build_audit_graph(ConflictClassifier(analyzer), settings)
    return await graph.ainvoke(AuditPassState(**state))


@pytest.mark.asyncio
async def test_edit_flags_related_chunks(settings):
    analyzer = FakeAnalyzer(react_verdicts)

    result = await run_pass(settings, analyzer, old_content=OLD_DOC, new_content=NEW_DOC)

    assert result["modified_ids"] == ["chunk_0"]
    assert result["edited_before"] == INTRO_OLD
    assert result["edited_after"] == INTRO_NEW
    assert result["patch_context"].startswith('The user changed: "Our frontend is built with React')
    assert [(d.chunk_id, d.priority) for d in result["dirty_chunks"]] == [
        ("chunk_3", "P0"),
        ("chunk_1", "P1"),
    ]
    assert result["dirty_chunks"][1].original_content == HOOKS
    assert result["exit_reason"] is None

    request = analyzer.requests[0]
    assert request.edited_chunk_before == INTRO_OLD
    assert [c.chunk_id for c in request.chunks] == ["chunk_1", "chunk_2", "chunk_3"]


@pytest.mark.asyncio
async def test_analyzer_failure_uses_heuristics(settings):
    analyzer = FakeAnalyzer(error=RuntimeError("rate limited"))

    result = await run_pass(settings, analyzer, old_content=OLD_DOC, new_content=NEW_DOC)

    dirty = {d.chunk_id: d for d in result["dirty_chunks"]}
    assert set(dirty) == {"chunk_1", "chunk_3"}
    assert all(d.priority == "P0" for d in dirty.values())
    assert dirty["chunk_1"].reason == 'Contains outdated reference to "react"'


@pytest.mark.asyncio
async def test_analyzer_failure_without_heuristics_flags_everything(settings):
    graph = build_audit_graph(
        ConflictClassifier(FakeAnalyzer(error=RuntimeError("down")), heuristic_fallback=False),
        settings,
    )

    result = await graph.ainvoke(AuditPassState(old_content=OLD_DOC, new_content=NEW_DOC))

    assert len(result["dirty_chunks"]) == 3
    assert {d.priority for d in result["dirty_chunks"]} == {"P1"}
    assert {d.reason for d in result["dirty_chunks"]} == {"Unable to analyze - defaulting to needs update"}


@pytest.mark.asyncio
async def test_unchanged_document_exits_early(settings):
    analyzer = FakeAnalyzer(react_verdicts)

    result = await run_pass(settings, analyzer, old_content=OLD_DOC, new_content=OLD_DOC)

    assert result["exit_reason"] == "no_modified_chunks"
    assert result["dirty_chunks"] == []
    assert analyzer.requests == []


@pytest.mark.asyncio
async def test_single_chunk_document_has_no_candidates(settings):
    analyzer = FakeAnalyzer(react_verdicts)

    result = await run_pass(settings, analyzer, old_content="Short.", new_content="Short note.")

    assert result["exit_reason"] == "no_candidates"
    assert analyzer.requests == []


@pytest.mark.asyncio
async def test_anchor_mode_checks_every_other_chunk(settings):
    analyzer = FakeAnalyzer(react_verdicts)
    hooks_offset = NEW_DOC.index(HOOKS) + 3

    result = await run_pass(settings, analyzer, new_content=NEW_DOC, anchor_offset=hooks_offset)

    assert result["old_chunks"] == []
    assert result["modified_ids"] == ["chunk_1"]
    assert result["edited_before"] == ""
    assert result["patch_context"] == f'Checking consistency with: "{HOOKS}..."'
    assert [c.chunk_id for c in analyzer.requests[0].chunks] == ["chunk_0", "chunk_2", "chunk_3"]
    assert [d.chunk_id for d in result["dirty_chunks"]] == ["chunk_3"]


@pytest.mark.asyncio
async def test_anchor_outside_document_falls_back_to_first_chunk(settings):
    analyzer = FakeAnalyzer(react_verdicts)

    result = await run_pass(settings, analyzer, new_content=NEW_DOC, anchor_offset=10_000)

    assert result["modified_ids"] == ["chunk_0"]


@pytest.mark.asyncio
async def test_anchor_mode_needs_two_chunks(settings):
    analyzer = FakeAnalyzer(react_verdicts)

    result = await run_pass(settings, analyzer, new_content="Just one short line.", anchor_offset=0)

    assert result["exit_reason"] == "too_few_chunks"
    assert analyzer.requests == []
