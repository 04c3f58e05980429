"""Fake analyzer, patcher and completion capabilities for behavioral tests."""

import asyncio

from consistency_engine.core.schemas_audit import (
    AnalyzeRequest,
    ConflictAnalysis,
    PatchRequest,
    RefactoringDirective,
)


def needs_update(chunk_id: str, details: str = "Mentions the old stack", directive: bool = False) -> ConflictAnalysis:
    directives = []
    if directive:
        directives.append(
            RefactoringDirective(action="rephrase", target="chunk", replacement="Use Vue", rationale=details)
        )
    return ConflictAnalysis(
        chunk_id=chunk_id,
        conflict_type="needs_update",
        details=details,
        refactoring_directives=directives,
    )


def consistent(chunk_id: str) -> ConflictAnalysis:
    return ConflictAnalysis(chunk_id=chunk_id, conflict_type="consistent", details="Fine as-is")


class FakeAnalyzer:
    """Returns verdicts from a callable (or raises) and records every request."""

    def __init__(self, verdicts=None, error: Exception | None = None, delay: float = 0.0):
        self.verdicts = verdicts or (lambda request: [])
        self.error = error
        self.delay = delay
        self.requests: list[AnalyzeRequest] = []

    async def __call__(self, request: AnalyzeRequest) -> list[ConflictAnalysis]:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.verdicts(request)


class FakePatcher:
    """Streams a rewrite of the chunk in two pieces."""

    def __init__(self, rewrite=None, error: Exception | None = None, delay: float = 0.0):
        self.rewrite = rewrite or (lambda content: content.replace("React", "Vue"))
        self.error = error
        self.delay = delay
        self.requests: list[PatchRequest] = []

    async def __call__(self, request: PatchRequest):
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        text = self.rewrite(request.chunk_content)
        middle = len(text) // 2
        yield text[:middle]
        yield text[middle:]


class FakeCompletion:
    """Streams a fixed document, or one derived from the request content."""

    def __init__(self, result=None, error: Exception | None = None, delay: float = 0.0):
        self.result = result if result is not None else (lambda content: content)
        self.error = error
        self.delay = delay
        self.calls: list[str] = []

    async def __call__(self, content: str):
        self.calls.append(content)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        text = self.result(content) if callable(self.result) else self.result
        for word in text.split(" "):
            yield word + " "
