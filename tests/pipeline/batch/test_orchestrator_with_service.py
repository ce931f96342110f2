"""End-to-end batch tests through the real grading service and transport.

Only the HTTP session and the rate limiter are faked, so validation,
document encoding, error mapping and the ledger all run as in production.
"""

import json
from types import SimpleNamespace

import pytest

from gradecenter.pipeline.batch import BatchOrchestrator
from gradecenter.pipeline.grading import GradingServiceClient
from gradecenter.pipeline.grading.client import AIAPIClient
from gradecenter.pipeline.grading.service import MISSING_INPUT_MESSAGE
from gradecenter.pipeline.models import DocumentHandle, RecordStatus, StudentTask


class FakeResponse:
    def __init__(self, status: int, text: str):
        self.status = status
        self._text = text

    async def text(self):
        return self._text

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    def __init__(self, responses):
        self._responses = iter(responses)
        self.calls = []

    def post(self, *args, **kwargs):
        self.calls.append((args, kwargs))
        return next(self._responses)


class FakeLimiter:
    async def __aenter__(self):
        """Enter async context (test stub)."""
        return None

    async def __aexit__(self, exc_type, exc, tb):
        """Exit async context (test stub)."""
        return False


def ok(text):
    body = {"candidates": [{"content": {"parts": [{"text": text}]}}]}
    return FakeResponse(200, json.dumps(body))


def make_orchestrator(responses):
    cfg = SimpleNamespace(
        endpoint_base="https://example.invalid",
        api_version="v1beta",
        api_key="test",
        request_timeout=5,
        max_retries=0,
        backoff_factor=2.0,
        retry_sleep_on_429=1,
        target_rpm=60,
        temperature=0.2,
    )
    session = FakeSession(responses)
    service = GradingServiceClient(
        cfg, client=AIAPIClient(cfg), session=session, limiter=FakeLimiter()
    )
    return BatchOrchestrator(service), session


@pytest.mark.asyncio
async def test_missing_solutions_fail_without_any_request(exam_context):
    orchestrator, session = make_orchestrator([])

    outcome = await orchestrator.run_batch(exam_context, [StudentTask(id="b", name="Bob")])

    (record,) = outcome.records
    assert record.status is RecordStatus.FAILED
    assert record.failure_reason == MISSING_INPUT_MESSAGE
    assert session.calls == []


@pytest.mark.asyncio
async def test_each_failure_is_isolated_to_its_student(exam_context, make_student, tmp_path):
    unreadable = StudentTask(
        id="c",
        name="Cy",
        solution_files=(DocumentHandle.from_path(tmp_path / "gone.png"),),
    )
    roster = [
        make_student("a", "Alice"),
        StudentTask(id="b", name="Bob"),
        unreadable,
        make_student("d", "Dee"),
        make_student("e", "Eve"),
    ]
    orchestrator, session = make_orchestrator(
        [
            ok("Alice: 90/100"),
            ok("<div>Alice report</div>"),
            FakeResponse(500, "boom"),
            ok("Eve: 70/100"),
            ok("```html\n<div>Eve report</div>\n```"),
        ]
    )

    outcome = await orchestrator.run_batch(exam_context, roster)

    alice, bob, cy, dee, eve = outcome.records
    assert alice.status is RecordStatus.DONE
    assert alice.result.html_content == "<div>Alice report</div>"
    assert bob.failure_reason == MISSING_INPUT_MESSAGE
    assert cy.status is RecordStatus.FAILED
    assert cy.failure_reason.startswith("Could not read document 'gone.png'")
    assert dee.status is RecordStatus.FAILED
    assert dee.failure_reason == "Service returned HTTP 500: boom"
    assert eve.status is RecordStatus.DONE
    assert eve.result.html_content == "<div>Eve report</div>"
    assert len(session.calls) == 5
    assert (outcome.progress.current, outcome.progress.total) == (5, 5)


@pytest.mark.asyncio
async def test_empty_format_result_fails_the_student(exam_context, make_student):
    orchestrator, _ = make_orchestrator([ok("Alice: 90/100"), ok("   ")])

    outcome = await orchestrator.run_batch(exam_context, [make_student("a", "Alice")])

    (record,) = outcome.records
    assert record.status is RecordStatus.FAILED
    assert record.result is None
    assert record.failure_reason == "Service returned an empty response."
