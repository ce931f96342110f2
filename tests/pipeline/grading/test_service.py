"""Tests for the grading service operations.

The transport is replaced by a scripted client so the tests can inspect the
request bodies and control the ``(ok, text, raw)`` results.
"""

import base64
from types import SimpleNamespace

import pytest

from gradecenter.exceptions import EncodingError, ServiceError, ValidationError
from gradecenter.pipeline.grading.service import (
    MISSING_INPUT_MESSAGE,
    GradingServiceClient,
    append_references,
    strip_code_fences,
)
from gradecenter.pipeline.models import DocumentHandle, ExamContext, StudentTask


class FakeLimiter:
    def __init__(self):
        self.entered = 0

    async def __aenter__(self):
        """Enter async context (test stub)."""
        self.entered += 1
        return None

    async def __aexit__(self, exc_type, exc, tb):
        """Exit async context (test stub)."""
        return False


class ScriptedClient:
    """Returns queued ``(ok, text, raw)`` results and records each request."""

    def __init__(self, results):
        self._results = list(results)
        self.requests = []

    async def generate(self, session, model, payload):
        self.requests.append((model, payload))
        return self._results.pop(0)


def make_service(results, **kwargs):
    client = ScriptedClient(results)
    cfg = SimpleNamespace(target_rpm=60, temperature=0.1)
    service = GradingServiceClient(
        cfg, client=client, session=object(), limiter=FakeLimiter(), **kwargs
    )
    return service, client


def grounded(text, *uris):
    return {
        "candidates": [
            {
                "content": {"parts": [{"text": text}]},
                "groundingMetadata": {
                    "groundingChunks": [{"web": {"uri": u}} for u in uris]
                },
            }
        ]
    }


@pytest.mark.asyncio
async def test_grade_solution_sends_prompt_then_materials_then_solutions(
    exam_context, make_student
):
    service, client = make_service([(True, "Total: 90/100", {})])
    student = make_student("s1", "Alice", files=2, instructions="Be strict")
    report = await service.grade_solution(exam_context, student)

    assert report == "Total: 90/100"
    model, payload = client.requests[0]
    assert model == "gemini-2.5-flash"
    parts = payload["contents"][0]["parts"]
    assert "Alice" in parts[0]["text"] and "Be strict" in parts[0]["text"]
    decoded = [base64.b64decode(p["inline_data"]["data"]) for p in parts[1:]]
    assert decoded == [b"%PDF-exam", b"\x89PNG\x00", b"\x89PNG\x01"]
    assert payload["generationConfig"] == {"temperature": 0.1}
    assert "tools" not in payload
    assert service.limiter.entered == 1


@pytest.mark.asyncio
async def test_grade_solution_without_solutions_never_calls_service(exam_context):
    service, client = make_service([])
    student = StudentTask(id="s2", name="Bob")
    with pytest.raises(ValidationError) as info:
        await service.grade_solution(exam_context, student)
    assert info.value.message == MISSING_INPUT_MESSAGE
    assert client.requests == []


@pytest.mark.asyncio
async def test_grade_solution_without_materials_never_calls_service(make_student):
    service, client = make_service([])
    context = ExamContext(exam_info="x", scoring_criteria="y", model="m")
    with pytest.raises(ValidationError):
        await service.grade_solution(context, make_student("s3", "Cy"))
    assert client.requests == []


@pytest.mark.asyncio
async def test_grade_solution_unreadable_document(exam_context, tmp_path):
    service, client = make_service([])
    student = StudentTask(
        id="s4",
        name="Dee",
        solution_files=(DocumentHandle.from_path(tmp_path / "gone.png"),),
    )
    with pytest.raises(EncodingError):
        await service.grade_solution(exam_context, student)
    assert client.requests == []


@pytest.mark.asyncio
async def test_transport_failure_becomes_service_error(exam_context, make_student):
    raw = {"error_type": "ClientError", "message": "network down"}
    service, _ = make_service([(False, None, raw)])
    with pytest.raises(ServiceError) as info:
        await service.grade_solution(exam_context, make_student("s5", "Eve"))
    assert info.value.message == "ClientError: network down"
    assert info.value.context["operation"] == "grade_solution"
    assert info.value.context["response"] is raw


@pytest.mark.asyncio
async def test_whitespace_only_result_is_service_error(exam_context, make_student):
    service, _ = make_service([(True, "   \n", {"candidates": []})])
    with pytest.raises(ServiceError):
        await service.grade_solution(exam_context, make_student("s6", "Fay"))


@pytest.mark.asyncio
async def test_format_report_strips_fences(exam_context):
    fenced = "```html\n<div class=\"text-stone-300\">Report</div>\n```"
    service, client = make_service([(True, fenced, {})])
    html = await service.format_report(
        "raw text", exam_context, "Alice", "2024-05-01 10:00:00"
    )
    assert html == '<div class="text-stone-300">Report</div>'
    prompt = client.requests[0][1]["contents"][0]["parts"][0]["text"]
    assert "raw text" in prompt and "2024-05-01 10:00:00" in prompt


@pytest.mark.asyncio
async def test_format_report_empty_after_fences(exam_context):
    service, _ = make_service([(True, "```html\n```", {})])
    with pytest.raises(ServiceError) as info:
        await service.format_report("raw", exam_context, "Alice", "now")
    assert info.value.message == "Service returned an empty report."


@pytest.mark.asyncio
async def test_search_criteria_appends_unique_references():
    raw = grounded("  Criteria list  ", "https://a.example", "https://b.example", "https://a.example")
    service, client = make_service([(True, "  Criteria list  ", raw)])
    text = await service.search_criteria("2024 Yonsei", "gemini-2.5-pro")

    assert text == (
        "Criteria list\n\n---\n**References:**\n"
        "- https://a.example\n- https://b.example\n"
    )
    model, payload = client.requests[0]
    assert model == "gemini-2.5-pro"
    assert payload["tools"] == [{"google_search": {}}]


@pytest.mark.asyncio
async def test_search_criteria_without_sources():
    service, _ = make_service([(True, "Criteria", grounded("Criteria"))])
    assert await service.search_criteria("exam", "m") == "Criteria"


@pytest.mark.asyncio
async def test_search_criteria_blank_exam_info():
    service, client = make_service([])
    with pytest.raises(ValidationError):
        await service.search_criteria("   ", "m")
    assert client.requests == []


@pytest.mark.asyncio
async def test_context_manager_owns_session(monkeypatch):
    closed = []

    class FakeClientSession:
        async def close(self):
            closed.append(True)

    import gradecenter.pipeline.grading.service as service_mod

    monkeypatch.setattr(service_mod.aiohttp, "ClientSession", FakeClientSession)
    service = GradingServiceClient(
        SimpleNamespace(target_rpm=60), client=ScriptedClient([]), limiter=FakeLimiter()
    )
    async with service as entered:
        assert entered is service
    assert closed == [True]


def test_strip_code_fences_variants():
    assert strip_code_fences("```html\n<p>a</p>\n```") == "<p>a</p>"
    assert strip_code_fences("```\n<p>b</p>```") == "<p>b</p>"
    assert strip_code_fences("```html\n<p>c</p>") == "<p>c</p>"
    assert strip_code_fences("<p>d</p>\n```") == "<p>d</p>"
    assert strip_code_fences("  <p>e</p>  ") == "<p>e</p>"


def test_append_references_without_sources_is_identity():
    assert append_references("text", []) == "text"
    assert append_references("text", ["", ""]) == "text"
