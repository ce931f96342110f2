"""GradingServiceClient: the three text-generation operations of the pipeline.

This module wraps criteria search, solution grading and report formatting as
request-to-text coroutines. It builds prompts and request bodies, delegates
all networking to :class:`AIAPIClient`, throttles outbound requests with a
shared rate limiter, and translates the client's tuple-based error returns
into the project's error taxonomy (``ValidationError``, ``ServiceError``,
``EncodingError``).

None of the operations keeps state between calls; the only shared objects are
the HTTP session and the rate limiter.

Examples
--------
>>> from gradecenter.pipeline.grading import GeminiConfig, GradingServiceClient
>>> async def main(context, student):
...     async with GradingServiceClient(GeminiConfig()) as service:
...         raw = await service.grade_solution(context, student)
...         return await service.format_report(raw, context, student.name, "2026-01-01")
>>> # asyncio.run(main(context, student))
"""

from __future__ import annotations

import logging
import re
from types import TracebackType
from typing import Any

import aiohttp
from aiolimiter import AsyncLimiter

from gradecenter.config import REFERENCES_HEADING, REPORT_LANGUAGE
from gradecenter.exceptions import ServiceError, ValidationError
from gradecenter.pipeline.models import ExamContext, StudentTask

from .client import AIAPIClient, describe_failure, extract_sources
from .encoding import encode_documents
from .prompts import build_format_prompt, build_grading_prompt, build_search_prompt

logger = logging.getLogger(__name__)

MISSING_INPUT_MESSAGE = "missing required input"

_FENCE_PATTERN = re.compile(
    r"^\s*```(?:[a-zA-Z0-9]+\s*\n)?(.*?)\n?```\s*$", re.DOTALL | re.IGNORECASE
)


def strip_code_fences(content: str) -> str:
    """Remove a code fence wrapping the whole response.

    Handles a closed fence with an optional language tag (```html ... ```),
    as well as a lone opening or closing marker, and trims whitespace.

    Parameters
    ----------
    content : str
        Raw text returned by the service.

    Returns
    -------
    str
        The unwrapped text.

    Examples
    --------
    >>> strip_code_fences("```html\\n<div>x</div>\\n```")
    '<div>x</div>'
    >>> strip_code_fences("<p>plain</p>")
    '<p>plain</p>'
    """
    cleaned = content.strip()
    match = _FENCE_PATTERN.match(cleaned)
    if match:
        return match.group(1).strip()
    if cleaned.startswith("```"):
        cleaned = re.sub(r"^```[a-zA-Z0-9]*", "", cleaned).lstrip()
    if cleaned.endswith("```"):
        cleaned = cleaned[: -len("```")].rstrip()
    return cleaned


def append_references(text: str, sources: list[str]) -> str:
    """Append a references section listing ``sources`` to ``text``.

    Parameters
    ----------
    text : str
        Generated text.
    sources : list[str]
        Source URIs; duplicates are listed once, in first-seen order.

    Returns
    -------
    str
        ``text`` unchanged when there are no sources, otherwise ``text``
        followed by a rule, ``REFERENCES_HEADING`` and one ``- uri`` line per
        source.
    """
    unique = list(dict.fromkeys(s for s in sources if s))
    if not unique:
        return text
    lines = "".join(f"- {uri}\n" for uri in unique)
    return f"{text}\n\n---\n{REFERENCES_HEADING}\n{lines}"


class GradingServiceClient:
    """Criteria search, solution grading and report formatting over one client.

    Parameters
    ----------
    config : Any
        Service configuration (e.g. ``GeminiConfig``); read for the limiter
        rate and the generation temperature, and passed to the API client.
    client : AIAPIClient | None, optional
        API client to use. Defaults to ``AIAPIClient(config)``.
    session : aiohttp.ClientSession | None, optional
        Session shared by every request. When omitted, one is opened by
        ``async with`` or, outside a context, per request.
    limiter : AsyncLimiter | None, optional
        Rate limiter gating every request. Defaults to ``target_rpm``
        requests per minute.
    language : str, optional
        Language the service is asked to write in.
    """

    def __init__(
        self,
        config: Any,
        *,
        client: AIAPIClient | None = None,
        session: aiohttp.ClientSession | None = None,
        limiter: AsyncLimiter | None = None,
        language: str = REPORT_LANGUAGE,
    ) -> None:
        self.config = config
        self.client = client or AIAPIClient(config)
        self.limiter = limiter or AsyncLimiter(getattr(config, "target_rpm", 60), 60)
        self.language = language
        self._session = session
        self._owns_session = False

    async def __aenter__(self) -> GradingServiceClient:
        if self._session is None:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None
            self._owns_session = False

    def _build_payload(
        self, parts: list[dict[str, Any]], *, use_search: bool = False
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": {
                "temperature": getattr(self.config, "temperature", 0.2)
            },
        }
        if use_search:
            payload["tools"] = [{"google_search": {}}]
        return payload

    async def _generate(
        self, model: str, payload: dict[str, Any], operation: str
    ) -> tuple[str, dict[str, Any] | None]:
        """Send one request and return ``(text, raw)`` or raise ``ServiceError``."""
        async with self.limiter:
            if self._session is not None:
                ok, text, raw = await self.client.generate(self._session, model, payload)
            else:
                async with aiohttp.ClientSession() as session:
                    ok, text, raw = await self.client.generate(session, model, payload)
        if not ok or not text or not text.strip():
            message = describe_failure(raw)
            logger.warning("%s failed: %s", operation, message)
            raise ServiceError(
                message,
                context={"operation": operation, "model": model, "response": raw},
            )
        return text, raw

    async def search_criteria(self, exam_info: str, model: str) -> str:
        """Look up scoring criteria for an exam using external knowledge.

        Parameters
        ----------
        exam_info : str
            Exam description (university, year, session).
        model : str
            Model identifier.

        Returns
        -------
        str
            Criteria text, followed by a references section when the service
            reports grounding sources.

        Raises
        ------
        ValidationError
            If ``exam_info`` is blank.
        ServiceError
            On transport failure or an empty response.
        """
        if not exam_info or not exam_info.strip():
            raise ValidationError(MISSING_INPUT_MESSAGE, context={"field": "exam_info"})
        prompt = build_search_prompt(exam_info.strip(), self.language)
        payload = self._build_payload([{"text": prompt}], use_search=True)
        text, raw = await self._generate(model, payload, "search_criteria")
        return append_references(text.strip(), extract_sources(raw))

    async def grade_solution(self, context: ExamContext, student: StudentTask) -> str:
        """Grade one student's solution against the shared exam context.

        Parameters
        ----------
        context : ExamContext
            Exam description, scoring criteria, model and exam materials.
        student : StudentTask
            Student name, solution documents and optional instructions.

        Returns
        -------
        str
            Unstructured report text (total score, per-criterion breakdown,
            per-problem evaluation, overall assessment, feedback).

        Raises
        ------
        ValidationError
            If there are no exam materials or no solution documents; raised
            before any network call.
        EncodingError
            If a document cannot be read.
        ServiceError
            On transport failure or an empty response.
        """
        if not context.exam_materials or not student.solution_files:
            raise ValidationError(
                MISSING_INPUT_MESSAGE,
                context={
                    "student_id": student.id,
                    "exam_materials": len(context.exam_materials),
                    "solution_files": len(student.solution_files),
                },
            )
        material_parts = encode_documents(context.exam_materials)
        solution_parts = encode_documents(student.solution_files)
        prompt = build_grading_prompt(
            student.name,
            context.exam_info,
            context.scoring_criteria,
            student.instructions,
            self.language,
        )
        parts: list[dict[str, Any]] = [{"text": prompt}]
        parts.extend(p.as_part() for p in material_parts)
        parts.extend(p.as_part() for p in solution_parts)
        logger.debug(
            "Grading %s with %d material and %d solution documents",
            student.name,
            len(material_parts),
            len(solution_parts),
        )
        text, _ = await self._generate(
            context.model, self._build_payload(parts), "grade_solution"
        )
        return text

    async def format_report(
        self,
        raw_report: str,
        context: ExamContext,
        student_name: str,
        generation_date: str,
    ) -> str:
        """Turn a raw report into presentation-ready HTML content.

        Returns
        -------
        str
            The HTML fragment with any wrapping code fence removed.

        Raises
        ------
        ServiceError
            On transport failure or if the unwrapped content is empty.
        """
        prompt = build_format_prompt(
            raw_report, context.exam_info, student_name, generation_date
        )
        text, _ = await self._generate(
            context.model, self._build_payload([{"text": prompt}]), "format_report"
        )
        html = strip_code_fences(text)
        if not html:
            raise ServiceError(
                "Service returned an empty report.",
                context={"operation": "format_report", "model": context.model},
            )
        return html
