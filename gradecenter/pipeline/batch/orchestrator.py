"""Batch orchestrator: sequences the grade and format stages per student.

The orchestrator walks the roster strictly in order. For each student it moves
the student's ledger record through Analyzing and Formatting to a terminal
state, publishes progress, and yields one ``StatusUpdate`` per transition.
A failing student is recorded as FAILED with the error message and the loop
moves on; nothing is retried and students never run concurrently.

Typical usage::

    orchestrator = BatchOrchestrator(service)
    async for update in orchestrator.start_batch(context, roster):
        print(update.record_id, update.status.value, update.note)
    records = orchestrator.ledger.snapshot()

"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import AsyncIterator, Callable, Iterable
from contextlib import aclosing
from datetime import datetime
from typing import Protocol

from gradecenter.config import (
    DATE_FORMAT,
    FALLBACK_ERROR_MESSAGE,
    INTERRUPTED_MESSAGE,
    NOTE_ANALYZING,
    NOTE_FORMATTING,
    NOTE_PENDING,
)
from gradecenter.exceptions import AppError
from gradecenter.pipeline.models import (
    BatchOutcome,
    BatchProgress,
    ExamContext,
    RecordStatus,
    ReportResult,
    StatusUpdate,
    StudentTask,
)

from .ledger import StatusLedger
from .progress import ProgressCallback, ProgressPublisher

logger = logging.getLogger(__name__)


class GradingService(Protocol):
    """The service operations the orchestrator depends on."""

    async def search_criteria(self, exam_info: str, model: str) -> str: ...

    async def grade_solution(self, context: ExamContext, student: StudentTask) -> str: ...

    async def format_report(
        self,
        raw_report: str,
        context: ExamContext,
        student_name: str,
        generation_date: str,
    ) -> str: ...


def failure_message(exc: BaseException) -> str:
    """Return the human-readable reason recorded for a failed student.

    Examples
    --------
    >>> from gradecenter.exceptions import ValidationError
    >>> failure_message(ValidationError("missing required input"))
    'missing required input'
    >>> failure_message(RuntimeError())
    'An unknown error occurred.'
    """
    if isinstance(exc, AppError):
        return exc.message
    return str(exc) or FALLBACK_ERROR_MESSAGE


class BatchOrchestrator:
    """Run a roster through grading and formatting, one student at a time.

    Parameters
    ----------
    service : GradingService
        Provider of ``grade_solution``, ``format_report`` and
        ``search_criteria`` (normally a ``GradingServiceClient``).
    clock : Callable[[], datetime] | None, optional
        Source of generation timestamps. Defaults to ``datetime.now``.
    date_format : str, optional
        ``strftime`` format of the generation date.

    Notes
    -----
    Each call to :meth:`start_batch` creates a fresh ledger and progress
    publisher; nothing carries over between runs. One orchestrator runs one
    batch at a time.
    """

    def __init__(
        self,
        service: GradingService,
        *,
        clock: Callable[[], datetime] | None = None,
        date_format: str = DATE_FORMAT,
    ) -> None:
        self.service = service
        self._clock = clock or datetime.now
        self._date_format = date_format
        self._ledger: StatusLedger | None = None
        self._publisher: ProgressPublisher | None = None
        self._running = False
        self._cancelled = False

    @property
    def ledger(self) -> StatusLedger | None:
        """Ledger of the running (or most recent) batch."""
        return self._ledger

    @property
    def progress(self) -> BatchProgress:
        """Progress of the running (or most recent) batch."""
        if self._publisher is None:
            return BatchProgress()
        return self._publisher.progress

    @property
    def is_running(self) -> bool:
        return self._running

    async def search_criteria(self, exam_info: str, model: str) -> str:
        """Look up scoring criteria; errors propagate to the caller."""
        return await self.service.search_criteria(exam_info, model)

    async def start_batch(
        self,
        context: ExamContext,
        roster: Iterable[StudentTask],
        *,
        cancel_event: asyncio.Event | threading.Event | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> AsyncIterator[StatusUpdate]:
        """Process the roster and yield one update per record transition.

        Parameters
        ----------
        context : ExamContext
            Shared exam input; never modified.
        roster : Iterable[StudentTask]
            Students in processing order; never modified.
        cancel_event : asyncio.Event | threading.Event | None, optional
            Checked before each student starts. Once set, the loop stops and
            the remaining records stay PENDING. Closing the stream while a
            student is in flight records that student as FAILED.
        on_progress : ProgressCallback | None, optional
            Receives every new ``BatchProgress``.

        Yields
        ------
        StatusUpdate
            ``(record_id, status, note)`` after each transition.

        Raises
        ------
        RuntimeError
            If this orchestrator is already running a batch.
        ValueError
            If two roster entries share an id.
        """
        if self._running:
            raise RuntimeError("A batch is already running on this orchestrator")
        students = list(roster)
        ledger = StatusLedger()
        ledger.seed(students, note=NOTE_PENDING)
        publisher = ProgressPublisher(len(students))
        if on_progress is not None:
            publisher.subscribe(on_progress)
        self._ledger, self._publisher = ledger, publisher
        self._running, self._cancelled = True, False

        logger.info(
            "Starting batch of %d student(s) with model %s", len(students), context.model
        )
        in_flight: StudentTask | None = None
        try:
            for position, student in enumerate(students, start=1):
                if cancel_event is not None and cancel_event.is_set():
                    self._cancelled = True
                    logger.warning(
                        "Batch cancelled; %d of %d student(s) left pending",
                        len(students) - position + 1,
                        len(students),
                    )
                    break
                publisher.begin(position, student.name)
                in_flight = student
                updates = self._process_student(ledger, context, student)
                async with aclosing(updates):
                    async for update in updates:
                        yield update
                in_flight = None
                publisher.complete(position)
        finally:
            if in_flight is not None and not ledger.get(in_flight.id).status.is_terminal:
                logger.warning("Batch stream closed while %s was in flight", in_flight.name)
                ledger.transition(
                    in_flight.id, RecordStatus.FAILED, failure_reason=INTERRUPTED_MESSAGE
                )
            self._running = False

        counts = ledger.counts()
        logger.info(
            "Batch finished: %d done, %d failed, %d pending",
            counts[RecordStatus.DONE],
            counts[RecordStatus.FAILED],
            counts[RecordStatus.PENDING],
        )

    async def run_batch(
        self,
        context: ExamContext,
        roster: Iterable[StudentTask],
        *,
        on_update: Callable[[StatusUpdate], None] | None = None,
        on_progress: ProgressCallback | None = None,
        cancel_event: asyncio.Event | threading.Event | None = None,
    ) -> BatchOutcome:
        """Run a whole batch and return the final ledger snapshot and progress."""
        async for update in self.start_batch(
            context, roster, cancel_event=cancel_event, on_progress=on_progress
        ):
            if on_update is not None:
                try:
                    on_update(update)
                except Exception:
                    # Observer failures never affect the batch.
                    logger.exception("Status observer raised")
        return BatchOutcome(
            records=self._ledger.snapshot() if self._ledger is not None else [],
            progress=self.progress,
            cancelled=self._cancelled,
        )

    async def _process_student(
        self, ledger: StatusLedger, context: ExamContext, student: StudentTask
    ) -> AsyncIterator[StatusUpdate]:
        yield self._move(ledger, student.id, RecordStatus.ANALYZING, NOTE_ANALYZING)
        try:
            raw_report = await self.service.grade_solution(context, student)
        except Exception as exc:
            yield self._fail(ledger, student, "grading", exc)
            return

        yield self._move(ledger, student.id, RecordStatus.FORMATTING, NOTE_FORMATTING)
        generation_date = self._clock().strftime(self._date_format)
        try:
            html = await self.service.format_report(
                raw_report, context, student.name, generation_date
            )
        except Exception as exc:
            yield self._fail(ledger, student, "formatting", exc)
            return

        result = ReportResult(
            html_content=html,
            student_name=student.name,
            student_email=student.email,
            exam_info=context.exam_info,
            generation_date=generation_date,
        )
        ledger.transition(student.id, RecordStatus.DONE, result=result)
        logger.info("Report ready for %s", student.name)
        yield StatusUpdate(record_id=student.id, status=RecordStatus.DONE)

    @staticmethod
    def _move(
        ledger: StatusLedger, record_id: str, status: RecordStatus, note: str
    ) -> StatusUpdate:
        ledger.transition(record_id, status, note=note)
        return StatusUpdate(record_id=record_id, status=status, note=note)

    @staticmethod
    def _fail(
        ledger: StatusLedger, student: StudentTask, stage: str, exc: Exception
    ) -> StatusUpdate:
        reason = failure_message(exc)
        if isinstance(exc, AppError):
            logger.error("%s failed for %s: %s", stage.capitalize(), student.name, exc)
        else:
            logger.exception("Unexpected %s error for %s", stage, student.name)
        ledger.transition(student.id, RecordStatus.FAILED, failure_reason=reason)
        return StatusUpdate(record_id=student.id, status=RecordStatus.FAILED, note=reason)
