"""Data model shared by the grading and batch layers.

All types are immutable dataclasses: the caller owns the exam context and the
roster, and the status ledger replaces processing records wholesale instead of
mutating them.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class DocumentHandle:
    """An uploaded document, either on disk or already in memory.

    Exactly one of ``path`` or ``data`` is expected to be set. ``media_type``
    is optional; when missing it is guessed from ``name``.
    """

    name: str
    path: Path | None = None
    data: bytes | None = None
    media_type: str | None = None

    @classmethod
    def from_path(cls, path: str | Path, media_type: str | None = None) -> DocumentHandle:
        """Build a handle for a file on disk."""
        p = Path(path)
        return cls(name=p.name, path=p, media_type=media_type)


@dataclass(frozen=True)
class ExamContext:
    """Shared, read-only input for every student of a batch."""

    exam_info: str
    scoring_criteria: str
    model: str
    exam_materials: tuple[DocumentHandle, ...] = ()


@dataclass(frozen=True)
class StudentTask:
    """One roster entry: the student's identity and solution documents."""

    id: str
    name: str
    email: str = ""
    solution_files: tuple[DocumentHandle, ...] = ()
    instructions: str = ""


class RecordStatus(enum.Enum):
    """Lifecycle states of a processing record."""

    PENDING = "pending"
    ANALYZING = "analyzing"
    FORMATTING = "formatting"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RecordStatus.DONE, RecordStatus.FAILED)


@dataclass(frozen=True)
class ReportResult:
    """Final output of a successfully processed student."""

    html_content: str
    student_name: str
    student_email: str
    exam_info: str
    generation_date: str


@dataclass(frozen=True)
class ProcessingRecord:
    """Status of one student inside the status ledger.

    ``result`` is set only when ``status`` is DONE and ``failure_reason`` only
    when it is FAILED; ``progress_note`` is cleared once the record is terminal.
    """

    id: str
    student_name: str
    status: RecordStatus = RecordStatus.PENDING
    progress_note: str | None = None
    result: ReportResult | None = None
    failure_reason: str | None = None


@dataclass(frozen=True)
class BatchProgress:
    """Derived ``(current, total, active_name)`` view of a running batch."""

    current: int = 0
    total: int = 0
    active_name: str = ""

    @property
    def fraction(self) -> float:
        """Completed share of the batch in ``[0, 1]``."""
        return self.current / self.total if self.total else 0.0

    @property
    def is_finished(self) -> bool:
        return self.current == self.total


@dataclass(frozen=True)
class StatusUpdate:
    """One item of the update stream produced by a running batch."""

    record_id: str
    status: RecordStatus
    note: str | None = None


@dataclass(frozen=True)
class BatchOutcome:
    """Final ledger snapshot and progress of a batch run."""

    records: list[ProcessingRecord] = field(default_factory=list)
    progress: BatchProgress = field(default_factory=BatchProgress)
    cancelled: bool = False

    @property
    def succeeded(self) -> list[ProcessingRecord]:
        return [r for r in self.records if r.status is RecordStatus.DONE]

    @property
    def failed(self) -> list[ProcessingRecord]:
        return [r for r in self.records if r.status is RecordStatus.FAILED]

    @property
    def all_succeeded(self) -> bool:
        return all(r.status is RecordStatus.DONE for r in self.records)
