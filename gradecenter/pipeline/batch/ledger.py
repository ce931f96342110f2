"""Status ledger: the ordered set of per-student processing records.

The ledger is the only structure mutated while a batch runs. Records are
immutable; a transition swaps in a new record under a lock so that a reader
polling from another thread never observes a half-updated record.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from dataclasses import replace
from typing import Iterable

from gradecenter.exceptions import InvalidTransitionError
from gradecenter.pipeline.models import (
    ProcessingRecord,
    RecordStatus,
    ReportResult,
    StudentTask,
)

logger = logging.getLogger(__name__)

# Forward moves allowed by the record state machine.
ALLOWED_TRANSITIONS: dict[RecordStatus, frozenset[RecordStatus]] = {
    RecordStatus.PENDING: frozenset({RecordStatus.ANALYZING, RecordStatus.FAILED}),
    RecordStatus.ANALYZING: frozenset({RecordStatus.FORMATTING, RecordStatus.FAILED}),
    RecordStatus.FORMATTING: frozenset({RecordStatus.DONE, RecordStatus.FAILED}),
    RecordStatus.DONE: frozenset(),
    RecordStatus.FAILED: frozenset(),
}


class StatusLedger:
    """Ordered collection of processing records with a monotonic state machine.

    Pending -> Analyzing -> Formatting -> Done, with Failed reachable from
    every non-terminal state. A terminal record never changes again.

    Examples
    --------
    >>> ledger = StatusLedger()
    >>> ledger.seed([StudentTask(id="a", name="Alice")])
    >>> ledger.transition("a", RecordStatus.ANALYZING, note="analyzing").status
    <RecordStatus.ANALYZING: 'analyzing'>
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._order: list[str] = []
        self._records: dict[str, ProcessingRecord] = {}
        self._seeded = False

    def seed(self, students: Iterable[StudentTask], note: str | None = None) -> None:
        """Create one PENDING record per student, preserving roster order.

        Parameters
        ----------
        students : Iterable[StudentTask]
            The roster.
        note : str | None, optional
            Initial progress note for every record.

        Raises
        ------
        ValueError
            If two roster entries share an id.
        InvalidTransitionError
            If the ledger has already been seeded.
        """
        students = list(students)
        ids = [s.id for s in students]
        duplicates = sorted(i for i, n in Counter(ids).items() if n > 1)
        if duplicates:
            raise ValueError(f"Duplicate student ids in roster: {duplicates}")
        with self._lock:
            if self._seeded:
                raise InvalidTransitionError("Ledger has already been seeded")
            self._order = ids
            self._records = {
                s.id: ProcessingRecord(
                    id=s.id, student_name=s.name, progress_note=note
                )
                for s in students
            }
            self._seeded = True

    def transition(
        self,
        record_id: str,
        new_status: RecordStatus,
        *,
        note: str | None = None,
        result: ReportResult | None = None,
        failure_reason: str | None = None,
    ) -> ProcessingRecord:
        """Move one record forward and return its new state.

        Parameters
        ----------
        record_id : str
            Id of the record to move.
        new_status : RecordStatus
            Target status; must be reachable from the current one.
        note : str | None, optional
            Progress note for non-terminal states. Ignored for terminal states.
        result : ReportResult | None, optional
            Required when ``new_status`` is DONE, rejected otherwise.
        failure_reason : str | None, optional
            Required when ``new_status`` is FAILED, rejected otherwise.

        Returns
        -------
        ProcessingRecord
            The record after the transition.

        Raises
        ------
        InvalidTransitionError
            For an unknown id, a terminal record, a move the state machine
            does not allow, or a payload that does not match the target state.
        """
        if (result is not None) != (new_status is RecordStatus.DONE):
            raise InvalidTransitionError(
                "A result is required for, and only allowed on, the DONE transition",
                context={"record_id": record_id, "status": new_status.value},
            )
        if (failure_reason is not None) != (new_status is RecordStatus.FAILED):
            raise InvalidTransitionError(
                "A failure reason is required for, and only allowed on, the FAILED transition",
                context={"record_id": record_id, "status": new_status.value},
            )
        with self._lock:
            current = self._records.get(record_id)
            if current is None:
                raise InvalidTransitionError(
                    f"Unknown record id: {record_id}", context={"record_id": record_id}
                )
            if new_status not in ALLOWED_TRANSITIONS[current.status]:
                raise InvalidTransitionError(
                    f"Cannot move record {record_id} from "
                    f"{current.status.value} to {new_status.value}",
                    context={
                        "record_id": record_id,
                        "from": current.status.value,
                        "to": new_status.value,
                    },
                )
            updated = replace(
                current,
                status=new_status,
                progress_note=None if new_status.is_terminal else note,
                result=result,
                failure_reason=failure_reason,
            )
            self._records[record_id] = updated
        logger.debug("Record %s -> %s", record_id, new_status.value)
        return updated

    def snapshot(self) -> list[ProcessingRecord]:
        """Return an ordered copy of all records."""
        with self._lock:
            return [self._records[i] for i in self._order]

    def get(self, record_id: str) -> ProcessingRecord:
        """Return the current record for ``record_id``.

        Raises
        ------
        KeyError
            If the id is not in the ledger.
        """
        with self._lock:
            return self._records[record_id]

    def is_complete(self) -> bool:
        """True when every record has reached a terminal state."""
        with self._lock:
            return all(r.status.is_terminal for r in self._records.values())

    def counts(self) -> dict[RecordStatus, int]:
        """Return the number of records in each status."""
        with self._lock:
            tally = Counter(r.status for r in self._records.values())
        return {status: tally.get(status, 0) for status in RecordStatus}

    def __len__(self) -> int:
        with self._lock:
            return len(self._order)
