"""Tests for the status ledger state machine."""

import threading

import pytest

from gradecenter.exceptions import InvalidTransitionError
from gradecenter.pipeline.batch import StatusLedger
from gradecenter.pipeline.models import RecordStatus, ReportResult, StudentTask

RESULT = ReportResult("<p>ok</p>", "Alice", "a@example.com", "Midterm", "2024-05-01")


def seeded(*names):
    ledger = StatusLedger()
    ledger.seed([StudentTask(id=n.lower(), name=n) for n in names], note="Waiting...")
    return ledger


def test_seed_preserves_order_and_starts_pending():
    ledger = seeded("Alice", "Bob", "Cy")
    records = ledger.snapshot()
    assert [r.id for r in records] == ["alice", "bob", "cy"]
    assert all(r.status is RecordStatus.PENDING for r in records)
    assert all(r.progress_note == "Waiting..." for r in records)
    assert len(ledger) == 3 and not ledger.is_complete()


def test_seed_rejects_duplicates_and_reseeding():
    ledger = StatusLedger()
    with pytest.raises(ValueError):
        ledger.seed([StudentTask(id="x", name="A"), StudentTask(id="x", name="B")])
    ledger.seed([StudentTask(id="x", name="A")])
    with pytest.raises(InvalidTransitionError):
        ledger.seed([StudentTask(id="y", name="B")])


def test_happy_path_to_done():
    ledger = seeded("Alice")
    ledger.transition("alice", RecordStatus.ANALYZING, note="analyzing")
    record = ledger.transition("alice", RecordStatus.FORMATTING, note="formatting")
    assert record.progress_note == "formatting"
    done = ledger.transition("alice", RecordStatus.DONE, result=RESULT)
    assert done.result is RESULT and done.failure_reason is None
    assert done.progress_note is None
    assert ledger.is_complete()


@pytest.mark.parametrize(
    "path",
    [
        [],
        [RecordStatus.ANALYZING],
        [RecordStatus.ANALYZING, RecordStatus.FORMATTING],
    ],
)
def test_failed_reachable_from_every_non_terminal_state(path):
    ledger = seeded("Bob")
    for status in path:
        ledger.transition("bob", status, note="n")
    failed = ledger.transition("bob", RecordStatus.FAILED, failure_reason="boom")
    assert failed.failure_reason == "boom" and failed.result is None


def test_terminal_records_never_change():
    ledger = seeded("Alice")
    ledger.transition("alice", RecordStatus.FAILED, failure_reason="boom")
    with pytest.raises(InvalidTransitionError):
        ledger.transition("alice", RecordStatus.ANALYZING)
    with pytest.raises(InvalidTransitionError):
        ledger.transition("alice", RecordStatus.FAILED, failure_reason="again")
    assert ledger.get("alice").failure_reason == "boom"


def test_backward_and_skipping_moves_rejected():
    ledger = seeded("Alice")
    with pytest.raises(InvalidTransitionError):
        ledger.transition("alice", RecordStatus.FORMATTING)
    ledger.transition("alice", RecordStatus.ANALYZING)
    with pytest.raises(InvalidTransitionError):
        ledger.transition("alice", RecordStatus.PENDING)


def test_payload_must_match_target_state():
    ledger = seeded("Alice")
    ledger.transition("alice", RecordStatus.ANALYZING)
    ledger.transition("alice", RecordStatus.FORMATTING)
    with pytest.raises(InvalidTransitionError):
        ledger.transition("alice", RecordStatus.DONE)
    with pytest.raises(InvalidTransitionError):
        ledger.transition("alice", RecordStatus.FAILED)
    with pytest.raises(InvalidTransitionError):
        ledger.transition("alice", RecordStatus.DONE, result=RESULT, failure_reason="x")


def test_unknown_id():
    ledger = seeded("Alice")
    with pytest.raises(InvalidTransitionError):
        ledger.transition("nobody", RecordStatus.ANALYZING)
    with pytest.raises(KeyError):
        ledger.get("nobody")


def test_snapshot_is_a_copy():
    ledger = seeded("Alice")
    snap = ledger.snapshot()
    ledger.transition("alice", RecordStatus.ANALYZING)
    assert snap[0].status is RecordStatus.PENDING


def test_counts_cover_every_status():
    ledger = seeded("Alice", "Bob")
    ledger.transition("bob", RecordStatus.FAILED, failure_reason="x")
    counts = ledger.counts()
    assert counts[RecordStatus.PENDING] == 1
    assert counts[RecordStatus.FAILED] == 1
    assert counts[RecordStatus.DONE] == 0
    assert set(counts) == set(RecordStatus)


def test_concurrent_readers_see_whole_records():
    ledger = seeded(*[f"S{i}" for i in range(50)])
    seen = []

    def reader():
        for _ in range(200):
            for record in ledger.snapshot():
                seen.append(
                    (record.status is RecordStatus.FAILED) == (record.failure_reason is not None)
                )

    thread = threading.Thread(target=reader)
    thread.start()
    for i in range(50):
        ledger.transition(f"s{i}", RecordStatus.FAILED, failure_reason="x")
    thread.join()
    assert all(seen)
