"""Batch layer: status ledger, progress publisher and the orchestrator.

Modules exported
----------------
BatchOrchestrator
    Sequences grade and format per student and yields status updates.
StatusLedger
    Ordered per-student records with a monotonic state machine.
ProgressPublisher
    ``(current, total, active_name)`` view with observer callbacks.
"""

from __future__ import annotations

from .ledger import StatusLedger
from .orchestrator import BatchOrchestrator, failure_message
from .progress import ProgressPublisher

__all__ = [
    "BatchOrchestrator",
    "ProgressPublisher",
    "StatusLedger",
    "failure_message",
]
