"""Progress publisher for a running batch.

Derives the ``(current, total, active_name)`` view from orchestrator activity
and pushes every new value to registered observers.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from gradecenter.pipeline.models import BatchProgress

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[BatchProgress], None]


class ProgressPublisher:
    """Track batch progress and notify observers on every change.

    Parameters
    ----------
    total : int
        Roster size.

    Examples
    --------
    >>> pub = ProgressPublisher(2)
    >>> pub.begin(1, "Alice")
    >>> pub.progress
    BatchProgress(current=1, total=2, active_name='Alice')
    >>> pub.complete(1)
    >>> pub.progress.active_name
    ''
    """

    def __init__(self, total: int) -> None:
        if total < 0:
            raise ValueError("total must not be negative")
        self._lock = threading.Lock()
        self._progress = BatchProgress(current=0, total=total, active_name="")
        self._subscribers: list[ProgressCallback] = []

    @property
    def progress(self) -> BatchProgress:
        """The latest progress value; safe to read at any time."""
        with self._lock:
            return self._progress

    def subscribe(self, callback: ProgressCallback) -> None:
        """Register ``callback`` to receive every new progress value."""
        with self._lock:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: ProgressCallback) -> None:
        """Remove a previously registered callback (no-op if unknown)."""
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    def begin(self, position: int, name: str) -> None:
        """Advance to the student at 1-based ``position`` and mark it in flight.

        Raises
        ------
        ValueError
            If ``position`` is not exactly one past the current value, or
            exceeds the total.
        """
        with self._lock:
            expected = self._progress.current + 1
            if position != expected or position > self._progress.total:
                raise ValueError(
                    f"Progress must advance by one: expected {expected}, got {position}"
                )
            self._progress = BatchProgress(
                current=position, total=self._progress.total, active_name=name
            )
        self._publish()

    def complete(self, position: int) -> None:
        """Record that the in-flight student at ``position`` reached a terminal state.

        Raises
        ------
        ValueError
            If ``position`` is not the student passed to the last ``begin``.
        """
        with self._lock:
            if position != self._progress.current:
                raise ValueError(
                    f"Cannot complete position {position}; current is {self._progress.current}"
                )
            self._progress = BatchProgress(
                current=position, total=self._progress.total, active_name=""
            )
        self._publish()

    def _publish(self) -> None:
        with self._lock:
            value = self._progress
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(value)
            except Exception:
                # Observer failures never affect the batch.
                logger.exception("Progress observer raised")
