"""Tests for the progress publisher."""

import logging

import pytest

from gradecenter.pipeline.batch import ProgressPublisher
from gradecenter.pipeline.models import BatchProgress


def test_begin_and_complete_publish_to_observers():
    pub = ProgressPublisher(2)
    seen = []
    pub.subscribe(seen.append)
    pub.begin(1, "Alice")
    pub.complete(1)
    pub.begin(2, "Bob")
    pub.complete(2)
    assert seen == [
        BatchProgress(1, 2, "Alice"),
        BatchProgress(1, 2, ""),
        BatchProgress(2, 2, "Bob"),
        BatchProgress(2, 2, ""),
    ]
    assert pub.progress.is_finished and pub.progress.fraction == 1.0


def test_progress_must_advance_by_one():
    pub = ProgressPublisher(3)
    with pytest.raises(ValueError):
        pub.begin(2, "Skip")
    pub.begin(1, "Alice")
    with pytest.raises(ValueError):
        pub.begin(1, "Again")
    with pytest.raises(ValueError):
        pub.complete(2)


def test_cannot_exceed_total():
    pub = ProgressPublisher(1)
    pub.begin(1, "Alice")
    with pytest.raises(ValueError):
        pub.begin(2, "Bob")


def test_negative_total_rejected():
    with pytest.raises(ValueError):
        ProgressPublisher(-1)


def test_empty_batch_progress():
    progress = ProgressPublisher(0).progress
    assert progress == BatchProgress(0, 0, "")
    assert progress.fraction == 0.0 and progress.is_finished


def test_failing_observer_is_logged_and_ignored(caplog):
    pub = ProgressPublisher(1)
    seen = []

    def broken(_):
        raise RuntimeError("observer bug")

    pub.subscribe(broken)
    pub.subscribe(seen.append)
    with caplog.at_level(logging.ERROR):
        pub.begin(1, "Alice")
    assert seen == [BatchProgress(1, 1, "Alice")]
    assert "Progress observer raised" in caplog.text


def test_unsubscribe():
    pub = ProgressPublisher(1)
    seen = []
    pub.subscribe(seen.append)
    pub.unsubscribe(seen.append)
    pub.unsubscribe(seen.append)
    pub.begin(1, "Alice")
    assert seen == []
