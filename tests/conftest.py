"""Pytest configuration for test environment setup.

- Forces ``DISABLE_FILE_LOGS=1`` to avoid writing log files during tests.
- Ensures the project root is available on ``sys.path`` for imports.
- Provides shared exam context and student fixtures.
"""

import os
import sys

os.environ.setdefault("DISABLE_FILE_LOGS", "1")  # Avoid creating log files during tests
from pathlib import Path

import pytest

# Ensure project root is on sys.path
ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)

from gradecenter.pipeline.models import DocumentHandle, ExamContext, StudentTask  # noqa: E402


@pytest.fixture(autouse=True)
def _isolate_service_env(monkeypatch):
    """Keep a developer's real API settings out of the tests."""
    for key in (
        "GEMINI_API_KEY",
        "API_KEY",
        "GEMINI_ENDPOINT_BASE",
        "GEMINI_API_VERSION",
        "MAX_RETRIES",
        "TARGET_RPM",
    ):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def exam_context():
    return ExamContext(
        exam_info="2024 Yonsei University Math Essay",
        scoring_criteria="Problem 1: 40 points\nProblem 2: 60 points",
        model="gemini-2.5-flash",
        exam_materials=(DocumentHandle(name="exam.pdf", data=b"%PDF-exam"),),
    )


@pytest.fixture
def make_student():
    def _make(student_id, name, *, files=1, email="", instructions=""):
        solutions = tuple(
            DocumentHandle(name=f"{student_id}_{i}.png", data=b"\x89PNG" + bytes([i]))
            for i in range(files)
        )
        return StudentTask(
            id=student_id,
            name=name,
            email=email,
            solution_files=solutions,
            instructions=instructions,
        )

    return _make
