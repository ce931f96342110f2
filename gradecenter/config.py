"""Global configuration constants for the project.

Defines paths, model identifiers, labels and filenames used across the
grading pipeline, the storage helpers and the CLI.
"""

from __future__ import annotations

from pathlib import Path

# Project directories
PROJECT_ROOT: Path = Path(__file__).resolve().parents[1]
PACKAGE_DIR: Path = PROJECT_ROOT / "gradecenter"
LOG_DIR: Path = PROJECT_ROOT / "logs"
DEFAULT_OUTPUT_DIR: Path = PROJECT_ROOT / "output" / "reports"

# Text-generation service defaults
DEFAULT_ENDPOINT_BASE: str = "https://generativelanguage.googleapis.com"
DEFAULT_API_VERSION: str = "v1beta"
AVAILABLE_MODELS: tuple[str, ...] = (
    "gemini-2.5-flash",
    "gemini-2.5-pro",
    "gemini-3-pro-preview",
)
DEFAULT_MODEL: str = "gemini-2.5-flash"
MODEL_LABELS: dict[str, str] = {
    "gemini-2.5-flash": "Gemini 2.5 Flash (speed first)",
    "gemini-2.5-pro": "Gemini 2.5 Pro (quality first)",
    "gemini-3-pro-preview": "Gemini 3.0 Pro (latest)",
}

# Prompt/report defaults
REPORT_LANGUAGE: str = "Korean"
REFERENCES_HEADING: str = "**References:**"
DATE_FORMAT: str = "%Y-%m-%d %H:%M:%S"
FALLBACK_ERROR_MESSAGE: str = "An unknown error occurred."
INTERRUPTED_MESSAGE: str = "Processing was interrupted before the report was finished."

# Per-student progress notes shown while a record is in flight
NOTE_PENDING: str = "Waiting..."
NOTE_ANALYZING: str = "AI is analyzing the solution..."
NOTE_FORMATTING: str = "Generating the report..."

# Template/preference persistence
STORE_PATH: Path = PROJECT_ROOT / ".gradecenter" / "store.json"
SCORING_TEMPLATES_KEY: str = "scoringCriteriaTemplates"
STUDENT_TEMPLATES_KEY: str = "studentReportTemplates"
PREFERRED_MODEL_KEY: str = "preferredAiModel"

# Report export
REPORT_FILENAME_SUFFIX: str = "evaluation_report"
TAILWIND_CDN_URL: str = "https://cdn.tailwindcss.com"
REPORT_BACKGROUND_COLOR: str = "#1c1917"

# CLI defaults and logging
LOG_FILENAME: str = "gradecenter.log"
LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# UI defaults
LANG: str = "en"
