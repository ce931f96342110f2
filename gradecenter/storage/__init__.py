"""Template and preference persistence."""

from __future__ import annotations

from .templates import (
    JsonFileStore,
    KeyValueStore,
    MemoryStore,
    PreferenceStore,
    TemplateLibrary,
)

__all__ = [
    "JsonFileStore",
    "KeyValueStore",
    "MemoryStore",
    "PreferenceStore",
    "TemplateLibrary",
]
