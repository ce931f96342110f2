"""Persistence for named text templates and the preferred model.

A small key-value store holds string values. Template libraries keep all of
their entries as one JSON object under a single key, so the scoring-criteria
and per-student instruction libraries can share the same backing file.

Example
-------
>>> store = MemoryStore()
>>> library = TemplateLibrary(store, SCORING_TEMPLATES_KEY)
>>> library.save("Midterm", "Q1: 10 points")
>>> library.names()
['Midterm']
>>> PreferenceStore(store).preferred_model()
'gemini-2.5-flash'
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Protocol

from gradecenter.config import (
    AVAILABLE_MODELS,
    DEFAULT_MODEL,
    PREFERRED_MODEL_KEY,
    SCORING_TEMPLATES_KEY,
    STORE_PATH,
    STUDENT_TEMPLATES_KEY,
)
from gradecenter.exceptions import ValidationError

logger = logging.getLogger(__name__)

__all__ = [
    "JsonFileStore",
    "KeyValueStore",
    "MemoryStore",
    "PreferenceStore",
    "SCORING_TEMPLATES_KEY",
    "STUDENT_TEMPLATES_KEY",
    "TemplateLibrary",
]


class KeyValueStore(Protocol):
    """Minimal string key-value storage."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStore:
    """Dict-backed store."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStore:
    """Store all keys in one JSON object on disk.

    Parameters
    ----------
    path : Path | None, optional
        Location of the JSON file. Defaults to ``STORE_PATH``.

    Notes
    -----
    Every write rewrites the whole file through a temporary file and
    ``os.replace``. A file that cannot be parsed is logged and treated as
    empty; it is overwritten by the next write.
    """

    def __init__(self, path: Path | None = None) -> None:
        self.path = Path(path) if path is not None else STORE_PATH
        self._lock = threading.Lock()

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable store %s: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring store %s: top level is not an object", self.path)
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _write(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, indent=2, ensure_ascii=False)
            os.replace(tmp_name, self.path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)

    def delete(self, key: str) -> None:
        with self._lock:
            data = self._read()
            if key in data:
                del data[key]
                self._write(data)


class TemplateLibrary:
    """Named text templates kept under one store key.

    Parameters
    ----------
    store : KeyValueStore
        Backing storage.
    namespace : str
        Store key holding the JSON object of ``name -> text``.
    """

    def __init__(self, store: KeyValueStore, namespace: str) -> None:
        self.store = store
        self.namespace = namespace

    def _all(self) -> dict[str, str]:
        raw = self.store.get(self.namespace)
        if not raw:
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Template namespace %s is corrupt; treating as empty", self.namespace)
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _put(self, data: dict[str, str]) -> None:
        self.store.set(self.namespace, json.dumps(data, ensure_ascii=False))

    def names(self) -> list[str]:
        """Return the saved template names, sorted."""
        return sorted(self._all())

    def load(self, name: str) -> str:
        """Return the text of template ``name``.

        Raises
        ------
        KeyError
            If no template has that name.
        """
        templates = self._all()
        key = name.strip()
        if key not in templates:
            raise KeyError(name)
        return templates[key]

    def save(self, name: str, text: str) -> None:
        """Create or overwrite template ``name``.

        Raises
        ------
        ValidationError
            If the name or the text is blank.
        """
        key = name.strip()
        if not key:
            raise ValidationError("Template name must not be empty")
        if not text.strip():
            raise ValidationError(
                "Template text must not be empty", context={"name": key}
            )
        templates = self._all()
        templates[key] = text
        self._put(templates)
        logger.info("Saved template '%s' in %s", key, self.namespace)

    def delete(self, name: str) -> None:
        """Remove template ``name``.

        Raises
        ------
        KeyError
            If no template has that name.
        """
        templates = self._all()
        key = name.strip()
        if key not in templates:
            raise KeyError(name)
        del templates[key]
        self._put(templates)
        logger.info("Deleted template '%s' from %s", key, self.namespace)


class PreferenceStore:
    """User preferences kept in a ``KeyValueStore``."""

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    def preferred_model(self) -> str:
        """Saved model if it is still offered, else ``DEFAULT_MODEL``."""
        saved = self.store.get(PREFERRED_MODEL_KEY)
        if saved in AVAILABLE_MODELS:
            return saved
        return DEFAULT_MODEL

    def set_preferred_model(self, model: str) -> None:
        if model not in AVAILABLE_MODELS:
            raise ValidationError(
                f"Unknown model '{model}'",
                context={"available": list(AVAILABLE_MODELS)},
            )
        self.store.set(PREFERRED_MODEL_KEY, model)
