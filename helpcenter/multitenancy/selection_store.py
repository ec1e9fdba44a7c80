"""
Durable storage for the active knowledge-base selection.

The selection is the only session state that survives a restart. It is
a single key-value slot keyed by :data:`SELECTED_KB_KEY`; the value is a
knowledge-base id string.

Two backends are provided:
    - InMemorySelectionStore: Process-local, for tests and embedding
    - FileSelectionStore: A small JSON document on disk

Example:
    store = FileSelectionStore(Path("~/.helpcenter/session.json"))
    store.set(SELECTED_KB_KEY, "kb1")
    assert store.get(SELECTED_KB_KEY) == "kb1"
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

logger = logging.getLogger(__name__)

SELECTED_KB_KEY = "selectedKnowledgeBaseId"


class SelectionStore(ABC):
    """Key-value slot storage for session selections."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the stored value for ``key``, or None if absent."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key`` if present."""


class InMemorySelectionStore(SelectionStore):
    """Selection store backed by a dict.

    Counts writes so callers can observe how often the selection was
    persisted.
    """

    def __init__(self, initial: dict[str, str] | None = None):
        self._values: dict[str, str] = dict(initial or {})
        self.write_count = 0

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value
        self.write_count += 1

    def delete(self, key: str) -> None:
        self._values.pop(key, None)


class FileSelectionStore(SelectionStore):
    """Selection store persisted as a JSON object in a file.

    Writes go through a temporary file and an atomic rename so a crash
    mid-write never leaves a truncated document. A missing or corrupt
    file reads as empty.

    Attributes:
        path: Location of the JSON document.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path).expanduser()

    def _load(self) -> dict[str, str]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring unreadable selection file %s", self.path)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring malformed selection file %s", self.path)
            return {}
        return {str(k): str(v) for k, v in data.items() if v is not None}

    def _dump(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self.path.parent, prefix=".selection-", suffix=".json"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2, sort_keys=True)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def get(self, key: str) -> str | None:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._dump(data)
        logger.debug("Persisted %s=%s to %s", key, value, self.path)

    def delete(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._dump(data)
