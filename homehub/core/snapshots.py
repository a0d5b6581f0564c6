"""JSON snapshot files backing the rule and telemetry stores."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Callable

LOGGER = logging.getLogger(__name__)


class SnapshotError(RuntimeError):
    """Raised when a snapshot cannot be read, decoded or written."""


class JsonSnapshot:
    """Pretty-printed JSON document on disk with load/save semantics.

    Writes go to a sibling temporary file that is then renamed over the
    target, so readers never observe a half-written document.
    """

    def __init__(self, path: Path, *, empty: Callable[[], Any]) -> None:
        self.path = Path(path)
        self._empty = empty

    def load(self) -> Any:
        """Return the decoded document, creating an empty one if absent.

        An existing file with no content is treated as empty.
        """
        if not self.path.exists():
            LOGGER.info("Snapshot %s not found; creating it", self.path)
            document = self._empty()
            self.save(document)
            return document

        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as exc:
            raise SnapshotError(f"Failed to read {self.path}: {exc}") from exc

        if not text.strip():
            return self._empty()

        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise SnapshotError(f"Malformed JSON in {self.path}: {exc}") from exc

    def save(self, document: Any) -> None:
        try:
            blob = json.dumps(document, indent=2)
        except (TypeError, ValueError) as exc:
            raise SnapshotError(f"Failed to encode {self.path}: {exc}") from exc

        tmp_path = self.path.with_name(f".{self.path.name}.tmp")
        try:
            if self.path.parent and not self.path.parent.exists():
                self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(blob, encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as exc:
            raise SnapshotError(f"Failed to write {self.path}: {exc}") from exc
