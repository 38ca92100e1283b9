"""Whole-document JSON persistence under a data directory."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Callable

from dashboard.config.logging import sanitize_log_extra

logger = logging.getLogger(__name__)


class JsonDocumentStore:
    """Reads and replaces named JSON documents.

    Each write replaces the whole document atomically (temp file + rename).
    Read-modify-write sequences are not serialized across processes; the
    store assumes a single writer.
    """

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, name: str) -> Path:
        return self._directory / name

    def read(self, name: str, fallback: Any = None) -> Any:
        path = self.path_for(name)
        if not path.exists():
            return fallback
        try:
            text = path.read_text(encoding="utf-8")
            return json.loads(text) if text.strip() else fallback
        except (OSError, ValueError) as exc:
            logger.warning(
                "Unreadable JSON document, using fallback",
                extra=sanitize_log_extra(document=name, error=str(exc)),
            )
            return fallback

    def write(self, name: str, data: Any) -> Any:
        self._directory.mkdir(parents=True, exist_ok=True)
        target = self.path_for(name)
        fd, tmp_path = tempfile.mkstemp(dir=self._directory, prefix=f".{name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, indent=2, ensure_ascii=False)
            os.replace(tmp_path, target)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        return data

    def update(self, name: str, updater: Callable[[Any], Any], fallback: Any = None) -> Any:
        current = self.read(name, fallback)
        return self.write(name, updater(current if current is not None else fallback))
