"""Revision manifest: original asset URLs -> cache-busted URLs."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from threading import Lock

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "rev-manifest.json"


class RevisionManifest:
    """Thread-safe mapping persisted as sorted JSON.

    Keys and values are POSIX paths relative to the destination root,
    e.g. ``styles/styles.min.css`` -> ``styles/styles.min-3f2a9c01de.css``.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = Lock()
        self._entries: dict[str, str] = self._load()

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            logger.warning("Ignoring unreadable revision manifest %s", self.path)
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def get(self, original: str) -> str | None:
        with self._lock:
            return self._entries.get(original)

    def record(self, original: str, revved: str) -> str | None:
        """Store a revision and persist. Returns the revved name it replaced."""
        with self._lock:
            previous = self._entries.get(original)
            self._entries[original] = revved
            self._save()
        return previous if previous != revved else None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(self.path.name + ".tmp")
        tmp.write_text(
            json.dumps(self._entries, indent=2, sort_keys=True) + "\n", encoding="utf-8"
        )
        tmp.replace(self.path)

    def as_dict(self) -> dict[str, str]:
        with self._lock:
            return dict(self._entries)

    def __contains__(self, original: object) -> bool:
        with self._lock:
            return original in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
