"""Persistent cache of resolved canonical metadata.

One JSON file maps a normalized "title||author" key to a CachedEntry:

    {"dinosaurs before dark||mary pope osborne":
        {"final_metadata": {...BookMetadata...}, "timestamp": 1735689600}}

Entries never expire and are only ever replaced wholesale. Cache I/O errors
are logged and swallowed -- a broken cache behaves like an empty one and
never fails a scan.
"""

from __future__ import annotations

import json
import os
import re
import tempfile
import threading
import time
import unicodedata
from pathlib import Path

from loguru import logger

from .models import BookMetadata, CachedEntry

log = logger.bind(stage="cache")

_KEY_SEPARATOR = "||"


def normalize_key(title: str, author: str) -> str:
    """Case- and whitespace-stable cache key for a (title, author) pair."""

    def _norm(s: str) -> str:
        s = unicodedata.normalize("NFKC", s or "")
        return re.sub(r"\s+", " ", s).strip().casefold()

    return f"{_norm(title)}{_KEY_SEPARATOR}{_norm(author)}"


class MetadataCache:
    """File-backed key/value store of BookMetadata keyed by (title, author).

    Loaded lazily on first access. A per-instance lock serializes all
    access so parallel group workers never interleave read-modify-write.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._entries: dict[str, dict] | None = None
        self._lock = threading.Lock()

    def _load(self) -> dict[str, dict]:
        if self._entries is not None:
            return self._entries

        entries: dict[str, dict] = {}
        if self.path.is_file():
            try:
                data = json.loads(self.path.read_text(encoding="utf-8"))
                if isinstance(data, dict):
                    entries = data
                else:
                    log.warning(f"Ignoring malformed cache file {self.path}")
            except (OSError, json.JSONDecodeError) as e:
                log.warning(f"Failed to read cache {self.path}: {e}")
        self._entries = entries
        log.debug(f"Cache loaded: {len(entries)} entries from {self.path}")
        return entries

    def _save(self, entries: dict[str, dict]) -> None:
        """Atomic write: temp file in the same directory, then os.replace."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), suffix=".tmp")
        except OSError as e:
            log.warning(f"Cache write skipped ({self.path}): {e}")
            return
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(entries, f, indent=2, ensure_ascii=False)
                f.write("\n")
            os.replace(tmp_path, self.path)
        except (OSError, TypeError, ValueError) as e:
            log.warning(f"Cache write failed ({self.path}): {e}")
            try:
                os.unlink(tmp_path)
            except OSError as cleanup_err:
                log.warning(f"Failed to cleanup temp file {tmp_path}: {cleanup_err}")

    def lookup(self, title: str, author: str) -> BookMetadata | None:
        key = normalize_key(title, author)
        with self._lock:
            raw = self._load().get(key)
        if raw is None:
            return None
        try:
            entry = CachedEntry.from_dict(raw)
        except (KeyError, TypeError, ValueError) as e:
            log.warning(f"Skipping malformed cache entry {key!r}: {e}")
            return None
        log.debug(f"Cache hit: {key!r}")
        return entry.metadata

    def store(self, title: str, author: str, metadata: BookMetadata) -> None:
        key = normalize_key(title, author)
        entry = CachedEntry(metadata=metadata, timestamp=int(time.time()))
        with self._lock:
            entries = self._load()
            entries[key] = entry.to_dict()
            self._save(entries)
        log.debug(f"Cache store: {key!r}")

    def clear(self) -> None:
        with self._lock:
            self._entries = {}
            try:
                self.path.unlink(missing_ok=True)
            except OSError as e:
                log.warning(f"Failed to remove cache file {self.path}: {e}")
        log.info("Metadata cache cleared")

    def __len__(self) -> int:
        with self._lock:
            return len(self._load())

    def __contains__(self, pair: tuple[str, str]) -> bool:
        title, author = pair
        with self._lock:
            return normalize_key(title, author) in self._load()
