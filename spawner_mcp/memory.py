"""
spawner_mcp.memory

File-backed project memory: named notes with write timestamps.

The whole map is persisted as one JSON object keyed by entry key, rewritten
synchronously after every mutation. Persistence is best effort: a broken file at
start-up yields an empty store, and a failed write keeps the in-memory change.
"""

from __future__ import annotations

import contextlib
import json
import os
import threading
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from spawner_mcp.config import get_logger

logger = get_logger("memory")


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


@dataclass
class MemoryEntry:
    key: str
    value: str
    timestamp: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class MemoryStore:
    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._entries: dict[str, MemoryEntry] = {}
        self._lock = threading.Lock()
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            logger.info("No memory file at %s; starting empty", self.path)
            return
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.error("Failed to load memory from %s: %s", self.path, exc)
            return
        if not isinstance(raw, dict):
            logger.error("Memory file %s is not a JSON object; starting empty", self.path)
            return
        for key, item in raw.items():
            try:
                self._entries[key] = MemoryEntry(
                    key=key, value=str(item["value"]), timestamp=int(item["timestamp"])
                )
            except (TypeError, KeyError, ValueError):
                logger.warning("Skipping malformed memory entry %r", key)
        logger.info("Loaded %d memory entries from %s", len(self._entries), self.path)

    def _flush(self) -> None:
        payload = {key: entry.to_dict() for key, entry in self._entries.items()}
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as exc:
            logger.error("Failed to save memory to %s: %s", self.path, exc)
            with contextlib.suppress(OSError):
                tmp.unlink()

    def set(self, key: str, value: str) -> MemoryEntry:
        with self._lock:
            entry = MemoryEntry(key=key, value=value, timestamp=_now_ms())
            self._entries[key] = entry
            self._flush()
        return entry

    def get(self, key: str) -> MemoryEntry | None:
        return self._entries.get(key)

    def list_entries(self) -> list[MemoryEntry]:
        """All entries, newest first."""
        return sorted(self._entries.values(), key=lambda e: e.timestamp, reverse=True)
