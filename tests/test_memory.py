from __future__ import annotations

import itertools
import json
import time
from pathlib import Path

import pytest

from spawner_mcp import memory
from spawner_mcp.memory import MemoryStore


def test_set_overwrites_and_stamps(tmp_path: Path) -> None:
    store = MemoryStore(tmp_path / "memory.json")
    start = time.time_ns() // 1_000_000

    store.set("db", "postgres")
    store.set("db", "sqlite")
    entry = store.get("db")

    assert entry is not None
    assert entry.value == "sqlite"
    assert entry.timestamp >= start
    assert len(store.list_entries()) == 1


def test_get_missing_key(tmp_path: Path) -> None:
    assert MemoryStore(tmp_path / "memory.json").get("nope") is None


def test_entries_survive_restart(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "memory.json"
    MemoryStore(path).set("auth", "jwt")

    on_disk = json.loads(path.read_text(encoding="utf-8"))
    assert on_disk["auth"]["value"] == "jwt"
    assert not path.with_name("memory.json.tmp").exists()

    reloaded = MemoryStore(path).get("auth")
    assert reloaded is not None
    assert reloaded.to_dict() == on_disk["auth"]


def test_list_is_newest_first(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    clock = itertools.count(1000)
    monkeypatch.setattr(memory, "_now_ms", lambda: next(clock))
    store = MemoryStore(tmp_path / "memory.json")

    store.set("first", "1")
    store.set("second", "2")
    store.set("first", "updated")

    assert [e.key for e in store.list_entries()] == ["first", "second"]


@pytest.mark.parametrize("content", ["{not json", "[1, 2, 3]"])
def test_unreadable_file_gives_empty_store(tmp_path: Path, content: str) -> None:
    path = tmp_path / "memory.json"
    path.write_text(content, encoding="utf-8")

    store = MemoryStore(path)

    assert store.list_entries() == []
    store.set("k", "v")
    assert json.loads(path.read_text(encoding="utf-8"))["k"]["value"] == "v"


def test_malformed_entries_are_skipped(tmp_path: Path) -> None:
    path = tmp_path / "memory.json"
    path.write_text(
        json.dumps({"good": {"value": "v", "timestamp": 1}, "bad": {"value": "v"}}),
        encoding="utf-8",
    )

    assert [e.key for e in MemoryStore(path).list_entries()] == ["good"]


def test_write_failure_keeps_in_memory_value(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("a file, not a directory", encoding="utf-8")
    store = MemoryStore(blocker / "memory.json")

    store.set("k", "v")

    assert store.get("k").value == "v"


def test_failed_replace_removes_temp_file(tmp_path: Path) -> None:
    # a directory where the memory file should be makes os.replace fail
    path = tmp_path / "memory.json"
    path.mkdir()
    store = MemoryStore(path)

    store.set("k", "v")

    assert store.get("k").value == "v"
    assert not (tmp_path / "memory.json.tmp").exists()
    assert path.is_dir()
