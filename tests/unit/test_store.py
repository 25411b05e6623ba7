import asyncio
import json

import numpy as np
import pytest

import noteweave.store as store_module
from noteweave.entries import BlockEntry, DocumentEntry
from noteweave.errors import IndexIntegrityError, IndexLoadError
from noteweave.fingerprint import identity_key
from noteweave.storage import MemoryStorage
from noteweave.store import (
    FAILED_FILE,
    INDEX_FILE,
    LEGACY_INDEX_FILE,
    UNSAVED_INDEX_FILE,
    IndexStore,
)


def _document(path: str = "note.md", mtime: float = 1.0) -> DocumentEntry:
    return DocumentEntry(path=path, vector=np.array([1.0, 0.0]), mtime=mtime, fingerprint="h")


@pytest.fixture
def sleeps(monkeypatch):
    recorded: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        recorded.append(seconds)

    monkeypatch.setattr(store_module, "_sleep", fake_sleep)
    return recorded


def test_save_without_changes_is_noop():
    storage = MemoryStorage()
    store = IndexStore(storage)

    assert asyncio.run(store.save()) is False
    assert storage.files == {}


def test_save_initializes_missing_file():
    storage = MemoryStorage()
    store = IndexStore(storage)
    store.put(identity_key("note.md"), _document())

    assert asyncio.run(store.save()) is True

    payload = json.loads(storage.files[INDEX_FILE])
    assert payload[identity_key("note.md")]["meta"]["path"] == "note.md"
    assert store.dirty is False


def test_shrinking_save_is_rejected_and_existing_file_kept():
    existing = "{" + " " * 4000 + "}"
    storage = MemoryStorage({INDEX_FILE: existing})
    store = IndexStore(storage)
    store.put("k", _document())

    with pytest.raises(IndexIntegrityError) as excinfo:
        asyncio.run(store.save())

    assert storage.files[INDEX_FILE] == existing
    assert storage.files[UNSAVED_INDEX_FILE] == store.serialize()
    assert excinfo.value.existing_size == len(existing)
    assert excinfo.value.new_size < 0.5 * len(existing)


def test_save_allows_moderate_shrink():
    store = IndexStore(MemoryStorage())
    for idx in range(3):
        store.put(f"k{idx}", _document(f"n{idx}.md"))
    asyncio.run(store.save())
    store.delete("k0")

    assert asyncio.run(store.save()) is True


def test_load_reads_entries_and_externals():
    block_key = identity_key("note.md#A")
    doc = {"kind": "document", "v": 1, "vector": [1, 0], "meta": {"path": "note.md", "blocks": [block_key]}}
    block = {"kind": "block", "v": 1, "vector": [0, 1], "meta": {"path": "note.md#A", "parent": "d"}}
    external = {"embeddings": [{"vec": [1, 1], "meta": {"title": "Page", "path": "https://example.com/a"}}]}
    storage = MemoryStorage(
        {
            INDEX_FILE: json.dumps({"d": doc, block_key: block}),
            "embeddings-external.json": json.dumps(external),
            "embeddings-external-2.json": json.dumps({"embeddings": []}),
        }
    )
    store = IndexStore(storage)

    asyncio.run(store.load())

    assert list(store) == ["d", block_key]
    assert isinstance(store.get("d"), DocumentEntry)
    assert isinstance(store.get_block(block_key), BlockEntry)
    assert store.get_document(block_key) is None
    assert [item.title for item in store.external] == ["Page"]
    assert store.dirty is False


def test_load_migrates_legacy_file_on_last_attempt(sleeps):
    legacy = {"note.md": {"values": [1, 0], "hash": "h", "mtime": 5}}
    storage = MemoryStorage({LEGACY_INDEX_FILE: json.dumps(legacy)})
    store = IndexStore(storage)

    asyncio.run(store.load())

    assert sleeps == [1.0, 2.0]
    assert INDEX_FILE in storage.files
    entry = store.get_document(identity_key("note.md"))
    assert entry is not None
    assert entry.mtime == 5.0


def test_load_gives_up_after_three_attempts(sleeps):
    storage = MemoryStorage({INDEX_FILE: "not json"})
    store = IndexStore(storage)

    with pytest.raises(IndexLoadError):
        asyncio.run(store.load())

    assert sleeps == [1.0, 2.0]


def test_failure_list_is_merged_sorted_and_deduplicated():
    storage = MemoryStorage()
    store = IndexStore(storage)

    asyncio.run(store.record_failures(["b.md#Heading", "a.md"]))
    asyncio.run(store.record_failures(["a.md", "c.md"]))

    assert storage.files[FAILED_FILE] == "a.md\r\nb.md#Heading\r\nc.md"
    assert store.failed_paths == ["a.md", "b.md", "c.md"]

    previous = asyncio.run(store.clear_failures())

    assert previous == ["a.md", "b.md", "c.md"]
    assert store.failed_paths == []
    assert FAILED_FILE not in storage.files


def test_force_refresh_archives_current_file(monkeypatch):
    monkeypatch.setattr(store_module.time, "time", lambda: 1_700_000_000.5)
    storage = MemoryStorage({INDEX_FILE: json.dumps({"k": {"vector": [1], "meta": {"path": "a.md"}}})})
    store = IndexStore(storage)
    asyncio.run(store.load())

    archive = asyncio.run(store.force_refresh())

    assert archive == "embeddings-1700000000.json"
    assert storage.files[INDEX_FILE] == "{}"
    assert "k" in json.loads(storage.files[archive])
    assert len(store) == 0


def test_touch_updates_metadata_without_vector_change():
    store = IndexStore(MemoryStorage())
    entry = _document(mtime=1.0)
    store.put("k", entry)
    store.dirty = False

    store.touch("k", 5.0, block_keys=["b"])

    assert entry.mtime == 5.0
    assert entry.block_keys == ["b"]
    assert entry.vector.tolist() == [1.0, 0.0]
    assert store.dirty is True


class _GatedStorage(MemoryStorage):
    def __init__(self):
        super().__init__({INDEX_FILE: "{}"})
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def write(self, name, content):
        self.started.set()
        await self.release.wait()
        await super().write(name, content)


def test_entries_put_during_save_stay_dirty():
    storage = _GatedStorage()
    store = IndexStore(storage)
    store.put("k0", _document("n0.md"))

    async def scenario():
        pending = asyncio.create_task(store.save())
        await storage.started.wait()
        store.put("k1", _document("n1.md"))
        storage.release.set()
        await pending
        assert store.dirty is True
        assert list(json.loads(storage.files[INDEX_FILE])) == ["k0"]
        assert await store.save() is True

    asyncio.run(scenario())

    assert sorted(json.loads(storage.files[INDEX_FILE])) == ["k0", "k1"]
    assert store.dirty is False
