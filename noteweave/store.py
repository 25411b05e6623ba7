"""Persistent index store backed by a single JSON file.

The store keeps every entry in memory and writes the whole mapping at
checkpoints chosen by the caller. A save that would shrink the file to less
than half its previous size is refused: the candidate goes to a side file and
:class:`~noteweave.errors.IndexIntegrityError` is raised instead.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Iterable, Iterator

from .entries import (
    BlockEntry,
    DocumentEntry,
    ExternalEntry,
    IndexEntry,
    entry_from_dict,
    entry_to_dict,
    external_from_dict,
)
from .errors import IndexIntegrityError, IndexLoadError
from .migration import migrate_legacy
from .storage import Storage
from .text import Messages

logger = logging.getLogger(__name__)

INDEX_FILE = "embeddings-2.json"
LEGACY_INDEX_FILE = "embeddings.json"
UNSAVED_INDEX_FILE = "unsaved-embeddings.json"
FAILED_FILE = "failed-embeddings.txt"
EXTERNAL_FILES = ("embeddings-external.json", "embeddings-external-2.json")
SHRINK_THRESHOLD = 0.5
LOAD_ATTEMPTS = 3


async def _sleep(seconds: float) -> None:
    await asyncio.sleep(seconds)


class IndexStore:
    """In-memory identity→entry map with checkpointed persistence."""

    def __init__(self, storage: Storage) -> None:
        self.storage = storage
        self.entries: dict[str, IndexEntry] = {}
        self.external: list[ExternalEntry] = []
        self.failed_paths: list[str] = []
        self.dirty = False
        self._lock: asyncio.Lock | None = None
        self._lock_loop: asyncio.AbstractEventLoop | None = None

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, key: object) -> bool:
        return key in self.entries

    def __iter__(self) -> Iterator[str]:
        return iter(self.entries)

    def get(self, key: str) -> IndexEntry | None:
        return self.entries.get(key)

    def get_document(self, key: str) -> DocumentEntry | None:
        entry = self.entries.get(key)
        return entry if isinstance(entry, DocumentEntry) else None

    def get_block(self, key: str) -> BlockEntry | None:
        entry = self.entries.get(key)
        return entry if isinstance(entry, BlockEntry) else None

    def items(self) -> Iterable[tuple[str, IndexEntry]]:
        return self.entries.items()

    def put(self, key: str, entry: IndexEntry) -> None:
        self.entries[key] = entry
        self.dirty = True

    def delete(self, key: str) -> None:
        del self.entries[key]
        self.dirty = True

    def touch(self, key: str, mtime: float, *, block_keys: list[str] | None = None) -> None:
        """Record that *key* is current as of *mtime* without a new vector."""
        entry = self.entries[key]
        if entry.mtime < mtime:
            entry.mtime = mtime
            self.dirty = True
        if block_keys is not None and isinstance(entry, DocumentEntry):
            if entry.block_keys != block_keys:
                entry.block_keys = block_keys
                self.dirty = True

    def serialize(self) -> str:
        return json.dumps({key: entry_to_dict(entry) for key, entry in self.entries.items()})

    @staticmethod
    def parse(raw: str) -> dict[str, IndexEntry]:
        payload = json.loads(raw)
        if not isinstance(payload, dict):
            raise ValueError("Embeddings file must contain a JSON object")
        return {key: entry_from_dict(value) for key, value in payload.items()}

    async def index_exists(self) -> bool:
        return await self.storage.exists(INDEX_FILE)

    async def legacy_exists(self) -> bool:
        return await self.storage.exists(LEGACY_INDEX_FILE)

    async def init_file(self) -> None:
        if await self.storage.exists(INDEX_FILE):
            logger.debug("Embeddings file already exists: %s", INDEX_FILE)
            return
        await self.storage.write(INDEX_FILE, "{}")
        logger.info("Created embeddings file: %s", INDEX_FILE)

    async def migrate_legacy_file(self) -> int:
        raw = await self.storage.read(LEGACY_INDEX_FILE)
        migrated = migrate_legacy(json.loads(raw))
        await self.storage.write(INDEX_FILE, json.dumps(migrated))
        logger.info("Migrated %d entries from %s to %s", len(migrated), LEGACY_INDEX_FILE, INDEX_FILE)
        return len(migrated)

    async def load(self) -> None:
        """Read the index, retrying with growing waits.

        The final attempt first migrates the legacy file when one exists.
        Raises :class:`IndexLoadError` once all attempts fail.
        """

        last_error: Exception | None = None
        for attempt in range(LOAD_ATTEMPTS):
            if attempt:
                await _sleep(float(attempt))
            try:
                if attempt == LOAD_ATTEMPTS - 1 and await self.legacy_exists():
                    await self.migrate_legacy_file()
                raw = await self.storage.read(INDEX_FILE)
                self.entries = self.parse(raw)
                break
            except (OSError, ValueError, TypeError) as exc:
                last_error = exc
                logger.warning("Loading %s failed (attempt %d): %s", INDEX_FILE, attempt + 1, exc)
        else:
            raise IndexLoadError(Messages.ERROR_INDEX_LOAD) from last_error
        self.dirty = False
        logger.debug("Loaded %d entries from %s", len(self.entries), INDEX_FILE)
        await self.load_external()

    async def load_external(self) -> None:
        self.external = []
        for name in EXTERNAL_FILES:
            if not await self.storage.exists(name):
                continue
            payload = json.loads(await self.storage.read(name))
            self.external.extend(
                external_from_dict(item) for item in payload.get("embeddings", [])
            )
            logger.debug("Loaded external embeddings from %s", name)

    def _write_lock(self) -> asyncio.Lock:
        # One lock per event loop; stores outlive a single asyncio.run().
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    async def save(self, *, force: bool = False) -> bool:
        """Persist the index; return False when there was nothing to write.

        Saves are serialized, so concurrent checkpoints never interleave
        their size check and write.
        """

        async with self._write_lock():
            return await self._save(force)

    async def _save(self, force: bool) -> bool:
        if not (self.dirty or force):
            return False
        if not await self.storage.exists(INDEX_FILE):
            await self.init_file()
        content = self.serialize()
        # Entries put while the write is in flight mark the store dirty again.
        self.dirty = False
        new_size = len(content.encode("utf-8"))
        try:
            existing_size = await self.storage.size(INDEX_FILE)
            if new_size < existing_size * SHRINK_THRESHOLD:
                await self.storage.write(UNSAVED_INDEX_FILE, content)
                message = Messages.ERROR_INDEX_SHRINK.format(
                    new_size=new_size,
                    existing_size=existing_size,
                    side_file=UNSAVED_INDEX_FILE,
                )
                logger.error(message)
                raise IndexIntegrityError(message, new_size=new_size, existing_size=existing_size)
            await self.storage.write(INDEX_FILE, content)
        except Exception:
            self.dirty = True
            raise
        logger.debug("Saved %d entries (%d bytes)", len(self.entries), new_size)
        return True

    async def force_refresh(self) -> str | None:
        """Archive the current file and start from an empty index.

        Returns the archive name, if there was a file to archive.
        """

        archive: str | None = None
        async with self._write_lock():
            if await self.storage.exists(INDEX_FILE):
                archive = f"embeddings-{int(time.time())}.json"
                await self.storage.rename(INDEX_FILE, archive)
            await self.storage.write(INDEX_FILE, "{}")
        self.entries = {}
        self.dirty = False
        return archive

    async def load_failed_files(self) -> list[str]:
        """Load the note paths that failed before; block failures count for their note."""

        if not await self.storage.exists(FAILED_FILE):
            self.failed_paths = []
            logger.debug("No failed files.")
            return self.failed_paths
        lines = (await self.storage.read(FAILED_FILE)).splitlines()
        unique: dict[str, None] = {}
        for line in lines:
            if line:
                unique.setdefault(line.split("#")[0], None)
        self.failed_paths = list(unique)
        return self.failed_paths

    async def record_failures(self, paths: Iterable[str]) -> None:
        """Merge *paths* into the persisted failure list (sorted, deduplicated)."""

        failed: set[str] = set()
        if await self.storage.exists(FAILED_FILE):
            failed.update((await self.storage.read(FAILED_FILE)).splitlines())
        failed.update(paths)
        failed.discard("")
        await self.storage.write(FAILED_FILE, "\r\n".join(sorted(failed)))
        await self.load_failed_files()

    async def clear_failures(self) -> list[str]:
        """Forget all failures and return the note paths that were listed."""

        previous = await self.load_failed_files()
        self.failed_paths = []
        if await self.storage.exists(FAILED_FILE):
            await self.storage.remove(FAILED_FILE)
        return previous
