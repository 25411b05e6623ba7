"""Remove index entries that no longer belong to a live document."""

from __future__ import annotations

import logging
from typing import Iterable

from .entries import BlockEntry, DocumentEntry
from .sources import Document
from .store import IndexStore

logger = logging.getLogger(__name__)


def collect_garbage(store: IndexStore, documents: Iterable[Document | str]) -> int:
    """Prune entries of deleted documents and orphaned blocks.

    An entry survives only when some known document path prefixes its path.
    A block additionally needs a document parent whose ``block_keys`` (when
    set) still list it and whose ``mtime`` is not newer than its own.
    Returns the number of deleted entries.
    """

    doc_paths = {doc.path if isinstance(doc, Document) else doc for doc in documents}
    stale: list[str] = []
    for key, entry in store.items():
        if not _has_source(entry.path, doc_paths):
            stale.append(key)
            continue
        if isinstance(entry, BlockEntry) and _is_orphan(store, key, entry):
            stale.append(key)
    for key in stale:
        logger.debug("Removing stale entry %s (%s)", key, store.entries[key].path)
        store.delete(key)
    return len(stale)


def _has_source(path: str, doc_paths: set[str]) -> bool:
    if path.split("#")[0] in doc_paths:
        return True
    return any(path.startswith(doc_path) for doc_path in doc_paths)


def _is_orphan(store: IndexStore, key: str, block: BlockEntry) -> bool:
    parent = store.get(block.parent_key)
    if not isinstance(parent, DocumentEntry):
        return True
    if parent.block_keys is not None and key not in parent.block_keys:
        return True
    # zero means "unknown" for entries migrated without timestamps
    return bool(parent.mtime and block.mtime and parent.mtime > block.mtime)
