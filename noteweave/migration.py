"""One-time upgrade of the legacy path-keyed embeddings file."""

from __future__ import annotations

from typing import Any, Mapping

from .entries import BLOCK_KIND, DOCUMENT_KIND, ENTRY_SCHEMA_VERSION
from .fingerprint import identity_key


def migrate_legacy(legacy: Mapping[str, Mapping[str, Any]]) -> dict[str, dict[str, Any]]:
    """Convert ``{path: {values, hash, hashes, mtime, tokens}}`` records.

    Records are re-keyed by :func:`identity_key` of their path. A document's
    ``hashes`` list is resolved into the keys of the records carrying those
    hashes; block records (``#`` in the path) point back to their document.
    Absent values are dropped rather than stored as nulls.
    """

    key_by_hash: dict[str, list[str]] = {}
    for path, record in legacy.items():
        content_hash = record.get("hash")
        if content_hash is not None:
            key_by_hash.setdefault(content_hash, []).append(identity_key(path))

    migrated: dict[str, dict[str, Any]] = {}
    for path, record in legacy.items():
        is_block = "#" in path
        meta: dict[str, Any] = {
            "path": path,
            "hash": record.get("hash"),
            "mtime": record.get("mtime"),
            "tokens": record.get("tokens"),
        }
        hashes = record.get("hashes")
        if hashes is not None:
            blocks: list[str] = []
            for block_hash in hashes:
                blocks.extend(key_by_hash.get(block_hash, []))
            meta["blocks"] = sorted(blocks)
        if is_block:
            meta["parent"] = identity_key(path.split("#")[0])
        entry = {
            "kind": BLOCK_KIND if is_block else DOCUMENT_KIND,
            "v": ENTRY_SCHEMA_VERSION,
            "vector": record.get("values"),
            "meta": {key: value for key, value in meta.items() if value is not None},
        }
        migrated[identity_key(path)] = {
            key: value for key, value in entry.items() if value is not None
        }
    return migrated
