"""Index entry types and their JSON representation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Union

import numpy as np

ENTRY_SCHEMA_VERSION = 1
DOCUMENT_KIND = "document"
BLOCK_KIND = "block"


def as_vector(values: Any) -> np.ndarray:
    return np.asarray(values if values is not None else [], dtype=np.float64)


@dataclass(slots=True)
class DocumentEntry:
    """Whole-note vector plus the keys of the sections embedded alongside it."""

    path: str
    vector: np.ndarray
    mtime: float = 0.0
    fingerprint: str | None = None
    tokens: int | None = None
    size: int | None = None
    block_keys: list[str] | None = None

    kind = DOCUMENT_KIND


@dataclass(slots=True)
class BlockEntry:
    """Vector of one heading-addressed section, owned by ``parent_key``."""

    path: str
    vector: np.ndarray
    parent_key: str
    mtime: float = 0.0
    fingerprint: str | None = None
    tokens: int | None = None
    length: int | None = None

    kind = BLOCK_KIND


IndexEntry = Union[DocumentEntry, BlockEntry]


@dataclass(slots=True)
class ExternalEntry:
    """Read-only vector imported from outside the vault (web pages, mail, ...)."""

    vector: np.ndarray
    title: str = ""
    source_label: str | None = None
    path: str = ""


def entry_to_dict(entry: IndexEntry) -> dict[str, Any]:
    meta: dict[str, Any] = {
        "path": entry.path,
        "mtime": entry.mtime,
        "hash": entry.fingerprint,
        "tokens": entry.tokens,
    }
    if isinstance(entry, BlockEntry):
        meta["parent"] = entry.parent_key
        meta["len"] = entry.length
    else:
        meta["size"] = entry.size
        meta["blocks"] = entry.block_keys
    return {
        "kind": entry.kind,
        "v": ENTRY_SCHEMA_VERSION,
        "vector": entry.vector.tolist(),
        "meta": {key: value for key, value in meta.items() if value is not None},
    }


def entry_from_dict(payload: Mapping[str, Any]) -> IndexEntry:
    """Parse a stored entry.

    Untagged entries written before the ``kind`` field existed are accepted:
    their kind is inferred from a ``#`` in the path, ``vec`` stands for
    ``vector`` and ``file`` for the parent key.
    """

    meta = payload.get("meta") or {}
    path = str(meta.get("path", ""))
    vector = as_vector(payload.get("vector", payload.get("vec")))
    kind = payload.get("kind")
    if kind is None:
        kind = BLOCK_KIND if "#" in path else DOCUMENT_KIND
    mtime = float(meta.get("mtime") or 0.0)
    if kind == BLOCK_KIND:
        return BlockEntry(
            path=path,
            vector=vector,
            parent_key=str(meta.get("parent", meta.get("file", ""))),
            mtime=mtime,
            fingerprint=meta.get("hash"),
            tokens=meta.get("tokens"),
            length=meta.get("len"),
        )
    blocks = meta.get("blocks")
    return DocumentEntry(
        path=path,
        vector=vector,
        mtime=mtime,
        fingerprint=meta.get("hash"),
        tokens=meta.get("tokens"),
        size=meta.get("size"),
        block_keys=list(blocks) if blocks is not None else None,
    )


def external_from_dict(payload: Mapping[str, Any]) -> ExternalEntry:
    meta = payload.get("meta") or {}
    return ExternalEntry(
        vector=as_vector(payload.get("vector", payload.get("vec"))),
        title=str(meta.get("title", "")),
        source_label=meta.get("source_label", meta.get("source")),
        path=str(meta.get("path", "")),
    )
