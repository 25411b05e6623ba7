"""Identity keys, content fingerprints and staleness decisions.

Every index entry is addressed by :func:`identity_key` of its logical path
(``note.md`` for a document, ``note.md#Heading#Sub`` for a block). Content is
compared through :func:`fingerprint`, which hashes the normalized embedding
input so whitespace-only edits around a note do not trigger a new request.
"""

from __future__ import annotations

import hashlib
from typing import Sequence

from .entries import BlockEntry, DocumentEntry
from .sources import Heading

MAX_EMBED_STRING_LENGTH = 25_000


def identity_key(logical_path: str) -> str:
    """Return the stable index key for a document or block path."""

    return hashlib.md5(logical_path.encode("utf-8")).hexdigest()


def normalize_embed_input(text: str) -> str:
    return text.strip()


def fingerprint(text: str) -> str:
    """Return the content hash used to detect unchanged embedding inputs."""

    return hashlib.md5(normalize_embed_input(text).encode("utf-8")).hexdigest()


def document_breadcrumbs(path: str) -> str:
    """Turn ``folder/note.md`` into ``folder > note``."""

    return path.replace(".md", "", 1).replace("/", " > ")


def build_outline(headings: Sequence[Heading]) -> str:
    return "".join(f"{'#' * heading.level} {heading.text}\n" for heading in headings)


def build_document_input(path: str, content: str, headings: Sequence[Heading] | None) -> str:
    """Assemble the whole-document embedding input.

    Long notes are represented by their heading outline rather than a blind
    truncation; notes without headings fall back to their first characters.
    """

    embed_input = f"{document_breadcrumbs(path)}:\n"
    if len(content) < MAX_EMBED_STRING_LENGTH:
        return embed_input + content
    if not headings:
        return embed_input + content[:MAX_EMBED_STRING_LENGTH]
    embed_input += build_outline(headings)
    return embed_input[:MAX_EMBED_STRING_LENGTH]


def block_is_fresh(existing: BlockEntry | None, document_mtime: float) -> bool:
    return existing is not None and existing.mtime >= document_mtime


def block_matches(existing: BlockEntry | None, block_fingerprint: str) -> bool:
    return existing is not None and existing.fingerprint == block_fingerprint


def document_can_skip(
    existing: DocumentEntry | None,
    *,
    input_fingerprint: str,
    block_keys: Sequence[str] | None,
) -> bool:
    """Decide whether the whole-document vector can be reused.

    Block sets are compared after sorting, so reordered sections with the same
    membership count as unchanged.
    """

    if existing is None:
        return False
    if existing.fingerprint and existing.fingerprint == input_fingerprint:
        return True
    if not block_keys or existing.block_keys is None:
        return False
    return sorted(block_keys) == sorted(existing.block_keys)
