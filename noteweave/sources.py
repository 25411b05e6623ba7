"""Document sources feeding the index.

The core only consumes the :class:`DocumentSource` protocol. :class:`VaultSource`
implements it for a plain directory of markdown notes.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, Sequence

from .utils import collect_markdown_files, resolve_directory

_OUTLINE_HEADING = re.compile(r"^(#{1,6})[ \t]+(.+?)[ \t#]*$")


@dataclass(frozen=True, slots=True)
class Heading:
    level: int
    text: str


@dataclass(frozen=True, slots=True)
class Document:
    """A note as seen by the index: its vault-relative path and file stats."""

    path: str
    mtime: float
    size: int = 0


class DocumentSource(Protocol):
    """Primitives the host application provides for its documents."""

    async def list_documents(self) -> list[Document]:
        raise NotImplementedError  # pragma: no cover

    async def read(self, document: Document) -> str:
        raise NotImplementedError  # pragma: no cover

    async def outline(self, document: Document) -> Sequence[Heading]:
        raise NotImplementedError  # pragma: no cover


def parse_outline(markdown: str) -> list[Heading]:
    """Return the ATX headings of *markdown*, skipping fenced code."""

    headings: list[Heading] = []
    in_fence = False
    for line in markdown.split("\n"):
        if line.lstrip().startswith("```"):
            in_fence = not in_fence
            continue
        if in_fence:
            continue
        match = _OUTLINE_HEADING.match(line)
        if match:
            headings.append(Heading(level=len(match.group(1)), text=match.group(2).strip()))
    return headings


class VaultSource:
    """Serve the markdown files below *root* as documents."""

    def __init__(self, root: Path | str, *, respect_gitignore: bool = True) -> None:
        self.root = resolve_directory(root)
        self.respect_gitignore = respect_gitignore

    def _resolve(self, document: Document | str) -> Path:
        rel_path = document.path if isinstance(document, Document) else document
        return self.root / rel_path

    def _stat_document(self, path: Path) -> Document:
        stat = path.stat()
        return Document(
            path=path.relative_to(self.root).as_posix(),
            mtime=stat.st_mtime,
            size=stat.st_size,
        )

    def _scan(self) -> list[Document]:
        files = collect_markdown_files(self.root, respect_gitignore=self.respect_gitignore)
        return [self._stat_document(path) for path in files]

    async def list_documents(self) -> list[Document]:
        return await asyncio.to_thread(self._scan)

    async def get_document(self, rel_path: str) -> Document | None:
        path = self._resolve(rel_path)
        if not path.is_file():
            return None
        return await asyncio.to_thread(self._stat_document, path)

    async def read(self, document: Document) -> str:
        path = self._resolve(document)
        return await asyncio.to_thread(path.read_text, encoding="utf-8", errors="replace")

    async def outline(self, document: Document) -> list[Heading]:
        return parse_outline(await self.read(document))
