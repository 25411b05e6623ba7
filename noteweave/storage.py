"""Durable storage backends for the index files."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

DATA_DIRNAME = ".noteweave"
_GITIGNORE_BLOCK = (
    "\n\n# Ignore noteweave folder because embeddings file is large and updated frequently"
    f"\n{DATA_DIRNAME}"
)


class Storage(Protocol):
    """Minimal async file API used by :class:`noteweave.store.IndexStore`."""

    async def exists(self, name: str) -> bool:
        raise NotImplementedError  # pragma: no cover

    async def read(self, name: str) -> str:
        raise NotImplementedError  # pragma: no cover

    async def write(self, name: str, content: str) -> None:
        raise NotImplementedError  # pragma: no cover

    async def size(self, name: str) -> int:
        raise NotImplementedError  # pragma: no cover

    async def remove(self, name: str) -> None:
        raise NotImplementedError  # pragma: no cover

    async def rename(self, name: str, new_name: str) -> None:
        raise NotImplementedError  # pragma: no cover


class FileStorage:
    """Store files below a data directory, off the event loop."""

    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory)

    @classmethod
    def for_vault(cls, vault_root: Path | str) -> "FileStorage":
        return cls(Path(vault_root) / DATA_DIRNAME)

    def path(self, name: str) -> Path:
        return self.directory / name

    async def exists(self, name: str) -> bool:
        return await asyncio.to_thread(self.path(name).exists)

    async def read(self, name: str) -> str:
        return await asyncio.to_thread(self.path(name).read_text, encoding="utf-8")

    async def write(self, name: str, content: str) -> None:
        def _write() -> None:
            if not self.directory.exists():
                self.directory.mkdir(parents=True, exist_ok=True)
                logger.info("Created folder: %s", self.directory)
            target = self.path(name)
            tmp = target.with_suffix(target.suffix + ".tmp")
            tmp.write_text(content, encoding="utf-8")
            os.replace(tmp, target)

        await asyncio.to_thread(_write)

    async def size(self, name: str) -> int:
        stat = await asyncio.to_thread(self.path(name).stat)
        return stat.st_size

    async def remove(self, name: str) -> None:
        await asyncio.to_thread(self.path(name).unlink)

    async def rename(self, name: str, new_name: str) -> None:
        await asyncio.to_thread(self.path(name).rename, self.path(new_name))


class MemoryStorage:
    """Dict-backed storage, handy for embedding the index in other hosts."""

    def __init__(self, files: dict[str, str] | None = None) -> None:
        self.files: dict[str, str] = dict(files or {})

    async def exists(self, name: str) -> bool:
        return name in self.files

    async def read(self, name: str) -> str:
        try:
            return self.files[name]
        except KeyError as exc:
            raise FileNotFoundError(name) from exc

    async def write(self, name: str, content: str) -> None:
        self.files[name] = content

    async def size(self, name: str) -> int:
        return len((await self.read(name)).encode("utf-8"))

    async def remove(self, name: str) -> None:
        await self.read(name)
        del self.files[name]

    async def rename(self, name: str, new_name: str) -> None:
        self.files[new_name] = await self.read(name)
        del self.files[name]


def ensure_gitignored(vault_root: Path | str) -> bool:
    """Append the data folder to the vault's ``.gitignore`` when one exists.

    Returns True when the file was changed.
    """

    gitignore = Path(vault_root) / ".gitignore"
    if not gitignore.is_file():
        return False
    content = gitignore.read_text(encoding="utf-8", errors="replace")
    if DATA_DIRNAME in content:
        return False
    gitignore.write_text(content + _GITIGNORE_BLOCK, encoding="utf-8")
    logger.info("Added %s to .gitignore", DATA_DIRNAME)
    return True
