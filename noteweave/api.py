"""Public Python API for noteweave."""

from __future__ import annotations

import logging
from pathlib import Path

from .config import Config, ExclusionRules, load_config
from .embedding import EmbeddingBackend, create_backend
from .errors import ConnectionsError, DocumentExcludedError, EmbeddingError
from .fingerprint import identity_key
from .indexer import Indexer, RunReport
from .nearest import NearestCache, Neighbor, find_nearest
from .segmenter import retrieve_block as _retrieve_block
from .sources import Document, DocumentSource, VaultSource
from .storage import FileStorage, ensure_gitignored
from .store import IndexStore
from .text import Messages

logger = logging.getLogger(__name__)

TEST_SENTENCE = "This is a test of the OpenAI API."


class Connections:
    """Query facade over an index store, a document source and a backend.

    Results of :meth:`find_connections` are cached per note until
    :meth:`clear_cache` is called.
    """

    def __init__(
        self,
        store: IndexStore,
        source: DocumentSource,
        backend: EmbeddingBackend,
        *,
        config: Config | None = None,
        cache: NearestCache | None = None,
    ) -> None:
        self.store = store
        self.source = source
        self.backend = backend
        self.config = config or Config()
        self.rules = ExclusionRules.from_config(self.config)
        self.indexer = Indexer(store, source, backend, config=self.config, rules=self.rules)
        self.cache = cache or NearestCache()

    @classmethod
    async def open_vault(
        cls,
        vault: Path | str,
        *,
        config: Config | None = None,
        backend: EmbeddingBackend | None = None,
    ) -> "Connections":
        """Load (or create) the index kept inside *vault*."""

        config = config or load_config()
        source = VaultSource(vault)
        store = IndexStore(FileStorage.for_vault(source.root))
        if not await store.index_exists() and not await store.legacy_exists():
            await store.init_file()
            ensure_gitignored(source.root)
        await store.load()
        await store.load_failed_files()
        return cls(
            store,
            source,
            backend or create_backend(config),
            config=config,
        )

    async def embed_all(self, *, open_paths: tuple[str, ...] = ()) -> RunReport:
        return await self.indexer.embed_all(open_paths=open_paths)

    async def retry_failed(self) -> RunReport:
        return await self.indexer.retry_failed()

    async def force_refresh(self) -> RunReport:
        self.cache.invalidate()
        return await self.indexer.force_refresh()

    def clear_cache(self) -> None:
        self.cache.invalidate()

    async def find_connections(self, document: Document) -> list[Neighbor]:
        """Return the notes and sections nearest to *document*.

        Raises :class:`DocumentExcludedError` for excluded notes and
        :class:`ConnectionsError` when no vector can be obtained.
        """

        key = identity_key(document.path)
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        matcher = self.rules.excluded_by(document.path)
        if matcher is not None:
            self.indexer.report.log_exclusion(matcher)
            raise DocumentExcludedError(Messages.ERROR_DOCUMENT_EXCLUDED)
        await self.indexer.embed_all()
        entry = self.store.get(key)
        if entry is None or entry.mtime < document.mtime or entry.vector.size == 0:
            await self.indexer.embed_document(document)
            self.indexer.finish_run()
            entry = self.store.get(key)
        if entry is None or entry.vector.size == 0:
            raise ConnectionsError(Messages.ERROR_EMBEDDINGS_FOR.format(path=document.path))
        nearest = find_nearest(
            entry.vector,
            self.store.items(),
            self.store.external,
            exclude_key=key,
            skip_sections=self.config.skip_sections,
            limit=self.config.results_count,
        )
        self.cache.set(key, nearest)
        return nearest

    async def search(self, text: str) -> list[Neighbor]:
        """Rank the index against free *text*; empty when embedding fails."""

        try:
            result = await self.backend.embed_batch([text])
        except EmbeddingError as exc:
            logger.warning("Search embedding failed: %s", exc)
            return []
        return find_nearest(
            result.vectors[0],
            self.store.items(),
            self.store.external,
            skip_sections=self.config.skip_sections,
            limit=self.config.results_count,
        )

    async def retrieve_block(self, block_path: str, limit: int | None = None) -> str | None:
        """Return the body of the section addressed by *block_path*."""

        note_path = block_path.split("#")[0]
        document = Document(path=note_path, mtime=0.0)
        try:
            markdown = await self.source.read(document)
        except OSError:
            return None
        return _retrieve_block(markdown, block_path, limit)

    async def test_api_key(self) -> bool:
        return await check_api_key(self.backend)


async def check_api_key(backend: EmbeddingBackend) -> bool:
    """Embed a fixed sentence and report whether the provider answered."""

    try:
        result = await backend.embed_batch([TEST_SENTENCE])
    except EmbeddingError as exc:
        logger.info("API key is invalid: %s", exc)
        return False
    logger.info("API key is valid")
    return bool(result.vectors)
