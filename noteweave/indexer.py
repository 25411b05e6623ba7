"""Incremental embedding of a document source into an :class:`IndexStore`."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from typing import Iterable

from .collector import collect_garbage
from .config import Config, ExclusionRules
from .embedding import EmbeddingBackend
from .entries import BlockEntry, DocumentEntry, IndexEntry, as_vector
from .errors import EmbeddingError
from .fingerprint import (
    MAX_EMBED_STRING_LENGTH,
    block_is_fresh,
    block_matches,
    build_document_input,
    document_breadcrumbs,
    document_can_skip,
    fingerprint,
    identity_key,
)
from .pool import DEFAULT_BATCH_LIMIT, BoundedBatch
from .segmenter import iter_blocks
from .sources import Document, DocumentSource
from .store import IndexStore

logger = logging.getLogger(__name__)

BLOCK_BATCH_SIZE = 10
BLOCK_SAVE_INTERVAL = 30
DOCUMENT_SAVE_INTERVAL = 100
PATH_WITH_HASH_EXCLUSION = "path contains #"


@dataclass(slots=True)
class RunReport:
    """Counters for one indexing run."""

    total_files: int = 0
    deleted_embeddings: int = 0
    exclusions_logs: dict[str, int] = field(default_factory=dict)
    failed_embeddings: list[str] = field(default_factory=list)
    files: list[str] = field(default_factory=list)
    new_embeddings: int = 0
    token_usage: int = 0
    tokens_saved_by_cache: float = 0.0

    def log_exclusion(self, matcher: str) -> None:
        self.exclusions_logs[matcher] = self.exclusions_logs.get(matcher, 0) + 1

    def to_dict(self) -> dict[str, object]:
        return asdict(self)


@dataclass(slots=True)
class _Request:
    key: str
    text: str
    entry: IndexEntry


class Indexer:
    """Bring the index up to date with the documents of *source*."""

    def __init__(
        self,
        store: IndexStore,
        source: DocumentSource,
        backend: EmbeddingBackend,
        *,
        config: Config | None = None,
        rules: ExclusionRules | None = None,
        batch_limit: int = DEFAULT_BATCH_LIMIT,
    ) -> None:
        self.store = store
        self.source = source
        self.backend = backend
        self.config = config or Config()
        self.rules = rules or ExclusionRules.from_config(self.config)
        self.batch_limit = batch_limit
        self.report = RunReport()

    async def embed_all(
        self,
        *,
        open_paths: Iterable[str] = (),
        force_paths: Iterable[str] = (),
    ) -> RunReport:
        """Embed every stale document, then persist and return the run report.

        Garbage collection runs first. Documents in *open_paths* are left for
        later; documents in *force_paths* bypass the modification-time check.
        """

        documents = await self.source.list_documents()
        report = self.report
        report.total_files = len(documents)
        report.deleted_embeddings += collect_garbage(self.store, documents)
        failed = set(await self.store.load_failed_files())
        open_set = set(open_paths)
        force_set = set(force_paths)
        batch = BoundedBatch(self.batch_limit)
        for position, document in enumerate(documents):
            if "#" in document.path:
                report.log_exclusion(PATH_WITH_HASH_EXCLUSION)
                continue
            existing = self.store.get(identity_key(document.path))
            if (
                document.path not in force_set
                and existing is not None
                and existing.mtime >= document.mtime
            ):
                continue
            if document.path in failed:
                logger.info("Skipping previously failed note %s, use `index --retry-failed`", document.path)
                continue
            matcher = self.rules.excluded_by(document.path)
            if matcher is not None:
                report.log_exclusion(matcher)
                continue
            if document.path in open_set:
                continue
            await batch.submit(self.embed_document(document, save=False))
            if position > 0 and position % DOCUMENT_SAVE_INTERVAL == 0:
                await self.store.save()
        await batch.join()
        await self.store.save()
        if report.failed_embeddings:
            await self.store.record_failures(report.failed_embeddings)
        return self.finish_run()

    async def embed_document(self, document: Document, save: bool = True) -> None:
        """Embed the stale sections of *document* and the note as a whole."""

        key = identity_key(document.path)
        matcher = self.rules.path_only_match(document.path)
        if matcher is not None:
            logger.debug("Title only note %s (matcher %s)", document.path, matcher)
            await self._embed_path_only(document, key)
        else:
            await self._embed_content(document, key)
        if save:
            await self.store.save()

    async def retry_failed(self) -> RunReport:
        """Forget the failure list and re-attempt exactly those notes."""

        previous = await self.store.clear_failures()
        if not previous:
            logger.info("No failed notes to retry.")
        return await self.embed_all(force_paths=previous)

    async def force_refresh(self) -> RunReport:
        archive = await self.store.force_refresh()
        if archive:
            logger.info("Archived embeddings file to %s", archive)
        return await self.embed_all()

    def finish_run(self) -> RunReport:
        """Emit the report when enabled and start a fresh one."""

        report = self.report
        if self.config.log_render and report.new_embeddings:
            logger.info("%s", json.dumps(report.to_dict(), indent=2))
        self.report = RunReport()
        return report

    async def _embed_path_only(self, document: Document, key: str) -> None:
        embed_input = document_breadcrumbs(document.path)
        input_fingerprint = fingerprint(embed_input)
        existing = self.store.get_document(key)
        if existing is not None and existing.fingerprint == input_fingerprint:
            self.store.touch(key, document.mtime)
            return
        entry = DocumentEntry(
            path=document.path,
            vector=as_vector(None),
            mtime=document.mtime,
            fingerprint=input_fingerprint,
            size=document.size,
        )
        await self._send([_Request(key=key, text=embed_input, entry=entry)])

    async def _embed_content(self, document: Document, key: str) -> None:
        content = await self.source.read(document)
        blocks = []
        if not self.config.skip_sections:
            blocks = list(
                iter_blocks(
                    content,
                    document.path,
                    header_exclusions=self.rules.header_exclusions,
                    on_exclusion=self.report.log_exclusion,
                )
            )
        # a single section carries the same content as the whole note
        has_blocks = len(blocks) > 1
        requests: list[_Request] = []
        block_keys: list[str] = []
        unchanged_keys: list[str] = []
        since_save = 0
        for block in blocks if has_blocks else ():
            block_key = identity_key(block.path)
            block_keys.append(block_key)
            existing_block = self.store.get_block(block_key)
            if block_is_fresh(existing_block, document.mtime):
                unchanged_keys.append(block_key)
                continue
            block_fingerprint = fingerprint(block.text)
            if block_matches(existing_block, block_fingerprint):
                self.store.touch(block_key, document.mtime)
                unchanged_keys.append(block_key)
                continue
            entry = BlockEntry(
                path=block.path,
                vector=as_vector(None),
                parent_key=key,
                mtime=document.mtime,
                fingerprint=block_fingerprint,
                length=block.length,
            )
            requests.append(_Request(key=block_key, text=block.text, entry=entry))
            if len(requests) >= BLOCK_BATCH_SIZE:
                await self._send(requests)
                since_save += len(requests)
                requests = []
                if since_save >= BLOCK_SAVE_INTERVAL:
                    await self.store.save()
                    since_save = 0

        headings = None
        if len(content) >= MAX_EMBED_STRING_LENGTH:
            headings = await self.source.outline(document)
        embed_input = build_document_input(document.path, content, headings)
        input_fingerprint = fingerprint(embed_input)
        sorted_keys = sorted(block_keys) if has_blocks else None
        existing = self.store.get_document(key)
        if document_can_skip(
            existing,
            input_fingerprint=input_fingerprint,
            block_keys=sorted(unchanged_keys) if has_blocks else None,
        ):
            self.store.touch(key, document.mtime, block_keys=sorted_keys)
            # cached sections saved roughly as many tokens again
            divisor = 2 if unchanged_keys else 4
            self.report.tokens_saved_by_cache += len(embed_input) / divisor
            logger.debug("Skipping cached note %s", document.path)
        else:
            entry = DocumentEntry(
                path=document.path,
                vector=as_vector(None),
                mtime=document.mtime,
                fingerprint=input_fingerprint,
                size=document.size,
                block_keys=sorted_keys,
            )
            requests.append(_Request(key=key, text=embed_input, entry=entry))
        if requests:
            await self._send(requests)

    async def _send(self, requests: list[_Request]) -> None:
        paths = [request.entry.path for request in requests]
        try:
            result = await self.backend.embed_batch([request.text for request in requests])
        except EmbeddingError as exc:
            logger.warning("Failed embedding batch (%s): %s", ", ".join(paths), exc)
            self.report.failed_embeddings.extend(paths)
            return
        self.report.new_embeddings += len(requests)
        self.report.token_usage += result.total_tokens
        if self.config.log_render_files:
            self.report.files.extend(paths)
        single = len(requests) == 1
        for request, vector in zip(requests, result.vectors):
            request.entry.vector = as_vector(vector)
            if single:
                request.entry.tokens = result.total_tokens
            self.store.put(request.key, request.entry)
