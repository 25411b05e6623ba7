import asyncio
import json

import pytest

from noteweave.config import Config
from noteweave.errors import IndexIntegrityError
from noteweave.fingerprint import build_document_input, identity_key
from noteweave.indexer import PATH_WITH_HASH_EXCLUSION, Indexer
from noteweave.storage import MemoryStorage
from noteweave.store import FAILED_FILE, INDEX_FILE, IndexStore

BODY_ONE = "alpha beta gamma alpha beta gamma alpha beta gamma alpha beta gamma"
BODY_TWO = "delta epsilon delta epsilon delta epsilon delta epsilon delta epsilon"
TWO_SECTIONS = f"# One\n{BODY_ONE}\n# Two\n{BODY_TWO}\n"


class RecordingStorage(MemoryStorage):
    """Remember how many entries every write of the index file carried."""

    def __init__(self, files=None):
        super().__init__(files)
        self.index_sizes: list[int] = []

    async def write(self, name, content):
        if name == INDEX_FILE:
            self.index_sizes.append(len(json.loads(content)))
        await super().write(name, content)


class SlowStorage(MemoryStorage):
    """Suspend inside index writes and count how many overlap."""

    def __init__(self, files=None):
        super().__init__(files)
        self.in_flight = 0
        self.max_in_flight = 0

    async def write(self, name, content):
        if name != INDEX_FILE:
            await super().write(name, content)
            return
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0.01)
            await super().write(name, content)
        finally:
            self.in_flight -= 1


def _sections(count):
    return "".join(f"# Section {idx}\n{BODY_ONE} {idx}\n" for idx in range(count))


def _indexer(source, backend, storage=None, **settings):
    store = IndexStore(storage if storage is not None else MemoryStorage())
    return Indexer(store, source, backend, config=Config(**settings)), store


def test_first_run_embeds_sections_and_document_in_one_batch(memory_source_factory, fake_backend):
    source = memory_source_factory({"note.md": TWO_SECTIONS})
    indexer, store = _indexer(source, fake_backend)

    report = asyncio.run(indexer.embed_all())

    assert len(fake_backend.calls) == 1
    assert len(fake_backend.calls[0]) == 3
    assert report.new_embeddings == 3
    assert report.total_files == 1
    document = store.get_document(identity_key("note.md"))
    assert document.block_keys == sorted([identity_key("note.md#One"), identity_key("note.md#Two")])
    block = store.get_block(identity_key("note.md#Two"))
    assert block.parent_key == identity_key("note.md")
    assert block.vector.size > 0


def test_unchanged_vault_makes_no_requests(memory_source_factory, fake_backend):
    source = memory_source_factory({"note.md": TWO_SECTIONS})
    indexer, _ = _indexer(source, fake_backend)
    asyncio.run(indexer.embed_all())

    report = asyncio.run(indexer.embed_all())

    assert len(fake_backend.calls) == 1
    assert report.new_embeddings == 0


def test_touched_file_with_same_content_reuses_vectors(memory_source_factory, fake_backend):
    source = memory_source_factory({"note.md": TWO_SECTIONS})
    indexer, store = _indexer(source, fake_backend)
    asyncio.run(indexer.embed_all())

    source.put("note.md", TWO_SECTIONS, 2000.0)
    report = asyncio.run(indexer.embed_all())

    assert len(fake_backend.calls) == 1
    assert report.new_embeddings == 0
    assert report.tokens_saved_by_cache > 0
    assert store.get(identity_key("note.md")).mtime == 2000.0
    assert store.get(identity_key("note.md#One")).mtime == 2000.0


def test_edited_section_reembeds_section_and_document(memory_source_factory, fake_backend):
    source = memory_source_factory({"note.md": TWO_SECTIONS})
    indexer, store = _indexer(source, fake_backend)
    asyncio.run(indexer.embed_all())
    first_vector = store.get(identity_key("note.md#One")).vector.copy()

    edited = f"# One\n{BODY_ONE}\n# Two\n{BODY_ONE} gamma gamma\n"
    source.put("note.md", edited, 3000.0)
    asyncio.run(indexer.embed_all())

    assert len(fake_backend.calls) == 2
    second_call = fake_backend.calls[1]
    assert len(second_call) == 2
    assert second_call[0].startswith("note: Two")
    assert second_call[1].startswith("note:\n")
    assert store.get(identity_key("note.md#One")).vector.tolist() == first_vector.tolist()


def test_sections_are_sent_in_batches_of_ten(memory_source_factory, fake_backend):
    source = memory_source_factory({"long.md": _sections(12)})
    indexer, _ = _indexer(source, fake_backend)

    asyncio.run(indexer.embed_all())

    assert [len(call) for call in fake_backend.calls] == [10, 3]


def test_long_note_is_saved_every_thirty_sections(memory_source_factory, fake_backend):
    storage = RecordingStorage()
    source = memory_source_factory({"long.md": _sections(35)})
    indexer, _ = _indexer(source, fake_backend, storage)

    asyncio.run(indexer.embed_all())

    # empty file, checkpoint after three batches, end of run
    assert storage.index_sizes == [0, 30, 36]


def test_large_vault_is_saved_every_hundred_notes(memory_source_factory, fake_backend):
    storage = RecordingStorage()
    source = memory_source_factory({f"note{idx:03}.md": BODY_ONE for idx in range(101)})
    indexer, store = _indexer(source, fake_backend, storage)

    asyncio.run(indexer.embed_all())

    assert storage.index_sizes == [0, 100, 101]
    assert len(store) == 101


def test_concurrent_checkpoints_never_overlap(memory_source_factory, fake_backend):
    storage = SlowStorage()
    notes = {f"note{idx}.md": _sections(35) for idx in range(4)}
    source = memory_source_factory(notes)
    indexer, store = _indexer(source, fake_backend, storage)

    asyncio.run(indexer.embed_all())

    assert storage.max_in_flight == 1
    assert len(json.loads(storage.files[INDEX_FILE])) == len(store) == 4 * 36


def test_single_request_records_token_count(memory_source_factory, fake_backend):
    source = memory_source_factory({"plain.md": BODY_ONE})
    indexer, store = _indexer(source, fake_backend)

    report = asyncio.run(indexer.embed_all())

    expected = build_document_input("plain.md", BODY_ONE, None)
    assert fake_backend.inputs == [expected]
    assert store.get_document(identity_key("plain.md")).tokens == len(expected.split())
    assert report.token_usage == len(expected.split())


def test_document_without_sections_saves_quarter_of_input(memory_source_factory, fake_backend):
    source = memory_source_factory({"plain.md": BODY_ONE})
    indexer, _ = _indexer(source, fake_backend)
    asyncio.run(indexer.embed_all())

    source.put("plain.md", BODY_ONE, 5000.0)
    report = asyncio.run(indexer.embed_all())

    expected = build_document_input("plain.md", BODY_ONE, None)
    assert report.tokens_saved_by_cache == len(expected) / 4


def test_failed_notes_are_recorded_skipped_and_retried(memory_source_factory, failing_backend_factory):
    backend = failing_backend_factory(fail_markers=("epsilon",))
    source = memory_source_factory({"bad.md": BODY_TWO, "good.md": BODY_ONE})
    storage = MemoryStorage()
    indexer, store = _indexer(source, backend, storage)

    report = asyncio.run(indexer.embed_all())

    assert report.failed_embeddings == ["bad.md"]
    assert storage.files[FAILED_FILE] == "bad.md"
    assert store.get(identity_key("bad.md")) is None

    calls_before = len(backend.calls)
    asyncio.run(indexer.embed_all())
    assert len(backend.calls) == calls_before

    backend.fail_markers = []
    report = asyncio.run(indexer.retry_failed())

    assert len(backend.calls) == calls_before + 1
    assert backend.calls[-1] == [build_document_input("bad.md", BODY_TWO, None)]
    assert report.failed_embeddings == []
    assert FAILED_FILE not in storage.files
    assert store.get(identity_key("bad.md")) is not None


def test_failed_sections_are_recorded_with_block_paths(memory_source_factory, failing_backend_factory):
    backend = failing_backend_factory(fail_markers=("epsilon",))
    source = memory_source_factory({"mixed.md": TWO_SECTIONS})
    storage = MemoryStorage()
    indexer, store = _indexer(source, backend, storage)

    asyncio.run(indexer.embed_all())

    assert storage.files[FAILED_FILE].split("\r\n") == ["mixed.md", "mixed.md#One", "mixed.md#Two"]
    assert store.failed_paths == ["mixed.md"]


def test_path_only_notes_embed_breadcrumbs(memory_source_factory, fake_backend):
    source = memory_source_factory({"daily/2024-01-01.md": TWO_SECTIONS})
    indexer, _ = _indexer(source, fake_backend, path_only="daily/")

    asyncio.run(indexer.embed_all())

    assert fake_backend.inputs == ["daily > 2024-01-01"]


def test_skip_sections_embeds_whole_note_only(memory_source_factory, fake_backend):
    source = memory_source_factory({"note.md": TWO_SECTIONS})
    indexer, store = _indexer(source, fake_backend, skip_sections=True)

    asyncio.run(indexer.embed_all())

    assert fake_backend.inputs == [build_document_input("note.md", TWO_SECTIONS, None)]
    assert store.get_document(identity_key("note.md")).block_keys is None


def test_exclusions_are_counted(memory_source_factory, fake_backend):
    source = memory_source_factory(
        {
            "draft-idea.md": BODY_ONE,
            "archive/old.md": BODY_ONE,
            "odd#name.md": BODY_ONE,
            "public.md": f"# Public\n{BODY_ONE}\n# Secret\n{BODY_TWO}\n",
        }
    )
    indexer, store = _indexer(
        source,
        fake_backend,
        file_exclusions="draft",
        folder_exclusions="archive",
        header_exclusions="Secret",
    )

    report = asyncio.run(indexer.embed_all())

    assert report.exclusions_logs == {
        "archive/": 1,
        "draft": 1,
        PATH_WITH_HASH_EXCLUSION: 1,
        "heading: Secret": 1,
    }
    assert [entry.path for _, entry in store.items()] == ["public.md"]


def test_open_documents_are_deferred(memory_source_factory, fake_backend):
    source = memory_source_factory({"a.md": BODY_ONE, "b.md": BODY_TWO})
    indexer, store = _indexer(source, fake_backend)

    asyncio.run(indexer.embed_all(open_paths=["a.md"]))

    assert identity_key("a.md") not in store
    assert identity_key("b.md") in store


def test_deleted_notes_are_collected(memory_source_factory, fake_backend):
    source = memory_source_factory({"a.md": BODY_ONE, "b.md": BODY_ONE, "c.md": BODY_ONE})
    indexer, store = _indexer(source, fake_backend)
    asyncio.run(indexer.embed_all())

    source.remove("b.md")
    report = asyncio.run(indexer.embed_all())

    assert report.deleted_embeddings == 1
    assert len(store) == 2


def test_save_refusing_to_shrink_stops_the_run(memory_source_factory, fake_backend):
    storage = MemoryStorage({INDEX_FILE: "{" + " " * 100_000 + "}"})
    source = memory_source_factory({"a.md": BODY_ONE})
    indexer, _ = _indexer(source, fake_backend, storage)

    with pytest.raises(IndexIntegrityError):
        asyncio.run(indexer.embed_all())

    assert len(storage.files[INDEX_FILE]) == 100_002


def test_report_lists_files_when_enabled(memory_source_factory, fake_backend):
    source = memory_source_factory({"a.md": BODY_ONE})
    indexer, _ = _indexer(source, fake_backend, log_render=True, log_render_files=True)

    report = asyncio.run(indexer.embed_all())

    assert report.files == ["a.md"]
    assert indexer.report.new_embeddings == 0
