from __future__ import annotations

import re
from typing import Sequence

import numpy as np
import pytest

from noteweave.embedding import EmbeddingResult
from noteweave.errors import EmbeddingError
from noteweave.sources import Document, parse_outline

VOCABULARY = ("alpha", "beta", "gamma", "delta", "epsilon")
_WORD = re.compile(r"[a-z]+")


def word_vector(text: str) -> np.ndarray:
    """Bag-of-words vector over a tiny vocabulary plus a constant bias term."""
    words = _WORD.findall(text.lower())
    counts = [float(words.count(term)) for term in VOCABULARY]
    return np.asarray(counts + [0.1], dtype=np.float64)


class FakeBackend:
    def __init__(self, fail_markers: Sequence[str] = ()) -> None:
        self.calls: list[list[str]] = []
        self.fail_markers = list(fail_markers)

    @property
    def inputs(self) -> list[str]:
        return [text for call in self.calls for text in call]

    async def embed_batch(self, inputs: Sequence[str]) -> EmbeddingResult:
        self.calls.append(list(inputs))
        if not inputs:
            raise EmbeddingError("empty")
        for text in inputs:
            if any(marker in text for marker in self.fail_markers):
                raise EmbeddingError("induced failure")
        return EmbeddingResult(
            vectors=[word_vector(text) for text in inputs],
            total_tokens=sum(len(text.split()) for text in inputs),
        )


class MemorySource:
    """In-memory document source keyed by vault-relative path."""

    def __init__(self, notes: dict[str, str] | None = None, mtime: float = 1000.0) -> None:
        self.notes: dict[str, str] = {}
        self.mtimes: dict[str, float] = {}
        for path, content in (notes or {}).items():
            self.put(path, content, mtime)

    def put(self, path: str, content: str, mtime: float) -> None:
        self.notes[path] = content
        self.mtimes[path] = mtime

    def remove(self, path: str) -> None:
        del self.notes[path]
        del self.mtimes[path]

    def document(self, path: str) -> Document:
        return Document(path=path, mtime=self.mtimes[path], size=len(self.notes[path].encode("utf-8")))

    async def list_documents(self) -> list[Document]:
        return [self.document(path) for path in sorted(self.notes)]

    async def read(self, document: Document) -> str:
        try:
            return self.notes[document.path]
        except KeyError as exc:
            raise FileNotFoundError(document.path) from exc

    async def outline(self, document: Document):
        return parse_outline(await self.read(document))


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def memory_source_factory():
    return MemorySource


@pytest.fixture
def failing_backend_factory():
    return FakeBackend


@pytest.fixture(autouse=True)
def temp_config_home(tmp_path, monkeypatch):
    config_dir = tmp_path / "config"
    config_file = config_dir / "config.json"
    monkeypatch.setattr("noteweave.config.CONFIG_DIR", config_dir)
    monkeypatch.setattr("noteweave.config.CONFIG_FILE", config_file)
    monkeypatch.delenv("NOTEWEAVE_API_KEY", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    return config_file
