"""Cosine-similarity ranking of index entries."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

import numpy as np
from sklearn.metrics.pairwise import cosine_similarity as _pairwise_cosine

from .config import DEFAULT_RESULTS_COUNT
from .entries import BlockEntry, ExternalEntry, IndexEntry, as_vector


@dataclass(slots=True)
class Neighbor:
    """One ranked connection."""

    key: str | None
    path: str
    similarity: float
    external: ExternalEntry | None = None

    @property
    def is_block(self) -> bool:
        return self.external is None and "#" in self.path


def cosine_similarity(left: Sequence[float] | np.ndarray, right: Sequence[float] | np.ndarray) -> float:
    """Return the cosine of the angle between two vectors.

    Zero-magnitude or mismatched vectors score 0 instead of raising.
    """

    a = as_vector(left)
    b = as_vector(right)
    if a.size == 0 or a.shape != b.shape:
        return 0.0
    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.dot(a, b) / (norm_a * norm_b))


def find_nearest(
    query_vector: Sequence[float] | np.ndarray,
    entries: Iterable[tuple[str, IndexEntry]],
    external: Iterable[ExternalEntry] = (),
    *,
    exclude_key: str | None = None,
    skip_sections: bool = False,
    limit: int = DEFAULT_RESULTS_COUNT,
) -> list[Neighbor]:
    """Rank *entries* and *external* against *query_vector*.

    The queried document and its own blocks are left out via *exclude_key*.
    Ties keep pool order: index entries first, then external ones.
    """

    query = as_vector(query_vector)
    candidates: list[Neighbor] = []
    vectors: list[np.ndarray] = []
    for key, entry in entries:
        if skip_sections and isinstance(entry, BlockEntry):
            continue
        if exclude_key is not None:
            if key == exclude_key:
                continue
            if isinstance(entry, BlockEntry) and entry.parent_key == exclude_key:
                continue
        candidates.append(Neighbor(key=key, path=entry.path, similarity=0.0))
        vectors.append(entry.vector)
    for item in external:
        candidates.append(Neighbor(key=None, path=item.path, similarity=0.0, external=item))
        vectors.append(item.vector)

    _score(query, vectors, candidates)
    ranked = sorted(candidates, key=lambda neighbor: neighbor.similarity, reverse=True)
    return ranked[:limit]


def _score(query: np.ndarray, vectors: list[np.ndarray], candidates: list[Neighbor]) -> None:
    if query.size == 0 or not np.any(query):
        return
    comparable = [idx for idx, vector in enumerate(vectors) if vector.shape == query.shape]
    if not comparable:
        return
    matrix = np.vstack([vectors[idx] for idx in comparable])
    similarities = _pairwise_cosine(query.reshape(1, -1), matrix)[0]
    for idx, score in zip(comparable, similarities):
        candidates[idx].similarity = float(score)


class NearestCache:
    """Per-document connection lists, kept for the life of the process."""

    def __init__(self) -> None:
        self._results: dict[str, list[Neighbor]] = {}

    def get(self, key: str) -> list[Neighbor] | None:
        return self._results.get(key)

    def set(self, key: str, neighbors: list[Neighbor]) -> None:
        self._results[key] = neighbors

    def invalidate(self, key: str | None = None) -> None:
        if key is None:
            self._results.clear()
        else:
            self._results.pop(key, None)

    def __len__(self) -> int:
        return len(self._results)
