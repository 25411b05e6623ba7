"""noteweave package initialization."""

from __future__ import annotations

from .api import Connections, check_api_key
from .errors import (
    ConnectionsError,
    DocumentExcludedError,
    EmbeddingError,
    IndexIntegrityError,
    IndexLoadError,
    NoteweaveError,
)
from .indexer import Indexer, RunReport
from .nearest import NearestCache, Neighbor, cosine_similarity, find_nearest
from .store import IndexStore

__all__ = [
    "__version__",
    "Connections",
    "ConnectionsError",
    "DocumentExcludedError",
    "EmbeddingError",
    "IndexIntegrityError",
    "IndexLoadError",
    "IndexStore",
    "Indexer",
    "NearestCache",
    "Neighbor",
    "NoteweaveError",
    "RunReport",
    "check_api_key",
    "cosine_similarity",
    "find_nearest",
    "get_version",
]

__version__ = "0.1.0"


def get_version() -> str:
    """Return the current package version."""
    return __version__
