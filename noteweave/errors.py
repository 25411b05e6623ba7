"""Exception types raised by the noteweave core."""

from __future__ import annotations


class NoteweaveError(RuntimeError):
    """Base class for all noteweave failures."""


class EmbeddingError(NoteweaveError):
    """Raised when the embedding provider cannot return vectors for a batch."""


class IndexLoadError(NoteweaveError):
    """Raised when the persisted index cannot be read after all retries."""


class IndexIntegrityError(NoteweaveError):
    """Raised when a save would shrink the persisted index implausibly."""

    def __init__(self, message: str, *, new_size: int, existing_size: int) -> None:
        super().__init__(message)
        self.new_size = new_size
        self.existing_size = existing_size


class ConnectionsError(NoteweaveError):
    """Raised when connections cannot be computed for a document."""


class DocumentExcludedError(ConnectionsError):
    """Raised when the queried document matches an exclusion rule."""
