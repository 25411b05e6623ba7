"""Embedding backend protocol and factory."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, Sequence

import numpy as np

if TYPE_CHECKING:  # pragma: no cover
    from .config import Config


@dataclass(slots=True)
class EmbeddingResult:
    """Vectors in input order plus the provider's token count."""

    vectors: list[np.ndarray] = field(default_factory=list)
    total_tokens: int = 0


class EmbeddingBackend(Protocol):
    """Minimal protocol for components that can embed text batches."""

    async def embed_batch(self, inputs: Sequence[str]) -> EmbeddingResult:
        """Return one vector per input or raise :class:`EmbeddingError`."""
        raise NotImplementedError  # pragma: no cover


def create_backend(config: "Config") -> EmbeddingBackend:
    """Build the remote backend described by *config*."""

    from .providers.openai import OpenAIEmbeddingBackend

    return OpenAIEmbeddingBackend(
        model_name=config.model,
        api_key=config.api_key,
        base_url=config.base_url,
    )
