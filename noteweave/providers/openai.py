"""OpenAI-backed embedding backend for noteweave."""

from __future__ import annotations

import asyncio
import logging
from typing import Sequence

import numpy as np
from dotenv import load_dotenv
from openai import AsyncOpenAI, RateLimitError

from ..config import DEFAULT_MODEL, resolve_api_key
from ..embedding import EmbeddingResult
from ..errors import EmbeddingError
from ..text import Messages

logger = logging.getLogger(__name__)

_MAX_RETRIES = 3
_RATE_LIMIT_STATUS = 429


class OpenAIEmbeddingBackend:
    """Embedding backend that calls OpenAI's embeddings API."""

    def __init__(
        self,
        *,
        model_name: str = DEFAULT_MODEL,
        api_key: str | None = None,
        base_url: str | None = None,
        client: AsyncOpenAI | None = None,
    ) -> None:
        load_dotenv()
        self.model_name = model_name
        self.api_key = resolve_api_key(api_key)
        if client is not None:
            self._client = client
            return
        if not self.api_key:
            raise EmbeddingError(Messages.ERROR_API_KEY_MISSING)
        client_kwargs: dict[str, object] = {"api_key": self.api_key, "max_retries": 0}
        if base_url:
            client_kwargs["base_url"] = base_url.rstrip("/")
        self._client = AsyncOpenAI(**client_kwargs)

    async def embed_batch(self, inputs: Sequence[str]) -> EmbeddingResult:
        """Embed *inputs* in one request; vectors follow input order."""

        if not inputs or any(not text for text in inputs):
            raise EmbeddingError(Messages.ERROR_EMPTY_INPUT)
        attempt = 0
        while True:
            try:
                response = await self._client.embeddings.create(
                    model=self.model_name,
                    input=list(inputs),
                )
                break
            except Exception as exc:
                if _is_rate_limit(exc) and attempt < _MAX_RETRIES:
                    attempt += 1
                    logger.warning("Rate limited, retrying in %ss", attempt**2)
                    await _sleep(attempt**2)
                    continue
                raise EmbeddingError(_format_openai_error(exc)) from exc
        return _parse_response(response, len(inputs))


def _parse_response(response: object, expected: int) -> EmbeddingResult:
    data = getattr(response, "data", None) or []
    vectors: list[np.ndarray | None] = [None] * expected
    for position, item in enumerate(data):
        embedding = getattr(item, "embedding", None)
        if embedding is None:
            continue
        index = getattr(item, "index", None)
        if not isinstance(index, int):
            index = position
        if 0 <= index < expected:
            vectors[index] = np.asarray(embedding, dtype=np.float64)
    if any(vector is None for vector in vectors):
        raise EmbeddingError(Messages.ERROR_NO_EMBEDDINGS)
    usage = getattr(response, "usage", None)
    total_tokens = getattr(usage, "total_tokens", None) or 0
    return EmbeddingResult(vectors=vectors, total_tokens=int(total_tokens))


async def _sleep(seconds: float) -> None:
    await asyncio.sleep(seconds)


def _extract_status_code(exc: Exception) -> int | None:
    for attr in ("status_code", "status", "http_status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(exc, "response", None)
    if response is not None:
        value = getattr(response, "status_code", None)
        if isinstance(value, int):
            return value
    return None


def _is_rate_limit(exc: Exception) -> bool:
    if isinstance(exc, RateLimitError):
        return True
    return _extract_status_code(exc) == _RATE_LIMIT_STATUS


def _format_openai_error(exc: Exception) -> str:
    message = getattr(exc, "message", None) or str(exc)
    return f"{Messages.ERROR_OPENAI_PREFIX}{message}"
