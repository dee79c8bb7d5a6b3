"""Embedding abstractions, batching, and concrete embedders."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from hashlib import blake2b
from math import sqrt
from typing import Any

from kb_concierge.errors import EmbeddingError

logger = logging.getLogger(__name__)


class Embedder(ABC):
    """Embedder interface used by index builds and query-time search."""

    @abstractmethod
    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        """Embed many texts, preserving order."""

    @abstractmethod
    def embed_query(self, text: str) -> list[float]:
        """Embed one query."""


def embed_in_batches(
    embedder: Embedder, texts: Sequence[str], batch_size: int
) -> list[list[float]]:
    """Embed ``texts`` in order using batches of at most ``batch_size``.

    A batch that fails, or that returns the wrong number of vectors, aborts
    the whole call with ``EmbeddingError``.
    """

    if batch_size < 1:
        raise ValueError("batch_size must be positive")
    vectors: list[list[float]] = []
    for offset in range(0, len(texts), batch_size):
        batch = list(texts[offset : offset + batch_size])
        result = embedder.embed_documents(batch)
        if len(result) != len(batch):
            raise EmbeddingError(
                f"embedder returned {len(result)} vectors for {len(batch)} texts"
            )
        vectors.extend(result)
    return vectors


class HashingEmbedder(Embedder):
    """Deterministic sparse-like embedding without external model calls.

    Used for offline mode (no OpenAI key configured) and in tests. Tokens are
    hashed into a fixed number of signed buckets and the vector is
    L2-normalized.
    """

    def __init__(self, dimension: int = 256) -> None:
        self.dimension = dimension

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [self._embed(text) for text in texts]

    def embed_query(self, text: str) -> list[float]:
        return self._embed(text)

    def _embed(self, text: str) -> list[float]:
        vector = [0.0 for _ in range(self.dimension)]
        tokens = text.lower().split()
        if not tokens:
            return vector

        for token in tokens:
            digest = blake2b(token.encode("utf-8"), digest_size=8).digest()
            idx = int.from_bytes(digest[:4], "little") % self.dimension
            sign = -1.0 if digest[4] % 2 else 1.0
            vector[idx] += sign

        norm = sqrt(sum(value * value for value in vector))
        if norm == 0:
            return vector
        return [value / norm for value in vector]


class OpenAIEmbedder(Embedder):
    """OpenAI embeddings via ``langchain_openai``.

    Every upstream failure is re-raised as ``EmbeddingError`` carrying the
    HTTP status when the client exposes one.
    """

    def __init__(
        self,
        *,
        api_key: str,
        model: str = "text-embedding-3-small",
        client: Any | None = None,
    ) -> None:
        if client is None:
            from langchain_openai import OpenAIEmbeddings

            client = OpenAIEmbeddings(model=model, api_key=api_key)
        self._client = client
        self.model = model

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        try:
            return self._client.embed_documents(texts)
        except Exception as exc:
            raise _as_embedding_error(exc) from exc

    def embed_query(self, text: str) -> list[float]:
        try:
            return self._client.embed_query(text)
        except Exception as exc:
            raise _as_embedding_error(exc) from exc


def _as_embedding_error(exc: Exception) -> EmbeddingError:
    status = getattr(exc, "status_code", None)
    logger.error("Embedding request failed (%s): %s", type(exc).__name__, exc)
    return EmbeddingError(str(exc) or type(exc).__name__, status=status)
