"""Immutable in-memory vector index and the process-wide swappable handle."""

from __future__ import annotations

import threading
from collections.abc import Sequence
from dataclasses import dataclass
from math import sqrt

from kb_concierge.errors import ConfigError
from kb_concierge.types import Chunk

EPSILON = 1e-9


@dataclass(frozen=True, slots=True)
class ScoredChunk:
    chunk: Chunk
    score: float


class VectorIndex:
    """An ordered, read-only set of embedded chunks.

    Search is a full linear scan with cosine similarity, which is fine for
    knowledge bases of up to a few thousand chunks. The index is never
    mutated after construction; rebuilding means creating a new one.
    """

    __slots__ = ("_chunks", "_dimension")

    def __init__(self, chunks: Sequence[Chunk] = (), dimension: int = 0) -> None:
        chunks = tuple(chunks)
        if chunks:
            dimension = dimension or len(chunks[0].vector)
            for chunk in chunks:
                if len(chunk.vector) != dimension:
                    raise ConfigError(
                        f"chunk vector has dimension {len(chunk.vector)}, expected {dimension}"
                    )
        self._chunks = chunks
        self._dimension = dimension

    @classmethod
    def empty(cls) -> "VectorIndex":
        return cls()

    @property
    def chunks(self) -> tuple[Chunk, ...]:
        return self._chunks

    @property
    def dimension(self) -> int:
        return self._dimension

    def __len__(self) -> int:
        return len(self._chunks)

    def is_empty(self) -> bool:
        return not self._chunks

    def search_by_vector(self, query_vector: Sequence[float], k: int) -> list[ScoredChunk]:
        """Return up to ``k`` chunks by descending cosine similarity.

        ``sorted`` is stable, so equal scores keep insertion order.
        """

        if k < 1 or not self._chunks:
            return []
        if len(query_vector) != self._dimension:
            raise ConfigError(
                f"query vector has dimension {len(query_vector)}, index uses {self._dimension}"
            )
        query_norm = _norm(query_vector)
        scored = [
            ScoredChunk(chunk=chunk, score=_cosine(query_vector, query_norm, chunk.vector))
            for chunk in self._chunks
        ]
        scored.sort(key=lambda item: item.score, reverse=True)
        return scored[:k]


class IndexHandle:
    """Holds the live ``VectorIndex`` and swaps it atomically.

    Readers grab ``current`` once and keep that snapshot for the whole
    search. The lock only serializes writers; it is never held while
    embedding or searching.
    """

    def __init__(self, index: VectorIndex | None = None) -> None:
        self._index = index or VectorIndex.empty()
        self._swap_lock = threading.Lock()
        self._generation = 0

    @property
    def current(self) -> VectorIndex:
        return self._index

    @property
    def generation(self) -> int:
        return self._generation

    def swap(self, index: VectorIndex) -> VectorIndex:
        """Install ``index`` and return the one it replaced."""
        with self._swap_lock:
            previous = self._index
            self._index = index
            self._generation += 1
        return previous


def _norm(vector: Sequence[float]) -> float:
    return sqrt(sum(value * value for value in vector))


def _cosine(query: Sequence[float], query_norm: float, vector: Sequence[float]) -> float:
    dot = sum(x * y for x, y in zip(query, vector, strict=True))
    return dot / (query_norm * _norm(vector) + EPSILON)
