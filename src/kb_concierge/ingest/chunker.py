"""Fixed-size sliding-window chunking over raw characters."""

from __future__ import annotations

from collections.abc import Iterator

from kb_concierge.config import ChunkingConfig
from kb_concierge.errors import ConfigError


def iter_windows(body: str, max_len: int, overlap: int) -> Iterator[tuple[int, str]]:
    """Yield ``(start, window)`` pairs covering ``body``.

    Window ``i + 1`` starts ``max_len - overlap`` characters after window
    ``i``, so the last ``overlap`` characters of a window reappear at the
    head of the next one. Iteration stops after the first window that
    reaches the end of ``body``.
    """

    _validate(max_len, overlap)
    stride = max_len - overlap
    start = 0
    while start < len(body):
        yield start, body[start : start + max_len]
        if start + max_len >= len(body):
            break
        start += stride


def chunk_text(body: str, max_len: int, overlap: int) -> list[str]:
    """Split ``body`` into trimmed, non-empty overlapping windows."""

    chunks: list[str] = []
    for _, window in iter_windows(body, max_len, overlap):
        text = window.strip()
        if text:
            chunks.append(text)
    return chunks


class CharWindowChunker:
    """Binds a ``ChunkingConfig`` to ``chunk_text``.

    The configuration is validated eagerly so a bad overlap fails at startup
    rather than during the first index build.
    """

    def __init__(self, config: ChunkingConfig | None = None) -> None:
        self.config = config or ChunkingConfig()
        _validate(self.config.max_chars, self.config.overlap_chars)

    def chunk(self, body: str) -> list[str]:
        return chunk_text(body, self.config.max_chars, self.config.overlap_chars)


def _validate(max_len: int, overlap: int) -> None:
    if max_len < 1:
        raise ConfigError(f"max_len must be positive, got {max_len}")
    if overlap < 0:
        raise ConfigError(f"overlap must not be negative, got {overlap}")
    if overlap >= max_len:
        raise ConfigError(
            f"overlap ({overlap}) must be less than max_len ({max_len})"
        )
