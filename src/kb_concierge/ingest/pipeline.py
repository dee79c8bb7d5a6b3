"""Index build pipeline: chunk -> batch embed -> assemble -> swap."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path

from kb_concierge.config import IndexConfig
from kb_concierge.ingest.chunker import CharWindowChunker
from kb_concierge.ingest.embedder import Embedder, embed_in_batches
from kb_concierge.ingest.sources import load_documents
from kb_concierge.retrieval.vector_store import IndexHandle, VectorIndex
from kb_concierge.types import Chunk, SourceDocument

logger = logging.getLogger(__name__)


class IndexBuilder:
    """Rebuilds the whole index from scratch and swaps it into the handle.

    Builds run rarely (startup, manual reindex). In-flight searches keep
    using the previous index until the swap, and a failed embedding batch
    leaves the previous index in place.
    """

    def __init__(
        self,
        chunker: CharWindowChunker,
        embedder: Embedder,
        handle: IndexHandle,
        config: IndexConfig | None = None,
    ) -> None:
        self._chunker = chunker
        self._embedder = embedder
        self._handle = handle
        self._config = config or IndexConfig()

    def build(self, documents: Sequence[SourceDocument]) -> VectorIndex:
        """Build and install a new index for ``documents``."""

        pending: list[tuple[SourceDocument, str]] = []
        for document in documents:
            for text in self._chunker.chunk(document.body):
                pending.append((document, text))

        if not pending:
            index = VectorIndex.empty()
        else:
            vectors = embed_in_batches(
                self._embedder,
                [text for _, text in pending],
                self._config.embed_batch_size,
            )
            chunks = [
                Chunk(
                    source_title=document.title,
                    source_url=document.url,
                    updated_at=document.updated_at,
                    text=text,
                    vector=tuple(float(value) for value in vector),
                )
                for (document, text), vector in zip(pending, vectors, strict=True)
            ]
            index = VectorIndex(chunks)

        self._handle.swap(index)
        logger.info(
            "Index rebuilt: %d documents, %d chunks, dimension %d",
            len(documents),
            len(index),
            index.dimension,
        )
        return index

    def build_from_path(self, path: str | Path | None) -> VectorIndex:
        """Load documents from a KB source and build from them."""

        return self.build(load_documents(path))
