"""Query-time knowledge-base search over the live index."""

from __future__ import annotations

import logging

from kb_concierge.config import IndexConfig
from kb_concierge.ingest.embedder import Embedder
from kb_concierge.retrieval.vector_store import IndexHandle
from kb_concierge.types import SearchHit

logger = logging.getLogger(__name__)


class KnowledgeSearcher:
    """Clamps query and result size, embeds the query, scans the index.

    An empty index short-circuits before the embedder is called, so the
    service answers (with no hits) even when no KB or embedding backend is
    available.
    """

    def __init__(
        self,
        handle: IndexHandle,
        embedder: Embedder,
        config: IndexConfig | None = None,
    ) -> None:
        self.handle = handle
        self.embedder = embedder
        self.config = config or IndexConfig()

    def clamp_top_k(self, top_k: int | None) -> int:
        requested = top_k if top_k is not None else self.config.default_top_k
        return max(1, min(requested, self.config.max_top_k))

    def search(self, query: str, top_k: int | None = None) -> list[SearchHit]:
        index = self.handle.current
        if index.is_empty():
            return []

        k = self.clamp_top_k(top_k)
        clamped_query = query.strip()[: self.config.max_query_chars]
        if not clamped_query:
            return []

        query_vector = self.embedder.embed_query(clamped_query)
        results = index.search_by_vector(query_vector, k)
        logger.debug("KB search returned %d hits for k=%d", len(results), k)
        return [
            SearchHit(
                title=item.chunk.source_title,
                url=item.chunk.source_url,
                updated_at=item.chunk.updated_at,
                snippet=_truncate(item.chunk.text, self.config.snippet_chars),
                score=item.score,
            )
            for item in results
        ]


def _truncate(text: str, max_length: int) -> str:
    text = " ".join(text.split())
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."
