import threading

from conftest import KB_DOCUMENTS, CharCodeEmbedder

from kb_concierge.config import IndexConfig
from kb_concierge.retrieval.retriever import KnowledgeSearcher
from kb_concierge.retrieval.vector_store import IndexHandle, VectorIndex
from kb_concierge.types import Chunk


def _chunk(text: str, vector: tuple[float, ...], title: str = "doc") -> Chunk:
    return Chunk(source_title=title, source_url="", updated_at="", text=text, vector=vector)


def test_search_results_are_non_increasing_in_score(builder, searcher) -> None:
    builder.build(KB_DOCUMENTS)

    hits = searcher.search("How much is the monthly membership?", top_k=6)

    assert hits
    scores = [hit.score for hit in hits]
    assert scores == sorted(scores, reverse=True)


def test_query_identical_to_chunk_text_ranks_it_first(builder, searcher) -> None:
    builder.build(KB_DOCUMENTS)

    hits = searcher.search(KB_DOCUMENTS[1].body, top_k=3)

    assert hits[0].title == "Location"
    assert hits[0].url == "https://example.com/location"
    assert hits[0].score > 0.999


def test_empty_index_returns_nothing_without_embedding(embedder, handle) -> None:
    searcher = KnowledgeSearcher(handle, embedder)

    assert searcher.search("anything at all", top_k=3) == []
    assert embedder.queries == []


def test_top_k_is_clamped_to_configured_maximum() -> None:
    chunks = [_chunk(f"text {i}", (1.0, float(i))) for i in range(10)]
    handle = IndexHandle(VectorIndex(chunks))
    searcher = KnowledgeSearcher(
        handle, _FixedEmbedder([1.0, 1.0]), IndexConfig(max_top_k=4)
    )

    assert len(searcher.search("q", top_k=50)) == 4
    assert len(searcher.search("q", top_k=0)) == 1


def test_query_is_clamped_before_embedding(builder, searcher, embedder, index_config) -> None:
    builder.build(KB_DOCUMENTS)

    searcher.search("x" * 5000)

    assert len(embedder.queries[-1]) == index_config.max_query_chars


def test_ties_keep_insertion_order() -> None:
    chunks = [
        _chunk("first", (1.0, 0.0), title="a"),
        _chunk("second", (1.0, 0.0), title="b"),
        _chunk("third", (0.0, 1.0), title="c"),
        _chunk("fourth", (1.0, 0.0), title="d"),
    ]
    index = VectorIndex(chunks)

    ranked = index.search_by_vector([1.0, 0.0], k=4)

    assert [item.chunk.source_title for item in ranked] == ["a", "b", "d", "c"]


def test_zero_vectors_score_zero_instead_of_dividing_by_zero() -> None:
    index = VectorIndex([_chunk("blank", (0.0, 0.0)), _chunk("real", (0.0, 1.0))])

    ranked = index.search_by_vector([0.0, 1.0], k=2)
    assert ranked[0].chunk.text == "real"
    assert ranked[1].score == 0.0

    assert index.search_by_vector([0.0, 0.0], k=1)[0].score == 0.0


def test_swap_replaces_index_as_a_whole() -> None:
    old = VectorIndex([_chunk("old", (1.0,))])
    new = VectorIndex([_chunk("new-1", (1.0,)), _chunk("new-2", (1.0,))])
    handle = IndexHandle(old)
    snapshot = handle.current

    previous = handle.swap(new)

    assert previous is old
    assert handle.current is new
    assert handle.generation == 1
    assert [chunk.text for chunk in snapshot.chunks] == ["old"]


def test_concurrent_readers_see_whole_indexes() -> None:
    small = VectorIndex([_chunk("s", (1.0, 0.0))])
    large = VectorIndex([_chunk(f"l{i}", (1.0, 0.0)) for i in range(5)])
    handle = IndexHandle(small)
    seen: set[int] = set()

    def _reader() -> None:
        for _ in range(200):
            seen.add(len(handle.current.search_by_vector([1.0, 0.0], k=10)))

    def _writer() -> None:
        for i in range(200):
            handle.swap(large if i % 2 == 0 else small)

    threads = [threading.Thread(target=_reader) for _ in range(3)]
    threads.append(threading.Thread(target=_writer))
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert seen <= {1, 5}


class _FixedEmbedder(CharCodeEmbedder):
    def __init__(self, vector: list[float]) -> None:
        super().__init__(dimension=len(vector))
        self._vector = vector

    def embed_query(self, text: str) -> list[float]:
        self.queries.append(text)
        return list(self._vector)
