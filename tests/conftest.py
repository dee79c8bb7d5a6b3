"""Shared deterministic stubs for the test suite."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any

import pytest
from langchain_core.messages import AIMessage, BaseMessage

from kb_concierge.agent.registry import ToolRegistry
from kb_concierge.agent.tools import register_builtin_tools
from kb_concierge.config import ChunkingConfig, IndexConfig, SchedulingConfig
from kb_concierge.errors import PersistenceFailure
from kb_concierge.ingest.chunker import CharWindowChunker
from kb_concierge.ingest.embedder import Embedder
from kb_concierge.ingest.pipeline import IndexBuilder
from kb_concierge.retrieval.retriever import KnowledgeSearcher
from kb_concierge.retrieval.vector_store import IndexHandle
from kb_concierge.services.append_log import InMemoryAppendLog
from kb_concierge.types import SourceDocument


class CharCodeEmbedder(Embedder):
    """Bag-of-character-codes vectors; records every call it receives."""

    def __init__(self, dimension: int = 128) -> None:
        self.dimension = dimension
        self.document_batches: list[list[str]] = []
        self.queries: list[str] = []

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        self.document_batches.append(list(texts))
        return [self._embed(text) for text in texts]

    def embed_query(self, text: str) -> list[float]:
        self.queries.append(text)
        return self._embed(text)

    def _embed(self, text: str) -> list[float]:
        vector = [0.0] * self.dimension
        for char in text:
            vector[ord(char) % self.dimension] += 1.0
        return vector


class FakeCalendar:
    """Calendar collaborator that either books or fails on demand."""

    def __init__(self, *, fail: bool = False, event_id: str = "evt-123") -> None:
        self.fail = fail
        self.event_id = event_id
        self.events: list[dict[str, Any]] = []

    def create_event(
        self,
        *,
        summary: str,
        description: str,
        start: datetime,
        end: datetime,
        timezone: str,
    ) -> str:
        if self.fail:
            raise PersistenceFailure("calendar.create_event", "calendar unreachable")
        self.events.append(
            {
                "summary": summary,
                "description": description,
                "start": start,
                "end": end,
                "timezone": timezone,
            }
        )
        return self.event_id


class FailingAppendLog:
    def append(self, table: str, row: dict[str, Any]) -> None:
        raise PersistenceFailure(f"append:{table}", "sheet unavailable")


class ScriptedChatModel:
    """Stands in for a tool-bound chat model.

    ``responder`` is called with the messages of each completion and returns
    the next assistant message.
    """

    def __init__(self, responder: Callable[[list[BaseMessage]], AIMessage]) -> None:
        self._responder = responder
        self.bound_tools: list[Any] = []
        self.calls: list[list[BaseMessage]] = []

    def bind_tools(self, tools: Iterable[Any]) -> "ScriptedChatModel":
        self.bound_tools = list(tools)
        return self

    def invoke(self, messages: list[BaseMessage]) -> AIMessage:
        self.calls.append(list(messages))
        return self._responder(messages)


def scripted(*replies: AIMessage) -> ScriptedChatModel:
    queue = list(replies)
    return ScriptedChatModel(lambda _messages: queue.pop(0))


def tool_call(name: str, args: dict[str, Any], call_id: str) -> dict[str, Any]:
    return {"name": name, "args": args, "id": call_id}


KB_DOCUMENTS = [
    SourceDocument(
        title="Pricing",
        url="https://example.com/pricing",
        updated_at="2026-01-10",
        body="Monthly membership costs 45 dollars and includes unlimited classes.",
    ),
    SourceDocument(
        title="Location",
        url="https://example.com/location",
        updated_at="2026-02-01",
        body="Our studio is at 12 Harbor Street, open from 7am to 9pm every day.",
    ),
    SourceDocument(
        title="Parking",
        url="",
        updated_at="",
        body="Free parking is available behind the building for visitors.",
    ),
]


@pytest.fixture
def embedder() -> CharCodeEmbedder:
    return CharCodeEmbedder()


@pytest.fixture
def handle() -> IndexHandle:
    return IndexHandle()


@pytest.fixture
def index_config() -> IndexConfig:
    return IndexConfig(embed_batch_size=2, max_top_k=6)


@pytest.fixture
def builder(embedder, handle, index_config) -> IndexBuilder:
    chunker = CharWindowChunker(ChunkingConfig(max_chars=200, overlap_chars=40))
    return IndexBuilder(chunker, embedder, handle, index_config)


@pytest.fixture
def searcher(embedder, handle, index_config) -> KnowledgeSearcher:
    return KnowledgeSearcher(handle, embedder, index_config)


@pytest.fixture
def append_log() -> InMemoryAppendLog:
    return InMemoryAppendLog()


@pytest.fixture
def calendar() -> FakeCalendar:
    return FakeCalendar()


@pytest.fixture
def scheduling_config() -> SchedulingConfig:
    return SchedulingConfig(timezone="America/Mexico_City", utc_offset_hours=-6.0)


@pytest.fixture
def registry(searcher, append_log, calendar, scheduling_config) -> ToolRegistry:
    tools = ToolRegistry()
    register_builtin_tools(
        tools,
        searcher,
        append_log=append_log,
        calendar=calendar,
        scheduling=scheduling_config,
    )
    return tools
