"""FastAPI entrypoint for chat, search, reindex and trace endpoints.

Run with:
    uvicorn kb_concierge.api.main:app --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
from typing import Any

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from kb_concierge.agent.fallback import OfflineResponder
from kb_concierge.agent.orchestrator import ConversationOrchestrator
from kb_concierge.agent.registry import ToolRegistry
from kb_concierge.agent.tools import register_builtin_tools
from kb_concierge.api.schemas import (
    ChatRequest,
    ChatResponse,
    HealthResponse,
    ReindexResponse,
    SearchRequest,
    SearchResponse,
)
from kb_concierge.config import Settings
from kb_concierge.errors import CompletionError, EmbeddingError
from kb_concierge.ingest.chunker import CharWindowChunker
from kb_concierge.ingest.embedder import Embedder, HashingEmbedder, OpenAIEmbedder
from kb_concierge.ingest.pipeline import IndexBuilder
from kb_concierge.obs.tracing import TraceStore
from kb_concierge.retrieval.retriever import KnowledgeSearcher
from kb_concierge.retrieval.vector_store import IndexHandle
from kb_concierge.services.append_log import AppendLog, SqliteAppendLog
from kb_concierge.services.calendar_client import CalendarClient, HttpCalendarClient

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Runtime:
    """Everything a request needs, built once per process."""

    settings: Settings
    handle: IndexHandle
    builder: IndexBuilder
    searcher: KnowledgeSearcher
    registry: ToolRegistry
    trace_store: TraceStore
    responder: ConversationOrchestrator | OfflineResponder
    calendar_configured: bool


def _create_llm(settings: Settings) -> Any:
    if not settings.openai_api_key:
        return None

    from langchain_openai import ChatOpenAI

    return ChatOpenAI(model=settings.openai_model, api_key=settings.openai_api_key, temperature=0)


def _create_embedder(settings: Settings) -> Embedder:
    if not settings.openai_api_key:
        return HashingEmbedder()
    return OpenAIEmbedder(api_key=settings.openai_api_key, model=settings.openai_embedding_model)


def _create_calendar(settings: Settings) -> CalendarClient | None:
    if not settings.calendar_api_token:
        return None
    return HttpCalendarClient(
        settings.calendar_api_token,
        calendar_id=settings.calendar_id,
        base_url=settings.calendar_base_url,
    )


def build_runtime(
    settings: Settings,
    *,
    llm: Any | None = None,
    embedder: Embedder | None = None,
    append_log: AppendLog | None = None,
    calendar: CalendarClient | None = None,
) -> Runtime:
    """Wire collaborators together; explicit arguments override settings."""

    embedder = embedder or _create_embedder(settings)
    llm = llm if llm is not None else _create_llm(settings)
    calendar = calendar if calendar is not None else _create_calendar(settings)

    handle = IndexHandle()
    builder = IndexBuilder(CharWindowChunker(settings.chunking), embedder, handle, settings.index)
    searcher = KnowledgeSearcher(handle, embedder, settings.index)
    registry = ToolRegistry()
    register_builtin_tools(
        registry,
        searcher,
        append_log=append_log or SqliteAppendLog(settings.append_log_path),
        calendar=calendar,
        scheduling=settings.scheduling,
        lead=settings.lead,
    )
    trace_store = TraceStore()
    responder: ConversationOrchestrator | OfflineResponder
    if llm is not None:
        responder = ConversationOrchestrator(
            llm=llm,
            tool_registry=registry,
            trace_store=trace_store,
            config=settings.agent,
        )
    else:
        responder = OfflineResponder(
            tool_registry=registry,
            trace_store=trace_store,
            config=settings.agent,
        )
    return Runtime(
        settings=settings,
        handle=handle,
        builder=builder,
        searcher=searcher,
        registry=registry,
        trace_store=trace_store,
        responder=responder,
        calendar_configured=calendar is not None,
    )


_settings = Settings.from_env()


@asynccontextmanager
async def lifespan(application: FastAPI):
    """Build the runtime and the initial index unless a test injected one."""
    if getattr(application.state, "runtime", None) is None:
        runtime = build_runtime(_settings)
        try:
            runtime.builder.build_from_path(_settings.kb_path)
        except EmbeddingError:
            logger.exception("Initial index build failed; serving with an empty index")
        application.state.runtime = runtime
        logger.info("Runtime ready in %s mode.", runtime.responder.mode)
    yield


app = FastAPI(title="KB Concierge", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)


@app.middleware("http")
async def add_request_id(request: Request, call_next) -> Response:
    """Attach a request id to the logs and the ``X-Request-ID`` header."""
    request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
    request.state.request_id = request_id
    logger.info("[%s] %s %s", request_id, request.method, request.url.path)
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


def _runtime(request: Request) -> Runtime:
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(status_code=503, detail="Service is starting up. Try again shortly.")
    return runtime


@app.get("/")
def root() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/health", response_model=HealthResponse)
def health(request: Request) -> HealthResponse:
    runtime = _runtime(request)
    return HealthResponse(
        mode=runtime.responder.mode,
        llm_configured=isinstance(runtime.responder, ConversationOrchestrator),
        calendar_configured=runtime.calendar_configured,
        index_chunks=len(runtime.handle.current),
    )


@app.post("/api/chat", response_model=ChatResponse)
def chat(body: ChatRequest, request: Request) -> ChatResponse:
    runtime = _runtime(request)
    request_id = getattr(request.state, "request_id", "?")
    try:
        result = runtime.responder.run(body.message)
    except (CompletionError, EmbeddingError) as exc:
        logger.exception("[%s] Upstream model failure", request_id)
        raise HTTPException(
            status_code=502,
            detail="The assistant is temporarily unavailable. Please try again.",
        ) from exc
    return ChatResponse(
        reply=result.reply,
        rounds=result.rounds,
        fell_back=result.fell_back,
        trace_id=result.trace_id,
    )


@app.post("/api/search", response_model=SearchResponse)
def search(body: SearchRequest, request: Request) -> dict[str, Any]:
    runtime = _runtime(request)
    try:
        hits = runtime.searcher.search(body.query, body.top_k)
    except EmbeddingError as exc:
        logger.exception("Search failed")
        raise HTTPException(status_code=502, detail="Search is temporarily unavailable.") from exc
    return {"items": [hit.as_payload() for hit in hits]}


@app.post("/api/reindex", response_model=ReindexResponse)
def reindex(request: Request) -> ReindexResponse:
    runtime = _runtime(request)
    try:
        index = runtime.builder.build_from_path(runtime.settings.kb_path)
    except EmbeddingError as exc:
        logger.exception("Reindex failed; previous index kept")
        raise HTTPException(status_code=502, detail="Reindex failed; previous index kept.") from exc
    return ReindexResponse(
        chunks=len(index),
        dimension=index.dimension,
        generation=runtime.handle.generation,
    )


@app.get("/traces")
def traces(request: Request, limit: int = 20) -> dict[str, Any]:
    runtime = _runtime(request)
    records = [asdict(record) for record in runtime.trace_store.list_recent(limit=limit)]
    return {"items": records}


@app.get("/traces/{trace_id}")
def trace_detail(trace_id: str, request: Request) -> dict[str, Any]:
    runtime = _runtime(request)
    try:
        record = runtime.trace_store.get(trace_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return asdict(record)


@app.get("/metrics")
def metrics(request: Request) -> dict[str, Any]:
    return _runtime(request).trace_store.summary()
