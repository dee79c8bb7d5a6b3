"""Pydantic schemas for the HTTP endpoints."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    """Incoming chat message from the website widget."""

    message: str = Field(..., min_length=1, max_length=4000, description="The user's message")


class ChatResponse(BaseModel):
    reply: str
    rounds: int
    fell_back: bool
    trace_id: str


class SearchRequest(BaseModel):
    query: str = Field(..., min_length=1)
    top_k: int | None = Field(default=None, ge=1, le=50)


class SearchHitResponse(BaseModel):
    title: str
    canonical_url: str
    updated_at: str
    snippet: str
    score: float


class SearchResponse(BaseModel):
    items: list[SearchHitResponse]


class ReindexResponse(BaseModel):
    chunks: int
    dimension: int
    generation: int


class HealthResponse(BaseModel):
    status: str = "ok"
    mode: str
    llm_configured: bool
    calendar_configured: bool
    index_chunks: int
