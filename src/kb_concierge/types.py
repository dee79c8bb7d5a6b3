"""Shared domain models."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True)
class SourceDocument:
    """A titled knowledge-base document before chunking."""

    title: str
    body: str
    url: str = ""
    updated_at: str = ""


@dataclass(frozen=True, slots=True)
class Chunk:
    """An embedded window of a source document."""

    source_title: str
    source_url: str
    updated_at: str
    text: str
    vector: tuple[float, ...]


@dataclass(slots=True)
class SearchHit:
    """A similarity search result."""

    title: str
    url: str
    updated_at: str
    snippet: str
    score: float

    def as_payload(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "canonical_url": self.url,
            "updated_at": self.updated_at,
            "snippet": self.snippet,
            "score": round(self.score, 6),
        }


@dataclass(slots=True)
class ToolCall:
    """A tool invocation requested by the model.

    ``error`` is set when the model emitted a call whose arguments could not
    be parsed; such calls are answered with a validation failure.
    """

    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)
    error: str | None = None


@dataclass(slots=True)
class ToolResult:
    """Outcome of one tool invocation. Failures are data, not exceptions."""

    ok: bool
    payload: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, **payload: Any) -> "ToolResult":
        return cls(ok=True, payload=payload)

    @classmethod
    def failure(cls, code: str, *, status: int, **extra: Any) -> "ToolResult":
        return cls(ok=False, payload={"code": code, "status": status, **extra})

    @classmethod
    def manual_followup(cls, **extra: Any) -> "ToolResult":
        return cls(ok=False, payload={"status": "manual_followup", **extra})

    def as_dict(self) -> dict[str, Any]:
        return {"ok": self.ok, **self.payload}

    def to_content(self) -> str:
        return json.dumps(self.as_dict(), ensure_ascii=False, default=str)


@dataclass(slots=True)
class ToolTrace:
    """Trace record for an executed tool call."""

    name: str
    input_payload: dict[str, Any]
    output_preview: str
    latency_ms: float
    ok: bool = True
