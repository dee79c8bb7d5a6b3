"""Configuration models for the concierge service.

Each section is a pydantic model with sane defaults so tests and local runs
can construct them directly. ``Settings.from_env`` assembles the full set
from environment variables (``.env`` is honoured via python-dotenv).
"""

from __future__ import annotations

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

_DEFAULT_FALLBACK_REPLY = (
    "Thanks for your message. I've recorded your request and someone from "
    "our team will follow up with you shortly."
)


class ChunkingConfig(BaseModel):
    """Configures fixed-size character windows with overlap."""

    max_chars: int = Field(default=1200, ge=1)
    overlap_chars: int = Field(default=200, ge=0)


class IndexConfig(BaseModel):
    """Configures embedding batches and search result bounds."""

    embed_batch_size: int = Field(default=64, ge=1, le=2048)
    max_top_k: int = Field(default=6, ge=1)
    default_top_k: int = Field(default=4, ge=1)
    max_query_chars: int = Field(default=500, ge=1)
    snippet_chars: int = Field(default=400, ge=20)


class AgentConfig(BaseModel):
    """Configures the completion/tool loop."""

    max_rounds: int = Field(default=3, ge=1)
    fallback_reply: str = Field(default=_DEFAULT_FALLBACK_REPLY, min_length=1)
    max_message_chars: int = Field(default=4000, ge=1)


class SchedulingConfig(BaseModel):
    """Configures visit slots and the lenient local date parser."""

    timezone: str = "America/Mexico_City"
    utc_offset_hours: float = Field(default=-6.0, ge=-14.0, le=14.0)
    day_first: bool = True
    century_base: int = Field(default=2000, ge=1900, le=2100)
    duration_minutes: int = Field(default=60, ge=1)
    summary_prefix: str = "Visit"


class LeadConfig(BaseModel):
    """Fields beyond full_name/email/phone that a lead must carry."""

    required_fields: list[str] = Field(default_factory=list)


class Settings(BaseModel):
    """Aggregated runtime configuration."""

    openai_api_key: str | None = None
    openai_model: str = "gpt-4o-mini"
    openai_embedding_model: str = "text-embedding-3-small"
    kb_path: str | None = None
    append_log_path: str = "kb_concierge.db"
    calendar_api_token: str | None = None
    calendar_id: str = "primary"
    calendar_base_url: str = "https://www.googleapis.com/calendar/v3"
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])

    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    index: IndexConfig = Field(default_factory=IndexConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    scheduling: SchedulingConfig = Field(default_factory=SchedulingConfig)
    lead: LeadConfig = Field(default_factory=LeadConfig)

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        scheduling = SchedulingConfig(
            timezone=os.getenv("VISIT_TIMEZONE", "America/Mexico_City"),
            utc_offset_hours=float(os.getenv("VISIT_UTC_OFFSET_HOURS", "-6")),
            day_first=_env_flag("VISIT_DAY_FIRST", default=True),
        )
        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            openai_model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
            openai_embedding_model=os.getenv(
                "OPENAI_EMBEDDING_MODEL", "text-embedding-3-small"
            ),
            kb_path=os.getenv("KB_PATH") or None,
            append_log_path=os.getenv("APPEND_LOG_PATH", "kb_concierge.db"),
            calendar_api_token=os.getenv("CALENDAR_API_TOKEN") or None,
            calendar_id=os.getenv("CALENDAR_ID", "primary"),
            calendar_base_url=os.getenv(
                "CALENDAR_BASE_URL", "https://www.googleapis.com/calendar/v3"
            ),
            cors_origins=_env_list("CORS_ORIGINS", ["http://localhost:3000"]),
            chunking=ChunkingConfig(
                max_chars=int(os.getenv("CHUNK_MAX_CHARS", "1200")),
                overlap_chars=int(os.getenv("CHUNK_OVERLAP_CHARS", "200")),
            ),
            agent=AgentConfig(max_rounds=int(os.getenv("MAX_ROUNDS", "3"))),
            scheduling=scheduling,
            lead=LeadConfig(required_fields=_env_list("LEAD_REQUIRED_FIELDS", [])),
        )


def _env_flag(name: str, *, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name)
    if not raw:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]
