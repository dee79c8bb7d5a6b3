"""KB Concierge package."""

from .config import AgentConfig, ChunkingConfig, IndexConfig, SchedulingConfig, Settings

__all__ = ["AgentConfig", "ChunkingConfig", "IndexConfig", "SchedulingConfig", "Settings"]
