"""Deterministic responder used when no completion model is configured."""

from __future__ import annotations

from kb_concierge.agent.orchestrator import OrchestratorReply
from kb_concierge.agent.registry import ToolRegistry
from kb_concierge.config import AgentConfig
from kb_concierge.obs.tracing import Timer, TraceStore, estimate_token_count
from kb_concierge.types import ToolTrace

_NO_RESULTS_REPLY = (
    "I couldn't find that in our knowledge base. If you share your name, "
    "email and phone, our team will get back to you."
)


class OfflineResponder:
    """Answers from KB search results without an LLM.

    Keeps the same ``run`` contract as ``ConversationOrchestrator`` so the
    API can serve local/offline environments where ``OPENAI_API_KEY`` is
    not configured. It never performs side-effecting tools.
    """

    mode = "offline"

    def __init__(
        self,
        *,
        tool_registry: ToolRegistry,
        trace_store: TraceStore,
        config: AgentConfig | None = None,
        max_snippets: int = 3,
    ) -> None:
        self.tool_registry = tool_registry
        self.trace_store = trace_store
        self.config = config or AgentConfig()
        self.max_snippets = max_snippets

    def run(self, user_message: str) -> OrchestratorReply:
        message = user_message[: self.config.max_message_chars]
        observed: list[ToolTrace] = []
        with Timer() as timer:
            result = self.tool_registry.execute(
                "search_kb",
                {"query": message, "top_k": self.max_snippets},
                observer=observed.append,
            )
        hits = result.payload.get("hits", []) if result.ok else []
        reply = _build_reply(hits[: self.max_snippets])

        record = self.trace_store.create_record(
            mode=self.mode,
            message=message,
            reply=reply,
            rounds=1,
            fell_back=False,
            tool_traces=observed,
            input_tokens=estimate_token_count(message),
            output_tokens=estimate_token_count(reply),
            latency_ms=timer.elapsed_ms,
        )
        return OrchestratorReply(
            reply=reply,
            rounds=1,
            fell_back=False,
            trace_id=record.trace_id,
            latency_ms=record.latency_ms,
            tool_traces=observed,
        )


def _build_reply(hits: list[dict[str, object]]) -> str:
    if not hits:
        return _NO_RESULTS_REPLY

    lines = ["Here is what I found:"]
    for idx, hit in enumerate(hits, start=1):
        source = hit.get("canonical_url") or hit.get("title")
        lines.append(f"{idx}. {hit.get('snippet')} ({source})")
    return "\n".join(lines)
