"""Bounded completion/tool loop over a LangChain tool-calling chat model."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)

from kb_concierge.agent.registry import ToolRegistry
from kb_concierge.config import AgentConfig
from kb_concierge.errors import CompletionError
from kb_concierge.obs.tracing import Timer, TraceStore, estimate_token_count
from kb_concierge.types import ToolCall, ToolResult, ToolTrace

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """
You are the front-desk assistant for our organisation. Reply in the user's language.

Rules:
1) Answer questions about services, prices, policies and locations only from
   `search_kb` results. If the knowledge base has no answer, say so plainly.
2) When someone wants to be contacted, call `capture_lead` with full_name,
   email and phone. Ask for any of them that is missing; never invent them.
3) When someone wants a visit, call `schedule_visit` with modality,
   preferred_dt_local and contact (name, email, phone).
4) If a tool returns status "manual_followup", tell the user their request
   was recorded and the team will confirm it personally.
5) Keep replies short and friendly.
""".strip()


@dataclass(frozen=True, slots=True)
class FinalReply:
    text: str


@dataclass(frozen=True, slots=True)
class ToolRequests:
    calls: tuple[ToolCall, ...]


CompletionOutcome = FinalReply | ToolRequests


@dataclass(slots=True)
class OrchestratorReply:
    reply: str
    rounds: int
    fell_back: bool
    trace_id: str
    latency_ms: float
    tool_traces: list[ToolTrace] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "reply": self.reply,
            "rounds": self.rounds,
            "fell_back": self.fell_back,
            "trace_id": self.trace_id,
            "latency_ms": self.latency_ms,
        }


def decide(message: AIMessage) -> CompletionOutcome:
    """Classify an assistant message as a final reply or tool requests.

    Calls come back in the order the model requested them, parseable or not.
    """

    calls: list[ToolCall] = []
    for raw in getattr(message, "tool_calls", None) or []:
        calls.append(
            ToolCall(
                id=str(raw.get("id") or _call_id()),
                name=str(raw.get("name", "")),
                arguments=dict(raw.get("args") or {}),
            )
        )
    for raw in getattr(message, "invalid_tool_calls", None) or []:
        calls.append(
            ToolCall(
                id=str(raw.get("id") or _call_id()),
                name=str(raw.get("name") or ""),
                error=str(raw.get("error") or "arguments could not be parsed"),
            )
        )
    if calls:
        return ToolRequests(calls=tuple(_in_requested_order(message, calls)))
    return FinalReply(text=message_text(message))


def with_call_ids(message: AIMessage) -> AIMessage:
    """Return ``message`` with an id on every tool call it requests."""

    tool_calls = [dict(call, id=call.get("id") or _call_id()) for call in message.tool_calls]
    invalid = [dict(call, id=call.get("id") or _call_id()) for call in message.invalid_tool_calls]
    if tool_calls == list(message.tool_calls) and invalid == list(message.invalid_tool_calls):
        return message
    return message.model_copy(update={"tool_calls": tool_calls, "invalid_tool_calls": invalid})


def _in_requested_order(message: AIMessage, calls: list[ToolCall]) -> list[ToolCall]:
    # Parsed and unparseable calls arrive in separate lists; the raw
    # provider payload keeps the original order.
    raw_calls = (getattr(message, "additional_kwargs", None) or {}).get("tool_calls") or []
    position = {
        item.get("id"): index for index, item in enumerate(raw_calls) if isinstance(item, dict)
    }
    if not position:
        return calls
    return sorted(calls, key=lambda call: position.get(call.id, len(position)))


class ConversationOrchestrator:
    """Runs one conversation turn: completion, tools, repeat, bounded.

    Every round appends the assistant's tool-call message once, then exactly
    one ``ToolMessage`` per requested call, in the order requested, before
    the next completion. After ``max_rounds`` tool rounds without a final
    reply the turn ends with the configured fallback reply.
    """

    mode = "llm"

    def __init__(
        self,
        *,
        llm: Any,
        tool_registry: ToolRegistry,
        trace_store: TraceStore,
        config: AgentConfig | None = None,
    ) -> None:
        self.tool_registry = tool_registry
        self.trace_store = trace_store
        self.config = config or AgentConfig()
        self._model = llm.bind_tools(tool_registry.as_langchain_tools())

    def run(self, user_message: str) -> OrchestratorReply:
        """Answer ``user_message``; raises ``CompletionError`` if the model fails."""

        message = user_message[: self.config.max_message_chars]
        state: list[BaseMessage] = [
            SystemMessage(content=SYSTEM_PROMPT),
            HumanMessage(content=message),
        ]
        observed: list[ToolTrace] = []
        rounds = 0
        reply: str | None = None

        with Timer() as timer:
            while rounds < self.config.max_rounds:
                assistant = with_call_ids(self._complete(state))
                outcome = decide(assistant)
                if isinstance(outcome, FinalReply):
                    reply = outcome.text
                    break

                rounds += 1
                state.append(assistant)
                for call in outcome.calls:
                    result = self._execute(call, observed)
                    state.append(
                        ToolMessage(
                            content=result.to_content(),
                            tool_call_id=call.id,
                            name=call.name,
                        )
                    )

        fell_back = reply is None
        if fell_back:
            logger.warning(
                "Conversation hit the %d-round cap; returning fallback reply",
                self.config.max_rounds,
            )
            reply = self.config.fallback_reply

        record = self.trace_store.create_record(
            mode=self.mode,
            message=message,
            reply=reply,
            rounds=rounds,
            fell_back=fell_back,
            tool_traces=observed,
            input_tokens=sum(estimate_token_count(message_text(m)) for m in state),
            output_tokens=estimate_token_count(reply),
            latency_ms=timer.elapsed_ms,
        )
        return OrchestratorReply(
            reply=reply,
            rounds=rounds,
            fell_back=fell_back,
            trace_id=record.trace_id,
            latency_ms=record.latency_ms,
            tool_traces=observed,
        )

    def _complete(self, state: list[BaseMessage]) -> AIMessage:
        try:
            response = self._model.invoke(list(state))
        except Exception as exc:
            status = getattr(exc, "status_code", None)
            logger.error("Completion request failed (%s): %s", type(exc).__name__, exc)
            raise CompletionError(str(exc) or type(exc).__name__, status=status) from exc
        if isinstance(response, AIMessage):
            return response
        return AIMessage(content=message_text(response))

    def _execute(self, call: ToolCall, observed: list[ToolTrace]) -> ToolResult:
        if call.error is not None:
            logger.info("Model sent malformed arguments for %r: %s", call.name, call.error)
            result = ToolResult.failure("invalid_arguments", status=400, detail=call.error)
            observed.append(
                ToolTrace(
                    name=call.name,
                    input_payload={},
                    output_preview=result.to_content()[:320],
                    latency_ms=0.0,
                    ok=False,
                )
            )
            return result
        return self.tool_registry.execute(call, observer=observed.append)


def message_text(message: Any) -> str:
    """Flatten LangChain message content (str or content blocks) to text."""

    content = getattr(message, "content", message)
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict):
                if "text" in item:
                    parts.append(str(item["text"]))
            else:
                parts.append(str(item))
        return " ".join(parts).strip()
    return str(content)


def _call_id() -> str:
    return f"call_{uuid.uuid4().hex[:12]}"
