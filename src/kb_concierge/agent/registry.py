"""Tool registry built on Pydantic v2 models.

``ToolRegistry.execute`` is the boundary tools never raise past: argument
validation, input errors, upstream search failures and unexpected bugs are
all converted to a ``ToolResult`` with ``ok=False`` so the conversation can
carry on.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from time import perf_counter
from typing import Any

from langchain_core.tools import StructuredTool
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from kb_concierge.errors import EmbeddingError, PersistenceFailure, ToolInputError
from kb_concierge.types import ToolCall, ToolResult, ToolTrace

logger = logging.getLogger(__name__)

ToolObserver = Callable[[ToolTrace], None]


class ToolSpec(BaseModel):
    """Declarative tool specification for registration and validation."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    description: str
    args_schema: type[BaseModel]
    handler: Callable[[BaseModel], ToolResult]
    tags: list[str] = Field(default_factory=list)

    def invoke(self, payload: dict[str, Any]) -> ToolResult:
        data = self.args_schema.model_validate(payload)
        return self.handler(data)


def with_fallback(
    action: Callable[[], ToolResult],
    fallback: Callable[[PersistenceFailure], ToolResult],
    *,
    operation: str,
) -> ToolResult:
    """Run a side effect, degrading to ``fallback`` if a collaborator fails.

    Only ``PersistenceFailure`` triggers the fallback. If the fallback itself
    hits a ``PersistenceFailure`` the result is still a soft
    ``manual_followup``.
    """

    try:
        return action()
    except PersistenceFailure as exc:
        logger.warning("%s degraded to manual follow-up: %s", operation, exc)
        try:
            return fallback(exc)
        except PersistenceFailure as fallback_exc:
            logger.error(
                "%s fallback could not be recorded either: %s", operation, fallback_exc
            )
            return ToolResult.manual_followup()


class ToolRegistry:
    """Stores tool specs, executes tool calls, exports LangChain tools."""

    def __init__(self) -> None:
        self._tools: dict[str, ToolSpec] = {}

    def register(self, spec: ToolSpec) -> None:
        if spec.name in self._tools:
            raise ValueError(f"Tool already registered: {spec.name}")
        self._tools[spec.name] = spec

    def names(self) -> list[str]:
        return list(self._tools)

    def specs(self) -> list[ToolSpec]:
        return list(self._tools.values())

    def execute(
        self,
        call: ToolCall | str,
        payload: dict[str, Any] | None = None,
        *,
        observer: ToolObserver | None = None,
    ) -> ToolResult:
        """Execute one tool call and always return a ``ToolResult``."""

        if isinstance(call, str):
            call = ToolCall(id="", name=call, arguments=dict(payload or {}))

        start = perf_counter()
        result = self._dispatch(call)
        latency_ms = (perf_counter() - start) * 1000.0

        if observer is not None:
            observer(
                ToolTrace(
                    name=call.name,
                    input_payload=dict(call.arguments),
                    output_preview=result.to_content()[:320],
                    latency_ms=latency_ms,
                    ok=result.ok,
                )
            )
        return result

    def as_langchain_tools(self) -> list[StructuredTool]:
        """Schemas for ``bind_tools``; execution still goes through ``execute``."""
        tools: list[StructuredTool] = []
        for spec in self._tools.values():
            tools.append(
                StructuredTool.from_function(
                    name=spec.name,
                    description=spec.description,
                    args_schema=spec.args_schema,
                    func=self._build_function(spec),
                )
            )
        return tools

    def _build_function(self, spec: ToolSpec) -> Callable[..., str]:
        def _callable(**kwargs: Any) -> str:
            return self.execute(spec.name, kwargs).to_content()

        return _callable

    def _dispatch(self, call: ToolCall) -> ToolResult:
        spec = self._tools.get(call.name)
        if spec is None:
            logger.warning("Model requested unknown tool %r", call.name)
            return ToolResult.failure("unknown_tool", status=404, tool=call.name)

        try:
            return spec.invoke(call.arguments)
        except ValidationError as exc:
            errors = [
                {"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
                for error in exc.errors()
            ]
            logger.info("Rejected %s arguments: %s", call.name, errors)
            return ToolResult.failure("invalid_arguments", status=400, errors=errors)
        except ToolInputError as exc:
            logger.info("Rejected %s input: %s", call.name, exc)
            return ToolResult.failure(exc.code, status=400, detail=str(exc))
        except EmbeddingError as exc:
            logger.error("%s could not reach the embedding backend: %s", call.name, exc)
            return ToolResult.failure("search_unavailable", status=502)
        except PersistenceFailure as exc:
            logger.warning("%s collaborator failure: %s", call.name, exc)
            return ToolResult.manual_followup()
        except Exception:
            logger.exception("Tool %s failed unexpectedly", call.name)
            return ToolResult.failure("tool_failed", status=500)
