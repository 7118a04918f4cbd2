"""Completion capability contract.

The pipeline only ever talks to models through `CompletionCapability`; every
provider adapter (and every test double) implements this single coroutine.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from omni_llm.types import ConversationTurn

if TYPE_CHECKING:
    from omni_llm.agent.registry import ToolRegistry

# A pydantic model class or a JSON-schema dict.
OutputSchema = Any


@dataclass(slots=True)
class CompletionRequest:
    conversation: list[ConversationTurn]
    system: str | None = None
    schema: OutputSchema | None = None
    temperature: float | None = 0.0
    top_k: int | None = None
    top_p: float | None = None
    stream: bool = False
    tools: "ToolRegistry | None" = None
    max_steps: int = 1


@dataclass(slots=True, frozen=True)
class ToolCall:
    id: str
    name: str
    arguments: dict[str, Any]


@dataclass(slots=True)
class ToolCallStep:
    """Tool calls issued in one model step, with results in the same order."""

    tool_calls: list[ToolCall] = field(default_factory=list)
    tool_results: list[Any] = field(default_factory=list)


@dataclass(slots=True)
class CompletionResult:
    text: str | None = None
    object: Any = None
    text_stream: AsyncIterator[str] | None = None
    object_stream: AsyncIterator[Any] | None = None
    steps: list[ToolCallStep] = field(default_factory=list)
    reasoning: str | None = None


@runtime_checkable
class CompletionCapability(Protocol):
    """Uniform "run a completion" operation for one model."""

    @property
    def name(self) -> str: ...

    async def invoke(self, request: CompletionRequest) -> CompletionResult: ...
