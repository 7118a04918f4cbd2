"""`CompletionCapability` implemented on top of LangChain chat models."""

from __future__ import annotations

import base64
import json
from collections.abc import AsyncIterator, Callable, Sequence
from typing import Any, TypeVar

from langchain_core.exceptions import OutputParserException
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    HumanMessage,
    SystemMessage,
    ToolMessage,
)
from langchain_core.output_parsers import JsonOutputParser
from pydantic import BaseModel, ValidationError

from omni_llm.agent.registry import render_tool_output
from omni_llm.errors import SchemaValidationFailed
from omni_llm.providers.base import (
    CompletionRequest,
    CompletionResult,
    ToolCall,
    ToolCallStep,
)
from omni_llm.types import ContentPart, ConversationTurn, PartKind, Role

T = TypeVar("T")

# Builds a chat model for one call: (temperature=..., top_k=..., top_p=...) -> model.
ModelBuilder = Callable[..., BaseChatModel]

_MESSAGE_TYPES: dict[Role, type[BaseMessage]] = {
    Role.USER: HumanMessage,
    Role.ASSISTANT: AIMessage,
    Role.SYSTEM: SystemMessage,
}


class LangChainCompletion:
    """Runs completions, structured outputs, streams and tool loops."""

    def __init__(self, name: str, build_model: ModelBuilder) -> None:
        self._name = name
        self._build_model = build_model

    @property
    def name(self) -> str:
        return self._name

    def __repr__(self) -> str:
        return f"LangChainCompletion({self._name!r})"

    async def invoke(self, request: CompletionRequest) -> CompletionResult:
        model = self._build_model(
            temperature=request.temperature,
            top_k=request.top_k,
            top_p=request.top_p,
        )

        if request.tools is not None:
            return await self._run_tools(model, request)

        if request.schema is not None:
            if request.stream:
                stream = self._stream_objects(model, request)
                return CompletionResult(object_stream=await prime_stream(stream))
            return CompletionResult(object=await self._structured(model, request))

        messages = to_langchain_messages(request.conversation, request.system)
        if request.stream:
            return CompletionResult(text_stream=await prime_stream(self._stream_text(model, messages)))

        message = await model.ainvoke(messages)
        return CompletionResult(text=message_text(message), reasoning=reasoning_trace(message))

    async def _structured(self, model: BaseChatModel, request: CompletionRequest) -> Any:
        messages = to_langchain_messages(request.conversation, request.system)
        runnable = model.with_structured_output(_structured_schema(request.schema))
        try:
            return await runnable.ainvoke(messages)
        except (OutputParserException, ValidationError) as exc:
            raise SchemaValidationFailed(f"{self._name}: {exc}") from exc

    async def _stream_text(
        self, model: BaseChatModel, messages: list[BaseMessage]
    ) -> AsyncIterator[str]:
        async for chunk in model.astream(messages):
            text = message_text(chunk)
            if text:
                yield text

    async def _stream_objects(
        self, model: BaseChatModel, request: CompletionRequest
    ) -> AsyncIterator[Any]:
        schema = request.schema
        if _is_model_class(schema):
            parser = JsonOutputParser(pydantic_object=schema)
            instructions = parser.get_format_instructions()
        else:
            parser = JsonOutputParser()
            instructions = (
                "Respond only with a JSON object that matches this JSON schema:\n"
                f"{json.dumps(schema)}"
            )
        system = "\n\n".join(part for part in (request.system, instructions) if part)
        messages = to_langchain_messages(request.conversation, system)
        async for partial in (model | parser).astream(messages):
            yield partial

    async def _run_tools(self, model: BaseChatModel, request: CompletionRequest) -> CompletionResult:
        registry = request.tools
        assert registry is not None
        bound = model.bind_tools(registry.as_langchain_tools())
        messages = to_langchain_messages(request.conversation, request.system)
        steps: list[ToolCallStep] = []
        message: BaseMessage | None = None

        for _ in range(max(request.max_steps, 1)):
            message = await bound.ainvoke(messages)
            messages.append(message)
            tool_calls = getattr(message, "tool_calls", None) or []
            if not tool_calls:
                break

            step = ToolCallStep()
            for call in tool_calls:
                arguments = dict(call.get("args") or {})
                output = await registry.execute(call["name"], arguments)
                step.tool_calls.append(
                    ToolCall(id=str(call.get("id") or ""), name=call["name"], arguments=arguments)
                )
                step.tool_results.append(output)
                messages.append(
                    ToolMessage(content=render_tool_output(output), tool_call_id=call.get("id") or "")
                )
            steps.append(step)

        return CompletionResult(
            text=message_text(message) if message is not None else None,
            steps=steps,
            reasoning=reasoning_trace(message) if message is not None else None,
        )


async def prime_stream(stream: AsyncIterator[T]) -> AsyncIterator[T]:
    """Pull the first item eagerly so provider errors surface to the caller.

    Without priming, a failing provider would only raise once the caller
    starts iterating, after the fallback chain has already returned.
    """
    try:
        first = await anext(stream)
    except StopAsyncIteration:
        return _empty()

    async def _replay() -> AsyncIterator[T]:
        yield first
        async for item in stream:
            yield item

    return _replay()


async def _empty() -> AsyncIterator[Any]:
    return
    yield


def to_langchain_messages(
    conversation: Sequence[ConversationTurn],
    system: str | None = None,
) -> list[BaseMessage]:
    messages: list[BaseMessage] = []
    if system:
        messages.append(SystemMessage(content=system))
    for turn in conversation:
        message_type = _MESSAGE_TYPES[turn.role]
        if isinstance(turn.content, str):
            messages.append(message_type(content=turn.content))
        else:
            messages.append(message_type(content=[_content_block(part) for part in turn.content]))
    return messages


def _content_block(part: ContentPart) -> dict[str, Any]:
    if part.kind is PartKind.TEXT:
        return {"type": "text", "text": str(part.data)}

    if part.kind is PartKind.IMAGE:
        return {"type": "image_url", "image_url": {"url": _as_url(part, "image/png")}}

    mime_type = part.mime_type or "application/octet-stream"
    if isinstance(part.data, str) and part.data.startswith(("http://", "https://")):
        return {"type": "file", "source_type": "url", "url": part.data, "mime_type": mime_type}
    return {
        "type": "file",
        "source_type": "base64",
        "data": _as_base64(part.data),
        "mime_type": mime_type,
    }


def _as_url(part: ContentPart, default_mime: str) -> str:
    if isinstance(part.data, str) and part.data.startswith(("http://", "https://", "data:")):
        return part.data
    return f"data:{part.mime_type or default_mime};base64,{_as_base64(part.data)}"


def _as_base64(data: str | bytes) -> str:
    if isinstance(data, (bytes, bytearray)):
        return base64.b64encode(bytes(data)).decode("ascii")
    if data.startswith("data:"):
        return data.split(",", 1)[1]
    return data


def message_text(message: Any) -> str:
    content = getattr(message, "content", message)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, str):
                parts.append(item)
            elif isinstance(item, dict) and item.get("type") == "text":
                parts.append(str(item.get("text", "")))
        return "".join(parts)
    return str(content)


def reasoning_trace(message: Any) -> str | None:
    """Provider-specific reasoning field, if the model returned one."""
    extra = getattr(message, "additional_kwargs", None) or {}
    if extra.get("reasoning_content"):
        return str(extra["reasoning_content"])

    content = getattr(message, "content", None)
    if isinstance(content, list):
        blocks = [
            str(item.get("thinking") or item.get("reasoning") or "")
            for item in content
            if isinstance(item, dict) and item.get("type") in ("thinking", "reasoning")
        ]
        joined = "".join(blocks)
        if joined:
            return joined
    return None


def _is_model_class(schema: Any) -> bool:
    return isinstance(schema, type) and issubclass(schema, BaseModel)


def _structured_schema(schema: Any) -> Any:
    if _is_model_class(schema) or "title" in schema:
        return schema
    return {"title": "response", "description": "Structured response", **schema}
