import pytest
from langchain_core.language_models.fake_chat_models import GenericFakeChatModel
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage
from pydantic import BaseModel

from omni_llm.agent.registry import ToolRegistry, ToolSpec
from omni_llm.providers.base import CompletionRequest
from omni_llm.providers.langchain_adapter import (
    LangChainCompletion,
    message_text,
    prime_stream,
    reasoning_trace,
    to_langchain_messages,
)
from omni_llm.types import ContentPart, ConversationTurn, Role


class ToolCallingFakeModel(GenericFakeChatModel):
    def bind_tools(self, tools, **kwargs):
        return self


class EchoInput(BaseModel):
    text: str


def _completion(model, sampling: list | None = None) -> LangChainCompletion:
    def _build(**kwargs):
        if sampling is not None:
            sampling.append(kwargs)
        return model

    return LangChainCompletion("fake/model", _build)


def _request(text: str = "hi", **kwargs) -> CompletionRequest:
    return CompletionRequest(conversation=[ConversationTurn(role=Role.USER, content=text)], **kwargs)


@pytest.mark.asyncio
async def test_plain_completion_returns_text_and_reasoning() -> None:
    model = GenericFakeChatModel(
        messages=iter([AIMessage(content="4", additional_kwargs={"reasoning_content": "2+2"})])
    )
    sampling = []

    result = await _completion(model, sampling).invoke(_request(temperature=0.3, top_p=0.9))

    assert result.text == "4"
    assert result.reasoning == "2+2"
    assert sampling == [{"temperature": 0.3, "top_k": None, "top_p": 0.9}]


@pytest.mark.asyncio
async def test_text_stream_yields_chunks() -> None:
    model = GenericFakeChatModel(messages=iter(["hello streaming world"]))

    result = await _completion(model).invoke(_request(stream=True))

    chunks = [chunk async for chunk in result.text_stream]
    assert "".join(chunks) == "hello streaming world"
    assert result.text is None


@pytest.mark.asyncio
async def test_object_stream_yields_partial_objects() -> None:
    model = GenericFakeChatModel(messages=iter(['{"total_price": 42.5}']))
    schema = {"type": "object", "properties": {"total_price": {"type": "number"}}}

    result = await _completion(model).invoke(_request(schema=schema, stream=True))

    partials = [partial async for partial in result.object_stream]
    assert partials[-1] == {"total_price": 42.5}


@pytest.mark.asyncio
async def test_tool_loop_executes_calls_and_records_steps() -> None:
    model = ToolCallingFakeModel(
        messages=iter(
            [
                AIMessage(
                    content="",
                    tool_calls=[{"name": "echo", "args": {"text": "hi"}, "id": "call_1"}],
                ),
                AIMessage(content="echo said HI"),
            ]
        )
    )
    registry = ToolRegistry()

    async def _echo(data: EchoInput) -> str:
        return data.text.upper()

    registry.register(ToolSpec(name="echo", description="uppercase", args_schema=EchoInput, handler=_echo))

    result = await _completion(model).invoke(_request(tools=registry, max_steps=5))

    assert result.text == "echo said HI"
    assert len(result.steps) == 1
    assert result.steps[0].tool_calls[0].name == "echo"
    assert result.steps[0].tool_calls[0].arguments == {"text": "hi"}
    assert result.steps[0].tool_results == ["HI"]


@pytest.mark.asyncio
async def test_tool_loop_respects_step_limit() -> None:
    call = AIMessage(content="", tool_calls=[{"name": "echo", "args": {"text": "x"}, "id": "c"}])
    model = ToolCallingFakeModel(messages=iter([call, call, call]))
    registry = ToolRegistry()

    async def _echo(data: EchoInput) -> str:
        return data.text

    registry.register(ToolSpec(name="echo", description="echo", args_schema=EchoInput, handler=_echo))

    result = await _completion(model).invoke(_request(tools=registry, max_steps=2))

    assert len(result.steps) == 2


def test_message_conversion_handles_media() -> None:
    conversation = [
        ConversationTurn(role=Role.ASSISTANT, content="earlier"),
        ConversationTurn(
            role=Role.USER,
            content=[
                ContentPart.text("what is this?"),
                ContentPart.image(b"img", "image/jpeg"),
                ContentPart.file("https://example.com/doc.pdf", "application/pdf"),
            ],
        ),
    ]

    messages = to_langchain_messages(conversation, system="be brief")

    assert isinstance(messages[0], SystemMessage)
    assert isinstance(messages[1], AIMessage)
    assert isinstance(messages[2], HumanMessage)
    text_block, image_block, file_block = messages[2].content
    assert text_block == {"type": "text", "text": "what is this?"}
    assert image_block["image_url"]["url"] == "data:image/jpeg;base64,aW1n"
    assert file_block["source_type"] == "url"
    assert file_block["url"] == "https://example.com/doc.pdf"


def test_text_and_reasoning_from_content_blocks() -> None:
    message = AIMessage(
        content=[
            {"type": "thinking", "thinking": "let me count"},
            {"type": "text", "text": "three"},
        ]
    )

    assert message_text(message) == "three"
    assert reasoning_trace(message) == "let me count"
    assert reasoning_trace(AIMessage(content="plain")) is None


@pytest.mark.asyncio
async def test_prime_stream_surfaces_errors_early() -> None:
    async def _failing():
        raise RuntimeError("provider down")
        yield "never"

    with pytest.raises(RuntimeError):
        await prime_stream(_failing())

    async def _empty():
        return
        yield

    stream = await prime_stream(_empty())
    assert [item async for item in stream] == []
