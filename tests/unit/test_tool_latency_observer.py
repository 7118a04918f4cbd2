import pytest
from pydantic import BaseModel

from omni_llm.agent.registry import ToolRegistry, ToolSpec


class EchoInput(BaseModel):
    text: str


@pytest.mark.asyncio
async def test_tool_observer_captures_latency_and_payload() -> None:
    registry = ToolRegistry()

    async def _handler(data: EchoInput) -> str:
        return data.text.upper()

    registry.register(
        ToolSpec(
            name="echo",
            description="uppercase",
            args_schema=EchoInput,
            handler=_handler,
        )
    )

    observed = []
    registry.set_observer(observed.append)
    result = await registry.execute("echo", {"text": "hello"})
    registry.set_observer(None)
    await registry.execute("echo", {"text": "again"})

    assert result == "HELLO"
    assert len(observed) == 1
    assert observed[0].name == "echo"
    assert observed[0].input_payload == {"text": "hello"}
    assert observed[0].output_preview == "HELLO"
    assert observed[0].latency_ms >= 0.0


@pytest.mark.asyncio
async def test_observer_preview_is_truncated() -> None:
    registry = ToolRegistry()

    async def _handler(data: EchoInput) -> dict:
        return {"payload": data.text * 200}

    registry.register(
        ToolSpec(name="big", description="large output", args_schema=EchoInput, handler=_handler)
    )

    observed = []
    registry.set_observer(observed.append)
    await registry.execute("big", {"text": "abc"})

    assert len(observed[0].output_preview) == 320
