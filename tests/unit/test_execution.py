import pytest
from pydantic import BaseModel

from omni_llm.agent.execution import ExecutionStage, RequestResultBuilder, validate_object
from omni_llm.agent.params import GenerateParams
from omni_llm.errors import FallbackExhausted, SchemaValidationFailed
from omni_llm.models.registry import ModelDescriptor, ModelRegistry
from omni_llm.providers.base import CompletionResult
from omni_llm.types import ConversationTurn, PlanDecision, RequestContext, Role
from tests.fakes import FakeCompletion, build_fake_registry

PRICE_SCHEMA = {
    "type": "object",
    "properties": {"total_price": {"type": "number"}},
    "required": ["total_price"],
}


class Price(BaseModel):
    total_price: float


def _context(text: str = "hello") -> RequestContext:
    return RequestContext(conversation=[ConversationTurn(role=Role.USER, content=text)])


def test_validate_object_against_json_schema() -> None:
    assert validate_object({"total_price": 3}, PRICE_SCHEMA) == {"total_price": 3}

    with pytest.raises(SchemaValidationFailed) as exc_info:
        validate_object({"total_price": "three"}, PRICE_SCHEMA)
    assert exc_info.value.errors[0]["path"] == ["total_price"]


def test_validate_object_against_model_class() -> None:
    assert validate_object({"total_price": "4.5"}, Price) == Price(total_price=4.5)

    with pytest.raises(SchemaValidationFailed):
        validate_object({}, Price)


def test_fallback_selection() -> None:
    registry, _ = build_fake_registry()
    stage = ExecutionStage(registry)

    primary, fallback = stage.select_models(registry["gpt-4o"], reasoning_present=False)
    assert (primary.id, fallback.id) == ("gpt-4o", "gemini-1.5-flash")

    primary, fallback = stage.select_models(
        registry["claude-3-5-sonnet-latest"], reasoning_present=False
    )
    assert (primary.id, fallback.id) == ("claude-3-5-sonnet-latest", "gpt-4o")

    primary, fallback = stage.select_models(
        registry["llama-3.3-70b-specdec"], reasoning_present=False
    )
    assert (primary.id, fallback.id) == ("llama-3.3-70b-specdec", "gemini-1.5-flash-8b")


def test_reasoning_never_routes_to_low_capability_model() -> None:
    registry, _ = build_fake_registry()
    stage = ExecutionStage(registry)

    primary, fallback = stage.select_models(
        registry["llama-3.3-70b-specdec"], reasoning_present=True
    )

    assert primary.id == "gemini-1.5-flash"
    assert fallback.id == "gemini-1.5-flash-8b"
    assert not stage.is_low_capability(registry["gpt-4o"])


def _descriptor(model_id, capability_rank, completion, fallback=None):
    return ModelDescriptor(
        id=model_id,
        speed_rank=3,
        capability_rank=capability_rank,
        context_window=128_000,
        invoke=completion,
        fallback_id=fallback,
    )


@pytest.mark.asyncio
async def test_reasoning_fallback_skips_low_capability_model() -> None:
    gpt = FakeCompletion("gpt-4o", [CompletionResult(text="from gpt")])
    flash = FakeCompletion("gemini-1.5-flash", [RuntimeError("overloaded")])
    tiny = FakeCompletion("tiny", [CompletionResult(text="from tiny")])
    registry = ModelRegistry(
        [
            _descriptor("gpt-4o", 4, gpt),
            _descriptor("gemini-1.5-flash", 4, flash),
            _descriptor("small", 2, FakeCompletion("small"), fallback="tiny"),
            _descriptor("tiny", 1, tiny),
        ]
    )
    stage = ExecutionStage(registry)
    context = _context()
    context.reasoning_text = "step by step"

    primary, fallback = stage.select_models(registry["small"], reasoning_present=True)
    used, result = await stage.run(context, registry["small"], GenerateParams(prompt="hello"))

    assert (primary.id, fallback.id) == ("gemini-1.5-flash", "gpt-4o")
    assert used.id == "gpt-4o"
    assert result.text == "from gpt"
    assert not stage.is_low_capability(used)
    assert tiny.calls == 0


def test_fallback_never_repeats_primary() -> None:
    registry = ModelRegistry(
        [
            _descriptor("gpt-4o", 4, FakeCompletion("gpt-4o")),
            _descriptor("gemini-1.5-flash", 4, FakeCompletion("gemini-1.5-flash")),
            _descriptor("small", 2, FakeCompletion("small"), fallback="gemini-1.5-flash"),
        ]
    )

    primary, fallback = ExecutionStage(registry).select_models(
        registry["small"], reasoning_present=True
    )

    assert (primary.id, fallback.id) == ("gemini-1.5-flash", "gpt-4o")


@pytest.mark.asyncio
async def test_final_call_falls_back_once() -> None:
    registry, models = build_fake_registry(
        {
            "gpt-4o": FakeCompletion("gpt-4o", [RuntimeError("overloaded")]),
            "gemini-1.5-flash": FakeCompletion(
                "gemini-1.5-flash", [CompletionResult(text="from gemini")]
            ),
        }
    )

    used, result = await ExecutionStage(registry).run(
        _context(), registry["gpt-4o"], GenerateParams(prompt="hello")
    )

    assert used.id == "gemini-1.5-flash"
    assert result.text == "from gemini"
    assert models["claude-3-5-sonnet-latest"].calls == 0


@pytest.mark.asyncio
async def test_schema_failure_surfaces_as_validation_error() -> None:
    invalid = CompletionResult(object={"total_price": "n/a"})
    registry, _ = build_fake_registry(
        {
            "gpt-4o": FakeCompletion("gpt-4o", [invalid]),
            "gemini-1.5-flash": FakeCompletion("gemini-1.5-flash", [invalid]),
        }
    )

    with pytest.raises(SchemaValidationFailed) as exc_info:
        await ExecutionStage(registry).run(
            _context(), registry["gpt-4o"], GenerateParams(prompt="hello", schema=PRICE_SCHEMA)
        )
    assert exc_info.value.stage == "final"


@pytest.mark.asyncio
async def test_final_exhaustion_raises_fallback_exhausted() -> None:
    registry, _ = build_fake_registry(
        {
            "gpt-4o": FakeCompletion("gpt-4o", [RuntimeError("down")]),
            "gemini-1.5-flash": FakeCompletion("gemini-1.5-flash", [RuntimeError("also down")]),
        }
    )

    with pytest.raises(FallbackExhausted) as exc_info:
        await ExecutionStage(registry).run(
            _context(), registry["gpt-4o"], GenerateParams(prompt="hello")
        )
    assert exc_info.value.stage == "final"
    assert exc_info.value.attempts == 2


def test_result_builder_is_single_use() -> None:
    context = _context()
    builder = RequestResultBuilder(PlanDecision(selected_model_id="gpt-4o"), context)

    with pytest.raises(RuntimeError):
        builder.build()

    result = builder.with_completion("gpt-4o", CompletionResult(text="hi")).build()
    assert result.model_id == "gpt-4o"
    assert result.tool_used == ()

    with pytest.raises(RuntimeError):
        builder.build()
