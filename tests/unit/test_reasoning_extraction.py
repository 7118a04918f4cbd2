import pytest

from omni_llm.agent.params import GenerateParams
from omni_llm.agent.pipeline import extract_reasoning, resolve_flags, stage_scope
from omni_llm.errors import StageFailed, UnknownModel
from omni_llm.types import PlanDecision, RequestContext


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("<think>  step one\nstep two </think>Final answer", "step one\nstep two"),
        ("preamble <think>inner</think> tail", "inner"),
        ("<think>unterminated thought", "unterminated thought"),
        ("no tags here", "no tags here"),
        (None, None),
    ],
)
def test_extract_reasoning(raw: str | None, expected: str | None) -> None:
    assert extract_reasoning(raw) == expected


def test_caller_flags_override_planner() -> None:
    plan = PlanDecision(
        selected_model_id="gpt-4o", use_web_search=True, use_reasoning=False, use_tools=True
    )
    params = GenerateParams(prompt="hi", use_web_search=False, reasoning=True)

    flags = resolve_flags(plan, params)

    assert flags.web_search is False
    assert flags.reasoning is True
    assert flags.tools is True
    assert flags.cross_check is False


def test_cross_check_disabled_when_streaming() -> None:
    plan = PlanDecision(selected_model_id="gpt-4o")

    assert resolve_flags(plan, GenerateParams(prompt="hi", multi_model=True)).cross_check is True
    assert (
        resolve_flags(plan, GenerateParams(prompt="hi", multi_model=True, stream=True)).cross_check
        is False
    )


def test_stage_scope_records_timing_on_success() -> None:
    context = RequestContext(conversation=[])

    with stage_scope(context, "web_search"):
        pass

    assert [stage.name for stage in context.stages] == ["web_search"]


def test_stage_scope_tags_and_wraps_errors() -> None:
    context = RequestContext(conversation=[])

    with pytest.raises(UnknownModel) as tagged:
        with stage_scope(context, "planning"):
            raise UnknownModel("gpt-99")
    assert tagged.value.stage == "planning"

    with pytest.raises(StageFailed) as wrapped:
        with stage_scope(context, "web_search"):
            raise ConnectionError("search unreachable")
    assert wrapped.value.stage == "web_search"
    assert isinstance(wrapped.value.__cause__, ConnectionError)
    assert context.stages == []
