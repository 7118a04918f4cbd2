import json

from omni_llm.agent.planner import PlannerOutput, build_planner_prompt
from omni_llm.types import ContentPart, ConversationTurn, Role
from tests.fakes import build_fake_registry


def test_planner_prompt_lists_models_tools_and_latest_turn() -> None:
    registry, _ = build_fake_registry()
    turn = ConversationTurn(
        role=Role.USER,
        content=[ContentPart.text("Summarise this"), ContentPart.file(b"%PDF-1.7", "application/pdf")],
    )

    prompt = build_planner_prompt(registry, ["web_search", "ocr"], turn)

    models_line, tools_line, prompt_line = prompt.split("\n")
    models = json.loads(models_line.removeprefix("List of models:"))
    assert list(models) == list(registry)
    assert models["llama-3.3-70b-specdec"]["fallback"] == "gemini-1.5-flash-8b"
    assert tools_line == "List of tools:web_search,ocr"
    latest = json.loads(prompt_line.removeprefix("Prompt: "))
    assert latest["content"][1]["data"] == "<8 bytes>"


def test_planner_schema_describes_every_decision() -> None:
    schema = PlannerOutput.model_json_schema()

    assert set(schema["required"]) == {"model", "reasoning", "web_search", "use_tool"}
    for field in schema["properties"].values():
        assert field["description"]
    assert "coding" in schema["properties"]["reasoning"]["description"]
