"""Structured routing decision: which model, and which augmentation stages."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence

from pydantic import BaseModel, Field, ValidationError

from omni_llm.agent.fallback import run_chain
from omni_llm.conversation import turn_to_json
from omni_llm.errors import FallbackExhausted, PlanningFailed
from omni_llm.models.registry import ModelRegistry
from omni_llm.providers.base import CompletionCapability, CompletionRequest
from omni_llm.types import ConversationTurn, PlanDecision, Role

logger = logging.getLogger(__name__)

STAGE = "planning"


class PlannerOutput(BaseModel):
    """Schema the planner model must fill in."""

    model: str = Field(description="The best AI model based on the prompt, context and files")
    reasoning: bool = Field(
        description=(
            "Whether to use reasoning/thinking which requires a longer thinking process and "
            "more depth before answering. Only use this for more complex tasks like maths, "
            "character counting, general counting, coding, science & research"
        )
    )
    web_search: bool = Field(
        description="Whether to search the web to gather more context before answering"
    )
    use_tool: bool = Field(
        description=(
            "Is there a possibility that the task requires a tool to achieve its goal "
            "from the list of tools?"
        )
    )


def build_planner_prompt(
    registry: ModelRegistry,
    tool_names: Sequence[str],
    latest_turn: ConversationTurn,
) -> str:
    return (
        f"List of models:{json.dumps(registry.serialize(), ensure_ascii=False)}\n"
        f"List of tools:{','.join(tool_names)}\n"
        f"Prompt: {turn_to_json(latest_turn)}"
    )


class Planner:
    """Single structured-generation call at temperature zero.

    The candidate chain is tried in order; a candidate that answers without a
    parseable decision counts as failed. There is no default model: when the
    whole chain fails the request fails with `PlanningFailed`.
    """

    def __init__(self, registry: ModelRegistry, chain: Sequence[CompletionCapability]) -> None:
        if not chain:
            raise ValueError("Planner needs at least one candidate model")
        self.registry = registry
        self.chain = list(chain)

    async def decide(
        self,
        conversation: Sequence[ConversationTurn],
        tool_names: Sequence[str],
    ) -> PlanDecision:
        prompt = build_planner_prompt(self.registry, tool_names, conversation[-1])
        request = CompletionRequest(
            conversation=[ConversationTurn(role=Role.USER, content=prompt)],
            schema=PlannerOutput,
            temperature=0.0,
        )

        async def _call(capability: CompletionCapability) -> PlannerOutput:
            result = await capability.invoke(request)
            return _coerce_output(result.object)

        try:
            output = await run_chain(self.chain, _call, stage=STAGE)
        except FallbackExhausted as exc:
            raise PlanningFailed(
                f"Failed to decide request plan: {exc.last_error}", stage=STAGE
            ) from exc

        decision = PlanDecision(
            selected_model_id=output.model,
            use_web_search=output.web_search,
            use_reasoning=output.reasoning,
            use_tools=output.use_tool,
        )
        logger.info(
            "plan_decided",
            extra={
                "model": decision.selected_model_id,
                "web_search": decision.use_web_search,
                "reasoning": decision.use_reasoning,
                "use_tool": decision.use_tools,
            },
        )
        return decision


def _coerce_output(value: object) -> PlannerOutput:
    if isinstance(value, PlannerOutput):
        return value
    if value is None:
        raise ValueError("Planner returned no decision")
    try:
        return PlannerOutput.model_validate(value)
    except ValidationError as exc:
        raise ValueError(f"Planner returned an unparseable decision: {exc}") from exc
