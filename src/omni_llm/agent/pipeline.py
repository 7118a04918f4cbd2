"""Augmentation stages that run between planning and final generation.

Stages run strictly in order (web search, tool use, reasoning, cross-check)
and each one injects its context as a synthetic user turn placed right
before the final turn, so the model reads it as prior context rather than
as the instruction to answer.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass

from omni_llm.agent.fallback import run_chain
from omni_llm.agent.params import GenerateParams
from omni_llm.agent.registry import ToolRegistry
from omni_llm.agent.tools import map_search_results
from omni_llm.config import PipelineConfig
from omni_llm.conversation import insert_context, latest_text, strip_media
from omni_llm.errors import OmniError, StageFailed
from omni_llm.models.registry import ModelRegistry
from omni_llm.obs.tracing import Timer
from omni_llm.providers.base import (
    CompletionCapability,
    CompletionRequest,
    CompletionResult,
)
from omni_llm.services.base import SearchCapability
from omni_llm.types import (
    ConversationTurn,
    PlanDecision,
    RequestContext,
    Role,
    StageTrace,
    ToolInvocationKind,
    ToolInvocationRecord,
)

logger = logging.getLogger(__name__)

_THINK_OPEN = "<think>"
_THINK_CLOSE = "</think>"


@dataclass(slots=True, frozen=True)
class StageFlags:
    web_search: bool
    tools: bool
    reasoning: bool
    cross_check: bool


def _override(caller: bool | None, planner: bool) -> bool:
    return planner if caller is None else caller


def resolve_flags(plan: PlanDecision, params: GenerateParams) -> StageFlags:
    """Caller flags win over planner flags; unset caller flags defer to the plan."""
    return StageFlags(
        web_search=_override(params.use_web_search, plan.use_web_search),
        tools=_override(params.auto_tool, plan.use_tools),
        reasoning=_override(params.reasoning, plan.use_reasoning),
        # Only one stream can be surfaced, so cross-check is eager-only.
        cross_check=params.multi_model and not params.stream,
    )


def extract_reasoning(raw: str | None) -> str | None:
    """Interior of a `<think>` span, or the raw text when there is none."""
    if raw is None or _THINK_OPEN not in raw:
        return raw
    _, _, inner = raw.partition(_THINK_OPEN)
    inner, _, _ = inner.partition(_THINK_CLOSE)
    return inner.strip()


@contextmanager
def stage_scope(context: RequestContext, name: str) -> Iterator[None]:
    """Time a stage and tag any error escaping it with the stage name."""
    timer = Timer()
    try:
        with timer:
            yield
    except OmniError as exc:
        if exc.stage is None:
            exc.stage = name
        raise
    except Exception as exc:
        raise StageFailed(name, exc) from exc
    context.stages.append(StageTrace(name=name, latency_ms=timer.elapsed_ms))


class AugmentationPipeline:
    """Runs the optional context-gathering stages for one request."""

    def __init__(
        self,
        registry: ModelRegistry,
        *,
        search: SearchCapability,
        tool_chain: Sequence[CompletionCapability],
        reasoning_chain: Sequence[CompletionCapability],
        config: PipelineConfig | None = None,
    ) -> None:
        self.registry = registry
        self.search = search
        self.tool_chain = list(tool_chain)
        self.reasoning_chain = list(reasoning_chain)
        self.config = config or PipelineConfig()

    async def run(
        self,
        context: RequestContext,
        flags: StageFlags,
        params: GenerateParams,
        tools: ToolRegistry,
    ) -> None:
        if flags.web_search and latest_text(context.conversation):
            with stage_scope(context, "web_search"):
                await self.web_search(context)

        if flags.tools:
            with stage_scope(context, "tool_use"):
                await self.tool_use(context, params, tools)

        if flags.reasoning:
            with stage_scope(context, "reasoning"):
                await self.reasoning(context, params)

        if flags.cross_check:
            with stage_scope(context, "cross_check"):
                await self.cross_check(context, params)

    async def web_search(self, context: RequestContext) -> None:
        query = latest_text(context.conversation)
        if not query:
            return
        logger.info("stage_web_search", extra={"query": query[:200]})

        response = await self.search.search(query)
        context.tool_used.append(
            ToolInvocationRecord(
                tool_name="web_search",
                arguments={"query": query, "ai_overview": False},
                result=response,
                kind=ToolInvocationKind.CONTEXT_INJECTION,
            )
        )
        top_results = map_search_results(response, self.config.search_result_limit)
        insert_context(
            context.conversation,
            f"Web search result: {json.dumps(top_results, ensure_ascii=False)}",
        )

    async def tool_use(
        self,
        context: RequestContext,
        params: GenerateParams,
        tools: ToolRegistry,
    ) -> None:
        lines: list[str] = []
        text = latest_text(context.conversation)
        if text:
            lines.append(text)
        uris = [reference.uri for reference in context.file_references]
        if uris:
            lines.append(f"files: {json.dumps(uris)}")
        if not lines:
            logger.info("stage_tool_use_skipped", extra={"reason": "empty prompt"})
            return
        logger.info("stage_tool_use", extra={"tools": tools.names(), "files": len(uris)})

        request = CompletionRequest(
            conversation=[ConversationTurn(role=Role.USER, content="\n".join(lines))],
            system=params.system,
            temperature=params.temperature,
            top_k=params.top_k,
            top_p=params.top_p,
            tools=tools,
            max_steps=self.config.max_tool_steps,
        )
        result = await run_chain(
            self.tool_chain,
            lambda capability: capability.invoke(request),
            stage="tool_use",
        )

        for step in result.steps:
            for call, output in zip(step.tool_calls, step.tool_results, strict=True):
                context.tool_used.append(
                    ToolInvocationRecord(
                        tool_name=call.name,
                        arguments=call.arguments,
                        result=output,
                        kind=ToolInvocationKind.EXPLICIT_CALL,
                    )
                )
        insert_context(context.conversation, f"Tool result: {result.text or ''}")

    async def reasoning(self, context: RequestContext, params: GenerateParams) -> None:
        logger.info("stage_reasoning")
        request = CompletionRequest(
            conversation=strip_media(context.conversation),
            system=params.system,
            temperature=params.temperature,
            top_k=params.top_k,
            top_p=params.top_p,
        )
        result = await run_chain(
            self.reasoning_chain,
            lambda capability: capability.invoke(request),
            stage="reasoning",
        )

        reasoning_text = extract_reasoning(result.reasoning or result.text)
        if not reasoning_text or not reasoning_text.strip():
            logger.warning("stage_reasoning_empty")
            return
        context.reasoning_text = reasoning_text
        insert_context(context.conversation, f"Reasoning context: {reasoning_text}")

    async def cross_check(self, context: RequestContext, params: GenerateParams) -> None:
        descriptors = list(self.registry.values())
        logger.info("stage_cross_check", extra={"models": [d.id for d in descriptors]})
        request = CompletionRequest(
            conversation=strip_media(context.conversation),
            system=params.system,
            temperature=params.temperature,
            top_k=params.top_k,
            top_p=params.top_p,
        )
        outcomes = await asyncio.gather(
            *(descriptor.invoke.invoke(request) for descriptor in descriptors),
            return_exceptions=True,
        )

        texts: list[str] = []
        for descriptor, outcome in zip(descriptors, outcomes, strict=True):
            if not isinstance(outcome, CompletionResult):
                logger.warning(
                    "cross_check_model_failed",
                    extra={"model": descriptor.id, "error": str(outcome)[:200]},
                )
                continue
            if outcome.text is not None:
                texts.append(outcome.text)

        insert_context(
            context.conversation,
            f"Context from multiple LLMs: {json.dumps(texts, ensure_ascii=False)}",
        )
