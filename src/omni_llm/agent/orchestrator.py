"""Request orchestration: plan, augment, execute."""

from __future__ import annotations

import logging
from collections.abc import Mapping

from omni_llm.agent.execution import ExecutionStage, RequestResultBuilder
from omni_llm.agent.params import EmbeddingParams, GenerateParams
from omni_llm.agent.pipeline import AugmentationPipeline, resolve_flags, stage_scope
from omni_llm.agent.planner import Planner
from omni_llm.agent.registry import ToolRegistry, ToolSpec
from omni_llm.agent.tools import register_builtin_tools
from omni_llm.config import OmniSettings, PipelineConfig
from omni_llm.conversation import build_file_references, normalize_prompt
from omni_llm.models.registry import ModelRegistry, build_registry
from omni_llm.obs.tracing import Timer, TraceStore, estimate_token_count
from omni_llm.providers.base import CompletionCapability
from omni_llm.providers.factory import ChatModelFactory
from omni_llm.services.base import EmbeddingCapability, MediaCapability, SearchCapability
from omni_llm.services.jigsaw import JigsawStackClient
from omni_llm.types import EmbeddingResult, RequestContext, RequestResult

logger = logging.getLogger(__name__)


class OmniAI:
    """Routes one request through planner, augmentation stages and final model.

    Holds only read-only collaborators; all per-request state lives in a
    `RequestContext` created inside `generate`.
    """

    def __init__(
        self,
        *,
        registry: ModelRegistry,
        planner_chain: list[CompletionCapability],
        tool_chain: list[CompletionCapability],
        reasoning_chain: list[CompletionCapability],
        search: SearchCapability,
        media: MediaCapability,
        embedder: EmbeddingCapability | None = None,
        config: PipelineConfig | None = None,
        trace_store: TraceStore | None = None,
    ) -> None:
        self.registry = registry
        self.config = config or PipelineConfig()
        self.search = search
        self.media = media
        self.embedder = embedder
        self.trace_store = trace_store
        self.planner = Planner(registry, planner_chain)
        self.pipeline = AugmentationPipeline(
            registry,
            search=search,
            tool_chain=tool_chain,
            reasoning_chain=reasoning_chain,
            config=self.config,
        )
        self.execution = ExecutionStage(registry, self.config)

    def build_tools(
        self,
        context: RequestContext,
        extra_tools: Mapping[str, ToolSpec] | None = None,
    ) -> ToolRegistry:
        tools = ToolRegistry()
        for name, spec in (extra_tools or {}).items():
            tools.register(spec if spec.name == name else spec.model_copy(update={"name": name}))
        register_builtin_tools(tools, context, search=self.search, media=self.media)
        return tools

    async def generate(self, params: GenerateParams) -> RequestResult:
        context = RequestContext(conversation=normalize_prompt(params.prompt))
        context.file_references = build_file_references(
            context.latest_turn, self.config.file_reference_base
        )
        tools = self.build_tools(context, params.extra_tools)

        with Timer() as timer:
            with stage_scope(context, "planning"):
                plan = await self.planner.decide(context.conversation, tools.names())
                planned = self.registry.lookup(plan.selected_model_id)

            flags = resolve_flags(plan, params)
            tools.set_observer(context.tool_traces.append)
            try:
                await self.pipeline.run(context, flags, params, tools)
            finally:
                tools.set_observer(None)

            with stage_scope(context, "final"):
                used, completion = await self.execution.run(context, planned, params)

        logger.info(
            "request_completed",
            extra={
                "model": used.id,
                "stages": [stage.name for stage in context.stages],
                "tools": len(context.tool_used),
                "latency_ms": round(timer.elapsed_ms, 2),
            },
        )
        builder = RequestResultBuilder(plan, context).with_completion(used.id, completion)
        if self.trace_store is not None:
            prompt_text = " ".join(turn.text() or "" for turn in context.conversation)
            record = self.trace_store.create_record(
                model_id=used.id,
                plan=plan,
                stages=context.stages,
                tool_traces=context.tool_traces,
                streamed=params.stream,
                reasoning_used=context.reasoning_text is not None,
                input_tokens=estimate_token_count(prompt_text),
                output_tokens=estimate_token_count(completion.text or ""),
                latency_ms=timer.elapsed_ms,
                artifact_count=len(context.artifacts),
            )
            builder.with_trace(record.trace_id)
        return builder.build()

    async def aclose(self) -> None:
        """Close the service clients that own network resources."""
        closed: set[int] = set()
        for service in (self.search, self.media, self.embedder):
            close = getattr(service, "close", None)
            if close is None or id(service) in closed:
                continue
            closed.add(id(service))
            await close()

    async def embedding(self, params: EmbeddingParams) -> EmbeddingResult:
        if self.embedder is None:
            raise RuntimeError("No embedding service configured")
        response = await self.embedder.embedding(
            type=params.type,
            text=params.text,
            url=params.url,
            file_content=params.file_content,
        )
        return EmbeddingResult(
            embeddings=response.get("embeddings", []),
            chunks=response.get("chunks", []),
        )


def create_omni_ai(
    settings: OmniSettings | None = None,
    *,
    model_factory: ChatModelFactory | None = None,
    services: JigsawStackClient | None = None,
    trace_store: TraceStore | None = None,
) -> OmniAI:
    """Wire an `OmniAI` from settings (defaults: environment-derived)."""

    settings = settings or OmniSettings.from_env()
    factory = model_factory or ChatModelFactory(settings.providers)
    registry = build_registry(settings.models, factory.completion_for)
    client = services or JigsawStackClient(settings.services)
    if not client.enabled:
        logger.warning(
            "services_unconfigured",
            extra={"base_url": settings.services.base_url},
        )
    pipeline = settings.pipeline

    return OmniAI(
        registry=registry,
        planner_chain=[registry.lookup(model_id).invoke for model_id in pipeline.planner_chain],
        tool_chain=[factory.completion_for(route) for route in pipeline.tool_chain],
        reasoning_chain=[factory.completion_for(route) for route in pipeline.reasoning_chain],
        search=client,
        media=client,
        embedder=client,
        config=pipeline,
        trace_store=trace_store,
    )
