"""Final generation against the selected model, and result assembly."""

from __future__ import annotations

import logging
from typing import Any

from jsonschema import Draft7Validator
from pydantic import BaseModel, ValidationError

from omni_llm.agent.fallback import run_with_fallback
from omni_llm.agent.params import GenerateParams
from omni_llm.config import PipelineConfig
from omni_llm.errors import FallbackExhausted, SchemaValidationFailed
from omni_llm.models.registry import ModelDescriptor, ModelRegistry
from omni_llm.providers.base import CompletionRequest, CompletionResult
from omni_llm.types import PlanDecision, RequestContext, RequestResult

logger = logging.getLogger(__name__)

STAGE = "final"


def validate_object(value: Any, schema: Any) -> Any:
    """Coerce a structured output into the caller's schema.

    Pydantic model classes are validated with `model_validate`; dict schemas
    are treated as JSON Schema (Draft 7).
    """
    if isinstance(schema, type) and issubclass(schema, BaseModel):
        if isinstance(value, schema):
            return value
        try:
            return schema.model_validate(value)
        except ValidationError as exc:
            errors = [
                {"path": list(err["loc"]), "message": err["msg"]} for err in exc.errors()
            ]
            raise SchemaValidationFailed(
                f"Output does not match {schema.__name__}", errors=errors
            ) from exc

    if isinstance(value, BaseModel):
        value = value.model_dump()
    validator = Draft7Validator(schema)
    errors = [
        {"path": list(err.path), "message": err.message}
        for err in validator.iter_errors(value)
    ]
    if errors:
        raise SchemaValidationFailed("Output does not match the requested schema", errors=errors)
    return value


class ExecutionStage:
    """Issues the final completion through a two-candidate fallback chain."""

    def __init__(self, registry: ModelRegistry, config: PipelineConfig | None = None) -> None:
        self.registry = registry
        self.config = config or PipelineConfig()

    def is_low_capability(self, descriptor: ModelDescriptor) -> bool:
        return (
            descriptor.capability_rank <= self.config.low_capability_rank
            or descriptor.context_window < self.config.min_reasoning_context_window
        )

    def select_models(
        self,
        planned: ModelDescriptor,
        *,
        reasoning_present: bool,
    ) -> tuple[ModelDescriptor, ModelDescriptor]:
        """Return (primary, fallback) for the final call.

        A reasoning-augmented prompt is never routed to a low-capability
        model, as primary or as fallback; the configured reasoning-safe model
        and the default models are used instead.
        """
        primary = planned
        if reasoning_present and self.is_low_capability(planned):
            primary = self.registry.lookup(self.config.reasoning_safe_model)

        fallback = self.registry.fallback_for(planned)
        if fallback is not None and (
            fallback.id == primary.id
            or (reasoning_present and self.is_low_capability(fallback))
        ):
            fallback = None
        if fallback is None:
            if primary.id == self.config.final_default_model:
                fallback = self.registry.lookup(self.config.final_alternate_model)
            else:
                fallback = self.registry.lookup(self.config.final_default_model)
        return primary, fallback

    async def run(
        self,
        context: RequestContext,
        planned: ModelDescriptor,
        params: GenerateParams,
    ) -> tuple[ModelDescriptor, CompletionResult]:
        primary, fallback = self.select_models(
            planned, reasoning_present=context.reasoning_text is not None
        )
        schema = params.schema_
        request = CompletionRequest(
            conversation=list(context.conversation),
            system=params.system,
            schema=schema,
            temperature=params.temperature,
            top_k=params.top_k,
            top_p=params.top_p,
            stream=params.stream,
        )
        logger.info(
            "stage_final",
            extra={"model": primary.id, "fallback": fallback.id, "stream": params.stream},
        )

        async def _work(
            substitute: ModelDescriptor | None,
        ) -> tuple[ModelDescriptor, CompletionResult]:
            descriptor = substitute or primary
            result = await descriptor.invoke.invoke(request)
            if schema is not None and not params.stream:
                result.object = validate_object(result.object, schema)
            return descriptor, result

        try:
            return await run_with_fallback(_work, [fallback], stage=STAGE)
        except FallbackExhausted as exc:
            if isinstance(exc.last_error, SchemaValidationFailed):
                exc.last_error.stage = STAGE
                raise exc.last_error from exc
            raise


class RequestResultBuilder:
    """Collects the pieces of a `RequestResult` and freezes them once."""

    def __init__(self, plan: PlanDecision, context: RequestContext) -> None:
        self._plan = plan
        self._context = context
        self._model_id: str | None = None
        self._completion: CompletionResult | None = None
        self._trace_id: str | None = None
        self._built = False

    def with_completion(self, model_id: str, completion: CompletionResult) -> "RequestResultBuilder":
        self._model_id = model_id
        self._completion = completion
        return self

    def with_trace(self, trace_id: str | None) -> "RequestResultBuilder":
        self._trace_id = trace_id
        return self

    def build(self) -> RequestResult:
        if self._built:
            raise RuntimeError("RequestResult already built")
        if self._completion is None or self._model_id is None:
            raise RuntimeError("Completion is required before building the result")
        self._built = True
        completion = self._completion
        return RequestResult(
            model_id=self._model_id,
            plan=self._plan,
            text=completion.text,
            object=completion.object,
            text_stream=completion.text_stream,
            partial_object_stream=completion.object_stream,
            tool_used=tuple(self._context.tool_used),
            generated_artifacts=tuple(self._context.artifacts),
            reasoning_text=self._context.reasoning_text,
            trace_id=self._trace_id,
        )
