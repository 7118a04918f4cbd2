"""FastAPI entrypoint for generate/embedding/trace endpoints."""

from __future__ import annotations

import base64
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import asdict
from functools import lru_cache
from typing import Any, Literal

import httpx
from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, ConfigDict, Field, field_validator

from omni_llm.agent.orchestrator import OmniAI, create_omni_ai
from omni_llm.agent.params import EmbeddingParams, GenerateParams
from omni_llm.errors import OmniError, SchemaValidationFailed, UnknownModel
from omni_llm.obs.tracing import TraceStore
from omni_llm.types import (
    ContentPart,
    ConversationTurn,
    PartKind,
    RequestResult,
    Role,
)


class ContentPartPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    type: Literal["text", "image", "file"]
    data: str
    mime_type: str | None = Field(default=None, alias="mimeType")


class TurnPayload(BaseModel):
    role: Literal["user", "assistant", "system"] = "user"
    content: str | list[ContentPartPayload]

    def to_turn(self) -> ConversationTurn:
        if isinstance(self.content, str):
            return ConversationTurn(role=Role(self.role), content=self.content)
        return ConversationTurn(
            role=Role(self.role),
            content=[
                ContentPart(kind=PartKind(part.type), data=part.data, mime_type=part.mime_type)
                for part in self.content
            ],
        )


class GenerateRequest(BaseModel):
    prompt: str | list[TurnPayload]
    system: str | None = None
    response_schema: dict[str, Any] | None = None
    reasoning: bool | None = None
    use_web_search: bool | None = None
    auto_tool: bool | None = None
    multi_model: bool = False
    temperature: float = Field(default=0.0, ge=0.0, le=2.0)
    top_k: int | None = Field(default=None, ge=1)
    top_p: float | None = Field(default=None, gt=0.0, le=1.0)

    @field_validator("prompt")
    @classmethod
    def _non_empty(cls, value: str | list[TurnPayload]) -> str | list[TurnPayload]:
        if not value:
            raise ValueError("prompt must not be empty")
        return value

    def to_params(self) -> GenerateParams:
        prompt = self.prompt if isinstance(self.prompt, str) else [t.to_turn() for t in self.prompt]
        return GenerateParams(
            prompt=prompt,
            system=self.system,
            schema=self.response_schema,
            reasoning=self.reasoning,
            use_web_search=self.use_web_search,
            auto_tool=self.auto_tool,
            multi_model=self.multi_model,
            temperature=self.temperature,
            top_k=self.top_k,
            top_p=self.top_p,
        )


class EmbeddingRequest(BaseModel):
    type: str = Field(min_length=1)
    text: str | None = None
    url: str | None = None
    file_content: str | None = None


_trace_store = TraceStore()


@lru_cache(maxsize=1)
def get_omni() -> OmniAI:
    return create_omni_ai(trace_store=_trace_store)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    yield
    if get_omni.cache_info().currsize:
        await get_omni().aclose()
        get_omni.cache_clear()


app = FastAPI(title="Omni LLM", version="0.1.0", lifespan=lifespan)


def get_trace_store() -> TraceStore:
    return _trace_store


def _error_response(exc: OmniError) -> HTTPException:
    status = 422 if isinstance(exc, (UnknownModel, SchemaValidationFailed)) else 502
    return HTTPException(
        status_code=status,
        detail={
            "error": type(exc).__name__,
            "stage": exc.stage,
            "message": str(exc),
            **exc.details,
        },
    )


def _serialize_result(result: RequestResult) -> dict[str, Any]:
    obj = result.object
    if isinstance(obj, BaseModel):
        obj = obj.model_dump()
    return {
        "model_id": result.model_id,
        "text": result.text,
        "object": obj,
        "plan": asdict(result.plan),
        "tool_used": [
            {
                "tool_name": record.tool_name,
                "arguments": record.arguments,
                "result": record.result,
                "kind": record.kind.value,
            }
            for record in result.tool_used
        ],
        "generated_artifacts": [
            {
                "kind": artifact.kind.value,
                "mime_type": artifact.mime_type,
                "data": base64.b64encode(artifact.payload).decode("ascii"),
            }
            for artifact in result.generated_artifacts
        ],
        "reasoning_text": result.reasoning_text,
        "trace_id": result.trace_id,
    }


@app.get("/health")
def health(omni: OmniAI = Depends(get_omni)) -> dict[str, Any]:
    return {
        "status": "ok",
        "models": list(omni.registry),
        "embedding_configured": omni.embedder is not None,
        "services_configured": getattr(omni.search, "enabled", True),
        "trace_count": len(omni.trace_store.list_recent(limit=1000)) if omni.trace_store else 0,
    }


@app.post("/generate")
async def generate(request: GenerateRequest, omni: OmniAI = Depends(get_omni)) -> dict[str, Any]:
    try:
        result = await omni.generate(request.to_params())
    except OmniError as exc:
        raise _error_response(exc) from exc
    return _serialize_result(result)


@app.post("/embedding")
async def embedding(request: EmbeddingRequest, omni: OmniAI = Depends(get_omni)) -> dict[str, Any]:
    try:
        result = await omni.embedding(EmbeddingParams(**request.model_dump()))
    except RuntimeError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except httpx.HTTPError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return {"embeddings": result.embeddings, "chunks": result.chunks}


@app.get("/traces")
def traces(limit: int = 20, store: TraceStore = Depends(get_trace_store)) -> dict[str, Any]:
    records = [asdict(record) for record in store.list_recent(limit=limit)]
    return {"items": records}


@app.get("/traces/{trace_id}")
def trace_detail(trace_id: str, store: TraceStore = Depends(get_trace_store)) -> dict[str, Any]:
    try:
        record = store.get(trace_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return asdict(record)


@app.get("/metrics")
def metrics(store: TraceStore = Depends(get_trace_store)) -> dict[str, Any]:
    return store.summary()
