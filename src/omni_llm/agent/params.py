"""Inbound request parameters."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from omni_llm.agent.registry import ToolSpec
from omni_llm.types import ConversationTurn


class GenerateParams(BaseModel):
    """Parameters of `OmniAI.generate`.

    Tri-state flags (`reasoning`, `use_web_search`, `auto_tool`): `True` or
    `False` force the stage on or off, `None` defers to the planner.
    `schema` is either a pydantic model class or a JSON-schema dict.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, populate_by_name=True)

    prompt: str | list[ConversationTurn]
    system: str | None = None
    schema_: Any = Field(default=None, alias="schema")
    stream: bool = False
    reasoning: bool | None = None
    use_web_search: bool | None = None
    auto_tool: bool | None = None
    multi_model: bool = False
    temperature: float | None = Field(default=0.0, ge=0.0, le=2.0)
    top_k: int | None = Field(default=None, ge=1)
    top_p: float | None = Field(default=None, gt=0.0, le=1.0)
    extra_tools: dict[str, ToolSpec] = Field(default_factory=dict)


class EmbeddingParams(BaseModel):
    type: str = Field(min_length=1)
    text: str | None = None
    url: str | None = None
    file_content: str | None = None
