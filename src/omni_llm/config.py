"""Configuration models for the orchestration layer."""

from __future__ import annotations

import os
from collections.abc import Mapping

from pydantic import BaseModel, Field, SecretStr, model_validator

from omni_llm.types import FileType


class ProviderConfig(BaseModel):
    """Connection settings for one LLM provider.

    `backend` is the LangChain `model_provider` used to construct chat models;
    OpenAI-compatible hosts (DeepInfra) use the `openai` backend with a
    `base_url`.
    """

    backend: str
    api_key: SecretStr | None = None
    api_key_env: str | None = None
    base_url: str | None = None
    supports_top_k: bool = False

    def resolve_api_key(self, environ: Mapping[str, str] | None = None) -> str | None:
        if self.api_key is not None:
            return self.api_key.get_secret_value()
        if self.api_key_env:
            env = os.environ if environ is None else environ
            return env.get(self.api_key_env) or None
        return None


class ModelRoute(BaseModel):
    """A concrete (provider, model) pair."""

    provider: str
    model: str
    # Reasoning-only endpoints reject temperature/top_p.
    sampling: bool = True


class ModelSpec(BaseModel):
    """Catalog entry for a model the planner may select."""

    id: str = Field(min_length=1)
    route: ModelRoute
    speed_rank: int = Field(ge=1, le=5)
    capability_rank: int = Field(ge=1, le=5)
    context_window: int = Field(gt=0)
    file_types: list[FileType] = Field(default_factory=lambda: [FileType.TEXT])
    description: str = ""
    specialty: list[str] = Field(default_factory=list)
    fallback: str | None = None


class PipelineConfig(BaseModel):
    """Chains, limits and model-selection rules of the request pipeline."""

    planner_chain: list[str] = Field(
        default_factory=lambda: ["llama-3.3-70b-specdec", "gemini-1.5-flash-8b"],
        min_length=1,
    )
    tool_chain: list[ModelRoute] = Field(
        default_factory=lambda: [
            ModelRoute(provider="openai", model="gpt-4o"),
            ModelRoute(provider="groq", model="llama-3.3-70b-versatile"),
            ModelRoute(provider="openai", model="gpt-4o-mini"),
        ],
        min_length=1,
    )
    reasoning_chain: list[ModelRoute] = Field(
        default_factory=lambda: [
            ModelRoute(provider="deepseek", model="deepseek-reasoner", sampling=False),
            ModelRoute(provider="deepinfra", model="deepseek-ai/DeepSeek-R1"),
            ModelRoute(provider="openai", model="o3-mini", sampling=False),
        ],
        min_length=1,
    )
    max_tool_steps: int = Field(default=5, ge=1)
    search_result_limit: int = Field(default=3, ge=1)
    file_reference_base: str = "https://omnillmref.com"
    final_default_model: str = "gpt-4o"
    final_alternate_model: str = "gemini-1.5-flash"
    reasoning_safe_model: str = "gemini-1.5-flash"
    low_capability_rank: int = Field(default=2, ge=1, le=5)
    min_reasoning_context_window: int = Field(default=32_000, ge=0)


class ServiceConfig(BaseModel):
    """JigsawStack auxiliary services (search, scrape, OCR, audio, images, embeddings)."""

    api_key: SecretStr | None = None
    base_url: str = "https://api.jigsawstack.com/v1"
    timeout_seconds: float = Field(default=60.0, gt=0.0)


def _default_providers() -> dict[str, ProviderConfig]:
    return {
        "openai": ProviderConfig(backend="openai", api_key_env="OPENAI_API_KEY"),
        "anthropic": ProviderConfig(
            backend="anthropic", api_key_env="ANTHROPIC_API_KEY", supports_top_k=True
        ),
        "google": ProviderConfig(
            backend="google_genai",
            api_key_env="GOOGLE_GENERATIVE_AI_API_KEY",
            supports_top_k=True,
        ),
        "groq": ProviderConfig(backend="groq", api_key_env="GROQ_API_KEY"),
        "deepseek": ProviderConfig(backend="deepseek", api_key_env="DEEPSEEK_API_KEY"),
        "deepinfra": ProviderConfig(
            backend="openai",
            api_key_env="DEEPINFRA_API_KEY",
            base_url="https://api.deepinfra.com/v1/openai",
        ),
    }


def default_model_catalog() -> list[ModelSpec]:
    all_files = [FileType.AUDIO, FileType.IMAGE, FileType.VIDEO, FileType.PDF, FileType.TEXT]
    return [
        ModelSpec(
            id="gemini-1.5-flash-8b",
            route=ModelRoute(provider="google", model="gemini-1.5-flash-8b"),
            speed_rank=4,
            capability_rank=3,
            context_window=1_000_000,
            file_types=all_files,
            description="Great for simple tasks that may require a large context. Also great for all file types.",
            specialty=["large-files"],
        ),
        ModelSpec(
            id="gemini-1.5-flash",
            route=ModelRoute(provider="google", model="gemini-1.5-flash"),
            speed_rank=3,
            capability_rank=4,
            context_window=1_000_000,
            file_types=all_files,
            description="Great for most common tasks and questions that may require a large context. Also great for all file types.",
            specialty=["large-files"],
        ),
        ModelSpec(
            id="gpt-4o",
            route=ModelRoute(provider="openai", model="gpt-4o"),
            speed_rank=2,
            capability_rank=4,
            context_window=128_000,
            file_types=[FileType.IMAGE, FileType.TEXT],
            description="Great for highly complex tasks.",
            specialty=["general"],
        ),
        ModelSpec(
            id="claude-3-5-sonnet-latest",
            route=ModelRoute(provider="anthropic", model="claude-3-5-sonnet-latest"),
            speed_rank=2,
            capability_rank=4,
            context_window=200_000,
            file_types=[FileType.TEXT],
            description="Great for highly complex coding tasks.",
            specialty=["code"],
        ),
        ModelSpec(
            id="llama-3.3-70b-specdec",
            route=ModelRoute(provider="groq", model="llama-3.3-70b-specdec"),
            speed_rank=5,
            capability_rank=2,
            context_window=8_192,
            file_types=[FileType.TEXT],
            description="Great for simple tasks that require speed and tool use.",
            specialty=["small-tasks"],
            fallback="gemini-1.5-flash-8b",
        ),
    ]


class OmniSettings(BaseModel):
    """Top-level settings, validated once at startup."""

    providers: dict[str, ProviderConfig] = Field(default_factory=_default_providers)
    models: list[ModelSpec] = Field(default_factory=default_model_catalog, min_length=1)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    services: ServiceConfig = Field(default_factory=ServiceConfig)

    @model_validator(mode="after")
    def _check_references(self) -> "OmniSettings":
        routes = [spec.route for spec in self.models]
        routes += self.pipeline.tool_chain + self.pipeline.reasoning_chain
        for route in routes:
            if route.provider not in self.providers:
                raise ValueError(f"Route {route.model!r} uses unknown provider {route.provider!r}")

        ids = [spec.id for spec in self.models]
        if len(ids) != len(set(ids)):
            raise ValueError("Model ids must be unique")

        known = set(ids)
        referenced = list(self.pipeline.planner_chain) + [
            self.pipeline.final_default_model,
            self.pipeline.final_alternate_model,
            self.pipeline.reasoning_safe_model,
        ]
        for model_id in referenced:
            if model_id not in known:
                raise ValueError(f"Pipeline references unknown model {model_id!r}")
        return self

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "OmniSettings":
        """Default settings with API keys read from the environment."""
        env = os.environ if environ is None else environ
        settings = cls()
        for provider in settings.providers.values():
            key = provider.resolve_api_key(env)
            if key:
                provider.api_key = SecretStr(key)
        service_key = env.get("JIGSAWSTACK_API_KEY")
        if service_key:
            settings.services.api_key = SecretStr(service_key)
        return settings
