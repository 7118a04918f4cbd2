"""Chat model construction from per-provider configuration."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from langchain.chat_models import init_chat_model
from langchain_core.language_models import BaseChatModel

from omni_llm.config import ModelRoute, ProviderConfig
from omni_llm.providers.langchain_adapter import LangChainCompletion

logger = logging.getLogger(__name__)


class ChatModelFactory:
    """Builds LangChain chat models and caches one capability per route.

    Models are constructed lazily on each call so that sampling parameters
    can vary per request and missing API keys only fail the call that needs
    them.
    """

    def __init__(
        self,
        providers: Mapping[str, ProviderConfig],
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._providers = dict(providers)
        self._environ = environ
        self._capabilities: dict[tuple[str, str, bool], LangChainCompletion] = {}

    def build(
        self,
        route: ModelRoute,
        *,
        temperature: float | None = None,
        top_k: int | None = None,
        top_p: float | None = None,
    ) -> BaseChatModel:
        provider = self._providers.get(route.provider)
        if provider is None:
            raise KeyError(f"Unknown provider: {route.provider}")

        kwargs = self.model_kwargs(
            route, provider, temperature=temperature, top_k=top_k, top_p=top_p
        )
        logger.debug(
            "chat_model_created",
            extra={"provider": route.provider, "model": route.model, "sampling": route.sampling},
        )
        return init_chat_model(route.model, model_provider=provider.backend, **kwargs)

    def model_kwargs(
        self,
        route: ModelRoute,
        provider: ProviderConfig,
        *,
        temperature: float | None = None,
        top_k: int | None = None,
        top_p: float | None = None,
    ) -> dict[str, Any]:
        kwargs: dict[str, Any] = {}
        api_key = provider.resolve_api_key(self._environ)
        if api_key:
            kwargs["api_key"] = api_key
        if provider.base_url:
            kwargs["base_url"] = provider.base_url
        if route.sampling:
            if temperature is not None:
                kwargs["temperature"] = temperature
            if top_p is not None:
                kwargs["top_p"] = top_p
            if top_k is not None and provider.supports_top_k:
                kwargs["top_k"] = top_k
        return kwargs

    def completion_for(self, route: ModelRoute) -> LangChainCompletion:
        key = (route.provider, route.model, route.sampling)
        capability = self._capabilities.get(key)
        if capability is None:

            def _build(**sampling: Any) -> BaseChatModel:
                return self.build(route, **sampling)

            capability = LangChainCompletion(f"{route.provider}/{route.model}", _build)
            self._capabilities[key] = capability
        return capability
