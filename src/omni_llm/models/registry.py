"""Static catalog of the models the planner can route to."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

from omni_llm.config import ModelRoute, ModelSpec
from omni_llm.errors import UnknownModel
from omni_llm.providers.base import CompletionCapability
from omni_llm.types import FileType


@dataclass(slots=True, frozen=True)
class ModelDescriptor:
    """Descriptive metadata plus the invocation capability of one model."""

    id: str
    speed_rank: int
    capability_rank: int
    context_window: int
    invoke: CompletionCapability = field(repr=False, compare=False)
    supported_file_types: frozenset[FileType] = frozenset({FileType.TEXT})
    specialty_tags: frozenset[str] = frozenset()
    description: str = ""
    fallback_id: str | None = None

    def describe(self) -> dict[str, Any]:
        """Prompt-safe view; never includes the invocation capability."""
        return {
            "id": self.id,
            "speed": self.speed_rank,
            "smarts": self.capability_rank,
            "context_window": self.context_window,
            "file_type_support": sorted(file_type.value for file_type in self.supported_file_types),
            "description": self.description,
            "specialty": sorted(self.specialty_tags),
            "fallback": self.fallback_id,
        }


class ModelRegistry(Mapping[str, ModelDescriptor]):
    """Read-only, insertion-ordered mapping from model id to descriptor."""

    def __init__(self, descriptors: Iterable[ModelDescriptor]) -> None:
        models: dict[str, ModelDescriptor] = {}
        for descriptor in descriptors:
            if descriptor.id in models:
                raise ValueError(f"Model already registered: {descriptor.id}")
            models[descriptor.id] = descriptor

        for descriptor in models.values():
            if descriptor.fallback_id is None:
                continue
            if descriptor.fallback_id == descriptor.id:
                raise ValueError(f"Model {descriptor.id} cannot fall back to itself")
            if descriptor.fallback_id not in models:
                raise ValueError(
                    f"Model {descriptor.id} falls back to unknown model {descriptor.fallback_id}"
                )
        self._models = models

    def __getitem__(self, model_id: str) -> ModelDescriptor:
        return self._models[model_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._models)

    def __len__(self) -> int:
        return len(self._models)

    def lookup(self, model_id: str) -> ModelDescriptor:
        descriptor = self._models.get(model_id)
        if descriptor is None:
            raise UnknownModel(model_id)
        return descriptor

    def fallback_for(self, descriptor: ModelDescriptor) -> ModelDescriptor | None:
        if descriptor.fallback_id is None:
            return None
        return self._models[descriptor.fallback_id]

    def serialize(self) -> dict[str, dict[str, Any]]:
        return {model_id: descriptor.describe() for model_id, descriptor in self._models.items()}


def build_registry(
    specs: Iterable[ModelSpec],
    completion_for: Callable[[ModelRoute], CompletionCapability],
) -> ModelRegistry:
    """Build the registry from catalog entries and a route -> capability factory."""
    return ModelRegistry(
        ModelDescriptor(
            id=spec.id,
            speed_rank=spec.speed_rank,
            capability_rank=spec.capability_rank,
            context_window=spec.context_window,
            invoke=completion_for(spec.route),
            supported_file_types=frozenset(spec.file_types),
            specialty_tags=frozenset(spec.specialty),
            description=spec.description,
            fallback_id=spec.fallback,
        )
        for spec in specs
    )
