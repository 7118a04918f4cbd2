"""Omni LLM: one entry point that plans, augments and routes each request."""

from .agent.orchestrator import OmniAI, create_omni_ai
from .agent.params import EmbeddingParams, GenerateParams
from .config import OmniSettings
from .errors import (
    FallbackExhausted,
    OmniError,
    PlanningFailed,
    SchemaValidationFailed,
    StageFailed,
    ToolExecutionFailed,
    UnknownModel,
)
from .types import ContentPart, ConversationTurn, RequestResult, Role

__all__ = [
    "ContentPart",
    "ConversationTurn",
    "EmbeddingParams",
    "FallbackExhausted",
    "GenerateParams",
    "OmniAI",
    "OmniError",
    "OmniSettings",
    "PlanningFailed",
    "RequestResult",
    "Role",
    "SchemaValidationFailed",
    "StageFailed",
    "ToolExecutionFailed",
    "UnknownModel",
    "create_omni_ai",
]
