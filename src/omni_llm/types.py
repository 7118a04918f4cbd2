"""Shared domain models."""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any


class Role(str, Enum):
    """Conversation roles."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class PartKind(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    FILE = "file"


class FileType(str, Enum):
    """File families a model can accept."""

    AUDIO = "audio"
    IMAGE = "image"
    VIDEO = "video"
    PDF = "pdf"
    TEXT = "text"


@dataclass(slots=True, frozen=True)
class ContentPart:
    """One element of a multi-part message."""

    kind: PartKind
    data: str | bytes
    mime_type: str | None = None

    @classmethod
    def text(cls, data: str) -> "ContentPart":
        return cls(kind=PartKind.TEXT, data=data)

    @classmethod
    def image(cls, data: str | bytes, mime_type: str | None = None) -> "ContentPart":
        return cls(kind=PartKind.IMAGE, data=data, mime_type=mime_type)

    @classmethod
    def file(cls, data: str | bytes, mime_type: str | None = None) -> "ContentPart":
        return cls(kind=PartKind.FILE, data=data, mime_type=mime_type)

    @property
    def is_media(self) -> bool:
        return self.kind is not PartKind.TEXT


@dataclass(slots=True)
class ConversationTurn:
    """A single entry of the chat history."""

    role: Role
    content: str | list[ContentPart]

    def text(self) -> str | None:
        """Plain string content, or the first text part of a multi-part turn."""
        if isinstance(self.content, str):
            return self.content
        for part in self.content:
            if part.kind is PartKind.TEXT:
                return str(part.data)
        return None

    def media(self) -> list[ContentPart]:
        if isinstance(self.content, str):
            return []
        return [part for part in self.content if part.is_media]

    def without_media(self) -> "ConversationTurn":
        if isinstance(self.content, str):
            return replace(self)
        return ConversationTurn(
            role=self.role,
            content=[part for part in self.content if not part.is_media],
        )


@dataclass(slots=True, frozen=True)
class FileReference:
    """Synthetic URI standing in for a media part of the latest turn."""

    uri: str
    part: ContentPart


@dataclass(slots=True, frozen=True)
class PlanDecision:
    """Structured routing decision produced once per request."""

    selected_model_id: str
    use_web_search: bool = False
    use_reasoning: bool = False
    use_tools: bool = False


class ToolInvocationKind(str, Enum):
    EXPLICIT_CALL = "tool-call"
    CONTEXT_INJECTION = "tool-context-use"


@dataclass(slots=True, frozen=True)
class ToolInvocationRecord:
    """Provenance entry for a tool that ran during a request."""

    tool_name: str
    arguments: dict[str, Any]
    result: Any
    kind: ToolInvocationKind


class ArtifactKind(str, Enum):
    IMAGE = "image"
    AUDIO_FILE = "audio-file"


@dataclass(slots=True, frozen=True)
class GeneratedArtifact:
    """Binary output of a side-effecting tool."""

    kind: ArtifactKind
    payload: bytes
    mime_type: str


@dataclass(slots=True)
class ToolTrace:
    """Trace record for an executed tool call."""

    name: str
    input_payload: dict[str, Any]
    output_preview: str
    latency_ms: float


@dataclass(slots=True)
class StageTrace:
    """Timing of one pipeline stage."""

    name: str
    latency_ms: float


@dataclass(slots=True)
class RequestContext:
    """Mutable state owned by exactly one `generate` call.

    The conversation only ever grows; tool records and artifacts are
    append-only.
    """

    conversation: list[ConversationTurn]
    file_references: list[FileReference] = field(default_factory=list)
    tool_used: list[ToolInvocationRecord] = field(default_factory=list)
    artifacts: list[GeneratedArtifact] = field(default_factory=list)
    tool_traces: list[ToolTrace] = field(default_factory=list)
    stages: list[StageTrace] = field(default_factory=list)
    reasoning_text: str | None = None

    @property
    def latest_turn(self) -> ConversationTurn:
        return self.conversation[-1]


@dataclass(slots=True, frozen=True)
class RequestResult:
    """Terminal output of `OmniAI.generate`."""

    model_id: str
    plan: PlanDecision
    text: str | None = None
    object: Any = None
    text_stream: AsyncIterator[str] | None = None
    partial_object_stream: AsyncIterator[Any] | None = None
    tool_used: tuple[ToolInvocationRecord, ...] = ()
    generated_artifacts: tuple[GeneratedArtifact, ...] = ()
    reasoning_text: str | None = None
    trace_id: str | None = None


@dataclass(slots=True, frozen=True)
class EmbeddingResult:
    embeddings: list[list[float]]
    chunks: list[Any]
