"""Helpers for building and growing the request conversation."""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from typing import Any

from omni_llm.types import (
    ContentPart,
    ConversationTurn,
    FileReference,
    PartKind,
    Role,
)


def normalize_prompt(
    prompt: str | Sequence[ConversationTurn | Mapping[str, Any]],
) -> list[ConversationTurn]:
    """Turn a caller prompt into a fresh, owned list of turns."""
    if isinstance(prompt, str):
        return [ConversationTurn(role=Role.USER, content=prompt)]

    turns = [turn if isinstance(turn, ConversationTurn) else turn_from_dict(turn) for turn in prompt]
    if not turns:
        raise ValueError("Prompt must contain at least one turn")
    # Copy so that insertions never leak into the caller's list.
    return [
        ConversationTurn(
            role=turn.role,
            content=turn.content if isinstance(turn.content, str) else list(turn.content),
        )
        for turn in turns
    ]


def turn_from_dict(payload: Mapping[str, Any]) -> ConversationTurn:
    content = payload.get("content", "")
    if isinstance(content, str):
        return ConversationTurn(role=Role(payload.get("role", "user")), content=content)
    parts = [
        ContentPart(
            kind=PartKind(item["type"]),
            data=item["data"],
            mime_type=item.get("mime_type") or item.get("mimeType"),
        )
        for item in content
    ]
    return ConversationTurn(role=Role(payload.get("role", "user")), content=parts)


def latest_text(conversation: Sequence[ConversationTurn]) -> str | None:
    return conversation[-1].text() if conversation else None


def build_file_references(turn: ConversationTurn, base: str) -> list[FileReference]:
    base = base.rstrip("/")
    return [
        FileReference(uri=f"{base}/{index}", part=part)
        for index, part in enumerate(turn.media())
    ]


def resolve_reference(value: str, references: Sequence[FileReference]) -> str | bytes:
    """Map a synthetic file URI back to its payload; anything else passes through."""
    for reference in references:
        if reference.uri == value:
            return reference.part.data
    return value


def insert_context(conversation: list[ConversationTurn], text: str) -> None:
    """Insert a synthetic user turn immediately before the final turn."""
    position = max(len(conversation) - 1, 0)
    conversation.insert(position, ConversationTurn(role=Role.USER, content=text))


def strip_media(conversation: Sequence[ConversationTurn]) -> list[ConversationTurn]:
    return [turn.without_media() for turn in conversation]


def turn_to_json(turn: ConversationTurn) -> str:
    """JSON encoding used in planner prompts; binary payloads become placeholders."""
    if isinstance(turn.content, str):
        content: Any = turn.content
    else:
        content = [_part_to_dict(part) for part in turn.content]
    return json.dumps({"role": turn.role.value, "content": content}, ensure_ascii=False)


def _part_to_dict(part: ContentPart) -> dict[str, Any]:
    data: Any = part.data
    if isinstance(data, (bytes, bytearray)):
        data = f"<{len(data)} bytes>"
    item: dict[str, Any] = {"type": part.kind.value, "data": data}
    if part.mime_type:
        item["mimeType"] = part.mime_type
    return item
