import json

import pytest

from omni_llm.conversation import (
    build_file_references,
    insert_context,
    normalize_prompt,
    resolve_reference,
    strip_media,
    turn_to_json,
)
from omni_llm.types import ContentPart, ConversationTurn, Role


def test_string_prompt_becomes_single_user_turn() -> None:
    conversation = normalize_prompt("What is 2+2?")

    assert conversation == [ConversationTurn(role=Role.USER, content="What is 2+2?")]


def test_normalize_copies_caller_list() -> None:
    turns = [ConversationTurn(role=Role.USER, content="hi")]
    conversation = normalize_prompt(turns)
    insert_context(conversation, "extra")

    assert len(turns) == 1
    assert len(conversation) == 2


def test_normalize_accepts_dict_turns() -> None:
    conversation = normalize_prompt(
        [
            {"role": "user", "content": "hello"},
            {
                "role": "user",
                "content": [
                    {"type": "text", "data": "read this"},
                    {"type": "image", "data": "aGVsbG8=", "mimeType": "image/png"},
                ],
            },
        ]
    )

    assert conversation[1].content[1].mime_type == "image/png"
    assert conversation[1].text() == "read this"


def test_empty_prompt_rejected() -> None:
    with pytest.raises(ValueError):
        normalize_prompt([])


def test_insert_context_keeps_final_turn_last() -> None:
    conversation = normalize_prompt(
        [
            ConversationTurn(role=Role.USER, content="first"),
            ConversationTurn(role=Role.ASSISTANT, content="reply"),
            ConversationTurn(role=Role.USER, content="final"),
        ]
    )
    insert_context(conversation, "ctx 1")
    insert_context(conversation, "ctx 2")

    assert [turn.content for turn in conversation] == ["first", "reply", "ctx 1", "ctx 2", "final"]
    assert conversation[2].role is Role.USER


def test_file_references_resolve_to_original_payload() -> None:
    image = b"\x89PNG\r\n"
    turn = ConversationTurn(
        role=Role.USER,
        content=[
            ContentPart.text("total?"),
            ContentPart.image(image, "image/png"),
            ContentPart.file("https://example.com/a.pdf", "application/pdf"),
        ],
    )
    references = build_file_references(turn, "https://omnillmref.com/")

    assert [reference.uri for reference in references] == [
        "https://omnillmref.com/0",
        "https://omnillmref.com/1",
    ]
    assert resolve_reference("https://omnillmref.com/0", references) == image
    assert resolve_reference("https://other.example/x.png", references) == "https://other.example/x.png"


def test_strip_media_keeps_text_parts() -> None:
    conversation = [
        ConversationTurn(
            role=Role.USER,
            content=[ContentPart.text("describe"), ContentPart.image(b"img")],
        )
    ]

    stripped = strip_media(conversation)

    assert stripped[0].content == [ContentPart.text("describe")]
    assert len(conversation[0].content) == 2


def test_turn_to_json_replaces_binary_payloads() -> None:
    turn = ConversationTurn(
        role=Role.USER,
        content=[ContentPart.text("hi"), ContentPart.image(b"1234", "image/png")],
    )

    payload = json.loads(turn_to_json(turn))

    assert payload["role"] == "user"
    assert payload["content"][1] == {"type": "image", "data": "<4 bytes>", "mimeType": "image/png"}
