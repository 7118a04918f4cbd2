"""Contracts for the auxiliary services used by tools and stages."""

from __future__ import annotations

from typing import Any, Protocol


class SearchCapability(Protocol):
    async def search(self, query: str) -> dict[str, Any]:
        """Return `{"results": [{title, content|description, snippets, url}, ...]}`."""
        ...


class MediaCapability(Protocol):
    async def scrape(self, url: str | bytes, fields: list[str]) -> Any: ...

    async def ocr(self, url: str | bytes, fields: list[str]) -> Any: ...

    async def speech_to_text(self, url: str | bytes) -> Any: ...

    async def text_to_speech(self, text: str) -> bytes: ...

    async def generate_image(self, prompt: str) -> bytes: ...


class EmbeddingCapability(Protocol):
    async def embedding(
        self,
        *,
        type: str,
        text: str | None = None,
        url: str | None = None,
        file_content: str | None = None,
    ) -> dict[str, Any]: ...
