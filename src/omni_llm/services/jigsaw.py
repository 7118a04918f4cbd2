"""JigsawStack REST client covering search, scraping, OCR, audio, images and embeddings."""

from __future__ import annotations

import base64
import binascii
from typing import Any

import httpx

from omni_llm.config import ServiceConfig


class JigsawStackClient:
    """Async client for the JigsawStack v1 API.

    Inputs that are not http(s) URLs (raw bytes, base64 strings, data URIs)
    are uploaded to the file store first and referenced by key.
    """

    def __init__(self, config: ServiceConfig, client: httpx.AsyncClient | None = None) -> None:
        self.config = config
        api_key = config.api_key.get_secret_value() if config.api_key else ""
        self.client = client or httpx.AsyncClient(
            base_url=config.base_url,
            timeout=config.timeout_seconds,
            headers={"x-api-key": api_key},
            limits=httpx.Limits(max_connections=32, max_keepalive_connections=16),
        )

    @property
    def enabled(self) -> bool:
        return self.config.api_key is not None

    async def close(self) -> None:
        await self.client.aclose()

    async def search(self, query: str) -> dict[str, Any]:
        return await self._post_json("/web/search", {"query": query, "ai_overview": False})

    async def scrape(self, url: str | bytes, fields: list[str]) -> Any:
        payload = await self._source_payload(url)
        payload["element_prompts"] = fields
        data = await self._post_json("/ai/scrape", payload)
        return data.get("context", data)

    async def ocr(self, url: str | bytes, fields: list[str]) -> Any:
        payload = await self._source_payload(url)
        payload["prompt"] = fields
        data = await self._post_json("/vocr", payload)
        return data.get("context", data)

    async def speech_to_text(self, url: str | bytes) -> Any:
        payload = await self._source_payload(url)
        data = await self._post_json("/ai/transcribe", payload)
        return data.get("text", data)

    async def text_to_speech(self, text: str) -> bytes:
        return await self._post_bytes("/ai/tts", {"text": text})

    async def generate_image(self, prompt: str) -> bytes:
        return await self._post_bytes("/ai/image_generation", {"prompt": prompt})

    async def embedding(
        self,
        *,
        type: str,
        text: str | None = None,
        url: str | None = None,
        file_content: str | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": type, "token_overflow_mode": "error"}
        if text is not None:
            payload["text"] = text
        if url is not None:
            payload["url"] = url
        if file_content is not None:
            payload["file_content"] = file_content
        return await self._post_json("/embedding", payload)

    async def upload(self, content: bytes) -> str:
        resp = await self.client.post(
            "/store/file",
            content=content,
            headers={"Content-Type": "application/octet-stream"},
        )
        resp.raise_for_status()
        return str(resp.json()["key"])

    async def _source_payload(self, source: str | bytes) -> dict[str, Any]:
        if isinstance(source, str) and source.startswith(("http://", "https://")):
            return {"url": source}
        return {"file_store_key": await self.upload(_decode_payload(source))}

    async def _post_json(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        resp = await self.client.post(path, json=payload)
        resp.raise_for_status()
        return resp.json()

    async def _post_bytes(self, path: str, payload: dict[str, Any]) -> bytes:
        resp = await self.client.post(path, json=payload)
        resp.raise_for_status()
        return resp.content


def _decode_payload(source: str | bytes) -> bytes:
    if isinstance(source, (bytes, bytearray)):
        return bytes(source)
    data = source.split(",", 1)[1] if source.startswith("data:") else source
    try:
        return base64.b64decode(data, validate=True)
    except binascii.Error:
        return source.encode("utf-8")
