"""Built-in capability tools available to the tool-calling sub-run."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from omni_llm.agent.registry import ToolRegistry, ToolSpec
from omni_llm.conversation import resolve_reference
from omni_llm.services.base import MediaCapability, SearchCapability
from omni_llm.types import ArtifactKind, GeneratedArtifact, RequestContext

IMAGE_ACK = "image generated and added to files"
AUDIO_ACK = "audio generated and added to files"


class WebSearchInput(BaseModel):
    query: str = Field(min_length=1, description="The query to search the web for")


class ScrapeInput(BaseModel):
    url: str = Field(min_length=1, description="The url to scrape")
    fields: list[str] = Field(description="The fields to scrape")


class OCRInput(BaseModel):
    url: str = Field(min_length=1, description="The image or PDF URL to OCR")
    fields: list[str] = Field(description="Fields to extract from the image or PDF")


class SpeechToTextInput(BaseModel):
    url: str = Field(min_length=1, description="The audio URL to convert to text")


class TextToSpeechInput(BaseModel):
    text: str = Field(min_length=1, description="The text to convert to speech")


class ImageGenerationInput(BaseModel):
    prompt: str = Field(min_length=1, description="The prompt to generate an image for")


class CurrentDatetimeInput(BaseModel):
    pass


def map_search_results(response: dict[str, Any], limit: int | None = None) -> list[dict[str, Any]]:
    """Reduce a raw search response to title/content/snippets/url entries."""
    mapped = [
        {
            "title": item.get("title"),
            "content": item.get("content") or item.get("description"),
            "snippets": item.get("snippets"),
            "url": item.get("url"),
        }
        for item in response.get("results", [])
    ]
    return mapped if limit is None else mapped[:limit]


def register_builtin_tools(
    registry: ToolRegistry,
    context: RequestContext,
    *,
    search: SearchCapability,
    media: MediaCapability,
) -> None:
    """Register the default tool set for one request.

    Tools:
    - `web_search`: web search results (title, content, snippets, url).
    - `ai_scraper` / `ocr` / `speech_to_text`: accept file-reference URIs
      from the latest turn as well as external URLs.
    - `text_to_speech` / `ai_image_generation`: append a generated artifact
      to the request and return an acknowledgement.
    - `current_datetime`: ISO timestamp in UTC.
    """

    def _resolve(url: str) -> str | bytes:
        return resolve_reference(url, context.file_references)

    async def _web_search(input_data: WebSearchInput) -> list[dict[str, Any]]:
        return map_search_results(await search.search(input_data.query))

    async def _scrape(input_data: ScrapeInput) -> Any:
        return await media.scrape(_resolve(input_data.url), input_data.fields)

    async def _ocr(input_data: OCRInput) -> Any:
        return await media.ocr(_resolve(input_data.url), input_data.fields)

    async def _speech_to_text(input_data: SpeechToTextInput) -> Any:
        return await media.speech_to_text(_resolve(input_data.url))

    async def _text_to_speech(input_data: TextToSpeechInput) -> str:
        audio = await media.text_to_speech(input_data.text)
        context.artifacts.append(
            GeneratedArtifact(kind=ArtifactKind.AUDIO_FILE, payload=audio, mime_type="audio/mpeg")
        )
        return AUDIO_ACK

    async def _generate_image(input_data: ImageGenerationInput) -> str:
        image = await media.generate_image(input_data.prompt)
        context.artifacts.append(
            GeneratedArtifact(kind=ArtifactKind.IMAGE, payload=image, mime_type="image/png")
        )
        return IMAGE_ACK

    async def _current_datetime(input_data: CurrentDatetimeInput) -> str:
        return datetime.now(timezone.utc).isoformat()

    registry.register(
        ToolSpec(
            name="web_search",
            description="Search the web for the given query",
            args_schema=WebSearchInput,
            handler=_web_search,
        )
    )
    registry.register(
        ToolSpec(
            name="ai_scraper",
            description="Scrape a website given the url and fields to scrape",
            args_schema=ScrapeInput,
            handler=_scrape,
        )
    )
    registry.register(
        ToolSpec(
            name="ocr",
            description="Performs OCR on an image or PDF URL",
            args_schema=OCRInput,
            handler=_ocr,
        )
    )
    registry.register(
        ToolSpec(
            name="speech_to_text",
            description="Convert speech to text",
            args_schema=SpeechToTextInput,
            handler=_speech_to_text,
        )
    )
    registry.register(
        ToolSpec(
            name="text_to_speech",
            description="Convert text to speech",
            args_schema=TextToSpeechInput,
            handler=_text_to_speech,
        )
    )
    registry.register(
        ToolSpec(
            name="ai_image_generation",
            description="Generate an image given the prompt",
            args_schema=ImageGenerationInput,
            handler=_generate_image,
        )
    )
    registry.register(
        ToolSpec(
            name="current_datetime",
            description=(
                "Get the current date and time in ISO format. Use this tool for queries "
                "that reference a time such as 'last weekend' or 'last month'"
            ),
            args_schema=CurrentDatetimeInput,
            handler=_current_datetime,
        )
    )
