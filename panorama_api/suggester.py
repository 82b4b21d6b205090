"""AI-assisted title/description/tag suggestions for stored images."""
from abc import ABC, abstractmethod
import asyncio
import base64
import json
import logging
import re
from typing import Optional

import aiohttp
from fastapi import Request

from panorama_api.errors import ExternalServiceUnavailable
from panorama_api.settings import Settings

logger = logging.getLogger(__name__)

MAX_TAGS = 5
_FENCE_START = re.compile(r"^```[^\n]*\n")
_FENCE_END = re.compile(r"```\s*$")


class MetadataSuggester(ABC):
    """Capability that proposes metadata for an image; absent when unconfigured."""

    @abstractmethod
    async def suggest(self, data: bytes, mime_type: str, lang: Optional[str] = None) -> dict:
        """
        Return any of {"title", "description", "tags"} for the image.

        Args:
            data: Image bytes
            mime_type: Declared MIME type of the bytes
            lang: Response language hint ("zh..." selects Simplified Chinese)
        """
        pass


def language_name(lang: Optional[str]) -> str:
    return "Simplified Chinese" if lang and lang.startswith("zh") else "English"


def build_prompt(lang: Optional[str]) -> str:
    return (
        f"Analyze this image and respond in {language_name(lang)} with ONLY JSON object like: "
        '{ "title": string, "description": string, "tags": string[] }'
        f"maximum {MAX_TAGS} tags with capitalized first letters, no special characters."
    )


def parse_suggestion(content: Optional[str]) -> dict:
    """Parse model output into a clean suggestion dict; anything unusable gives {}."""
    if not isinstance(content, str):
        return {}
    text = _FENCE_END.sub("", _FENCE_START.sub("", content.strip())).strip()
    try:
        raw = json.loads(text)
    except json.JSONDecodeError:
        return {}
    if not isinstance(raw, dict):
        return {}

    suggestion = {}
    for key in ("title", "description"):
        if isinstance(raw.get(key), str):
            suggestion[key] = raw[key]
    if isinstance(raw.get("tags"), list):
        suggestion["tags"] = [str(tag).strip() for tag in raw["tags"] if str(tag).strip()][:MAX_TAGS]
    return suggestion


class OpenAIMetadataSuggester(MetadataSuggester):
    """Chat-completions backed suggester using the OpenAI REST API directly."""

    def __init__(self, api_key: str, model: str, base_url: str, timeout_seconds: float = 60.0):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    def _payload(self, data: bytes, mime_type: str, lang: Optional[str]) -> dict:
        encoded = base64.b64encode(data).decode("ascii")
        return {
            "model": self.model,
            "temperature": 0.2,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": build_prompt(lang)},
                        {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{encoded}"}},
                    ],
                }
            ],
        }

    async def suggest(self, data: bytes, mime_type: str, lang: Optional[str] = None) -> dict:
        url = f"{self.base_url}/chat/completions"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(url, json=self._payload(data, mime_type, lang), headers=headers) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        logger.error("OpenAI request failed with %s: %s", response.status, error_text)
                        raise ExternalServiceUnavailable("Error generating AI metadata", error=error_text)
                    result = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, json.JSONDecodeError) as e:
            logger.error("OpenAI request failed: %r", e)
            raise ExternalServiceUnavailable("Error generating AI metadata", error=str(e) or type(e).__name__)

        try:
            content = result["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            logger.error("Unexpected OpenAI response shape: %r", result)
            raise ExternalServiceUnavailable("Error generating AI metadata", error=f"Malformed response: {e!r}")
        return parse_suggestion(content)


def build_metadata_suggester(config: Settings) -> Optional[MetadataSuggester]:
    """Build the suggester once at startup; None when no API key is configured."""
    if not config.OPENAI_API_KEY:
        logger.info("OPENAI_API_KEY not set; AI metadata disabled")
        return None
    return OpenAIMetadataSuggester(
        api_key=config.OPENAI_API_KEY,
        model=config.OPENAI_MODEL,
        base_url=config.OPENAI_BASE_URL,
        timeout_seconds=config.OPENAI_TIMEOUT_SECONDS,
    )


def get_metadata_suggester(request: Request) -> Optional[MetadataSuggester]:
    """Dependency for FastAPI returning the suggester built at startup."""
    return getattr(request.app.state, "metadata_suggester", None)
