"""OpenAI client wrapper for JSON-mode chat completions.

Builds vision messages (text plus an optional inline image) and returns the
raw completion text. Parsing is left to the caller.
"""

import base64
from pathlib import Path
from typing import Any, Dict, List, Optional

import openai
from openai import OpenAI
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from ..config import Settings
from ..log import get_logger

logger = get_logger("llm_client")

_MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
}

TRANSIENT_ERRORS = (openai.APIConnectionError, openai.APITimeoutError, openai.RateLimitError)


def get_mime_type(path: str) -> str:
    return _MIME_TYPES.get(Path(path).suffix.lower(), "image/jpeg")


def image_to_data_url(path: str) -> str:
    with open(path, "rb") as f:
        encoded = base64.b64encode(f.read()).decode("ascii")
    return f"data:{get_mime_type(path)};base64,{encoded}"


def build_user_content(text: str, image_path: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    User message parts: the prompt text, then the image if it can be read.
    An unreadable image is logged and skipped so the text-only analysis still runs.
    """
    content: List[Dict[str, Any]] = [{"type": "text", "text": text}]
    if image_path:
        try:
            content.append({
                "type": "image_url",
                "image_url": {"url": image_to_data_url(image_path), "detail": "high"},
            })
        except OSError as e:
            logger.error(f"Failed to read image {image_path}: {e}")
    return content


class LLMClient:
    def __init__(self, settings: Settings):
        self.settings = settings
        self.client = OpenAI(api_key=settings.OPENAI_API_KEY, max_retries=0)

    @retry(
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
    )
    def complete(
        self,
        messages: List[Dict[str, Any]],
        model: str,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        json_mode: bool = True,
    ) -> str:
        """Run a chat completion and return the message text (JSON-object mode by default)."""
        kwargs: Dict[str, Any] = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        completion = self.client.chat.completions.create(
            model=model,
            messages=messages,
            max_tokens=max_tokens or self.settings.OPENAI_MAX_TOKENS,
            temperature=self.settings.OPENAI_TEMPERATURE if temperature is None else temperature,
            **kwargs,
        )
        content = completion.choices[0].message.content if completion.choices else None
        if not content:
            raise ValueError("No content in OpenAI response")
        return content
