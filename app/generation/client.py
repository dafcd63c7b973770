"""
Generative model client.

Talks to any OpenAI-compatible chat completions endpoint through the
openai SDK; by default the Gemini OpenAI-compatible API with
gemini-2.0-flash. Media is sent inline alongside the prompt.
"""

import asyncio
import base64
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI, OpenAIError

from app.config import get_settings
from app.core.exceptions import ExternalAPIError, GenerationTimeoutError

logger = logging.getLogger(__name__)

# MIME subtype -> input_audio format name
AUDIO_FORMATS = {
    "audio/wav": "wav",
    "audio/mp3": "mp3",
    "audio/mpeg": "mp3",
    "audio/aiff": "aiff",
    "audio/aac": "aac",
    "audio/ogg": "ogg",
    "audio/flac": "flac",
    "audio/webm": "webm",
}


@dataclass
class Attachment:
    """An uploaded image or audio file passed to the model."""
    data: bytes
    mime_type: str

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith("image/")


class GenerativeClient:
    """Thin async wrapper around a chat completions endpoint."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        openai_client: Optional[AsyncOpenAI] = None,
    ):
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.ai_api_key
        self.base_url = base_url or settings.ai_base_url
        self.model = model or settings.ai_model
        self._client = openai_client

    @property
    def client(self) -> AsyncOpenAI:
        """Lazy initialization of the OpenAI-compatible client."""
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self.api_key, base_url=self.base_url)
        return self._client

    async def generate(
        self,
        prompt: str,
        attachment: Optional[Attachment] = None,
        temperature: float = 0.7,
        max_output_tokens: int = 3000,
        timeout: float = 120.0,
    ) -> str:
        """
        Run one completion and return the first candidate's text.

        Raises:
            GenerationTimeoutError: If the call exceeds `timeout` seconds
            ExternalAPIError: If the provider fails or returns no text
        """
        logger.info(
            f"[GenerativeClient] Calling {self.model} "
            f"(attachment={attachment.mime_type if attachment else None}, timeout={timeout}s)"
        )

        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=self.model,
                    messages=[{"role": "user", "content": self._build_content(prompt, attachment)}],
                    temperature=temperature,
                    max_tokens=max_output_tokens,
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.error(f"[GenerativeClient] Model call timed out after {timeout}s")
            raise GenerationTimeoutError("AI generation timed out")
        except OpenAIError as e:
            logger.error(f"[GenerativeClient] Provider error: {e}")
            raise ExternalAPIError(f"AI service error: {e}")

        if not response.choices:
            raise ExternalAPIError("Empty response from AI")

        text = _message_text(response.choices[0].message.content)
        if not text:
            raise ExternalAPIError("Empty response from AI")

        logger.info(f"[GenerativeClient] Received {len(text)} chars")
        return text

    def _build_content(self, prompt: str, attachment: Optional[Attachment]) -> Any:
        if attachment is None:
            return prompt

        encoded = base64.b64encode(attachment.data).decode("ascii")
        parts: List[Dict[str, Any]] = [{"type": "text", "text": prompt}]
        if attachment.is_image:
            parts.append({
                "type": "image_url",
                "image_url": {"url": f"data:{attachment.mime_type};base64,{encoded}"},
            })
        else:
            parts.append({
                "type": "input_audio",
                "input_audio": {
                    "data": encoded,
                    "format": AUDIO_FORMATS.get(attachment.mime_type, "wav"),
                },
            })
        return parts

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.close()


def _message_text(content: Any) -> str:
    """Concatenate the text parts of a message (string or list of parts)."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    return "".join(
        part.get("text", "") if isinstance(part, dict) else getattr(part, "text", "") or ""
        for part in content
    )
