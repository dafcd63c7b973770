"""
Transcription service - Business logic for audio transcription.
Uses the same generative client as card generation, tuned for verbatim output.
"""

import logging

from app.core.exceptions import ExternalAPIError
from app.generation.client import Attachment, GenerativeClient
from app.generation.prompts import TRANSCRIPTION_PROMPT
from app.transcription.schemas import TranscriptionResult

logger = logging.getLogger(__name__)

TRANSCRIPTION_TIMEOUT_SECONDS = 60.0
TRANSCRIPTION_TEMPERATURE = 0.1
TRANSCRIPTION_MAX_TOKENS = 2000


class TranscriptionService:
    """Service for turning audio clips into text."""

    def __init__(self, client: GenerativeClient):
        self.client = client

    async def transcribe_audio(self, audio: Attachment) -> TranscriptionResult:
        """
        Transcribe an audio clip to text.

        Args:
            audio: Validated audio upload

        Returns:
            TranscriptionResult with the trimmed transcript

        Raises:
            GenerationTimeoutError: If the model call exceeds 60 seconds
            ExternalAPIError: If the provider fails or returns only whitespace
        """
        logger.info(f"[TranscriptionService] Starting transcription ({audio.mime_type}, {len(audio.data)} bytes)")

        text = await self.client.generate(
            TRANSCRIPTION_PROMPT,
            attachment=audio,
            temperature=TRANSCRIPTION_TEMPERATURE,
            max_output_tokens=TRANSCRIPTION_MAX_TOKENS,
            timeout=TRANSCRIPTION_TIMEOUT_SECONDS,
        )

        text = text.strip()
        if not text:
            raise ExternalAPIError("Empty transcription from AI")

        logger.info(f"[TranscriptionService] Transcription successful, length: {len(text)} chars")
        return TranscriptionResult(text=text)


def get_transcription_service(client: GenerativeClient) -> TranscriptionService:
    """Factory function for TranscriptionService."""
    return TranscriptionService(client)
