"""
Transcription router - API endpoint for audio transcription.
"""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, File, UploadFile, status

from app.auth.models import User
from app.core.exceptions import InvalidInputError
from app.core.schemas import ErrorResponse, SuccessResponse
from app.dependencies import GenClient
from app.generation.media import has_file, read_audio
from app.quota.dependencies import require_quota
from app.transcription.schemas import TranscriptionResult
from app.transcription.service import get_transcription_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/audio", tags=["Transcription"])

TranscribeQuotaUser = Annotated[User, Depends(require_quota("audio_transcribe"))]


@router.post(
    "/transcribe",
    response_model=SuccessResponse[TranscriptionResult],
    status_code=status.HTTP_200_OK,
    summary="Transcribe audio file",
    description="Upload an audio clip and get the transcribed text.",
    responses={
        400: {"model": ErrorResponse, "description": "Missing, empty, oversize or unsupported audio"},
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        408: {"model": ErrorResponse, "description": "Transcription timed out"},
        429: {"description": "Rate limit exceeded"},
        500: {"model": ErrorResponse, "description": "Transcription failed"},
    },
)
async def transcribe_audio(
        current_user: TranscribeQuotaUser,
        client: GenClient,
        audio: Annotated[
            Optional[UploadFile],
            File(description="WAV, MP3, AIFF, AAC, OGG, FLAC or WEBM, max 50MB"),
        ] = None,
) -> SuccessResponse[TranscriptionResult]:
    """
    Transcribe an uploaded audio file to text.

    Requires authentication and counts against the audio_transcribe quota.
    """
    if not has_file(audio):
        raise InvalidInputError("Audio file is required")

    logger.info(f"[TranscriptionRouter] Received file: {audio.filename}, user: {current_user.id}")

    try:
        attachment = await read_audio(audio, for_transcription=True)
    finally:
        await audio.close()

    service = get_transcription_service(client)
    result = await service.transcribe_audio(attachment)
    return SuccessResponse[TranscriptionResult](data=result)
