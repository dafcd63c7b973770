"""
Upload validation for image and audio inputs.
Runs before any model call so bad uploads never reach the provider.
"""

import logging
from typing import Optional

from fastapi import UploadFile

from app.core.exceptions import FileTooLargeError, InvalidInputError, UnsupportedMediaError
from app.generation.client import Attachment

logger = logging.getLogger(__name__)

MAX_IMAGE_BYTES = 20 * 1024 * 1024
MAX_AUDIO_BYTES = 50 * 1024 * 1024

IMAGE_TYPES = frozenset({"image/png", "image/jpeg", "image/webp", "image/heic", "image/heif"})
AUDIO_TYPES = frozenset({"audio/wav", "audio/mp3", "audio/aiff", "audio/aac", "audio/ogg", "audio/flac"})
TRANSCRIBE_AUDIO_TYPES = AUDIO_TYPES | {"audio/webm"}


def has_file(upload: Optional[UploadFile]) -> bool:
    """Browsers send an empty part with no filename for an unused file input."""
    return upload is not None and bool(upload.filename)


async def read_upload(
    upload: UploadFile,
    allowed_types: frozenset,
    max_bytes: int,
    label: str,
) -> Attachment:
    """
    Read and validate an uploaded file.

    Raises:
        UnsupportedMediaError: If the declared MIME type is not allowed
        FileTooLargeError: If the file exceeds max_bytes
        InvalidInputError: If the file is empty
    """
    mime_type = (upload.content_type or "").split(";")[0].strip().lower()
    if mime_type not in allowed_types:
        raise UnsupportedMediaError(
            f"Unsupported {label} type: {mime_type or 'unknown'}. "
            f"Allowed: {', '.join(sorted(allowed_types))}"
        )

    if upload.size is not None and upload.size > max_bytes:
        raise FileTooLargeError(f"{label.capitalize()} exceeds {max_bytes // (1024 * 1024)}MB limit")

    # Read one byte past the limit so oversize streams are caught without a size header
    data = await upload.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise FileTooLargeError(f"{label.capitalize()} exceeds {max_bytes // (1024 * 1024)}MB limit")
    if not data:
        raise InvalidInputError(f"Uploaded {label} is empty")

    logger.info(f"[Media] Accepted {label}: {upload.filename} ({mime_type}, {len(data)} bytes)")
    return Attachment(data=data, mime_type=mime_type)


async def read_image(upload: UploadFile) -> Attachment:
    return await read_upload(upload, IMAGE_TYPES, MAX_IMAGE_BYTES, "image")


async def read_audio(upload: UploadFile, for_transcription: bool = False) -> Attachment:
    allowed = TRANSCRIBE_AUDIO_TYPES if for_transcription else AUDIO_TYPES
    return await read_upload(upload, allowed, MAX_AUDIO_BYTES, "audio")
