"""
Pydantic schemas for transcription module.
"""

from pydantic import Field

from app.core.schemas import CamelModel


class TranscriptionResult(CamelModel):
    """Transcribed text of an uploaded audio clip."""

    text: str = Field(..., description="Transcribed text from audio")

    model_config = {
        "json_schema_extra": {
            "example": {
                "text": "Polymorphism lets objects of different classes be treated as instances of a common parent.",
            }
        }
    }
