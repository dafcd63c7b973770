"""
Pydantic schemas for AI generation endpoints.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from app.core.schemas import CamelModel
from app.flashcards.schemas import CardRead, DeckRead


class GenerateResult(CamelModel):
    """Cards created by a direct generation, plus the new deck if one was made."""

    cards: List[CardRead]
    deck: Optional[DeckRead] = None


class PreviewCard(CamelModel):
    id: str
    front: str
    back: str


class PreviewResult(CamelModel):
    """A staged batch of generated cards awaiting confirmation."""

    session_id: str = Field(..., description="Opaque preview session ID")
    deck_title: str
    deck_description: Optional[str] = None
    generation_type: str
    cards: List[PreviewCard]
    expires_at: datetime


class ConfirmRequest(CamelModel):
    """Persist a preview session into a new or existing deck."""

    session_id: str = Field(..., min_length=1)
    deck_id: Optional[str] = Field(None, description="Existing deck to append to; omit to create a deck")


class ConfirmResult(CamelModel):
    deck: DeckRead
    cards: List[CardRead]


class RegenerateRequest(CamelModel):
    """Replace a preview batch using user feedback."""

    session_id: str = Field(..., min_length=1)
    feedback: str = Field(..., min_length=1, max_length=2000)
