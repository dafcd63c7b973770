"""
Pydantic schemas for flashcards module.
DTOs for API input/output validation.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from app.core.schemas import CamelModel


# ═══════════════════════════════════════════════════════════════════════════
# DECK SCHEMAS
# ═══════════════════════════════════════════════════════════════════════════


class DeckCreate(CamelModel):
    """DTO for creating a new deck."""

    title: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="Deck title",
    )
    description: Optional[str] = Field(
        None,
        max_length=2000,
        description="Optional deck description",
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "title": "Spanish Verbs",
                "description": "Common irregular verbs",
            }
        }
    }


class DeckUpdate(CamelModel):
    """DTO for updating a deck. Empty or missing fields are left unchanged."""

    title: Optional[str] = Field(None, max_length=255, description="New deck title")
    description: Optional[str] = Field(None, max_length=2000, description="New deck description")


class DeckRead(CamelModel):
    """DTO for reading a deck (without cards)."""

    id: str = Field(..., description="Deck ID")
    user_id: str = Field(..., description="Owner user ID")
    title: str = Field(..., description="Deck title")
    description: Optional[str] = Field(None, description="Deck description")
    card_count: int = Field(0, description="Number of live cards")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")


class DeckDetail(DeckRead):
    """DTO for reading a deck with all cards."""

    cards: List["CardRead"] = Field(default_factory=list, description="Cards in this deck")


class DeckList(CamelModel):
    """DTO for listing decks."""

    decks: List[DeckRead] = Field(..., description="List of decks")
    total: int = Field(..., description="Total number of decks")


class DeckStats(CamelModel):
    """Derived study statistics for one deck."""

    total_cards: int = 0
    mastered_cards: int = 0
    learning_cards: int = 0
    new_cards: int = 0
    progress_percent: float = Field(0.0, description="Mastered cards as a percentage of all cards")
    accuracy_rate: float = Field(0.0, description="Correct answers as a percentage of all answers")
    total_study_time: int = Field(0, description="Seconds spent answering")
    last_studied_at: Optional[datetime] = None
    study_streak: int = Field(0, description="Consecutive UTC days with an answer, ending today")


# ═══════════════════════════════════════════════════════════════════════════
# CARD SCHEMAS
# ═══════════════════════════════════════════════════════════════════════════


class CardCreate(CamelModel):
    """DTO for creating a card manually."""

    front: str = Field(..., min_length=1, description="Question side")
    back: str = Field(..., min_length=1, description="Answer side")
    hint: Optional[str] = Field(None, description="Optional hint")

    model_config = {
        "json_schema_extra": {
            "example": {
                "front": "What is the capital of France?",
                "back": "Paris",
                "hint": "City of light",
            }
        }
    }


class CardUpdate(CamelModel):
    """DTO for updating a card. Empty or missing fields are left unchanged."""

    front: Optional[str] = None
    back: Optional[str] = None
    hint: Optional[str] = None


class CardRead(CamelModel):
    """DTO for reading a card."""

    id: str
    deck_id: str
    front: str
    back: str
    hint: Optional[str] = None
    review_count: int = 0
    last_review: Optional[datetime] = None
    status: str
    generation_type: str
    created_at: datetime
    updated_at: datetime


class CardList(CamelModel):
    cards: List[CardRead]
    total: int


# ═══════════════════════════════════════════════════════════════════════════
# ANSWER SCHEMAS
# ═══════════════════════════════════════════════════════════════════════════


class AnswerRequest(CamelModel):
    """DTO for recording an answer while studying."""

    is_correct: bool = Field(..., description="Whether the user answered correctly")
    study_time: int = Field(0, ge=0, description="Seconds spent on this card")


class AnswerRead(CamelModel):
    id: str
    card_id: str
    deck_id: str
    is_correct: bool
    study_time: int
    answer_date: datetime


class AnswerResponse(CamelModel):
    """Recorded answer plus the card's new learning state."""

    answer: AnswerRead
    card: CardRead


DeckDetail.model_rebuild()
