"""
SQLAlchemy models for flashcards module.
Defines Deck, Card, AnswerRecord and CardPreview tables.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base

if TYPE_CHECKING:
    from app.auth.models import User


class CardStatus(str, Enum):
    """Learning status of a card."""
    NEW = "new"
    LEARNING = "learning"
    MASTERED = "mastered"


class GenerationType(str, Enum):
    """How a card was produced."""
    MANUAL = "manual"
    TEXT = "text"
    IMAGE = "image"
    AUDIO = "audio"


class Deck(Base):
    """
    Deck model representing a collection of cards.
    Soft-deleted via deleted_at.
    """

    __tablename__ = "decks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Foreign keys
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        index=True,
    )

    # Relationships
    user: Mapped["User"] = relationship(
        "User",
        back_populates="decks",
    )
    cards: Mapped[List["Card"]] = relationship(
        "Card",
        back_populates="deck",
        order_by="[Card.created_at, Card.id]",
        lazy="noload",
    )

    def __repr__(self) -> str:
        return f"<Deck(id={self.id}, title={self.title}, user_id={self.user_id})>"


class Card(Base):
    """
    A single flashcard. Ownership is derived from its deck.
    """

    __tablename__ = "cards"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    front: Mapped[str] = mapped_column(Text, nullable=False)
    back: Mapped[str] = mapped_column(Text, nullable=False)
    hint: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Foreign keys
    deck_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("decks.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Learning state
    review_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_review: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    status: Mapped[str] = mapped_column(
        String(20),
        default=CardStatus.NEW.value,
        nullable=False,
    )
    generation_type: Mapped[str] = mapped_column(
        String(20),
        default=GenerationType.MANUAL.value,
        nullable=False,
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        index=True,
    )

    # Relationships
    deck: Mapped["Deck"] = relationship(
        "Deck",
        back_populates="cards",
    )

    def __repr__(self) -> str:
        return f"<Card(id={self.id}, deck_id={self.deck_id}, status={self.status})>"


class AnswerRecord(Base):
    """
    One answer given while studying. Rows are never updated.
    """

    __tablename__ = "answer_records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    deck_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("decks.id", ondelete="CASCADE"),
        nullable=False,
    )
    card_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("cards.id", ondelete="CASCADE"),
        nullable=False,
    )
    is_correct: Mapped[bool] = mapped_column(Boolean, nullable=False)
    study_time: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    answer_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_answer_records_user_deck", "user_id", "deck_id"),
    )

    def __repr__(self) -> str:
        return f"<AnswerRecord(card_id={self.card_id}, is_correct={self.is_correct})>"


class CardPreview(Base):
    """
    A generated card awaiting confirmation, grouped by session_id.
    Rows past expires_at are treated as absent and purged periodically.
    """

    __tablename__ = "card_previews"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    session_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    deck_title: Mapped[str] = mapped_column(String(255), nullable=False)
    deck_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    front: Mapped[str] = mapped_column(Text, nullable=False)
    back: Mapped[str] = mapped_column(Text, nullable=False)
    generation_type: Mapped[str] = mapped_column(String(20), nullable=False)
    original_prompt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_card_previews_user_session", "user_id", "session_id"),
    )

    def __repr__(self) -> str:
        return f"<CardPreview(session_id={self.session_id}, user_id={self.user_id})>"
