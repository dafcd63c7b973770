"""
Flashcards service - Business logic for deck and card management.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import CardNotFoundError
from app.flashcards.models import Card, Deck
from app.flashcards.repository import AnswerRecordRepository, CardRepository, DeckRepository
from app.flashcards.schemas import (
    AnswerRead,
    AnswerRequest,
    AnswerResponse,
    CardCreate,
    CardList,
    CardRead,
    CardUpdate,
    DeckCreate,
    DeckDetail,
    DeckList,
    DeckRead,
    DeckUpdate,
)
from app.flashcards.stats import apply_review

logger = logging.getLogger(__name__)


class FlashcardService:
    """Service for deck and card business logic."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.deck_repo = DeckRepository(db)
        self.card_repo = CardRepository(db)
        self.answer_repo = AnswerRecordRepository(db)

    # ═══════════════════════════════════════════════════════════════════════
    # DECK OPERATIONS
    # ═══════════════════════════════════════════════════════════════════════

    async def create_deck(self, deck_data: DeckCreate, user_id: str) -> DeckRead:
        """Create a new deck for a user."""
        logger.info(f"[FlashcardService] Creating deck: {deck_data.title} for user: {user_id}")

        deck = await self.deck_repo.create(
            user_id=user_id,
            title=deck_data.title,
            description=deck_data.description,
        )
        return deck_to_read_dto(deck, card_count=0)

    async def get_deck(self, deck_id: str, user_id: str) -> DeckDetail:
        """Get a deck with all its live cards."""
        logger.info(f"[FlashcardService] Getting deck: {deck_id} for user: {user_id}")

        deck = await self.deck_repo.get_by_id(
            deck_id,
            user_id=user_id,
            with_cards=True,
            verify_ownership=True,
        )
        cards = [card_to_read_dto(c) for c in (deck.cards or [])]
        return DeckDetail(
            **deck_to_read_dto(deck, card_count=len(cards)).model_dump(),
            cards=cards,
        )

    async def list_decks(
        self,
        user_id: str,
        skip: int = 0,
        limit: int = 100,
    ) -> DeckList:
        """List all decks for a user with card counts."""
        logger.info(f"[FlashcardService] Listing decks for user: {user_id}")

        decks = await self.deck_repo.get_all(user_id=user_id, skip=skip, limit=limit)
        total = await self.deck_repo.count(user_id=user_id)
        card_counts = await self.deck_repo.get_card_counts(user_id=user_id)

        return DeckList(
            decks=[deck_to_read_dto(d, card_count=card_counts.get(d.id, 0)) for d in decks],
            total=total,
        )

    async def update_deck(
        self,
        deck_id: str,
        deck_data: DeckUpdate,
        user_id: str,
    ) -> DeckRead:
        """Update a deck's non-empty fields."""
        logger.info(f"[FlashcardService] Updating deck: {deck_id} for user: {user_id}")

        deck = await self.deck_repo.update(
            deck_id,
            user_id=user_id,
            title=deck_data.title,
            description=deck_data.description,
        )
        card_counts = await self.deck_repo.get_card_counts(user_id=user_id)
        return deck_to_read_dto(deck, card_count=card_counts.get(deck.id, 0))

    async def delete_deck(self, deck_id: str, user_id: str) -> bool:
        """Soft-delete a deck and all its cards."""
        logger.info(f"[FlashcardService] Deleting deck: {deck_id} for user: {user_id}")
        return await self.deck_repo.soft_delete(deck_id, user_id=user_id)

    # ═══════════════════════════════════════════════════════════════════════
    # CARD OPERATIONS
    # ═══════════════════════════════════════════════════════════════════════

    async def create_card(
        self,
        deck_id: str,
        card_data: CardCreate,
        user_id: str,
    ) -> CardRead:
        """Create a single card in an owned deck."""
        logger.info(f"[FlashcardService] Creating card in deck: {deck_id}")

        await self.deck_repo.get_by_id(deck_id, user_id=user_id, verify_ownership=True)

        card = await self.card_repo.create(
            deck_id=deck_id,
            front=card_data.front,
            back=card_data.back,
            hint=card_data.hint,
        )
        return card_to_read_dto(card)

    async def list_cards(self, deck_id: str, user_id: str) -> CardList:
        logger.info(f"[FlashcardService] Listing cards in deck: {deck_id}")

        await self.deck_repo.get_by_id(deck_id, user_id=user_id, verify_ownership=True)
        cards = await self.card_repo.list_by_deck(deck_id)
        return CardList(cards=[card_to_read_dto(c) for c in cards], total=len(cards))

    async def update_card(
        self,
        card_id: str,
        card_data: CardUpdate,
        user_id: str,
    ) -> CardRead:
        """Update card content; empty fields are ignored."""
        logger.info(f"[FlashcardService] Updating card: {card_id}")

        card = await self.card_repo.get_by_id(card_id, user_id=user_id, verify_ownership=True)
        card = await self.card_repo.update(
            card,
            front=card_data.front,
            back=card_data.back,
            hint=card_data.hint,
        )
        return card_to_read_dto(card)

    async def delete_card(self, card_id: str, user_id: str) -> bool:
        logger.info(f"[FlashcardService] Deleting card: {card_id}")

        card = await self.card_repo.get_by_id(card_id, user_id=user_id, verify_ownership=True)
        return await self.card_repo.soft_delete(card)

    async def mark_reviewed(self, card_id: str, user_id: str) -> CardRead:
        """Record a review without an outcome: bump count and timestamp only."""
        logger.info(f"[FlashcardService] Marking card reviewed: {card_id}")

        card = await self.card_repo.get_by_id(card_id, user_id=user_id, verify_ownership=True)
        apply_review(card, is_correct=None, now=datetime.now(timezone.utc))
        card = await self.card_repo.save_learning_state(card)
        return card_to_read_dto(card)

    async def record_answer(
        self,
        deck_id: str,
        card_id: str,
        answer: AnswerRequest,
        user_id: str,
        now: Optional[datetime] = None,
    ) -> AnswerResponse:
        """
        Record a study answer and advance the card's learning status.

        Raises:
            DeckNotFoundError / CardNotFoundError: If either is missing or the
                card is not in that deck
            PermissionError: If the deck is not owned by the user
        """
        logger.info(
            f"[FlashcardService] Recording answer for card: {card_id} in deck: {deck_id}, "
            f"correct={answer.is_correct}"
        )
        now = now or datetime.now(timezone.utc)

        await self.deck_repo.get_by_id(deck_id, user_id=user_id, verify_ownership=True)
        card = await self.card_repo.get_by_id(card_id, user_id=user_id, verify_ownership=True)
        if card.deck_id != deck_id:
            raise CardNotFoundError(f"Card {card_id} not found in deck {deck_id}")

        record = await self.answer_repo.create(
            user_id=user_id,
            deck_id=deck_id,
            card_id=card_id,
            is_correct=answer.is_correct,
            study_time=answer.study_time,
            answer_date=now,
        )

        apply_review(card, is_correct=answer.is_correct, now=now)
        card = await self.card_repo.save_learning_state(card)

        return AnswerResponse(
            answer=AnswerRead.model_validate(record),
            card=card_to_read_dto(card),
        )


# ═══════════════════════════════════════════════════════════════════════════
# DTO TRANSFORMATIONS
# ═══════════════════════════════════════════════════════════════════════════


def deck_to_read_dto(deck: Deck, card_count: int = 0) -> DeckRead:
    """Convert Deck model to DeckRead DTO."""
    return DeckRead(
        id=deck.id,
        user_id=deck.user_id,
        title=deck.title,
        description=deck.description,
        card_count=card_count,
        created_at=deck.created_at,
        updated_at=deck.updated_at,
    )


def card_to_read_dto(card: Card) -> CardRead:
    """Convert Card model to CardRead DTO."""
    return CardRead(
        id=card.id,
        deck_id=card.deck_id,
        front=card.front,
        back=card.back,
        hint=card.hint,
        review_count=card.review_count,
        last_review=card.last_review,
        status=card.status,
        generation_type=card.generation_type,
        created_at=card.created_at,
        updated_at=card.updated_at,
    )


def get_flashcard_service(db: AsyncSession) -> FlashcardService:
    """Factory function for FlashcardService."""
    return FlashcardService(db)
