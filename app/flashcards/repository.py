"""
Flashcards repository - Data Access Layer for decks, cards, answers and previews.
Default queries hide soft-deleted rows; ownership is checked against the deck's user.
"""

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence
from uuid import uuid4

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload, with_loader_criteria
from uuid_extensions import uuid7

from app.core.exceptions import CardNotFoundError, DeckNotFoundError
from app.flashcards.models import AnswerRecord, Card, CardPreview, CardStatus, Deck, GenerationType

logger = logging.getLogger(__name__)


class DeckRepository:
    """Repository for Deck CRUD operations with user filtering."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(
        self,
        user_id: str,
        title: str,
        description: Optional[str] = None,
    ) -> Deck:
        """
        Create a new deck for a user.

        Args:
            user_id: Owner user ID
            title: Deck title
            description: Optional description

        Returns:
            Created Deck entity
        """
        now = datetime.now(timezone.utc)
        deck = Deck(
            id=str(uuid4()),
            title=title,
            description=description,
            user_id=user_id,
            created_at=now,
            updated_at=now,
        )

        self.db.add(deck)
        await self.db.flush()

        logger.info(f"[DeckRepository] Created deck: {deck.id} - {deck.title} for user: {user_id}")
        return deck

    async def get_by_id(
        self,
        deck_id: str,
        user_id: Optional[str] = None,
        with_cards: bool = False,
        verify_ownership: bool = True,
        include_deleted: bool = False,
    ) -> Deck:
        """
        Get a deck by its ID.

        Args:
            deck_id: Deck UUID
            user_id: User ID for ownership verification
            with_cards: Whether to eagerly load live cards
            verify_ownership: Whether to verify user ownership
            include_deleted: Also return soft-deleted decks

        Returns:
            Deck entity

        Raises:
            DeckNotFoundError: If deck not found
            PermissionError: If deck doesn't belong to user
        """
        stmt = select(Deck).where(Deck.id == deck_id)

        if not include_deleted:
            stmt = stmt.where(Deck.deleted_at.is_(None))

        if with_cards:
            stmt = stmt.options(
                selectinload(Deck.cards),
                with_loader_criteria(Card, Card.deleted_at.is_(None)),
            )

        result = await self.db.execute(stmt)
        deck = result.scalar_one_or_none()

        if deck is None:
            raise DeckNotFoundError(f"Deck not found: {deck_id}")

        if verify_ownership and user_id is not None and deck.user_id != user_id:
            raise PermissionError(f"Deck {deck_id} does not belong to user {user_id}")

        return deck

    async def get_all(
        self,
        user_id: str,
        skip: int = 0,
        limit: int = 100,
    ) -> Sequence[Deck]:
        """Get a user's live decks, newest first."""
        stmt = (
            select(Deck)
            .where(Deck.user_id == user_id)
            .where(Deck.deleted_at.is_(None))
            .order_by(Deck.created_at.desc())
            .offset(skip)
            .limit(limit)
        )

        result = await self.db.execute(stmt)
        return result.scalars().all()

    async def count(self, user_id: str) -> int:
        """Count live decks for a user."""
        stmt = (
            select(func.count())
            .select_from(Deck)
            .where(Deck.user_id == user_id)
            .where(Deck.deleted_at.is_(None))
        )
        result = await self.db.execute(stmt)
        return result.scalar_one()

    async def get_card_counts(self, user_id: str) -> Dict[str, int]:
        """
        Get live card counts for all decks of a user.

        Returns:
            Dict mapping deck_id to card_count
        """
        stmt = (
            select(Deck.id, func.count(Card.id).label("card_count"))
            .outerjoin(Card, (Card.deck_id == Deck.id) & Card.deleted_at.is_(None))
            .where(Deck.user_id == user_id)
            .where(Deck.deleted_at.is_(None))
            .group_by(Deck.id)
        )

        result = await self.db.execute(stmt)
        return {row[0]: row[1] for row in result.all()}

    async def update(
        self,
        deck_id: str,
        user_id: str,
        title: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Deck:
        """
        Update a deck. Only non-empty values are applied.

        Returns:
            Updated Deck entity
        """
        deck = await self.get_by_id(deck_id, user_id=user_id, verify_ownership=True)

        if title:
            deck.title = title
        if description:
            deck.description = description

        deck.updated_at = datetime.now(timezone.utc)
        await self.db.flush()

        logger.info(f"[DeckRepository] Updated deck: {deck.id}")
        return deck

    async def soft_delete(self, deck_id: str, user_id: str) -> bool:
        """
        Soft-delete a deck and its cards.

        Returns:
            True if deleted
        """
        deck = await self.get_by_id(deck_id, user_id=user_id, verify_ownership=True)
        now = datetime.now(timezone.utc)

        deck.deleted_at = now
        await self.db.execute(
            update(Card)
            .where(Card.deck_id == deck.id)
            .where(Card.deleted_at.is_(None))
            .values(deleted_at=now)
        )
        await self.db.flush()

        logger.info(f"[DeckRepository] Soft-deleted deck: {deck_id}")
        return True


class CardRepository:
    """Repository for Card operations. Callers verify deck ownership first."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(
        self,
        deck_id: str,
        front: str,
        back: str,
        hint: Optional[str] = None,
        generation_type: GenerationType = GenerationType.MANUAL,
    ) -> Card:
        """Create a single card in a deck."""
        now = datetime.now(timezone.utc)
        card = Card(
            id=str(uuid4()),
            deck_id=deck_id,
            front=front,
            back=back,
            hint=hint or None,
            review_count=0,
            status=CardStatus.NEW.value,
            generation_type=generation_type.value,
            created_at=now,
            updated_at=now,
        )

        self.db.add(card)
        await self.db.flush()

        logger.info(f"[CardRepository] Created card: {card.id} in deck: {deck_id}")
        return card

    async def bulk_create(
        self,
        deck_id: str,
        cards: List[Dict[str, str]],
        generation_type: GenerationType,
    ) -> List[Card]:
        """
        Bulk create cards in one flush.

        Args:
            deck_id: Parent deck ID
            cards: List of dicts with 'front' and 'back' keys
            generation_type: How the batch was produced

        Returns:
            List of created Card entities
        """
        now = datetime.now(timezone.utc)

        created = []
        for item in cards:
            card = Card(
                id=str(uuid7()),
                deck_id=deck_id,
                front=item["front"],
                back=item["back"],
                review_count=0,
                status=CardStatus.NEW.value,
                generation_type=generation_type.value,
                created_at=now,
                updated_at=now,
            )
            self.db.add(card)
            created.append(card)

        await self.db.flush()

        logger.info(f"[CardRepository] Bulk created {len(created)} cards in deck: {deck_id}")
        return created

    async def get_by_id(
        self,
        card_id: str,
        user_id: Optional[str] = None,
        verify_ownership: bool = True,
        include_deleted: bool = False,
    ) -> Card:
        """
        Get a card by its ID, checking ownership through its deck.

        Raises:
            CardNotFoundError: If card (or its deck) not found
            PermissionError: If the card's deck doesn't belong to user
        """
        stmt = select(Card).options(selectinload(Card.deck)).where(Card.id == card_id)

        if not include_deleted:
            stmt = stmt.where(Card.deleted_at.is_(None))

        result = await self.db.execute(stmt)
        card = result.scalar_one_or_none()

        if card is None or card.deck is None:
            raise CardNotFoundError(f"Card not found: {card_id}")

        if not include_deleted and card.deck.deleted_at is not None:
            raise CardNotFoundError(f"Card not found: {card_id}")

        if verify_ownership and user_id is not None and card.deck.user_id != user_id:
            raise PermissionError(f"Card {card_id} does not belong to user {user_id}")

        return card

    async def list_by_deck(self, deck_id: str) -> Sequence[Card]:
        stmt = (
            select(Card)
            .where(Card.deck_id == deck_id)
            .where(Card.deleted_at.is_(None))
            .order_by(Card.created_at.asc(), Card.id.asc())
        )
        result = await self.db.execute(stmt)
        return result.scalars().all()

    async def count_by_status(self, deck_id: str) -> Dict[str, int]:
        """Live card counts keyed by status."""
        stmt = (
            select(Card.status, func.count(Card.id))
            .where(Card.deck_id == deck_id)
            .where(Card.deleted_at.is_(None))
            .group_by(Card.status)
        )
        result = await self.db.execute(stmt)
        return {row[0]: row[1] for row in result.all()}

    async def update(
        self,
        card: Card,
        front: Optional[str] = None,
        back: Optional[str] = None,
        hint: Optional[str] = None,
    ) -> Card:
        """Apply non-empty content changes to a card."""
        if front:
            card.front = front
        if back:
            card.back = back
        if hint:
            card.hint = hint

        card.updated_at = datetime.now(timezone.utc)
        await self.db.flush()

        logger.info(f"[CardRepository] Updated card: {card.id}")
        return card

    async def save_learning_state(self, card: Card) -> Card:
        """Flush review_count, last_review and status changes made by the caller."""
        card.updated_at = datetime.now(timezone.utc)
        await self.db.flush()

        logger.info(
            f"[CardRepository] Updated learning state for card: {card.id}, "
            f"status={card.status}, reviews={card.review_count}"
        )
        return card

    async def soft_delete(self, card: Card) -> bool:
        card.deleted_at = datetime.now(timezone.utc)
        await self.db.flush()

        logger.info(f"[CardRepository] Soft-deleted card: {card.id}")
        return True


class AnswerRecordRepository:
    """Append-only storage of study answers."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(
        self,
        user_id: str,
        deck_id: str,
        card_id: str,
        is_correct: bool,
        study_time: int,
        answer_date: Optional[datetime] = None,
    ) -> AnswerRecord:
        record = AnswerRecord(
            id=str(uuid4()),
            user_id=user_id,
            deck_id=deck_id,
            card_id=card_id,
            is_correct=is_correct,
            study_time=study_time,
            answer_date=answer_date or datetime.now(timezone.utc),
        )
        self.db.add(record)
        await self.db.flush()

        logger.info(
            f"[AnswerRecordRepository] Recorded answer for card: {card_id} "
            f"(correct={is_correct}, time={study_time}s)"
        )
        return record

    async def list_for_deck(self, user_id: str, deck_id: str) -> Sequence[AnswerRecord]:
        """A user's answers for one deck, newest first."""
        stmt = (
            select(AnswerRecord)
            .where(AnswerRecord.user_id == user_id)
            .where(AnswerRecord.deck_id == deck_id)
            .order_by(AnswerRecord.answer_date.desc())
        )
        result = await self.db.execute(stmt)
        return result.scalars().all()


class CardPreviewRepository:
    """
    Storage for generated-but-unconfirmed cards.

    Lookups are always scoped to the owning user and to rows that have
    not expired, so an expired or foreign session reads as absent.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_batch(
        self,
        user_id: str,
        session_id: str,
        deck_title: str,
        deck_description: Optional[str],
        cards: List[Dict[str, str]],
        generation_type: GenerationType,
        original_prompt: Optional[str],
        expires_at: datetime,
    ) -> List[CardPreview]:
        now = datetime.now(timezone.utc)

        previews = []
        for position, item in enumerate(cards):
            preview = CardPreview(
                id=str(uuid4()),
                user_id=user_id,
                session_id=session_id,
                deck_title=deck_title,
                deck_description=deck_description,
                front=item["front"],
                back=item["back"],
                generation_type=generation_type.value,
                original_prompt=original_prompt,
                position=position,
                expires_at=expires_at,
                created_at=now,
            )
            self.db.add(preview)
            previews.append(preview)

        await self.db.flush()

        logger.info(
            f"[CardPreviewRepository] Stored {len(previews)} previews in session: {session_id}"
        )
        return previews

    async def get_session(
        self,
        session_id: str,
        user_id: str,
        now: Optional[datetime] = None,
    ) -> Sequence[CardPreview]:
        """Live previews of a session owned by the user, in insertion order."""
        now = now or datetime.now(timezone.utc)
        stmt = (
            select(CardPreview)
            .where(CardPreview.session_id == session_id)
            .where(CardPreview.user_id == user_id)
            .where(CardPreview.expires_at > now)
            .order_by(CardPreview.created_at.asc(), CardPreview.position.asc())
        )
        result = await self.db.execute(stmt)
        return result.scalars().all()

    async def delete_session(self, session_id: str, user_id: str) -> int:
        result = await self.db.execute(
            delete(CardPreview)
            .where(CardPreview.session_id == session_id)
            .where(CardPreview.user_id == user_id)
        )
        await self.db.flush()

        logger.info(
            f"[CardPreviewRepository] Deleted {result.rowcount} previews in session: {session_id}"
        )
        return result.rowcount

    async def delete_expired(self, now: Optional[datetime] = None) -> int:
        """Purge every preview whose expiry has passed."""
        now = now or datetime.now(timezone.utc)
        result = await self.db.execute(
            delete(CardPreview).where(CardPreview.expires_at <= now)
        )
        await self.db.flush()
        return result.rowcount
