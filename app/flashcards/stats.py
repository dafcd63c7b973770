"""
Study statistics: card status transitions, study streaks and per-deck stats.

Status transitions (review_count is the value *after* this review):

    correct:   new -> learning      once review_count >= 2
               learning -> mastered once review_count >= 5
    incorrect: mastered -> learning (always)

Anything else leaves the status unchanged.
"""

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.timeutils import as_utc
from app.flashcards.models import Card, CardStatus
from app.flashcards.repository import AnswerRecordRepository, CardRepository, DeckRepository
from app.flashcards.schemas import DeckStats

logger = logging.getLogger(__name__)

LEARNING_THRESHOLD = 2
MASTERED_THRESHOLD = 5


def next_card_status(status: str, review_count: int, is_correct: bool) -> str:
    """Return the status a card moves to after one answer."""
    if is_correct:
        if status == CardStatus.NEW.value and review_count >= LEARNING_THRESHOLD:
            return CardStatus.LEARNING.value
        if status == CardStatus.LEARNING.value and review_count >= MASTERED_THRESHOLD:
            return CardStatus.MASTERED.value
        return status

    if status == CardStatus.MASTERED.value:
        return CardStatus.LEARNING.value
    return status


def calculate_study_streak(answer_days: Iterable[date], today: date) -> int:
    """
    Count consecutive days with at least one answer, ending today.

    A streak that does not include today is 0.
    """
    days = sorted(set(answer_days), reverse=True)
    streak = 0
    for i, day in enumerate(days):
        if day != today - timedelta(days=i):
            break
        streak += 1
    return streak


def apply_review(card: Card, is_correct: Optional[bool], now: datetime) -> Card:
    """
    Bump the review counter and timestamp; when an outcome is given,
    move the card's status accordingly.
    """
    card.review_count = (card.review_count or 0) + 1
    card.last_review = now
    if is_correct is not None:
        card.status = next_card_status(card.status, card.review_count, is_correct)
    return card


class StatsService:
    """Aggregates per-deck study statistics."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.deck_repo = DeckRepository(db)
        self.card_repo = CardRepository(db)
        self.answer_repo = AnswerRecordRepository(db)

    async def get_deck_stats(
        self,
        deck_id: str,
        user_id: str,
        now: Optional[datetime] = None,
    ) -> DeckStats:
        logger.info(f"[StatsService] Computing stats for deck: {deck_id}, user: {user_id}")
        now = now or datetime.now(timezone.utc)

        await self.deck_repo.get_by_id(deck_id, user_id=user_id, verify_ownership=True)

        by_status = await self.card_repo.count_by_status(deck_id)
        total = sum(by_status.values())
        mastered = by_status.get(CardStatus.MASTERED.value, 0)

        answers = await self.answer_repo.list_for_deck(user_id=user_id, deck_id=deck_id)
        correct = sum(1 for a in answers if a.is_correct)
        answer_dates = [as_utc(a.answer_date) for a in answers]

        return DeckStats(
            total_cards=total,
            mastered_cards=mastered,
            learning_cards=by_status.get(CardStatus.LEARNING.value, 0),
            new_cards=by_status.get(CardStatus.NEW.value, 0),
            progress_percent=(mastered / total * 100) if total else 0.0,
            accuracy_rate=(correct / len(answers) * 100) if answers else 0.0,
            total_study_time=sum(a.study_time or 0 for a in answers),
            last_studied_at=max(answer_dates) if answer_dates else None,
            study_streak=calculate_study_streak(
                (d.date() for d in answer_dates),
                today=as_utc(now).date(),
            ),
        )


def get_stats_service(db: AsyncSession) -> StatsService:
    """Factory function for StatsService."""
    return StatsService(db)
