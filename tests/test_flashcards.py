"""
Tests for deck and card services, learning status transitions and deck statistics.
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from app.core.exceptions import CardNotFoundError, DeckNotFoundError
from app.flashcards.models import CardStatus
from app.flashcards.schemas import AnswerRequest, CardCreate, CardUpdate, DeckCreate, DeckUpdate
from app.flashcards.service import FlashcardService
from app.flashcards.stats import StatsService, calculate_study_streak, next_card_status


# ═══════════════════════════════════════════════════════════════════════════
# STATUS TRANSITIONS
# ═══════════════════════════════════════════════════════════════════════════


class TestNextCardStatus:
    @pytest.mark.parametrize(
        "status,review_count,is_correct,expected",
        [
            ("new", 1, True, "new"),
            ("new", 2, True, "learning"),
            ("new", 3, True, "learning"),
            ("learning", 4, True, "learning"),
            ("learning", 5, True, "mastered"),
            ("mastered", 9, True, "mastered"),
            ("new", 7, False, "new"),
            ("learning", 7, False, "learning"),
            ("mastered", 1, False, "learning"),
            ("mastered", 50, False, "learning"),
        ],
    )
    def test_transitions(self, status, review_count, is_correct, expected):
        assert next_card_status(status, review_count, is_correct) == expected


class TestStudyStreak:
    today = date(2026, 3, 14)

    def test_three_consecutive_days(self):
        days = [self.today, self.today - timedelta(days=1), self.today - timedelta(days=2)]
        assert calculate_study_streak(days, self.today) == 3

    def test_no_answers(self):
        assert calculate_study_streak([], self.today) == 0

    def test_streak_must_include_today(self):
        assert calculate_study_streak([self.today - timedelta(days=2)], self.today) == 0

    def test_gap_breaks_streak(self):
        days = [self.today, self.today - timedelta(days=1), self.today - timedelta(days=3)]
        assert calculate_study_streak(days, self.today) == 2

    def test_duplicate_days_count_once(self):
        days = [self.today, self.today, self.today - timedelta(days=1)]
        assert calculate_study_streak(days, self.today) == 2


# ═══════════════════════════════════════════════════════════════════════════
# DECKS & CARDS
# ═══════════════════════════════════════════════════════════════════════════


class TestDeckService:
    async def test_create_and_list_with_card_counts(self, db, user):
        service = FlashcardService(db)
        deck = await service.create_deck(DeckCreate(title="Biology"), user_id=user.id)
        await service.create_card(deck.id, CardCreate(front="Cell", back="Unit of life"), user_id=user.id)
        await service.create_card(deck.id, CardCreate(front="DNA", back="Genetic code"), user_id=user.id)

        listing = await service.list_decks(user_id=user.id)

        assert listing.total == 1
        assert listing.decks[0].card_count == 2

    async def test_other_users_deck_is_forbidden(self, db, user, other_user):
        service = FlashcardService(db)
        deck = await service.create_deck(DeckCreate(title="Private"), user_id=user.id)

        with pytest.raises(PermissionError):
            await service.get_deck(deck.id, user_id=other_user.id)

    async def test_update_ignores_empty_fields(self, db, user):
        service = FlashcardService(db)
        deck = await service.create_deck(
            DeckCreate(title="Chemistry", description="Atoms"), user_id=user.id
        )

        updated = await service.update_deck(deck.id, DeckUpdate(title="", description="Molecules"), user_id=user.id)

        assert updated.title == "Chemistry"
        assert updated.description == "Molecules"

    async def test_soft_delete_hides_deck_and_cards(self, db, user):
        service = FlashcardService(db)
        deck = await service.create_deck(DeckCreate(title="Temp"), user_id=user.id)
        card = await service.create_card(deck.id, CardCreate(front="Q", back="A"), user_id=user.id)

        await service.delete_deck(deck.id, user_id=user.id)

        with pytest.raises(DeckNotFoundError):
            await service.get_deck(deck.id, user_id=user.id)
        with pytest.raises(CardNotFoundError):
            await service.update_card(card.id, CardUpdate(front="Q2"), user_id=user.id)
        assert (await service.list_decks(user_id=user.id)).total == 0


class TestCardService:
    async def test_mark_reviewed_keeps_status(self, db, user):
        service = FlashcardService(db)
        deck = await service.create_deck(DeckCreate(title="Deck"), user_id=user.id)
        card = await service.create_card(deck.id, CardCreate(front="Q", back="A"), user_id=user.id)

        for _ in range(3):
            reviewed = await service.mark_reviewed(card.id, user_id=user.id)

        assert reviewed.review_count == 3
        assert reviewed.status == CardStatus.NEW.value
        assert reviewed.last_review is not None

    async def test_answers_promote_and_demote(self, db, user):
        service = FlashcardService(db)
        deck = await service.create_deck(DeckCreate(title="Deck"), user_id=user.id)
        card = await service.create_card(deck.id, CardCreate(front="Q", back="A"), user_id=user.id)
        correct = AnswerRequest(is_correct=True, study_time=4)

        statuses = []
        for _ in range(5):
            result = await service.record_answer(deck.id, card.id, correct, user_id=user.id)
            statuses.append(result.card.status)

        assert statuses == ["new", "learning", "learning", "learning", "mastered"]

        result = await service.record_answer(
            deck.id, card.id, AnswerRequest(is_correct=False), user_id=user.id
        )
        assert result.card.status == "learning"
        assert result.card.review_count == 6
        assert result.answer.is_correct is False

    async def test_answer_for_card_in_another_deck(self, db, user):
        service = FlashcardService(db)
        deck_a = await service.create_deck(DeckCreate(title="A"), user_id=user.id)
        deck_b = await service.create_deck(DeckCreate(title="B"), user_id=user.id)
        card = await service.create_card(deck_a.id, CardCreate(front="Q", back="A"), user_id=user.id)

        with pytest.raises(CardNotFoundError):
            await service.record_answer(
                deck_b.id, card.id, AnswerRequest(is_correct=True), user_id=user.id
            )

    async def test_card_of_foreign_deck_is_forbidden(self, db, user, other_user):
        service = FlashcardService(db)
        deck = await service.create_deck(DeckCreate(title="Deck"), user_id=user.id)
        card = await service.create_card(deck.id, CardCreate(front="Q", back="A"), user_id=user.id)

        with pytest.raises(PermissionError):
            await service.delete_card(card.id, user_id=other_user.id)


# ═══════════════════════════════════════════════════════════════════════════
# DECK STATS
# ═══════════════════════════════════════════════════════════════════════════


class TestDeckStats:
    async def test_empty_deck(self, db, user):
        service = FlashcardService(db)
        deck = await service.create_deck(DeckCreate(title="Empty"), user_id=user.id)

        stats = await StatsService(db).get_deck_stats(deck.id, user_id=user.id)

        assert stats.total_cards == 0
        assert stats.progress_percent == 0.0
        assert stats.accuracy_rate == 0.0
        assert stats.study_streak == 0
        assert stats.last_studied_at is None

    async def test_counts_accuracy_and_streak(self, db, user):
        service = FlashcardService(db)
        deck = await service.create_deck(DeckCreate(title="Stats"), user_id=user.id)
        card_a = await service.create_card(deck.id, CardCreate(front="1", back="one"), user_id=user.id)
        card_b = await service.create_card(deck.id, CardCreate(front="2", back="two"), user_id=user.id)
        await service.create_card(deck.id, CardCreate(front="3", back="three"), user_id=user.id)
        await service.create_card(deck.id, CardCreate(front="4", back="four"), user_id=user.id)

        today = datetime(2026, 3, 14, 9, 0, tzinfo=timezone.utc)
        # card_a reaches mastered over five correct answers on three days
        for days_ago, is_correct in [(2, True), (1, True), (0, True), (0, True), (0, True)]:
            await service.record_answer(
                deck.id,
                card_a.id,
                AnswerRequest(is_correct=is_correct, study_time=10),
                user_id=user.id,
                now=today - timedelta(days=days_ago),
            )
        await service.record_answer(
            deck.id, card_b.id, AnswerRequest(is_correct=False, study_time=5), user_id=user.id, now=today
        )

        stats = await StatsService(db).get_deck_stats(deck.id, user_id=user.id, now=today)

        assert stats.total_cards == 4
        assert stats.mastered_cards == 1
        assert stats.new_cards == 3
        assert stats.learning_cards == 0
        assert stats.progress_percent == pytest.approx(25.0)
        assert stats.accuracy_rate == pytest.approx(5 / 6 * 100)
        assert stats.total_study_time == 55
        assert stats.study_streak == 3
        assert stats.last_studied_at.replace(tzinfo=timezone.utc) == today

    async def test_foreign_deck_stats_forbidden(self, db, user, other_user):
        deck = await FlashcardService(db).create_deck(DeckCreate(title="Mine"), user_id=user.id)

        with pytest.raises(PermissionError):
            await StatsService(db).get_deck_stats(deck.id, user_id=other_user.id)
