"""
Tests for model-output parsing, input classification and the
generate / preview / confirm / regenerate workflow.
"""

import io
import json
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select
from starlette.datastructures import Headers, UploadFile

from app.core.exceptions import (
    ExternalAPIError,
    FileTooLargeError,
    GenerationParseError,
    InvalidInputError,
    NoValidCardsError,
    PreviewNotFoundError,
    UnsupportedMediaError,
)
from app.flashcards.models import Card, CardPreview, Deck, GenerationType
from app.flashcards.repository import CardPreviewRepository, CardRepository, DeckRepository
from app.generation import media
from app.generation.parsing import (
    GeneratedCard,
    extract_json,
    parse_cards,
    parse_deck,
    validate_cards,
)
from app.generation.prompts import build_cards_prompt, build_deck_prompt, build_regenerate_prompt
from app.generation.schemas import ConfirmRequest, RegenerateRequest
from app.generation.service import GenerationInput, GenerationService, classify_input
from app.scheduler import purge_expired_previews
from tests.conftest import ScriptedGenerativeClient


def deck_json(title="Photosynthesis", cards=None, fenced=True) -> str:
    cards = cards if cards is not None else [
        {"front": "What is chlorophyll?", "back": "The green pigment that absorbs light"},
        {"front": "Where does photosynthesis happen?", "back": "In the chloroplasts"},
    ]
    body = json.dumps({"title": title, "description": "Plant energy basics", "cards": cards})
    return f"```json\n{body}\n```" if fenced else body


def upload(data: bytes, filename: str, content_type: str) -> UploadFile:
    return UploadFile(
        file=io.BytesIO(data),
        filename=filename,
        headers=Headers({"content-type": content_type}),
    )


async def count(db, model) -> int:
    return (await db.execute(select(func.count()).select_from(model))).scalar_one()


# ═══════════════════════════════════════════════════════════════════════════
# PARSING
# ═══════════════════════════════════════════════════════════════════════════


class TestExtractJson:
    def test_strips_json_fence(self):
        assert extract_json('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_strips_plain_fence(self):
        assert extract_json('```\n[1, 2]\n```') == "[1, 2]"

    def test_leaves_bare_json(self):
        assert extract_json('  {"a": 1}  ') == '{"a": 1}'

    def test_finds_fence_after_lead_in(self):
        text = 'Here are your cards:\n```json\n{"a": 1}\n```\nEnjoy!'
        assert extract_json(text) == '{"a": 1}'

    def test_uppercase_fence_tag(self):
        assert extract_json('```JSON\n[1, 2]\n```') == "[1, 2]"

    def test_unclosed_fence(self):
        assert extract_json('```json\n{"a": 1}') == '{"a": 1}'


class TestParse:
    def test_parse_deck(self):
        deck = parse_deck(deck_json())
        assert deck.title == "Photosynthesis"
        assert len(deck.cards) == 2

    def test_parse_deck_rejects_prose(self):
        with pytest.raises(GenerationParseError):
            parse_deck("Sure! Here are your flashcards.")

    def test_parse_cards_accepts_bare_array(self):
        cards = parse_cards('[{"front": "Q", "back": "A"}]')
        assert cards == [GeneratedCard(front="Q", back="A")]

    def test_parse_cards_accepts_deck_object(self):
        assert len(parse_cards(deck_json(fenced=False))) == 2

    def test_parse_cards_rejects_wrong_shape(self):
        with pytest.raises(GenerationParseError):
            parse_cards('{"cards": "none"}')

    def test_parse_deck_after_lead_in(self):
        deck = parse_deck("Sure! Here is your deck:\n" + deck_json() + "\nGood luck.")
        assert deck.title == "Photosynthesis"

    def test_parse_cards_with_uppercase_tag(self):
        cards = parse_cards('```JSON\n[{"front": "Q", "back": "A"}]\n```')
        assert cards == [GeneratedCard(front="Q", back="A")]


class TestValidateCards:
    def test_drops_blank_and_oversize_cards(self):
        cards = [
            GeneratedCard(front="  ", back="Answer"),
            GeneratedCard(front="Question", back="x" * 1001),
            GeneratedCard(front="  Kept  ", back=" Yes "),
            GeneratedCard(front="Edge", back="y" * 1000),
        ]

        valid = validate_cards(cards)

        assert [c.front for c in valid] == ["Kept", "Edge"]
        assert valid[0].back == "Yes"

    def test_all_invalid_raises(self):
        with pytest.raises(NoValidCardsError):
            validate_cards([GeneratedCard(front="", back="A")])


class TestPrompts:
    def test_deck_prompt_mentions_topic_and_count(self):
        prompt = build_deck_prompt(GenerationType.TEXT, 7, topic="Japanese particles")
        assert "7 flashcards" in prompt
        assert "Japanese particles" in prompt
        assert '"title"' in prompt

    def test_cards_prompt_asks_for_array(self):
        prompt = build_cards_prompt(GenerationType.IMAGE, 3)
        assert "JSON array" in prompt
        assert '"title"' not in prompt

    def test_regenerate_prompt_for_media_omits_topic(self):
        prompt = build_regenerate_prompt(GenerationType.AUDIO, 4, feedback="Harder questions", topic="ignored")
        assert "Harder questions" in prompt
        assert "ignored" not in prompt


# ═══════════════════════════════════════════════════════════════════════════
# INPUT CLASSIFICATION
# ═══════════════════════════════════════════════════════════════════════════


class TestClassifyInput:
    async def test_text_defaults(self):
        inp = await classify_input("  Photosynthesis  ", None)
        assert inp.kind == GenerationType.TEXT
        assert inp.prompt == "Photosynthesis"
        assert inp.max_cards == 20
        assert inp.creates_deck

    async def test_requires_some_input(self):
        with pytest.raises(InvalidInputError):
            await classify_input("   ", 5)

    @pytest.mark.parametrize("max_cards", [-1, 101])
    async def test_max_cards_bounds(self, max_cards):
        with pytest.raises(InvalidInputError):
            await classify_input("Topic", max_cards)

    async def test_existing_deck_option_needs_deck_id(self):
        with pytest.raises(InvalidInputError):
            await classify_input("Topic", 5, deck_option="existing")

    async def test_image_wins_over_audio(self):
        inp = await classify_input(
            "",
            5,
            image=upload(b"\x89PNG data", "photo.png", "image/png"),
            audio=upload(b"RIFF data", "clip.wav", "audio/wav"),
        )
        assert inp.kind == GenerationType.IMAGE
        assert inp.attachment.mime_type == "image/png"

    async def test_unsupported_image_type(self):
        with pytest.raises(UnsupportedMediaError):
            await classify_input("", 5, image=upload(b"GIF89a", "anim.gif", "image/gif"))

    async def test_webm_only_for_transcription(self):
        with pytest.raises(UnsupportedMediaError):
            await classify_input("", 5, audio=upload(b"webm", "clip.webm", "audio/webm"))
        attachment = await media.read_audio(upload(b"webm", "clip.webm", "audio/webm"), for_transcription=True)
        assert attachment.mime_type == "audio/webm"

    async def test_empty_upload(self):
        with pytest.raises(InvalidInputError):
            await classify_input("", 5, audio=upload(b"", "clip.mp3", "audio/mp3"))

    async def test_oversize_upload(self):
        with pytest.raises(FileTooLargeError):
            await media.read_upload(
                upload(b"0123456789", "big.png", "image/png"),
                media.IMAGE_TYPES,
                8,
                "image",
            )


# ═══════════════════════════════════════════════════════════════════════════
# DIRECT GENERATION
# ═══════════════════════════════════════════════════════════════════════════


class TestGenerate:
    async def test_creates_deck_with_valid_cards(self, db, user):
        model = ScriptedGenerativeClient(deck_json(cards=[
            {"front": "Q1", "back": "A1"},
            {"front": "", "back": "dropped"},
            {"front": "Q2", "back": "A2"},
            {"front": "Q3", "back": "A3"},
        ]))
        service = GenerationService(db, model)

        result = await service.generate(
            GenerationInput(kind=GenerationType.TEXT, prompt="Photosynthesis", max_cards=2),
            user_id=user.id,
        )

        assert result.deck.title == "Photosynthesis"
        assert result.deck.card_count == 2
        assert [c.front for c in result.cards] == ["Q1", "Q2"]
        assert all(c.generation_type == "text" for c in result.cards)
        assert model.calls[0]["max_output_tokens"] == 3000
        assert model.calls[0]["temperature"] == 0.7

    async def test_untitled_deck_gets_default_title(self, db, user):
        model = ScriptedGenerativeClient(deck_json(title=""))
        service = GenerationService(db, model)

        result = await service.generate(
            GenerationInput(kind=GenerationType.TEXT, prompt="Topic", max_cards=5),
            user_id=user.id,
        )

        assert result.deck.title == "AI Generated Deck"

    async def test_no_valid_cards_writes_nothing(self, db, user):
        model = ScriptedGenerativeClient(deck_json(cards=[{"front": " ", "back": " "}]))
        service = GenerationService(db, model)

        with pytest.raises(NoValidCardsError):
            await service.generate(
                GenerationInput(kind=GenerationType.TEXT, prompt="Topic"), user_id=user.id
            )

        assert await count(db, Deck) == 0
        assert await count(db, Card) == 0

    async def test_provider_error_propagates(self, db, user):
        model = ScriptedGenerativeClient(ExternalAPIError("AI service error"))

        with pytest.raises(ExternalAPIError):
            await GenerationService(db, model).generate(
                GenerationInput(kind=GenerationType.TEXT, prompt="Topic"), user_id=user.id
            )

    async def test_appends_to_owned_deck_with_array_prompt(self, db, user):
        deck = await DeckRepository(db).create(user_id=user.id, title="Existing")
        model = ScriptedGenerativeClient('[{"front": "Q", "back": "A"}]')

        result = await GenerationService(db, model).generate(
            GenerationInput(
                kind=GenerationType.TEXT,
                prompt="More",
                max_cards=5,
                deck_id=deck.id,
                deck_option="existing",
            ),
            user_id=user.id,
        )

        assert result.deck is None
        assert result.cards[0].deck_id == deck.id
        assert "JSON array" in model.calls[0]["prompt"]
        assert model.calls[0]["max_output_tokens"] == 2000

    async def test_foreign_deck_rejected_before_model_call(self, db, user, other_user):
        deck = await DeckRepository(db).create(user_id=other_user.id, title="Not yours")
        model = ScriptedGenerativeClient()

        with pytest.raises(PermissionError):
            await GenerationService(db, model).generate(
                GenerationInput(
                    kind=GenerationType.TEXT,
                    prompt="Topic",
                    deck_id=deck.id,
                    deck_option="existing",
                ),
                user_id=user.id,
            )

        assert model.calls == []


# ═══════════════════════════════════════════════════════════════════════════
# PREVIEW SESSIONS
# ═══════════════════════════════════════════════════════════════════════════


class TestPreviewWorkflow:
    async def make_preview(self, db, user, now):
        model = ScriptedGenerativeClient(deck_json())
        service = GenerationService(db, model)
        preview = await service.preview(
            GenerationInput(kind=GenerationType.TEXT, prompt="Photosynthesis", max_cards=5),
            user_id=user.id,
            now=now,
        )
        return service, model, preview

    async def test_preview_stages_cards_without_deck(self, db, user, now):
        _, _, preview = await self.make_preview(db, user, now)

        assert len(preview.session_id) == 32
        assert preview.deck_title == "Photosynthesis"
        assert len(preview.cards) == 2
        assert preview.expires_at.replace(tzinfo=timezone.utc) == now + timedelta(hours=24)
        assert await count(db, Deck) == 0
        assert await count(db, CardPreview) == 2

    async def test_confirm_creates_deck_and_consumes_session(self, db, user, now):
        service, _, preview = await self.make_preview(db, user, now)

        result = await service.confirm(ConfirmRequest(session_id=preview.session_id), user_id=user.id, now=now)

        assert result.deck.title == "Photosynthesis"
        assert result.deck.card_count == 2
        assert [c.front for c in result.cards] == [c.front for c in preview.cards]
        assert await count(db, CardPreview) == 0

        with pytest.raises(PreviewNotFoundError):
            await service.confirm(ConfirmRequest(session_id=preview.session_id), user_id=user.id, now=now)

    async def test_confirm_into_existing_deck(self, db, user, now):
        service, _, preview = await self.make_preview(db, user, now)
        deck = await DeckRepository(db).create(user_id=user.id, title="Mine")

        result = await service.confirm(
            ConfirmRequest(session_id=preview.session_id, deck_id=deck.id), user_id=user.id, now=now
        )

        assert result.deck.id == deck.id
        assert await count(db, Deck) == 1

    async def test_expired_session_is_not_found(self, db, user, now):
        service, _, preview = await self.make_preview(db, user, now)

        with pytest.raises(PreviewNotFoundError):
            await service.confirm(
                ConfirmRequest(session_id=preview.session_id),
                user_id=user.id,
                now=now + timedelta(hours=24, seconds=1),
            )

    async def test_foreign_session_is_not_found(self, db, user, other_user, now):
        service, _, preview = await self.make_preview(db, user, now)

        with pytest.raises(PreviewNotFoundError):
            await service.confirm(ConfirmRequest(session_id=preview.session_id), user_id=other_user.id, now=now)

    async def test_regenerate_keeps_session_and_refreshes_expiry(self, db, user, now):
        service, model, preview = await self.make_preview(db, user, now)
        model.queue(deck_json(title="Photosynthesis, harder", cards=[
            {"front": "Explain the Calvin cycle", "back": "Carbon fixation using ATP and NADPH"},
        ]))
        later = now + timedelta(hours=2)

        result = await service.regenerate(
            RegenerateRequest(session_id=preview.session_id, feedback="Make it harder"),
            user_id=user.id,
            now=later,
        )

        assert result.session_id == preview.session_id
        assert result.deck_title == "Photosynthesis, harder"
        assert [c.front for c in result.cards] == ["Explain the Calvin cycle"]
        assert result.expires_at.replace(tzinfo=timezone.utc) == later + timedelta(hours=24)
        assert "Make it harder" in model.calls[1]["prompt"]
        assert "Photosynthesis" in model.calls[1]["prompt"]
        assert await count(db, CardPreview) == 1

    async def test_failed_regenerate_keeps_old_batch(self, db, user, now):
        service, model, preview = await self.make_preview(db, user, now)
        model.queue("this is not json")

        with pytest.raises(GenerationParseError):
            await service.regenerate(
                RegenerateRequest(session_id=preview.session_id, feedback="Again"),
                user_id=user.id,
                now=now,
            )

        result = await service.confirm(ConfirmRequest(session_id=preview.session_id), user_id=user.id, now=now)
        assert len(result.cards) == 2

    async def test_large_batch_keeps_model_order(self, db, user, now):
        cards = [{"front": f"Q{i}", "back": f"A{i}"} for i in range(12)]
        service = GenerationService(db, ScriptedGenerativeClient(deck_json(cards=cards)))
        preview = await service.preview(
            GenerationInput(kind=GenerationType.TEXT, prompt="Numbers", max_cards=12),
            user_id=user.id,
            now=now,
        )
        expected = [f"Q{i}" for i in range(12)]

        staged = await CardPreviewRepository(db).get_session(preview.session_id, user.id, now=now)
        assert [p.front for p in staged] == expected

        result = await service.confirm(ConfirmRequest(session_id=preview.session_id), user_id=user.id, now=now)
        assert [c.front for c in result.cards] == expected

        saved = await CardRepository(db).list_by_deck(result.deck.id)
        assert [c.front for c in saved] == expected

    async def test_regenerate_never_grows_the_batch(self, db, user, now):
        service, model, preview = await self.make_preview(db, user, now)
        model.queue(deck_json(cards=[{"front": f"Q{i}", "back": f"A{i}"} for i in range(6)]))

        result = await service.regenerate(
            RegenerateRequest(session_id=preview.session_id, feedback="More detail"),
            user_id=user.id,
            now=now,
        )

        assert [c.front for c in result.cards] == ["Q0", "Q1"]
        assert await count(db, CardPreview) == 2

    async def test_purge_removes_only_expired_rows(self, db, session_factory, user, now, monkeypatch):
        await self.make_preview(db, user, now - timedelta(hours=30))
        await self.make_preview(db, user, datetime.now(timezone.utc))
        await db.commit()

        monkeypatch.setattr("app.scheduler.AsyncSessionLocal", session_factory)
        removed = await purge_expired_previews()

        assert removed == 2
        assert await count(db, CardPreview) == 2
