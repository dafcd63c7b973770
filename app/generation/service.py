"""
AI generation service - turns a prompt, image or audio clip into cards.

Flow of every generation:

    classify input -> build prompt -> call model -> parse JSON
        -> validate cards -> persist

Nothing is written until a validated batch exists, so a failure at any
step leaves the database untouched. Previews stage a batch under an
opaque session ID for 24 hours; confirm turns it into real cards and
regenerate swaps it for a new batch built from user feedback.
"""

import asyncio
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from fastapi import UploadFile
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.core.exceptions import GenerationTimeoutError, InvalidInputError, PreviewNotFoundError
from app.flashcards.models import Deck, GenerationType
from app.flashcards.repository import CardPreviewRepository, CardRepository, DeckRepository
from app.flashcards.service import card_to_read_dto, deck_to_read_dto
from app.generation.client import Attachment, GenerativeClient
from app.generation.media import has_file, read_audio, read_image
from app.generation.parsing import (
    GeneratedCard,
    deck_metadata,
    parse_cards,
    parse_deck,
    validate_cards,
)
from app.generation.prompts import build_cards_prompt, build_deck_prompt, build_regenerate_prompt
from app.generation.schemas import (
    ConfirmRequest,
    ConfirmResult,
    GenerateResult,
    PreviewCard,
    PreviewResult,
    RegenerateRequest,
)

logger = logging.getLogger(__name__)

GENERATION_TIMEOUT_SECONDS = 120.0
CONFIRM_TIMEOUT_SECONDS = 30.0
GENERATION_TEMPERATURE = 0.7
DECK_MAX_OUTPUT_TOKENS = 3000
APPEND_MAX_OUTPUT_TOKENS = 2000
DEFAULT_MAX_CARDS = 20
MAX_CARDS_LIMIT = 100

DEFAULT_DECK_TITLES = {
    GenerationType.TEXT: "AI Generated Deck",
    GenerationType.IMAGE: "Image Flashcards",
    GenerationType.AUDIO: "Audio Flashcards",
}


@dataclass
class GenerationInput:
    """A classified generation request."""
    kind: GenerationType
    prompt: str = ""
    attachment: Optional[Attachment] = None
    max_cards: int = DEFAULT_MAX_CARDS
    deck_id: Optional[str] = None
    deck_option: str = "new"

    @property
    def creates_deck(self) -> bool:
        return self.deck_option == "new" or not self.deck_id


async def classify_input(
    prompt: Optional[str],
    max_cards: Optional[int],
    deck_id: Optional[str] = None,
    deck_option: Optional[str] = None,
    image: Optional[UploadFile] = None,
    audio: Optional[UploadFile] = None,
) -> GenerationInput:
    """
    Decide the input kind and validate it. Image wins over audio; text
    is the fallback and needs a non-blank prompt.

    Raises:
        InvalidInputError (or a media subclass): If the input is unusable
    """
    count = max_cards or DEFAULT_MAX_CARDS
    if not 1 <= count <= MAX_CARDS_LIMIT:
        raise InvalidInputError(f"maxCards must be between 1 and {MAX_CARDS_LIMIT}")

    option = (deck_option or "new").strip().lower()
    if option not in ("new", "existing"):
        raise InvalidInputError("deckOption must be 'new' or 'existing'")
    if option == "existing" and not deck_id:
        raise InvalidInputError("deckId is required when deckOption is 'existing'")

    prompt = (prompt or "").strip()

    if has_file(image):
        kind, attachment = GenerationType.IMAGE, await read_image(image)
    elif has_file(audio):
        kind, attachment = GenerationType.AUDIO, await read_audio(audio)
    else:
        if not prompt:
            raise InvalidInputError("A prompt, image or audio file is required")
        kind, attachment = GenerationType.TEXT, None

    logger.info(f"[GenerationService] Input classified as {kind.value} ({count} cards, deck option {option})")
    return GenerationInput(
        kind=kind,
        prompt=prompt,
        attachment=attachment,
        max_cards=count,
        deck_id=deck_id or None,
        deck_option=option,
    )


class GenerationService:
    """Service for AI card generation, previews and confirmation."""

    def __init__(self, db: AsyncSession, client: GenerativeClient):
        self.db = db
        self.client = client
        self.settings = get_settings()
        self.deck_repo = DeckRepository(db)
        self.card_repo = CardRepository(db)
        self.preview_repo = CardPreviewRepository(db)

    # ═══════════════════════════════════════════════════════════════════════
    # DIRECT GENERATION
    # ═══════════════════════════════════════════════════════════════════════

    async def generate(self, inp: GenerationInput, user_id: str) -> GenerateResult:
        """
        Generate cards and store them right away, in a new deck or an owned one.

        Raises:
            DeckNotFoundError / PermissionError: If the target deck is unusable
            GenerationTimeoutError, ExternalAPIError, GenerationParseError,
            NoValidCardsError: From the model round-trip
        """
        logger.info(f"[GenerationService] Generating {inp.kind.value} cards for user: {user_id}")

        if inp.creates_deck:
            text = await self.client.generate(
                build_deck_prompt(inp.kind, inp.max_cards, topic=inp.prompt),
                attachment=inp.attachment,
                temperature=GENERATION_TEMPERATURE,
                max_output_tokens=DECK_MAX_OUTPUT_TOKENS,
                timeout=GENERATION_TIMEOUT_SECONDS,
            )
            parsed = parse_deck(text)
            cards = validate_cards(parsed.cards)[: inp.max_cards]
            title, description = deck_metadata(parsed, DEFAULT_DECK_TITLES[inp.kind])

            deck = await self.deck_repo.create(user_id=user_id, title=title, description=description)
            created = await self.card_repo.bulk_create(deck.id, _as_dicts(cards), inp.kind)
            return GenerateResult(
                cards=[card_to_read_dto(c) for c in created],
                deck=deck_to_read_dto(deck, card_count=len(created)),
            )

        # Ownership is checked before spending a model call
        deck = await self.deck_repo.get_by_id(inp.deck_id, user_id=user_id, verify_ownership=True)

        text = await self.client.generate(
            build_cards_prompt(inp.kind, inp.max_cards, topic=inp.prompt),
            attachment=inp.attachment,
            temperature=GENERATION_TEMPERATURE,
            max_output_tokens=APPEND_MAX_OUTPUT_TOKENS,
            timeout=GENERATION_TIMEOUT_SECONDS,
        )
        cards = validate_cards(parse_cards(text))[: inp.max_cards]

        created = await self.card_repo.bulk_create(deck.id, _as_dicts(cards), inp.kind)
        return GenerateResult(cards=[card_to_read_dto(c) for c in created])

    # ═══════════════════════════════════════════════════════════════════════
    # PREVIEW SESSIONS
    # ═══════════════════════════════════════════════════════════════════════

    async def preview(
        self,
        inp: GenerationInput,
        user_id: str,
        now: Optional[datetime] = None,
    ) -> PreviewResult:
        """Generate a batch and stage it as a preview session."""
        logger.info(f"[GenerationService] Previewing {inp.kind.value} cards for user: {user_id}")
        now = now or datetime.now(timezone.utc)

        text = await self.client.generate(
            build_deck_prompt(inp.kind, inp.max_cards, topic=inp.prompt),
            attachment=inp.attachment,
            temperature=GENERATION_TEMPERATURE,
            max_output_tokens=DECK_MAX_OUTPUT_TOKENS,
            timeout=GENERATION_TIMEOUT_SECONDS,
        )
        parsed = parse_deck(text)
        cards = validate_cards(parsed.cards)[: inp.max_cards]
        title, description = deck_metadata(parsed, DEFAULT_DECK_TITLES[inp.kind])

        session_id = secrets.token_hex(16)
        previews = await self.preview_repo.create_batch(
            user_id=user_id,
            session_id=session_id,
            deck_title=title,
            deck_description=description,
            cards=_as_dicts(cards),
            generation_type=inp.kind,
            original_prompt=inp.prompt if inp.kind == GenerationType.TEXT else None,
            expires_at=self._preview_expiry(now),
        )
        return _preview_result(previews)

    async def confirm(
        self,
        request: ConfirmRequest,
        user_id: str,
        now: Optional[datetime] = None,
    ) -> ConfirmResult:
        """
        Turn a live preview session into cards.

        Raises:
            PreviewNotFoundError: If the session is missing, expired or not the caller's
            DeckNotFoundError / PermissionError: If the target deck is unusable
            GenerationTimeoutError: If persistence exceeds its deadline
        """
        logger.info(f"[GenerationService] Confirming session: {request.session_id} for user: {user_id}")
        try:
            return await asyncio.wait_for(
                self._confirm(request, user_id, now or datetime.now(timezone.utc)),
                timeout=CONFIRM_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError:
            logger.error(f"[GenerationService] Confirm timed out for session: {request.session_id}")
            raise GenerationTimeoutError("Saving cards timed out")

    async def _confirm(self, request: ConfirmRequest, user_id: str, now: datetime) -> ConfirmResult:
        previews = await self.preview_repo.get_session(request.session_id, user_id, now=now)
        if not previews:
            raise PreviewNotFoundError("Preview session not found or expired")

        first = previews[0]
        if request.deck_id:
            deck: Deck = await self.deck_repo.get_by_id(
                request.deck_id, user_id=user_id, verify_ownership=True
            )
        else:
            deck = await self.deck_repo.create(
                user_id=user_id,
                title=first.deck_title,
                description=first.deck_description,
            )

        created = await self.card_repo.bulk_create(
            deck.id,
            [{"front": p.front, "back": p.back} for p in previews],
            GenerationType(first.generation_type),
        )

        # Consumed previews expire anyway; a failed cleanup must not undo the cards
        try:
            async with self.db.begin_nested():
                await self.preview_repo.delete_session(request.session_id, user_id)
        except SQLAlchemyError as e:
            logger.warning(f"[GenerationService] Could not delete previews for {request.session_id}: {e}")

        card_counts = await self.deck_repo.get_card_counts(user_id=user_id)
        return ConfirmResult(
            deck=deck_to_read_dto(deck, card_count=card_counts.get(deck.id, len(created))),
            cards=[card_to_read_dto(c) for c in created],
        )

    async def regenerate(
        self,
        request: RegenerateRequest,
        user_id: str,
        now: Optional[datetime] = None,
    ) -> PreviewResult:
        """
        Replace a preview batch using feedback, keeping the session ID.

        The new batch is fully generated and validated before the old one
        is touched; the swap itself happens inside one savepoint.
        """
        logger.info(f"[GenerationService] Regenerating session: {request.session_id} for user: {user_id}")
        now = now or datetime.now(timezone.utc)

        previews = await self.preview_repo.get_session(request.session_id, user_id, now=now)
        if not previews:
            raise PreviewNotFoundError("Preview session not found or expired")

        first = previews[0]
        kind = GenerationType(first.generation_type)

        text = await self.client.generate(
            build_regenerate_prompt(
                kind,
                count=len(previews),
                feedback=request.feedback,
                topic=first.original_prompt or "",
            ),
            temperature=GENERATION_TEMPERATURE,
            max_output_tokens=DECK_MAX_OUTPUT_TOKENS,
            timeout=GENERATION_TIMEOUT_SECONDS,
        )
        parsed = parse_deck(text)
        cards = validate_cards(parsed.cards)[: len(previews)]
        title, description = deck_metadata(parsed, first.deck_title)

        async with self.db.begin_nested():
            await self.preview_repo.delete_session(request.session_id, user_id)
            new_previews = await self.preview_repo.create_batch(
                user_id=user_id,
                session_id=request.session_id,
                deck_title=title,
                deck_description=description,
                cards=_as_dicts(cards),
                generation_type=kind,
                original_prompt=first.original_prompt,
                expires_at=self._preview_expiry(now),
            )

        return _preview_result(new_previews)

    def _preview_expiry(self, now: datetime) -> datetime:
        return now + timedelta(hours=self.settings.preview_ttl_hours)


def _as_dicts(cards: List[GeneratedCard]) -> List[dict]:
    return [{"front": c.front, "back": c.back} for c in cards]


def _preview_result(previews) -> PreviewResult:
    first = previews[0]
    return PreviewResult(
        session_id=first.session_id,
        deck_title=first.deck_title,
        deck_description=first.deck_description,
        generation_type=first.generation_type,
        cards=[PreviewCard(id=p.id, front=p.front, back=p.back) for p in previews],
        expires_at=first.expires_at,
    )


def get_generation_service(db: AsyncSession, client: GenerativeClient) -> GenerationService:
    """Factory function for GenerationService."""
    return GenerationService(db, client)
