"""
Flashcards router - API endpoints for decks, cards and study answers.
All routes require authentication and are scoped to the caller's decks.
Domain errors propagate to the application-level handler in app.main.
"""

import logging

from fastapi import APIRouter, Query, Response, status

from app.core.schemas import ErrorResponse
from app.dependencies import CurrentUser, DBSession
from app.flashcards.schemas import (
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
    DeckStats,
    DeckUpdate,
)
from app.flashcards.service import get_flashcard_service
from app.flashcards.stats import get_stats_service

logger = logging.getLogger(__name__)

NOT_OWNED = {"model": ErrorResponse, "description": "Access denied - deck does not belong to user"}
UNAUTHENTICATED = {"model": ErrorResponse, "description": "Not authenticated"}

# ═══════════════════════════════════════════════════════════════════════════
# DECK ROUTER
# ═══════════════════════════════════════════════════════════════════════════

decks_router = APIRouter(prefix="/decks", tags=["Decks"])


@decks_router.post(
    "",
    response_model=DeckRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new deck",
    responses={401: UNAUTHENTICATED},
)
async def create_deck(
    deck_data: DeckCreate,
    current_user: CurrentUser,
    db: DBSession,
) -> DeckRead:
    """Create a new deck for the authenticated user."""
    logger.info(f"[DecksRouter] Creating deck: {deck_data.title}, user: {current_user.id}")

    service = get_flashcard_service(db)
    return await service.create_deck(deck_data, user_id=current_user.id)


@decks_router.get(
    "",
    response_model=DeckList,
    status_code=status.HTTP_200_OK,
    summary="List all decks",
    responses={401: UNAUTHENTICATED},
)
async def list_decks(
    current_user: CurrentUser,
    db: DBSession,
    skip: int = Query(0, ge=0, description="Number of records to skip"),
    limit: int = Query(100, ge=1, le=1000, description="Maximum records to return"),
) -> DeckList:
    """List the caller's live decks, newest first."""
    logger.info(f"[DecksRouter] Listing decks (skip={skip}, limit={limit}), user: {current_user.id}")

    service = get_flashcard_service(db)
    return await service.list_decks(user_id=current_user.id, skip=skip, limit=limit)


@decks_router.get(
    "/{deck_id}",
    response_model=DeckDetail,
    status_code=status.HTTP_200_OK,
    summary="Get deck by ID",
    responses={
        401: UNAUTHENTICATED,
        403: NOT_OWNED,
        404: {"model": ErrorResponse, "description": "Deck not found"},
    },
)
async def get_deck(
    deck_id: str,
    current_user: CurrentUser,
    db: DBSession,
) -> DeckDetail:
    logger.info(f"[DecksRouter] Getting deck: {deck_id}, user: {current_user.id}")

    service = get_flashcard_service(db)
    return await service.get_deck(deck_id, user_id=current_user.id)


@decks_router.put(
    "/{deck_id}",
    response_model=DeckRead,
    status_code=status.HTTP_200_OK,
    summary="Update deck",
    description="Update a deck's title or description. Empty fields are left unchanged.",
    responses={
        401: UNAUTHENTICATED,
        403: NOT_OWNED,
        404: {"model": ErrorResponse, "description": "Deck not found"},
    },
)
async def update_deck(
    deck_id: str,
    deck_data: DeckUpdate,
    current_user: CurrentUser,
    db: DBSession,
) -> DeckRead:
    logger.info(f"[DecksRouter] Updating deck: {deck_id}, user: {current_user.id}")

    service = get_flashcard_service(db)
    return await service.update_deck(deck_id, deck_data, user_id=current_user.id)


@decks_router.delete(
    "/{deck_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete deck",
    description="Soft-delete a deck and all its cards.",
    responses={
        401: UNAUTHENTICATED,
        403: NOT_OWNED,
        404: {"model": ErrorResponse, "description": "Deck not found"},
    },
)
async def delete_deck(
    deck_id: str,
    current_user: CurrentUser,
    db: DBSession,
) -> Response:
    logger.info(f"[DecksRouter] Deleting deck: {deck_id}, user: {current_user.id}")

    service = get_flashcard_service(db)
    await service.delete_deck(deck_id, user_id=current_user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@decks_router.get(
    "/{deck_id}/stats",
    response_model=DeckStats,
    status_code=status.HTTP_200_OK,
    summary="Deck study statistics",
    description="Card status counts, progress, accuracy, study time and current streak.",
    responses={
        401: UNAUTHENTICATED,
        403: NOT_OWNED,
        404: {"model": ErrorResponse, "description": "Deck not found"},
    },
)
async def get_deck_stats(
    deck_id: str,
    current_user: CurrentUser,
    db: DBSession,
) -> DeckStats:
    logger.info(f"[DecksRouter] Getting stats for deck: {deck_id}, user: {current_user.id}")

    service = get_stats_service(db)
    return await service.get_deck_stats(deck_id, user_id=current_user.id)


@decks_router.post(
    "/{deck_id}/cards",
    response_model=CardRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create a card in a deck",
    responses={
        401: UNAUTHENTICATED,
        403: NOT_OWNED,
        404: {"model": ErrorResponse, "description": "Deck not found"},
    },
)
async def create_card(
    deck_id: str,
    card_data: CardCreate,
    current_user: CurrentUser,
    db: DBSession,
) -> CardRead:
    logger.info(f"[DecksRouter] Creating card in deck: {deck_id}, user: {current_user.id}")

    service = get_flashcard_service(db)
    return await service.create_card(deck_id, card_data, user_id=current_user.id)


@decks_router.get(
    "/{deck_id}/cards",
    response_model=CardList,
    status_code=status.HTTP_200_OK,
    summary="List cards in a deck",
    responses={
        401: UNAUTHENTICATED,
        403: NOT_OWNED,
        404: {"model": ErrorResponse, "description": "Deck not found"},
    },
)
async def list_cards(
    deck_id: str,
    current_user: CurrentUser,
    db: DBSession,
) -> CardList:
    logger.info(f"[DecksRouter] Listing cards in deck: {deck_id}, user: {current_user.id}")

    service = get_flashcard_service(db)
    return await service.list_cards(deck_id, user_id=current_user.id)


@decks_router.post(
    "/{deck_id}/cards/{card_id}/answer",
    response_model=AnswerResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Record a study answer",
    description="Store the answer and advance the card between new, learning and mastered.",
    responses={
        401: UNAUTHENTICATED,
        403: NOT_OWNED,
        404: {"model": ErrorResponse, "description": "Deck or card not found"},
    },
)
async def answer_card(
    deck_id: str,
    card_id: str,
    answer: AnswerRequest,
    current_user: CurrentUser,
    db: DBSession,
) -> AnswerResponse:
    logger.info(f"[DecksRouter] Answer for card: {card_id}, correct={answer.is_correct}, user: {current_user.id}")

    service = get_flashcard_service(db)
    return await service.record_answer(deck_id, card_id, answer, user_id=current_user.id)


# ═══════════════════════════════════════════════════════════════════════════
# CARD ROUTER
# ═══════════════════════════════════════════════════════════════════════════

cards_router = APIRouter(prefix="/cards", tags=["Cards"])


@cards_router.put(
    "/{card_id}",
    response_model=CardRead,
    status_code=status.HTTP_200_OK,
    summary="Update card",
    description="Update a card's front, back or hint. Empty fields are left unchanged.",
    responses={
        401: UNAUTHENTICATED,
        403: NOT_OWNED,
        404: {"model": ErrorResponse, "description": "Card not found"},
    },
)
async def update_card(
    card_id: str,
    card_data: CardUpdate,
    current_user: CurrentUser,
    db: DBSession,
) -> CardRead:
    logger.info(f"[CardsRouter] Updating card: {card_id}, user: {current_user.id}")

    service = get_flashcard_service(db)
    return await service.update_card(card_id, card_data, user_id=current_user.id)


@cards_router.delete(
    "/{card_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete card",
    responses={
        401: UNAUTHENTICATED,
        403: NOT_OWNED,
        404: {"model": ErrorResponse, "description": "Card not found"},
    },
)
async def delete_card(
    card_id: str,
    current_user: CurrentUser,
    db: DBSession,
) -> Response:
    logger.info(f"[CardsRouter] Deleting card: {card_id}, user: {current_user.id}")

    service = get_flashcard_service(db)
    await service.delete_card(card_id, user_id=current_user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@cards_router.post(
    "/{card_id}/learning",
    response_model=CardRead,
    status_code=status.HTTP_200_OK,
    summary="Mark card reviewed",
    description="Increment the review count and set the last review time. Status is unchanged.",
    responses={
        401: UNAUTHENTICATED,
        403: NOT_OWNED,
        404: {"model": ErrorResponse, "description": "Card not found"},
    },
)
async def mark_card_reviewed(
    card_id: str,
    current_user: CurrentUser,
    db: DBSession,
) -> CardRead:
    logger.info(f"[CardsRouter] Marking card reviewed: {card_id}, user: {current_user.id}")

    service = get_flashcard_service(db)
    return await service.mark_reviewed(card_id, user_id=current_user.id)
