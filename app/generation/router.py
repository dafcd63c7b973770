"""
AI generation router - generate, preview, confirm and regenerate cards.
Every route is authenticated and rate-limited per plan.
"""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile, status

from app.auth.models import User
from app.core.schemas import ErrorResponse, SuccessResponse
from app.dependencies import DBSession, GenClient
from app.generation.schemas import (
    ConfirmRequest,
    ConfirmResult,
    GenerateResult,
    PreviewResult,
    RegenerateRequest,
)
from app.generation.service import classify_input, get_generation_service
from app.quota.dependencies import require_quota

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cards", tags=["AI Generation"])

GENERATION_ERRORS = {
    400: {"model": ErrorResponse, "description": "Invalid input or upload"},
    401: {"model": ErrorResponse, "description": "Not authenticated"},
    403: {"model": ErrorResponse, "description": "Deck does not belong to user"},
    404: {"model": ErrorResponse, "description": "Deck not found"},
    408: {"model": ErrorResponse, "description": "Model call timed out"},
    422: {"model": ErrorResponse, "description": "No valid cards generated"},
    429: {"description": "Rate limit exceeded"},
    500: {"model": ErrorResponse, "description": "Provider or parse error"},
    503: {"model": ErrorResponse, "description": "Rate limiting unavailable"},
}

GenerateQuotaUser = Annotated[User, Depends(require_quota("ai_generate"))]
PreviewQuotaUser = Annotated[User, Depends(require_quota("ai_preview"))]
RegenerateQuotaUser = Annotated[User, Depends(require_quota("ai_regenerate"))]
ConfirmQuotaUser = Annotated[User, Depends(require_quota("ai_confirm"))]


@router.post(
    "/ai_generate",
    response_model=SuccessResponse[GenerateResult],
    status_code=status.HTTP_200_OK,
    summary="Generate cards with AI",
    description=(
        "Generate cards from a text prompt, an image or an audio clip and save them "
        "into a new deck (deckOption=new) or an existing one (deckId)."
    ),
    responses=GENERATION_ERRORS,
)
async def ai_generate(
        current_user: GenerateQuotaUser,
        db: DBSession,
        client: GenClient,
        prompt: Annotated[Optional[str], Form(description="Topic or instructions")] = None,
        max_cards: Annotated[Optional[int], Form(alias="maxCards")] = None,
        deck_id: Annotated[Optional[str], Form(alias="deckId")] = None,
        deck_option: Annotated[Optional[str], Form(alias="deckOption")] = None,
        image: Annotated[Optional[UploadFile], File(description="PNG, JPEG, WEBP, HEIC or HEIF, max 20MB")] = None,
        audio: Annotated[Optional[UploadFile], File(description="WAV, MP3, AIFF, AAC, OGG or FLAC, max 50MB")] = None,
) -> SuccessResponse[GenerateResult]:
    logger.info(f"[GenerationRouter] ai_generate, user: {current_user.id}")

    inp = await classify_input(prompt, max_cards, deck_id, deck_option, image, audio)
    service = get_generation_service(db, client)
    result = await service.generate(inp, user_id=current_user.id)
    return SuccessResponse[GenerateResult](data=result)


@router.post(
    "/ai_preview",
    response_model=SuccessResponse[PreviewResult],
    status_code=status.HTTP_200_OK,
    summary="Preview AI-generated cards",
    description="Generate cards without saving them. The preview session lives for 24 hours.",
    responses=GENERATION_ERRORS,
)
async def ai_preview(
        current_user: PreviewQuotaUser,
        db: DBSession,
        client: GenClient,
        prompt: Annotated[Optional[str], Form()] = None,
        max_cards: Annotated[Optional[int], Form(alias="maxCards")] = None,
        image: Annotated[Optional[UploadFile], File()] = None,
        audio: Annotated[Optional[UploadFile], File()] = None,
) -> SuccessResponse[PreviewResult]:
    logger.info(f"[GenerationRouter] ai_preview, user: {current_user.id}")

    inp = await classify_input(prompt, max_cards, image=image, audio=audio)
    service = get_generation_service(db, client)
    result = await service.preview(inp, user_id=current_user.id)
    return SuccessResponse[PreviewResult](data=result)


@router.post(
    "/ai_confirm",
    response_model=SuccessResponse[ConfirmResult],
    status_code=status.HTTP_200_OK,
    summary="Save a preview session",
    description="Persist the cards of a live preview session into a new deck or an existing one.",
    responses=GENERATION_ERRORS,
)
async def ai_confirm(
        request: ConfirmRequest,
        current_user: ConfirmQuotaUser,
        db: DBSession,
        client: GenClient,
) -> SuccessResponse[ConfirmResult]:
    logger.info(f"[GenerationRouter] ai_confirm session: {request.session_id}, user: {current_user.id}")

    service = get_generation_service(db, client)
    result = await service.confirm(request, user_id=current_user.id)
    return SuccessResponse[ConfirmResult](data=result)


@router.post(
    "/ai_regenerate",
    response_model=SuccessResponse[PreviewResult],
    status_code=status.HTTP_200_OK,
    summary="Regenerate a preview session",
    description="Replace the cards of a live preview session using feedback. The session ID is kept.",
    responses=GENERATION_ERRORS,
)
async def ai_regenerate(
        request: RegenerateRequest,
        current_user: RegenerateQuotaUser,
        db: DBSession,
        client: GenClient,
) -> SuccessResponse[PreviewResult]:
    logger.info(f"[GenerationRouter] ai_regenerate session: {request.session_id}, user: {current_user.id}")

    service = get_generation_service(db, client)
    result = await service.regenerate(request, user_id=current_user.id)
    return SuccessResponse[PreviewResult](data=result)
