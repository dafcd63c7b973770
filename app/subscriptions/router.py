"""
Subscription router - API endpoint exposing the caller's billing plan.
Subscriptions are written only by verified Stripe webhooks.
"""

import logging

from fastapi import APIRouter, status

from app.core.schemas import ErrorResponse
from app.dependencies import CurrentUser, DBSession
from app.subscriptions.schemas import SubscriptionOverview
from app.subscriptions.service import get_subscription_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/subscriptions", tags=["Subscriptions"])


@router.get(
    "",
    response_model=SubscriptionOverview,
    status_code=status.HTTP_200_OK,
    summary="Get current plan",
    description="The plan used for rate limiting, plus every subscription recorded for the user.",
    responses={
        401: {"model": ErrorResponse, "description": "Not authenticated"},
    },
)
async def get_subscriptions(
    current_user: CurrentUser,
    db: DBSession,
) -> SubscriptionOverview:
    logger.info(f"[SubscriptionRouter] Getting subscriptions for user: {current_user.id}")

    service = get_subscription_service(db)
    return await service.get_overview(current_user.id)
