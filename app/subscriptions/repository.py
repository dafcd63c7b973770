"""
Repository layer for subscription data access.
"""

import logging
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from uuid_extensions import uuid7

from app.subscriptions.models import Subscription

logger = logging.getLogger(__name__)


class SubscriptionRepository:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_for_user(self, user_id: str) -> Sequence[Subscription]:
        """All subscriptions of a user, oldest first."""
        result = await self.db.execute(
            select(Subscription)
            .where(Subscription.user_id == user_id)
            .order_by(Subscription.created_at.asc(), Subscription.id.asc())
        )
        return result.scalars().all()

    async def get_by_stripe_id(self, stripe_subscription_id: str) -> Optional[Subscription]:
        result = await self.db.execute(
            select(Subscription).where(
                Subscription.stripe_subscription_id == stripe_subscription_id
            )
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        user_id: str,
        email: str,
        stripe_subscription_id: str,
        stripe_customer_id: str,
        status: str,
        plan_type: str,
        current_period_start: datetime,
        current_period_end: datetime,
        cancel_at_period_end: bool = False,
        created_at: Optional[datetime] = None,
    ) -> Subscription:
        """Insert a new subscription row."""
        sub = Subscription(
            id=str(uuid7()),
            user_id=user_id,
            email=email,
            stripe_subscription_id=stripe_subscription_id,
            stripe_customer_id=stripe_customer_id,
            status=status,
            plan_type=plan_type,
            current_period_start=current_period_start,
            current_period_end=current_period_end,
            cancel_at_period_end=cancel_at_period_end,
        )
        if created_at is not None:
            sub.created_at = created_at

        self.db.add(sub)
        await self.db.flush()

        logger.info(
            f"[SubscriptionRepository] Created subscription {stripe_subscription_id} "
            f"({plan_type}, {status}) for user: {user_id}"
        )
        return sub

    async def delete_by_stripe_id(self, stripe_subscription_id: str) -> int:
        """Delete a subscription by its Stripe ID. Returns the number of rows removed."""
        result = await self.db.execute(
            delete(Subscription).where(
                Subscription.stripe_subscription_id == stripe_subscription_id
            )
        )
        await self.db.flush()

        logger.info(
            f"[SubscriptionRepository] Deleted {result.rowcount} subscription(s) "
            f"with stripe id: {stripe_subscription_id}"
        )
        return result.rowcount


def get_subscription_repository(db: AsyncSession) -> SubscriptionRepository:
    return SubscriptionRepository(db)
