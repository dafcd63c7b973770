"""
Service layer for subscription plans and Stripe subscription events.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import stripe
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.repository import UserRepository
from app.config import get_settings
from app.core.exceptions import SubscriptionSyncError
from app.core.timeutils import add_one_month
from app.subscriptions.models import PlanType
from app.subscriptions.repository import SubscriptionRepository, get_subscription_repository
from app.subscriptions.schemas import SubscriptionOverview, SubscriptionRead

logger = logging.getLogger(__name__)

settings = get_settings()

PAID_PLANS = {PlanType.BASIC.value, PlanType.PREMIUM.value, PlanType.PRO.value}


# ═══════════════════════════════════════════════════════════════════════════
# SERVICE
# ═══════════════════════════════════════════════════════════════════════════


class SubscriptionService:
    def __init__(self, db: AsyncSession, repo: Optional[SubscriptionRepository] = None):
        self.db = db
        self.repo = repo or get_subscription_repository(db)
        self.user_repo = UserRepository(db)

    async def resolve_plan(self, user_id: str, now: Optional[datetime] = None) -> PlanType:
        """
        Effective plan of a user.

        The earliest-created subscription that is active and whose period
        has not ended wins. No such row, or a database error, means NONE.
        """
        now = now or datetime.now(timezone.utc)
        try:
            subscriptions = await self.repo.list_for_user(user_id)
        except SQLAlchemyError as e:
            logger.error(f"[SubscriptionService] Plan lookup failed for user {user_id}: {e}")
            return PlanType.NONE

        for sub in subscriptions:
            if sub.is_active_at(now):
                try:
                    return PlanType(sub.plan_type)
                except ValueError:
                    logger.warning(
                        f"[SubscriptionService] Unknown plan '{sub.plan_type}' on {sub.id}, "
                        f"treating as basic"
                    )
                    return PlanType.BASIC
        return PlanType.NONE

    async def get_overview(self, user_id: str) -> SubscriptionOverview:
        plan = await self.resolve_plan(user_id)
        subscriptions = await self.repo.list_for_user(user_id)
        return SubscriptionOverview(
            current_plan=plan,
            subscriptions=[SubscriptionRead.model_validate(s) for s in subscriptions],
        )

    # ═══════════════════════════════════════════════════════════════════════
    # STRIPE EVENTS
    # ═══════════════════════════════════════════════════════════════════════

    async def handle_stripe_event(self, event: Dict[str, Any]) -> None:
        """Apply a verified Stripe event. Unknown types are logged and ignored."""
        event_type = event.get("type", "")
        obj = (event.get("data") or {}).get("object") or {}
        logger.info(f"[SubscriptionService] Stripe event {event.get('id')}: {event_type}")

        if event_type == "customer.subscription.created":
            await self._on_subscription_created(obj)
        elif event_type == "customer.subscription.deleted":
            await self._on_subscription_deleted(obj)
        else:
            logger.info(f"[SubscriptionService] Ignoring Stripe event type: {event_type}")

    async def _on_subscription_created(self, obj: Dict[str, Any]) -> None:
        customer_id = obj.get("customer")
        if not customer_id:
            raise SubscriptionSyncError("Subscription event has no customer")

        email = await self._fetch_customer_email(customer_id)
        user = await self.user_repo.get_by_email(email) if email else None
        if user is None:
            raise SubscriptionSyncError(f"No user found for Stripe customer {customer_id}")

        existing = await self.repo.get_by_stripe_id(obj["id"])
        if existing is not None:
            logger.info(f"[SubscriptionService] Subscription {obj['id']} already recorded")
            return

        period_start, period_end = subscription_period(obj)
        await self.repo.create(
            user_id=user.id,
            email=user.email,
            stripe_subscription_id=obj["id"],
            stripe_customer_id=customer_id,
            status=obj.get("status") or "incomplete",
            plan_type=plan_from_subscription(obj),
            current_period_start=period_start,
            current_period_end=period_end,
            cancel_at_period_end=bool(obj.get("cancel_at_period_end")),
        )

    async def _on_subscription_deleted(self, obj: Dict[str, Any]) -> None:
        removed = await self.repo.delete_by_stripe_id(obj.get("id", ""))
        if not removed:
            logger.warning(f"[SubscriptionService] No subscription to delete for {obj.get('id')}")

    async def _fetch_customer_email(self, customer_id: str) -> Optional[str]:
        try:
            customer = await stripe.Customer.retrieve_async(
                customer_id, api_key=settings.stripe_secret_key
            )
        except stripe.StripeError as e:
            logger.error(f"[SubscriptionService] Could not retrieve customer {customer_id}: {e}")
            raise SubscriptionSyncError("Failed to retrieve Stripe customer")
        email = getattr(customer, "email", None)
        return email.lower() if email else None


# ═══════════════════════════════════════════════════════════════════════════
# HELPERS
# ═══════════════════════════════════════════════════════════════════════════


def plan_from_subscription(obj: Dict[str, Any]) -> str:
    """
    Plan tier from the first item's price ID, then metadata["plan_type"],
    defaulting to basic.
    """
    price_to_plan = {
        settings.stripe_price_basic: PlanType.BASIC.value,
        settings.stripe_price_premium: PlanType.PREMIUM.value,
        settings.stripe_price_pro: PlanType.PRO.value,
    }
    items = ((obj.get("items") or {}).get("data")) or []
    if items:
        price_id = (items[0].get("price") or {}).get("id")
        if price_id in price_to_plan:
            return price_to_plan[price_id]

    metadata_plan = (obj.get("metadata") or {}).get("plan_type")
    if metadata_plan in PAID_PLANS:
        return metadata_plan
    return PlanType.BASIC.value


def subscription_period(obj: Dict[str, Any]) -> tuple[datetime, datetime]:
    """Billing period from the first item, falling back to now .. now + 1 month."""
    items = ((obj.get("items") or {}).get("data")) or []
    first = items[0] if items else {}
    start = first.get("current_period_start") or obj.get("current_period_start")
    end = first.get("current_period_end") or obj.get("current_period_end")
    if start and end:
        return (
            datetime.fromtimestamp(int(start), tz=timezone.utc),
            datetime.fromtimestamp(int(end), tz=timezone.utc),
        )
    now = datetime.now(timezone.utc)
    return now, add_one_month(now)


def get_subscription_service(db: AsyncSession) -> SubscriptionService:
    return SubscriptionService(db)
