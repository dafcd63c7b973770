"""
Tests for plan resolution and Stripe subscription events.
"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
import stripe
from sqlalchemy.exc import OperationalError

from app.core.exceptions import SubscriptionSyncError
from app.subscriptions.models import PlanType
from app.subscriptions.repository import SubscriptionRepository
from app.subscriptions.service import (
    SubscriptionService,
    plan_from_subscription,
    subscription_period,
)


class BrokenRepository:
    async def list_for_user(self, user_id):
        raise OperationalError("SELECT", {}, Exception("database is locked"))


async def add_subscription(db, user, stripe_id, plan, status="active", created_at=None, ends_in=timedelta(days=20)):
    now = datetime.now(timezone.utc)
    return await SubscriptionRepository(db).create(
        user_id=user.id,
        email=user.email,
        stripe_subscription_id=stripe_id,
        stripe_customer_id="cus_123",
        status=status,
        plan_type=plan,
        current_period_start=now - timedelta(days=10),
        current_period_end=now + ends_in,
        created_at=created_at,
    )


def subscription_event(event_type, sub_id="sub_123", price_id="price_premium", metadata=None) -> dict:
    return {
        "id": "evt_1",
        "type": event_type,
        "data": {
            "object": {
                "id": sub_id,
                "object": "subscription",
                "customer": "cus_123",
                "status": "active",
                "cancel_at_period_end": False,
                "metadata": metadata or {},
                "items": {
                    "data": [
                        {
                            "price": {"id": price_id},
                            "current_period_start": 1767225600,
                            "current_period_end": 1769904000,
                        }
                    ]
                },
            }
        },
    }


@pytest.fixture
def stripe_customer(monkeypatch):
    calls = []

    async def retrieve_async(customer_id, **params):
        calls.append(customer_id)
        return SimpleNamespace(id=customer_id, email="Alice@Example.com")

    monkeypatch.setattr(stripe.Customer, "retrieve_async", retrieve_async)
    return calls


# ═══════════════════════════════════════════════════════════════════════════
# PLAN RESOLUTION
# ═══════════════════════════════════════════════════════════════════════════


class TestResolvePlan:
    async def test_no_subscription_is_none(self, db, user):
        assert await SubscriptionService(db).resolve_plan(user.id) == PlanType.NONE

    async def test_earliest_active_subscription_wins(self, db, user):
        base = datetime.now(timezone.utc) - timedelta(days=5)
        await add_subscription(db, user, "sub_pro", "pro", created_at=base + timedelta(days=1))
        await add_subscription(db, user, "sub_basic", "basic", created_at=base)

        assert await SubscriptionService(db).resolve_plan(user.id) == PlanType.BASIC

    async def test_inactive_and_expired_rows_are_skipped(self, db, user):
        base = datetime.now(timezone.utc) - timedelta(days=5)
        await add_subscription(db, user, "sub_old", "pro", status="canceled", created_at=base)
        await add_subscription(
            db, user, "sub_lapsed", "pro", created_at=base + timedelta(days=1), ends_in=-timedelta(days=1)
        )
        await add_subscription(db, user, "sub_live", "premium", created_at=base + timedelta(days=2))

        assert await SubscriptionService(db).resolve_plan(user.id) == PlanType.PREMIUM

    async def test_unknown_plan_counts_as_basic(self, db, user):
        await add_subscription(db, user, "sub_legacy", "enterprise")

        assert await SubscriptionService(db).resolve_plan(user.id) == PlanType.BASIC

    async def test_database_error_means_none(self, db, user):
        service = SubscriptionService(db, repo=BrokenRepository())

        assert await service.resolve_plan(user.id) == PlanType.NONE


# ═══════════════════════════════════════════════════════════════════════════
# STRIPE EVENTS
# ═══════════════════════════════════════════════════════════════════════════


class TestStripeEvents:
    async def test_created_event_records_subscription(self, db, user, stripe_customer):
        service = SubscriptionService(db)

        await service.handle_stripe_event(subscription_event("customer.subscription.created"))

        sub = await SubscriptionRepository(db).get_by_stripe_id("sub_123")
        assert sub.user_id == user.id
        assert sub.plan_type == "premium"
        assert sub.status == "active"
        assert sub.current_period_end.replace(tzinfo=timezone.utc) == datetime(2026, 2, 1, tzinfo=timezone.utc)
        assert stripe_customer == ["cus_123"]

    async def test_repeat_delivery_is_idempotent(self, db, user, stripe_customer):
        service = SubscriptionService(db)
        event = subscription_event("customer.subscription.created")

        await service.handle_stripe_event(event)
        await service.handle_stripe_event(event)

        assert len(await SubscriptionRepository(db).list_for_user(user.id)) == 1

    async def test_unknown_customer_email_fails(self, db, stripe_customer):
        with pytest.raises(SubscriptionSyncError):
            await SubscriptionService(db).handle_stripe_event(
                subscription_event("customer.subscription.created")
            )

    async def test_deleted_event_removes_row(self, db, user):
        await add_subscription(db, user, "sub_123", "basic")

        await SubscriptionService(db).handle_stripe_event(subscription_event("customer.subscription.deleted"))

        assert await SubscriptionRepository(db).get_by_stripe_id("sub_123") is None
        assert await SubscriptionService(db).resolve_plan(user.id) == PlanType.NONE

    async def test_other_events_are_ignored(self, db, user):
        await SubscriptionService(db).handle_stripe_event({"id": "evt_2", "type": "invoice.paid", "data": {}})

        assert await SubscriptionRepository(db).list_for_user(user.id) == []


class TestSubscriptionHelpers:
    def test_plan_from_price_id(self):
        obj = subscription_event("x", price_id="price_pro")["data"]["object"]
        assert plan_from_subscription(obj) == "pro"

    def test_plan_from_metadata_when_price_unknown(self):
        obj = subscription_event("x", price_id="price_other", metadata={"plan_type": "premium"})["data"]["object"]
        assert plan_from_subscription(obj) == "premium"

    def test_plan_defaults_to_basic(self):
        obj = subscription_event("x", price_id="price_other", metadata={"plan_type": "none"})["data"]["object"]
        assert plan_from_subscription(obj) == "basic"

    def test_period_falls_back_to_one_month(self):
        start, end = subscription_period({"id": "sub_1"})
        assert start.tzinfo is not None
        assert end > start
        assert (end - start) <= timedelta(days=31)
