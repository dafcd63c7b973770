"""
SQLAlchemy models for Stripe-backed subscriptions.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.timeutils import as_utc
from app.database import Base

if TYPE_CHECKING:
    from app.auth.models import User


class PlanType(str, Enum):
    """Subscription plan tiers. NONE means no active subscription."""
    NONE = "none"
    BASIC = "basic"
    PREMIUM = "premium"
    PRO = "pro"


class Subscription(Base):
    """
    A Stripe subscription owned by a user.

    `status` holds the raw Stripe status string (active, canceled,
    past_due, trialing, ...). A user may hold several rows over time.
    """

    __tablename__ = "subscriptions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    stripe_subscription_id: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    stripe_customer_id: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    plan_type: Mapped[str] = mapped_column(
        String(20),
        default=PlanType.BASIC.value,
        nullable=False,
    )
    current_period_start: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    current_period_end: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    cancel_at_period_end: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    canceled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    user: Mapped["User"] = relationship("User", back_populates="subscriptions")

    def is_active_at(self, now: datetime) -> bool:
        """Active status and a billing period that has not ended yet."""
        return self.status == "active" and now < as_utc(self.current_period_end)

    def __repr__(self) -> str:
        return f"<Subscription(user_id={self.user_id}, plan={self.plan_type}, status={self.status})>"
