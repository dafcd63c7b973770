"""
Pydantic schemas for subscription endpoints.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from app.core.schemas import CamelModel
from app.subscriptions.models import PlanType


class SubscriptionRead(CamelModel):
    """Subscription details returned to the client."""
    id: str
    plan_type: str
    status: str
    current_period_start: datetime
    current_period_end: datetime
    cancel_at_period_end: bool = False
    canceled_at: Optional[datetime] = None
    created_at: datetime


class SubscriptionOverview(CamelModel):
    """The caller's effective plan and every subscription row behind it."""
    current_plan: PlanType = Field(..., description="Plan used for rate limiting right now")
    subscriptions: List[SubscriptionRead] = Field(default_factory=list)
