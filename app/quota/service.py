"""
Plan-aware rate limiting for AI endpoints.

Two checks per request, monthly first:

* monthly fixed window, only for plans with a monthly cap (none = 50)
* hourly sliding window for every plan (none 5, basic 10, premium 50, pro 200)

A monthly rejection never touches the hourly window.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from redis.exceptions import RedisError

from app.core.exceptions import QuotaStoreUnavailableError
from app.core.timeutils import start_of_next_hour, start_of_next_month
from app.quota.store import QuotaStore
from app.subscriptions.models import PlanType

logger = logging.getLogger(__name__)

# ═══════════════════════════════════════════════════════════════════════════
# PLAN LIMITS
# ═══════════════════════════════════════════════════════════════════════════

HOURLY_LIMITS: Dict[PlanType, int] = {
    PlanType.PRO: 200,
    PlanType.PREMIUM: 50,
    PlanType.BASIC: 10,
    PlanType.NONE: 5,
}

# 0 means unlimited
MONTHLY_LIMITS: Dict[PlanType, int] = {
    PlanType.PRO: 0,
    PlanType.PREMIUM: 0,
    PlanType.BASIC: 0,
    PlanType.NONE: 50,
}

HOURLY_UPGRADE_MESSAGES: Dict[PlanType, str] = {
    PlanType.NONE: (
        "Consider subscribing to Basic plan for 10 requests/hour, "
        "Premium for 50 requests/hour, or Pro for 200 requests/hour"
    ),
    PlanType.BASIC: "Upgrade to Premium for 50 requests/hour or Pro for 200 requests/hour",
    PlanType.PREMIUM: "Upgrade to Pro for 200 requests/hour",
    PlanType.PRO: "",
}

MONTHLY_UPGRADE_MESSAGE = (
    "Upgrade to a paid plan (Basic, Premium or Pro) for unlimited monthly usage"
)

# Endpoints sharing one key share one budget
ENDPOINT_QUOTA_KEYS: Dict[str, str] = {
    "ai_generate": "ai_generate",
    "ai_preview": "ai_generate",
    "ai_regenerate": "ai_generate",
    "ai_confirm": "ai_confirm",
    "audio_transcribe": "audio_transcribe",
}


@dataclass
class QuotaCheck:
    """Result of one window check."""
    kind: str  # "monthly" | "hourly"
    limit: int
    remaining: int
    reset_at: int  # unix seconds
    allowed: bool


@dataclass
class QuotaDecision:
    """Admission decision plus everything needed for response headers."""
    allowed: bool
    plan: PlanType
    endpoint: str
    checks: List[QuotaCheck] = field(default_factory=list)
    rejected_by: Optional[str] = None

    @property
    def deciding_check(self) -> Optional[QuotaCheck]:
        if self.rejected_by:
            return next(c for c in self.checks if c.kind == self.rejected_by)
        return self.checks[-1] if self.checks else None

    @property
    def remaining(self) -> int:
        check = self.deciding_check
        return check.remaining if check else 0

    @property
    def reset_at(self) -> int:
        check = self.deciding_check
        return check.reset_at if check else 0

    @property
    def upgrade_message(self) -> str:
        if self.rejected_by == "monthly":
            return MONTHLY_UPGRADE_MESSAGE
        return HOURLY_UPGRADE_MESSAGES[self.plan]

    def retry_after(self, now: datetime) -> int:
        return max(0, self.reset_at - int(now.timestamp()))

    def headers(self) -> Dict[str, str]:
        """X-RateLimit-* headers for every check that ran."""
        headers: Dict[str, str] = {}
        for check in self.checks:
            prefix = "X-RateLimit-Monthly" if check.kind == "monthly" else "X-RateLimit-Hourly"
            headers[f"{prefix}-Limit"] = str(check.limit)
            headers[f"{prefix}-Remaining"] = str(check.remaining)
            headers[f"{prefix}-Reset"] = str(check.reset_at)
        return headers


class RateLimiter:
    """Admits or rejects AI requests according to the caller's plan."""

    def __init__(self, store: QuotaStore, fail_open: bool = False):
        self.store = store
        self.fail_open = fail_open

    async def admit(
        self,
        user_key: str,
        plan: PlanType,
        endpoint: str,
        now: Optional[datetime] = None,
    ) -> QuotaDecision:
        """
        Run the monthly then hourly check for one request.

        Args:
            user_key: Stable user identifier (Clerk ID)
            plan: Resolved plan for the user
            endpoint: Endpoint name; mapped to its shared quota key
            now: Evaluation time, UTC

        Raises:
            QuotaStoreUnavailableError: If Redis fails and the policy is fail-closed
        """
        now = now or datetime.now(timezone.utc)
        quota_key = ENDPOINT_QUOTA_KEYS.get(endpoint, endpoint)
        decision = QuotaDecision(allowed=True, plan=plan, endpoint=quota_key)

        monthly_limit = MONTHLY_LIMITS[plan]
        if monthly_limit > 0:
            reset = start_of_next_month(now)
            try:
                result = await self.store.hit_monthly(
                    user_key,
                    quota_key,
                    monthly_limit,
                    now,
                    ttl_seconds=int((reset - now).total_seconds()),
                )
            except (RedisError, OSError) as e:
                self._on_store_error("monthly", user_key, quota_key, e)
            else:
                decision.checks.append(
                    QuotaCheck(
                        kind="monthly",
                        limit=monthly_limit,
                        remaining=max(0, monthly_limit - result.count) if result.allowed else 0,
                        reset_at=int(reset.timestamp()),
                        allowed=result.allowed,
                    )
                )
                if not result.allowed:
                    logger.warning(
                        f"[RateLimiter] Monthly limit reached for {user_key} on {quota_key} "
                        f"({result.count}/{monthly_limit}, plan={plan.value})"
                    )
                    decision.allowed = False
                    decision.rejected_by = "monthly"
                    return decision

        hourly_limit = HOURLY_LIMITS[plan]
        reset = start_of_next_hour(now)
        try:
            result = await self.store.hit_hourly(user_key, quota_key, hourly_limit, now)
        except (RedisError, OSError) as e:
            self._on_store_error("hourly", user_key, quota_key, e)
            return decision

        decision.checks.append(
            QuotaCheck(
                kind="hourly",
                limit=hourly_limit,
                remaining=max(0, hourly_limit - result.count) if result.allowed else 0,
                reset_at=int(reset.timestamp()),
                allowed=result.allowed,
            )
        )
        if not result.allowed:
            logger.warning(
                f"[RateLimiter] Hourly limit reached for {user_key} on {quota_key} "
                f"({result.count}/{hourly_limit}, plan={plan.value})"
            )
            decision.allowed = False
            decision.rejected_by = "hourly"
            if decision.checks[0].kind == "monthly":
                await self._release_monthly(user_key, quota_key, now, decision.checks[0])

        return decision

    async def _release_monthly(
        self,
        user_key: str,
        quota_key: str,
        now: datetime,
        check: QuotaCheck,
    ) -> None:
        """A request rejected hourly must not keep the monthly slot it took."""
        try:
            count = await self.store.release_monthly(user_key, quota_key, now)
        except (RedisError, OSError) as e:
            logger.error(f"[RateLimiter] Could not release monthly slot for {user_key}/{quota_key}: {e}")
            return
        check.remaining = max(0, check.limit - count)

    def _on_store_error(self, kind: str, user_key: str, quota_key: str, error: Exception) -> None:
        if self.fail_open:
            logger.error(
                f"[RateLimiter] Quota store error on {kind} check for {user_key}/{quota_key}, "
                f"allowing request: {error}"
            )
            return
        logger.error(
            f"[RateLimiter] Quota store error on {kind} check for {user_key}/{quota_key}, "
            f"rejecting request: {error}"
        )
        raise QuotaStoreUnavailableError("Rate limiting is temporarily unavailable")
