"""
FastAPI dependency that enforces plan quotas on AI endpoints.
"""

import logging
from datetime import datetime, timezone
from typing import Annotated, Callable

from fastapi import Depends, Request, Response

from app.auth.models import User
from app.core.exceptions import RateLimitExceededError
from app.dependencies import CurrentUser, DBSession, get_rate_limiter
from app.quota.service import RateLimiter
from app.subscriptions.service import get_subscription_service

logger = logging.getLogger(__name__)


def require_quota(endpoint: str) -> Callable:
    """
    Build a dependency that admits the current user against `endpoint`'s quota.

    X-RateLimit-* headers are attached to the response, and stashed on
    request.state so error responses raised later still carry them.
    """

    async def check_quota(
            request: Request,
            response: Response,
            current_user: CurrentUser,
            db: DBSession,
            limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
    ) -> User:
        now = datetime.now(timezone.utc)
        plan = await get_subscription_service(db).resolve_plan(current_user.id, now=now)
        decision = await limiter.admit(current_user.clerk_id, plan, endpoint, now=now)

        headers = decision.headers()
        request.state.rate_limit_headers = headers

        if not decision.allowed:
            retry_after = decision.retry_after(now)
            raise RateLimitExceededError(
                message=(
                    "Monthly rate limit exceeded"
                    if decision.rejected_by == "monthly"
                    else "Hourly rate limit exceeded"
                ),
                retry_after=retry_after,
                current_plan=plan.value,
                upgrade_message=decision.upgrade_message,
                headers={**headers, "Retry-After": str(retry_after)},
            )

        response.headers.update(headers)
        return current_user

    return check_quota
