"""
Shared FastAPI dependencies.
Provides Clerk authentication and access to app-scoped clients.
"""

import logging
from typing import Annotated, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.clerk import ClerkTokenVerifier
from app.auth.models import User
from app.auth.service import get_auth_service
from app.config import Settings, get_settings
from app.core.exceptions import AuthenticationError
from app.database import get_db
from app.generation.client import GenerativeClient
from app.quota.service import RateLimiter

logger = logging.getLogger(__name__)

# HTTP Bearer token scheme
security = HTTPBearer(auto_error=False)

# Type aliases for cleaner dependency injection
DBSession = Annotated[AsyncSession, Depends(get_db)]
AppSettings = Annotated[Settings, Depends(get_settings)]


# ═══════════════════════════════════════════════════════════════════════════
# APP-SCOPED CLIENTS (built in the lifespan, held on app.state)
# ═══════════════════════════════════════════════════════════════════════════


def get_token_verifier(request: Request) -> ClerkTokenVerifier:
    return request.app.state.token_verifier


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_generative_client(request: Request) -> GenerativeClient:
    return request.app.state.generative_client


# ═══════════════════════════════════════════════════════════════════════════
# AUTHENTICATION
# ═══════════════════════════════════════════════════════════════════════════


async def get_current_user(
        credentials: Annotated[
            Optional[HTTPAuthorizationCredentials],
            Depends(security)
        ],
        verifier: Annotated[ClerkTokenVerifier, Depends(get_token_verifier)],
        db: AsyncSession = Depends(get_db),
) -> User:
    """
    Dependency to get the current authenticated user.

    Verifies the Clerk session token from the Authorization header and
    loads the user by Clerk ID.

    Raises:
        AuthenticationError: If the header is missing, the token is
            invalid, or no user matches it (all 401)
    """
    if not credentials:
        raise AuthenticationError("Not authenticated")

    auth_service = get_auth_service(db)
    return await auth_service.authenticate(credentials.credentials, verifier)


CurrentUser = Annotated[User, Depends(get_current_user)]
GenClient = Annotated[GenerativeClient, Depends(get_generative_client)]
