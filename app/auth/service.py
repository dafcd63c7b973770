"""
Authentication service - resolves Clerk identities to local users and
provisions users from Clerk webhook events.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.clerk import ClerkTokenVerifier
from app.auth.models import User
from app.auth.repository import UserRepository
from app.auth.schemas import ClerkEvent, ClerkUserData
from app.core.exceptions import InvalidInputError, UserNotFoundError

logger = logging.getLogger(__name__)


class AuthService:
    """Service for authentication business logic."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.user_repo = UserRepository(db)

    async def authenticate(self, token: str, verifier: ClerkTokenVerifier) -> User:
        """
        Verify a Clerk session token and load the matching user.

        Raises:
            InvalidTokenError: If the token does not verify
            UserNotFoundError: If no user has that Clerk ID
        """
        clerk_id = await verifier.verify(token)

        user = await self.user_repo.get_by_clerk_id(clerk_id)
        if user is None:
            logger.warning(f"[AuthService] No user for clerk_id: {clerk_id}")
            raise UserNotFoundError("User not found")
        return user

    async def handle_clerk_event(self, event: ClerkEvent) -> None:
        """Apply a verified Clerk webhook event. Only user.created is acted on."""
        logger.info(f"[AuthService] Clerk event: {event.type}")

        if event.type != "user.created":
            logger.info(f"[AuthService] Ignoring Clerk event type: {event.type}")
            return

        data = ClerkUserData.model_validate(event.data)
        if not data.email_addresses:
            raise InvalidInputError("Clerk user has no email address")

        existing = await self.user_repo.get_by_clerk_id(data.id)
        if existing is not None:
            logger.info(f"[AuthService] User already provisioned for clerk_id: {data.id}")
            return

        await self.user_repo.create(
            clerk_id=data.id,
            email=data.email_addresses[0].email_address,
            name=data.first_name,
        )


def get_auth_service(db: AsyncSession) -> AuthService:
    """Factory function for AuthService."""
    return AuthService(db)
