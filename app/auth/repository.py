"""
Authentication repository - Data Access Layer for users.
Handles all database operations for User entities.
"""

import logging
from typing import Optional
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.models import User

logger = logging.getLogger(__name__)


class UserRepository:
    """Repository for User CRUD operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, clerk_id: str, email: str, name: Optional[str] = None) -> User:
        """
        Create a user provisioned by Clerk.

        Args:
            clerk_id: Clerk user ID (token subject)
            email: Primary email address
            name: Optional display name

        Returns:
            Created User entity
        """
        user = User(
            id=str(uuid4()),
            clerk_id=clerk_id,
            email=email.lower(),
            name=name or None,
        )

        self.db.add(user)
        await self.db.flush()

        logger.info(f"[UserRepository] Created user: {user.id} (clerk_id={clerk_id})")
        return user

    async def get_by_id(self, user_id: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_by_clerk_id(self, clerk_id: str) -> Optional[User]:
        """Get a user by Clerk ID, or None."""
        result = await self.db.execute(select(User).where(User.clerk_id == clerk_id))
        return result.scalar_one_or_none()

    async def get_by_email(self, email: str) -> Optional[User]:
        """Get a user by email (case-insensitive), or None."""
        result = await self.db.execute(select(User).where(User.email == email.lower()))
        return result.scalar_one_or_none()
