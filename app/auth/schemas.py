"""
Pydantic schemas for authentication module.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from app.core.schemas import CamelModel


class UserRead(CamelModel):
    """DTO for reading user data."""

    id: str
    clerk_id: str
    email: str
    name: Optional[str] = None
    created_at: datetime


# ═══════════════════════════════════════════════════════════════════════════
# CLERK WEBHOOK PAYLOADS (snake_case on the wire)
# ═══════════════════════════════════════════════════════════════════════════


class ClerkEmailAddress(BaseModel):
    email_address: str


class ClerkUserData(BaseModel):
    id: str
    first_name: Optional[str] = None
    email_addresses: List[ClerkEmailAddress] = Field(default_factory=list)


class ClerkEvent(BaseModel):
    type: str
    data: dict = Field(default_factory=dict)
