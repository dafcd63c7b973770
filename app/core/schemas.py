"""
Shared pydantic base classes.
The frontend speaks camelCase; Python code uses snake_case.
"""

from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    """Base DTO serialised with camelCase keys, accepting either case on input."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ErrorResponse(BaseModel):
    """Standard error body."""

    error: str = Field(..., description="Human-readable error message")
    code: str = Field(..., description="Machine-readable error code")


class SuccessResponse(CamelModel, Generic[T]):
    """Envelope for AI endpoints: {"success": true, "data": ...}."""

    success: bool = True
    data: T
