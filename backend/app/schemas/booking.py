"""
Pydantic schemas for booking-related request/response validation.

Only types are enforced here. Business validation (empty seat lists,
non-positive amounts, quantity mismatches) belongs to the reservation
coordinator so it answers with its own rejection reasons.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import Field, field_validator

from app.schemas.base import CamelModel


class BookingCreate(CamelModel):
    event_id: Optional[int] = None
    user_id: Optional[int] = None
    seats: list[int] = Field(default_factory=list)
    quantity: Optional[int] = None
    total_amount: Optional[float] = None
    name: Optional[str] = Field(None, max_length=100)
    email: Optional[str] = Field(None, max_length=255)
    mobile: Optional[str] = Field(None, max_length=30)

    @field_validator("seats", mode="before")
    @classmethod
    def wrap_single_seat(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, (int, str)):
            return [value]
        return value


class BookingResponse(CamelModel):
    id: int
    event_id: int
    user_id: int
    seats: list[int]
    quantity: int
    total_amount: float
    status: str
    created_at: Optional[datetime]
    name: Optional[str] = None
    email: Optional[str] = None
    mobile: Optional[str] = None


class BookingStatusUpdate(CamelModel):
    status: str = Field(..., min_length=1, max_length=20)


class RejectionResponse(CamelModel):
    reason: str
    message: str
    seats: list[int] = Field(default_factory=list)
