"""
Pydantic schemas for event-related request/response validation.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import AliasChoices, Field, field_validator

from app.schemas.base import CamelModel


def _assume_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class EventCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    location: Optional[str] = Field(None, max_length=255)
    date: datetime
    total_seats: int = Field(..., gt=0, le=100000)
    price: float = Field(..., ge=0)
    image: Optional[str] = Field(None, max_length=500, validation_alias=AliasChoices("image", "img"))
    status: str = Field("upcoming", min_length=1, max_length=20)

    @field_validator("date")
    @classmethod
    def date_in_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _assume_utc(value)


class EventUpdate(CamelModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    location: Optional[str] = Field(None, max_length=255)
    date: Optional[datetime] = None
    total_seats: Optional[int] = Field(None, gt=0, le=100000)
    price: Optional[float] = Field(None, ge=0)
    image: Optional[str] = Field(None, max_length=500, validation_alias=AliasChoices("image", "img"))
    status: Optional[str] = Field(None, min_length=1, max_length=20)

    @field_validator("date")
    @classmethod
    def date_in_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _assume_utc(value)


class EventResponse(CamelModel):
    id: int
    title: str
    description: Optional[str]
    location: Optional[str]
    date: datetime
    total_seats: int
    available_seats: int
    price: float
    status: str
    image: Optional[str] = Field(None, validation_alias=AliasChoices("img", "image"))


class EventListResponse(CamelModel):
    events: list[EventResponse]
    total: int
    page: int
    page_size: int
    cached: bool = False
