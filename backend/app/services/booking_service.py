"""
Booking read path and status changes.

Reservations themselves go through the ReservationCoordinator in
reservation_service. This module lists and fetches bookings, and handles
status updates, where cancelling a booking gives its seats back.

All queries select explicit columns so they work on both schema shapes
(with and without bookings.seats).
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Mapping, Optional

from fastapi import HTTPException, status
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.core.metrics import record_cancellation
from app.db.capabilities import SchemaCapabilities
from app.models.booking import Booking, BOOKING_STATUSES, STATUS_CANCELLED, STATUS_PENDING
from app.models.event import Event
from app.services.seat_ledger import decode_seats

logger = get_logger(__name__)


@dataclass(frozen=True)
class BookingRecord:
    id: int
    event_id: int
    user_id: int
    quantity: int
    total_amount: float
    status: str
    created_at: Optional[datetime]
    seats: list[int] = field(default_factory=list)
    name: Optional[str] = None
    email: Optional[str] = None
    mobile: Optional[str] = None

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> "BookingRecord":
        return cls(
            id=row["id"],
            event_id=row["event_id"],
            user_id=row["user_id"],
            quantity=row["quantity"],
            total_amount=float(row["total_amount"]),
            status=row["status"] or STATUS_PENDING,
            created_at=row["created_at"],
            seats=decode_seats(row.get("seats")),
            name=row["name"],
            email=row["email"],
            mobile=row["mobile"],
        )


def booking_columns(capabilities: SchemaCapabilities) -> list:
    """Booking columns that exist on this schema."""
    return [
        column
        for column in Booking.__table__.c
        if capabilities.seat_list or column.name != "seats"
    ]


async def list_bookings(
    db: AsyncSession,
    capabilities: SchemaCapabilities,
    user_id: Optional[int] = None,
    event_id: Optional[int] = None,
) -> list[BookingRecord]:
    """Bookings, newest first, optionally filtered by user and/or event."""
    query = select(*booking_columns(capabilities))
    if user_id is not None:
        query = query.where(Booking.user_id == user_id)
    if event_id is not None:
        query = query.where(Booking.event_id == event_id)
    query = query.order_by(Booking.created_at.desc(), Booking.id.desc())

    result = await db.execute(query)
    return [BookingRecord.from_mapping(row) for row in result.mappings()]


async def get_booking(
    db: AsyncSession,
    capabilities: SchemaCapabilities,
    booking_id: int,
) -> BookingRecord:
    result = await db.execute(
        select(*booking_columns(capabilities)).where(Booking.id == booking_id)
    )
    row = result.mappings().one_or_none()
    if row is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Booking not found",
        )
    return BookingRecord.from_mapping(row)


async def update_booking_status(
    db: AsyncSession,
    capabilities: SchemaCapabilities,
    booking_id: int,
    new_status: str,
) -> BookingRecord:
    """
    Change a booking's status.

    Cancelling restores the booking's quantity to the event under the event
    row lock; its seats drop out of the seat ledger because the ledger only
    counts live bookings. Cancelled bookings cannot be reinstated, since
    their seats may have been sold again.
    """
    if new_status not in BOOKING_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid status. Expected one of: {', '.join(BOOKING_STATUSES)}",
        )

    booking = await get_booking(db, capabilities, booking_id)
    if booking.status == new_status:
        return booking

    if booking.status == STATUS_CANCELLED:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Booking is already cancelled",
        )

    event = None
    if new_status == STATUS_CANCELLED:
        # Event lock first, same order as reservations.
        result = await db.execute(
            select(Event)
            .where(Event.id == booking.event_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        event = result.scalar_one_or_none()

    # The status read above was not locked; only the request whose UPDATE
    # still finds the booking live may change it or give seats back.
    result = await db.execute(
        update(Booking)
        .where(Booking.id == booking_id, Booking.status != STATUS_CANCELLED)
        .values(status=new_status)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.rollback()
        if new_status == STATUS_CANCELLED:
            logger.info("booking_already_cancelled", booking_id=booking_id)
            return replace(booking, status=STATUS_CANCELLED)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Booking is already cancelled",
        )

    if new_status == STATUS_CANCELLED and event is not None:
        event.available_seats = min(event.total_seats, event.available_seats + booking.quantity)
    await db.commit()

    if new_status == STATUS_CANCELLED:
        record_cancellation()
        logger.info(
            "booking_cancelled",
            booking_id=booking_id,
            event_id=booking.event_id,
            seats_restored=booking.quantity,
        )
    else:
        logger.info("booking_status_updated", booking_id=booking_id, status=new_status)

    return replace(booking, status=new_status)
