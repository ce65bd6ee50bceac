"""
Event service handling CRUD operations.

Capacity note: `available_seats` is only ever derived here, never taken
from the client. Creation starts it at `total_seats`; resizing shifts it
by the same delta and refuses to shrink below what is already booked,
by count or by highest seat number.
"""

from datetime import datetime, timezone

from fastapi import HTTPException, status
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.db.capabilities import SchemaCapabilities
from app.models.booking import Booking
from app.models.event import Event
from app.schemas.event import EventCreate, EventUpdate
from app.services.seat_ledger import committed_seats

logger = get_logger(__name__)


async def create_event(db: AsyncSession, event_data: EventCreate) -> Event:
    """Create a new event with full seat availability."""
    if event_data.date <= datetime.now(timezone.utc):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Event date must be in the future",
        )

    event = Event(
        title=event_data.title,
        description=event_data.description,
        location=event_data.location,
        date=event_data.date,
        total_seats=event_data.total_seats,
        available_seats=event_data.total_seats,
        price=event_data.price,
        img=event_data.image,
        status=event_data.status,
    )
    db.add(event)
    await db.flush()
    await db.refresh(event)

    logger.info("event_created", event_id=event.id, title=event.title, seats=event.total_seats)
    return event


async def get_event(db: AsyncSession, event_id: int) -> Event:
    """Get a single event by ID."""
    result = await db.execute(select(Event).where(Event.id == event_id))
    event = result.scalar_one_or_none()

    if not event:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Event not found",
        )
    return event


async def list_events(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 20,
    upcoming_only: bool = False,
) -> tuple[list[Event], int]:
    """List events ordered by date, with pagination."""
    query = select(Event)

    if upcoming_only:
        query = query.where(Event.date >= datetime.now(timezone.utc))

    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar()

    events_query = (
        query
        .order_by(Event.date.asc(), Event.id.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(events_query)
    events = list(result.scalars().all())

    return events, total


async def update_event(
    db: AsyncSession,
    event_id: int,
    event_data: EventUpdate,
    capabilities: SchemaCapabilities,
) -> Event:
    """
    Administrative update. Locks the event row so a resize cannot
    interleave with a reservation on the same event. A shrink must keep
    room for every booked seat, both by count and, when bookings carry
    seat lists, by seat number.
    """
    result = await db.execute(
        select(Event)
        .where(Event.id == event_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    event = result.scalar_one_or_none()
    if not event:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Event not found",
        )

    changes = event_data.model_dump(exclude_unset=True)

    if "total_seats" in changes and changes["total_seats"] != event.total_seats:
        booked = event.total_seats - event.available_seats
        new_total = changes["total_seats"]
        if new_total < booked:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Cannot reduce seats to {new_total}: {booked} seats are already booked",
            )
        if capabilities.seat_list:
            taken = await committed_seats(db, event_id)
            if taken and new_total < max(taken):
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail=f"Cannot reduce seats to {new_total}: seat {max(taken)} is booked",
                )
        event.available_seats = new_total - booked

    for field_name, value in changes.items():
        column = "img" if field_name == "image" else field_name
        setattr(event, column, value)

    await db.flush()
    await db.refresh(event)

    logger.info("event_updated", event_id=event.id, fields=sorted(changes))
    return event


async def delete_event(db: AsyncSession, event_id: int) -> None:
    """Delete an event that has never been booked."""
    event = await get_event(db, event_id)

    booking_count = (
        await db.execute(select(func.count()).where(Booking.event_id == event_id))
    ).scalar()
    if booking_count:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Event has bookings and cannot be deleted; close it instead",
        )

    await db.execute(delete(Event).where(Event.id == event.id))
    logger.info("event_deleted", event_id=event_id)
