"""
Booking endpoints. POST runs the booking guard and then the reservation
coordinator; everything else reads bookings or changes their status.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_capabilities, get_coordinator, guarded_booking_request
from app.core.errors import Rejection, RejectionError
from app.db.capabilities import SchemaCapabilities
from app.db.session import get_db
from app.schemas.booking import BookingCreate, BookingResponse, BookingStatusUpdate, RejectionResponse
from app.services.booking_service import get_booking, list_bookings, update_booking_status
from app.services.cache_service import invalidate_event_cache
from app.services.reservation_service import ReservationCoordinator, ReservationRequest

router = APIRouter(prefix="/bookings", tags=["Bookings"])

REJECTION_RESPONSES = {
    code: {"model": RejectionResponse}
    for code in (status.HTTP_400_BAD_REQUEST, status.HTTP_403_FORBIDDEN, status.HTTP_404_NOT_FOUND, status.HTTP_409_CONFLICT)
}


@router.post(
    "/",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
    responses=REJECTION_RESPONSES,
)
async def create_booking(
    booking_data: BookingCreate = Depends(guarded_booking_request),
    coordinator: ReservationCoordinator = Depends(get_coordinator),
):
    """
    Reserve specific seats of an event.

    The whole check-then-commit sequence runs under a lock on the event row,
    so concurrent requests for the same seats cannot both succeed.
    """
    outcome = await coordinator.reserve(
        ReservationRequest(
            event_id=booking_data.event_id,
            user_id=booking_data.user_id,
            seats=tuple(booking_data.seats),
            quantity=booking_data.quantity,
            total_amount=booking_data.total_amount,
            name=booking_data.name,
            email=booking_data.email,
            mobile=booking_data.mobile,
        )
    )
    if isinstance(outcome, Rejection):
        raise RejectionError(outcome)

    # available_seats changed
    await invalidate_event_cache()
    return outcome


@router.get("/", response_model=list[BookingResponse])
async def list_bookings_endpoint(
    user_id: Optional[int] = Query(None, alias="userId"),
    event_id: Optional[int] = Query(None, alias="eventId"),
    db: AsyncSession = Depends(get_db),
    capabilities: SchemaCapabilities = Depends(get_capabilities),
):
    """List bookings, newest first, optionally filtered by user and event."""
    return await list_bookings(db, capabilities, user_id=user_id, event_id=event_id)


@router.get("/user/{user_id}", response_model=list[BookingResponse])
async def list_user_bookings(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    capabilities: SchemaCapabilities = Depends(get_capabilities),
):
    return await list_bookings(db, capabilities, user_id=user_id)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking_endpoint(
    booking_id: int,
    db: AsyncSession = Depends(get_db),
    capabilities: SchemaCapabilities = Depends(get_capabilities),
):
    return await get_booking(db, capabilities, booking_id)


@router.put("/{booking_id}", response_model=BookingResponse)
async def update_booking_endpoint(
    booking_id: int,
    update: BookingStatusUpdate,
    db: AsyncSession = Depends(get_db),
    capabilities: SchemaCapabilities = Depends(get_capabilities),
):
    """Change a booking's status. Cancelling gives the seats back to the event."""
    booking = await update_booking_status(db, capabilities, booking_id, update.status)
    await invalidate_event_cache()
    return booking
