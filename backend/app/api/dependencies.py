"""
Shared FastAPI dependencies: schema capabilities, authentication and the
booking guard that runs in front of the reservation coordinator.
"""

from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import Rejection, RejectionError
from app.core.security import decode_access_token
from app.db.capabilities import SchemaCapabilities
from app.db.session import get_db
from app.models.event import Event
from app.models.user import User
from app.schemas.booking import BookingCreate
from app.services.booking_policy import check_booking_allowed
from app.services.reservation_service import ReservationCoordinator

bearer_scheme = HTTPBearer(auto_error=False)


def get_capabilities(request: Request) -> SchemaCapabilities:
    """Capabilities resolved at startup (see app.main.lifespan)."""
    return getattr(request.app.state, "capabilities", SchemaCapabilities())


def get_coordinator(
    db: AsyncSession = Depends(get_db),
    capabilities: SchemaCapabilities = Depends(get_capabilities),
) -> ReservationCoordinator:
    return ReservationCoordinator(db, capabilities)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    unauthorized = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise unauthorized

    payload = decode_access_token(credentials.credentials)
    if not payload or not str(payload.get("sub", "")).isdigit():
        raise unauthorized

    result = await db.execute(select(User).where(User.id == int(payload["sub"])))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        raise unauthorized
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user


async def guarded_booking_request(
    booking_data: BookingCreate,
    db: AsyncSession = Depends(get_db),
) -> BookingCreate:
    """
    Booking guard: refuses admin requesters and closed events before the
    reservation coordinator runs. The coordinator applies the same predicate
    again inside its transaction.
    """
    if not booking_data.user_id:
        raise RejectionError(Rejection.invalid_input("User ID is required"))
    requester = (
        await db.execute(select(User.role).where(User.id == booking_data.user_id))
    ).one_or_none()
    if requester is None:
        raise RejectionError(Rejection.requester_not_found())

    if not booking_data.event_id:
        raise RejectionError(Rejection.invalid_input("Event ID is required"))
    event = (
        await db.execute(select(Event.status).where(Event.id == booking_data.event_id))
    ).one_or_none()
    if event is None:
        raise RejectionError(Rejection.event_not_found())

    rejection = check_booking_allowed(requester.role, event.status)
    if rejection is not None:
        raise RejectionError(rejection)
    return booking_data
