"""
Reservation coordinator: turns requested seat numbers into a committed booking.

CONCURRENCY STRATEGY: Pessimistic row lock
==========================================

Problem:
  Two users ask for the same seat (or the last seats) of an event at the
  same time. Both read "seat 7 is free, 1 seat left", both write, and the
  event is overbooked.

Solution:
  Every attempt runs as one transaction that starts by locking the event row
  (SELECT ... FOR UPDATE). All checks and mutations happen while the lock is
  held, so attempts on the same event run one after another and each sees
  the bookings committed before it. Attempts on different events lock
  different rows and do not wait on each other.

  1. Lock the event row
  2. Check requester, duplicate seats, event status and capacity
  3. Rebuild the taken-seat set from the seat ledger and check conflicts
  4. UPDATE events SET available_seats = available_seats - N
  5. Re-read available_seats; negative means the lock did not hold
  6. INSERT the booking, COMMIT

  No retries and no timeouts of our own: a stalled lock is the database's
  problem and comes back as a StoreFailure. Nothing about capacity is cached
  between attempts; every attempt re-reads the row under the lock.

Every rejection is returned as a Rejection value after rolling back, so a
refused attempt never leaves a partial decrement behind.
"""

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Sequence, Union

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import Rejection, StoreFailure
from app.core.logging import get_logger
from app.core.metrics import record_reservation
from app.db.capabilities import SchemaCapabilities
from app.db.session import rollback_quietly
from app.models.booking import Booking, STATUS_CONFIRMED
from app.models.event import Event
from app.models.user import User
from app.services.booking_policy import check_booking_allowed
from app.services.booking_service import BookingRecord
from app.services.seat_ledger import committed_seats, encode_seats

logger = get_logger(__name__)

MISSING_FIELDS_MESSAGE = "Missing required fields: eventId, userId, and seats are required"


@dataclass(frozen=True)
class ReservationRequest:
    event_id: int
    user_id: int
    seats: Sequence[int]
    total_amount: float
    quantity: Optional[int] = None
    name: Optional[str] = None
    email: Optional[str] = None
    mobile: Optional[str] = None


def validate_request(request: ReservationRequest) -> Optional[Rejection]:
    """Structural checks that need no database access."""
    if not request.event_id or not request.user_id or not request.seats:
        return Rejection.invalid_input(MISSING_FIELDS_MESSAGE)
    if request.event_id < 1 or request.user_id < 1:
        return Rejection.invalid_input("eventId and userId must be positive")
    if len(set(request.seats)) != len(request.seats):
        return Rejection.invalid_input("Each seat number may only be requested once")

    quantity = request.quantity if request.quantity is not None else len(request.seats)
    if quantity != len(request.seats):
        return Rejection.invalid_input(
            f"Quantity ({quantity}) must match the number of seats requested ({len(request.seats)})"
        )
    if request.total_amount is None or request.total_amount <= 0:
        return Rejection.invalid_input("Total amount is required and must be greater than 0")
    return None


class ReservationCoordinator:
    """
    Runs reservation attempts against one request-scoped session.

    The session is owned by the caller (normally the get_db dependency),
    which closes it; the coordinator commits or rolls back the unit of work.
    """

    def __init__(self, db: AsyncSession, capabilities: SchemaCapabilities):
        self.db = db
        self.capabilities = capabilities

    async def reserve(self, request: ReservationRequest) -> Union[BookingRecord, Rejection]:
        started = time.perf_counter()
        log = logger.bind(event_id=request.event_id, user_id=request.user_id)

        rejection = validate_request(request)
        if rejection is not None:
            return self._rejected(log, rejection, started)

        try:
            outcome = await self._reserve_locked(request)
            if isinstance(outcome, Rejection):
                await rollback_quietly(self.db)
                return self._rejected(log, outcome, started)
            await self.db.commit()
        except SQLAlchemyError as e:
            await rollback_quietly(self.db)
            log.error("reservation_store_failure", error=str(e), error_type=type(e).__name__)
            record_reservation(StoreFailure.reason.value, time.perf_counter() - started)
            raise StoreFailure("reservation", detail=str(e)) from e

        log.info(
            "reservation_confirmed",
            booking_id=outcome.id,
            seats=outcome.seats,
            quantity=outcome.quantity,
            seat_list=self.capabilities.seat_list,
        )
        record_reservation("confirmed", time.perf_counter() - started, seats=outcome.quantity)
        return outcome

    @staticmethod
    def _rejected(log, rejection: Rejection, started: float) -> Rejection:
        log.info(
            "reservation_rejected",
            reason=rejection.reason.value,
            seats=list(rejection.seats),
        )
        record_reservation(rejection.reason.value, time.perf_counter() - started)
        return rejection

    async def _reserve_locked(self, request: ReservationRequest) -> Union[BookingRecord, Rejection]:
        seats = list(request.seats)
        quantity = len(seats)

        event = await self._lock_event(request.event_id)

        requester = await self._load_requester(request.user_id)
        if requester is None:
            return Rejection.requester_not_found()

        if self.capabilities.seat_list:
            already_held = await committed_seats(self.db, request.event_id, user_id=request.user_id)
            duplicates = [seat for seat in seats if seat in already_held]
            if duplicates:
                return Rejection.duplicate_seats(duplicates)

        if event is None:
            return Rejection.event_not_found()

        rejection = check_booking_allowed(requester.role, event.status)
        if rejection is not None:
            return rejection

        if event.available_seats <= 0:
            return Rejection.event_full()

        if self.capabilities.seat_list:
            taken = await committed_seats(self.db, request.event_id)
            conflicts = [seat for seat in seats if seat in taken]
            if conflicts:
                return Rejection.seat_conflict(conflicts)

        out_of_range = [seat for seat in seats if seat < 1 or seat > event.total_seats]
        if out_of_range:
            return Rejection.invalid_seat_range(out_of_range, event.total_seats)

        if event.available_seats < quantity:
            return Rejection.insufficient_capacity(quantity, event.available_seats)

        rejection = await self._consume_capacity(request.event_id, quantity)
        if rejection is not None:
            return rejection

        return await self._append_booking(request, requester, seats)

    async def _lock_event(self, event_id: int):
        # Column select, not an ORM entity: the row is always re-read from
        # the database, never served from the session's identity map.
        result = await self.db.execute(
            select(Event.id, Event.total_seats, Event.available_seats, Event.status)
            .where(Event.id == event_id)
            .with_for_update()
        )
        return result.one_or_none()

    async def _load_requester(self, user_id: int):
        result = await self.db.execute(
            select(User.id, User.role, User.name, User.email).where(User.id == user_id)
        )
        return result.one_or_none()

    async def _consume_capacity(self, event_id: int, quantity: int) -> Optional[Rejection]:
        """Decrement the event's capacity and verify it did not go negative."""
        try:
            await self.db.execute(
                update(Event)
                .where(Event.id == event_id)
                .values(available_seats=Event.available_seats - quantity)
                .execution_options(synchronize_session=False)
            )
        except IntegrityError as e:
            # available_seats >= 0 CHECK constraint
            logger.error("capacity_constraint_violated", event_id=event_id, quantity=quantity, error=str(e))
            return Rejection.capacity_race()

        remaining = (
            await self.db.execute(select(Event.available_seats).where(Event.id == event_id))
        ).scalar_one()
        if remaining < 0:
            logger.error("capacity_race_detected", event_id=event_id, remaining=remaining)
            return Rejection.capacity_race()
        return None

    async def _append_booking(self, request: ReservationRequest, requester, seats: list[int]) -> BookingRecord:
        now = datetime.now(timezone.utc)
        values = {
            "event_id": request.event_id,
            "user_id": request.user_id,
            "name": request.name or requester.name,
            "email": request.email or requester.email,
            "mobile": request.mobile,
            "quantity": len(seats),
            "total_amount": request.total_amount,
            "status": STATUS_CONFIRMED,
            "created_at": now,
            "updated_at": now,
        }
        if self.capabilities.seat_list:
            values["seats"] = encode_seats(seats)

        # Core insert against the table: on legacy schemas the seats column
        # must be left out of the statement entirely.
        result = await self.db.execute(insert(Booking.__table__).values(**values))
        booking_id = result.inserted_primary_key[0]

        return BookingRecord(
            id=booking_id,
            event_id=request.event_id,
            user_id=request.user_id,
            quantity=len(seats),
            total_amount=float(request.total_amount),
            status=STATUS_CONFIRMED,
            created_at=now,
            seats=seats,
            name=values["name"],
            email=values["email"],
            mobile=values["mobile"],
        )
