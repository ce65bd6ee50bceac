"""
Tests for the reservation coordinator, driven directly against the
database rather than through HTTP.
"""

from types import SimpleNamespace

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import Rejection, RejectionReason
from app.db.capabilities import SchemaCapabilities, resolve_capabilities
from app.db.session import build_engine, build_sessionmaker
from app.models.booking import Booking
from app.services.booking_service import BookingRecord
from app.services.reservation_service import (
    MISSING_FIELDS_MESSAGE,
    ReservationCoordinator,
    ReservationRequest,
    validate_request,
)

SEAT_LIST = SchemaCapabilities(seat_list=True)
LEGACY = SchemaCapabilities(seat_list=False)


async def _reserve(session_factory, capabilities=SEAT_LIST, **kwargs):
    kwargs.setdefault("total_amount", 50.0 * len(kwargs.get("seats", ())) or 50.0)
    async with session_factory() as session:
        coordinator = ReservationCoordinator(session, capabilities)
        return await coordinator.reserve(ReservationRequest(**kwargs))


# --- validate_request -------------------------------------------------------


@pytest.mark.parametrize(
    "kwargs",
    [
        dict(event_id=0, user_id=1, seats=(1,), total_amount=10),
        dict(event_id=1, user_id=None, seats=(1,), total_amount=10),
        dict(event_id=1, user_id=1, seats=(), total_amount=10),
    ],
)
def test_validate_missing_fields(kwargs):
    rejection = validate_request(ReservationRequest(**kwargs))
    assert rejection.reason == RejectionReason.INVALID_INPUT
    assert rejection.message == MISSING_FIELDS_MESSAGE


def test_validate_negative_ids():
    rejection = validate_request(ReservationRequest(event_id=-1, user_id=1, seats=(1,), total_amount=10))
    assert rejection.reason == RejectionReason.INVALID_INPUT


def test_validate_repeated_seat():
    rejection = validate_request(ReservationRequest(event_id=1, user_id=1, seats=(3, 3), total_amount=10))
    assert rejection.reason == RejectionReason.INVALID_INPUT


def test_validate_quantity_mismatch():
    rejection = validate_request(
        ReservationRequest(event_id=1, user_id=1, seats=(1, 2), quantity=1, total_amount=10)
    )
    assert rejection.reason == RejectionReason.INVALID_INPUT
    assert "Quantity (1)" in rejection.message


@pytest.mark.parametrize("amount", [0, -5, None])
def test_validate_amount(amount):
    rejection = validate_request(ReservationRequest(event_id=1, user_id=1, seats=(1,), total_amount=amount))
    assert rejection.reason == RejectionReason.INVALID_INPUT


def test_validate_ok():
    assert validate_request(
        ReservationRequest(event_id=1, user_id=1, seats=(1, 2), quantity=2, total_amount=10)
    ) is None


# --- coordinator ------------------------------------------------------------


@pytest.mark.asyncio
async def test_reserve_success(session_factory, user_a, test_event, seats_left):
    outcome = await _reserve(session_factory, event_id=test_event, user_id=user_a, seats=(5, 6, 7))

    assert isinstance(outcome, BookingRecord)
    assert outcome.seats == [5, 6, 7]
    assert outcome.quantity == 3
    assert outcome.status == "confirmed"
    assert await seats_left(test_event) == 47

    async with session_factory() as session:
        stored = (await session.execute(select(Booking.seats).where(Booking.id == outcome.id))).scalar_one()
    assert stored == "[5, 6, 7]"


@pytest.mark.asyncio
@pytest.mark.parametrize("seat", [0, 51])
async def test_seat_out_of_range(session_factory, user_a, test_event, seats_left, seat):
    outcome = await _reserve(session_factory, event_id=test_event, user_id=user_a, seats=(seat,))

    assert isinstance(outcome, Rejection)
    assert outcome.reason == RejectionReason.INVALID_SEAT_RANGE
    assert outcome.seats == (seat,)
    assert outcome.status_code == 400
    assert await seats_left(test_event) == 50


@pytest.mark.asyncio
async def test_duplicate_and_conflict_leave_capacity(session_factory, user_a, user_b, test_event, seats_left):
    await _reserve(session_factory, event_id=test_event, user_id=user_a, seats=(1, 2))

    duplicate = await _reserve(session_factory, event_id=test_event, user_id=user_a, seats=(2, 3))
    assert duplicate.reason == RejectionReason.DUPLICATE_SEAT_REQUEST
    assert duplicate.seats == (2,)

    conflict = await _reserve(session_factory, event_id=test_event, user_id=user_b, seats=(3, 1, 2))
    assert conflict.reason == RejectionReason.SEAT_CONFLICT
    assert conflict.seats == (1, 2)

    assert await seats_left(test_event) == 48


@pytest.mark.asyncio
async def test_requester_checked_before_event(session_factory):
    outcome = await _reserve(session_factory, event_id=777, user_id=888, seats=(1,))
    assert outcome.reason == RejectionReason.REQUESTER_NOT_FOUND


@pytest.mark.asyncio
async def test_policy_applied_inside_transaction(session_factory, admin_user, user_a, closed_event, test_event):
    """The coordinator refuses on its own, without the HTTP guard in front."""
    admin = await _reserve(session_factory, event_id=test_event, user_id=admin_user, seats=(1,))
    assert admin.reason == RejectionReason.ADMIN_BOOKING_FORBIDDEN

    closed = await _reserve(session_factory, event_id=closed_event, user_id=user_a, seats=(1,))
    assert closed.reason == RejectionReason.EVENT_CLOSED


@pytest.mark.asyncio
async def test_cancelled_booking_seats_are_free(session_factory, user_a, user_b, test_event):
    first = await _reserve(session_factory, event_id=test_event, user_id=user_a, seats=(1,))
    async with session_factory() as session:
        await session.execute(
            Booking.__table__.update().where(Booking.id == first.id).values(status="cancelled")
        )
        await session.commit()

    outcome = await _reserve(session_factory, event_id=test_event, user_id=user_b, seats=(1,))
    assert isinstance(outcome, BookingRecord)


@pytest.mark.asyncio
async def test_capacity_race_detected(session_factory, user_a, make_event, seats_left, monkeypatch):
    """A stale capacity read is caught when the decrement goes negative."""
    event_id = await make_event(total_seats=5, available_seats=1)
    real_lock = ReservationCoordinator._lock_event

    async def stale_lock(self, event_id):
        row = await real_lock(self, event_id)
        return SimpleNamespace(
            id=row.id, total_seats=row.total_seats, available_seats=row.total_seats, status=row.status
        )

    monkeypatch.setattr(ReservationCoordinator, "_lock_event", stale_lock)

    outcome = await _reserve(session_factory, event_id=event_id, user_id=user_a, seats=(1, 2, 3))
    assert outcome.reason == RejectionReason.CAPACITY_RACE_DETECTED
    assert outcome.status_code == 409

    monkeypatch.undo()
    assert await seats_left(event_id) == 1


@pytest.mark.asyncio
async def test_rollback_failure_still_returns_rejection(session_factory, user_a, test_event, seats_left, monkeypatch):
    async def failing_rollback(self):
        raise OperationalError("ROLLBACK", {}, Exception("connection lost"))

    async with session_factory() as session:
        monkeypatch.setattr(AsyncSession, "rollback", failing_rollback)
        try:
            coordinator = ReservationCoordinator(session, SEAT_LIST)
            outcome = await coordinator.reserve(
                ReservationRequest(event_id=test_event, user_id=user_a, seats=(99,), total_amount=50)
            )
        finally:
            monkeypatch.undo()
            await session.rollback()

    assert outcome.reason == RejectionReason.INVALID_SEAT_RANGE
    assert await seats_left(test_event) == 50


# --- legacy schema ----------------------------------------------------------


@pytest.mark.asyncio
async def test_legacy_mode_skips_seat_checks(legacy_engine, make_user, make_event, seats_left):
    session_factory = build_sessionmaker(legacy_engine)
    alice = await make_user("alice@example.com")
    bob = await make_user("bob@example.com")
    event_id = await make_event(total_seats=4)

    first = await _reserve(session_factory, LEGACY, event_id=event_id, user_id=alice, seats=(1, 2))
    again = await _reserve(session_factory, LEGACY, event_id=event_id, user_id=alice, seats=(1,))
    other = await _reserve(session_factory, LEGACY, event_id=event_id, user_id=bob, seats=(2,))

    assert isinstance(first, BookingRecord)
    assert isinstance(again, BookingRecord)
    assert isinstance(other, BookingRecord)
    assert await seats_left(event_id) == 0

    # capacity is still enforced
    full = await _reserve(session_factory, LEGACY, event_id=event_id, user_id=bob, seats=(3,))
    assert full.reason == RejectionReason.EVENT_FULL


@pytest.mark.asyncio
async def test_legacy_mode_range_check(legacy_engine, make_user, make_event):
    session_factory = build_sessionmaker(legacy_engine)
    alice = await make_user("alice@example.com")
    event_id = await make_event(total_seats=4)

    outcome = await _reserve(session_factory, LEGACY, event_id=event_id, user_id=alice, seats=(5,))
    assert outcome.reason == RejectionReason.INVALID_SEAT_RANGE


# --- schema capabilities ----------------------------------------------------


@pytest.mark.asyncio
async def test_capabilities_auto_detects_seat_column(engine):
    assert (await resolve_capabilities(engine, "auto")).seat_list is True


@pytest.mark.asyncio
async def test_capabilities_auto_detects_legacy(legacy_engine):
    assert (await resolve_capabilities(legacy_engine, "auto")).seat_list is False


@pytest.mark.asyncio
async def test_capabilities_forced_modes(legacy_engine):
    assert (await resolve_capabilities(legacy_engine, "enabled")).seat_list is True
    assert (await resolve_capabilities(legacy_engine, "disabled")).seat_list is False


@pytest.mark.asyncio
async def test_capabilities_without_tables(tmp_path):
    empty = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
    try:
        assert (await resolve_capabilities(empty, "auto")).seat_list is True
    finally:
        await empty.dispose()
