"""
Concurrent reservation attempts, each on its own session, the way separate
requests hit the service. The event row lock must serialize them.
"""

import asyncio

import pytest
from httpx import AsyncClient

from app.core.errors import RejectionReason
from app.db.capabilities import SchemaCapabilities
from app.services.booking_service import BookingRecord, update_booking_status
from app.services.reservation_service import ReservationCoordinator, ReservationRequest

SEAT_LIST = SchemaCapabilities(seat_list=True)


async def _attempt(session_factory, event_id, user_id, seats):
    async with session_factory() as session:
        coordinator = ReservationCoordinator(session, SEAT_LIST)
        return await coordinator.reserve(
            ReservationRequest(
                event_id=event_id,
                user_id=user_id,
                seats=tuple(seats),
                total_amount=10.0 * len(seats),
            )
        )


@pytest.mark.asyncio
async def test_same_seat_only_one_winner(session_factory, make_user, test_event, seats_left):
    users = [await make_user(f"fan{i}@example.com") for i in range(5)]

    outcomes = await asyncio.gather(
        *(_attempt(session_factory, test_event, user_id, [7]) for user_id in users)
    )

    winners = [o for o in outcomes if isinstance(o, BookingRecord)]
    losers = [o for o in outcomes if not isinstance(o, BookingRecord)]
    assert len(winners) == 1
    assert {o.reason for o in losers} == {RejectionReason.SEAT_CONFLICT}
    assert await seats_left(test_event) == 49


@pytest.mark.asyncio
async def test_overlapping_requests(session_factory, user_a, user_b, test_event, seats_left):
    outcomes = await asyncio.gather(
        _attempt(session_factory, test_event, user_a, [1, 2, 3]),
        _attempt(session_factory, test_event, user_b, [3, 4]),
    )

    winners = [o for o in outcomes if isinstance(o, BookingRecord)]
    assert len(winners) == 1
    assert await seats_left(test_event) == 50 - winners[0].quantity


@pytest.mark.asyncio
async def test_no_overbooking_under_contention(session_factory, make_user, make_event, seats_left):
    """Five seats left, twelve buyers for distinct seats: exactly five win."""
    event_id = await make_event(total_seats=20, available_seats=5)
    users = [await make_user(f"buyer{i}@example.com") for i in range(12)]

    outcomes = await asyncio.gather(
        *(
            _attempt(session_factory, event_id, user_id, [seat])
            for seat, user_id in enumerate(users, start=1)
        )
    )

    winners = [o for o in outcomes if isinstance(o, BookingRecord)]
    losers = [o for o in outcomes if not isinstance(o, BookingRecord)]
    assert len(winners) == 5
    assert {o.reason for o in losers} <= {
        RejectionReason.EVENT_FULL,
        RejectionReason.INSUFFICIENT_CAPACITY,
    }
    assert await seats_left(event_id) == 0


@pytest.mark.asyncio
async def test_different_events_both_succeed(session_factory, user_a, user_b, make_event):
    first = await make_event(title="Show A")
    second = await make_event(title="Show B")

    outcomes = await asyncio.gather(
        _attempt(session_factory, first, user_a, [1]),
        _attempt(session_factory, second, user_b, [1]),
    )
    assert all(isinstance(o, BookingRecord) for o in outcomes)


@pytest.mark.asyncio
async def test_concurrent_http_requests(client: AsyncClient, make_user, test_event, seats_left):
    users = [await make_user(f"web{i}@example.com") for i in range(4)]

    responses = await asyncio.gather(
        *(
            client.post("/api/v1/bookings/", json={
                "eventId": test_event,
                "userId": user_id,
                "seats": [20, 21],
                "totalAmount": 100,
            })
            for user_id in users
        )
    )

    codes = sorted(r.status_code for r in responses)
    assert codes == [201, 409, 409, 409]
    assert await seats_left(test_event) == 48


@pytest.mark.asyncio
async def test_concurrent_cancellations_restore_once(session_factory, user_a, test_event, seats_left):
    booking = await _attempt(session_factory, test_event, user_a, [1, 2, 3])
    assert await seats_left(test_event) == 47

    async def cancel():
        async with session_factory() as session:
            return await update_booking_status(session, SEAT_LIST, booking.id, "cancelled")

    outcomes = await asyncio.gather(cancel(), cancel(), cancel())

    assert all(o.status == "cancelled" for o in outcomes)
    assert await seats_left(test_event) == 50
