"""
Seat ledger: which seats of an event are already taken.

There is no seat table. Each booking carries its seats as a JSON-encoded
list, so the taken set is the union of the seat lists of the event's live
(non-cancelled) bookings.

Rows written by older clients may hold a comma-separated string or plain
garbage instead of JSON. Decoding is deliberately lossy: anything that is
not a positive integer seat number is dropped, and an undecodable value
contributes no seats at all. A bad row must never make the read path fail.
"""

import json
import math
from typing import Any, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.booking import Booking, STATUS_CANCELLED


def encode_seats(seats: Iterable[int]) -> str:
    return json.dumps([int(seat) for seat in seats])


def _coerce_seat(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        number = float(value)
    elif isinstance(value, float):
        number = value
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None

    if not math.isfinite(number) or not number.is_integer() or number < 1:
        return None
    return int(number)


def decode_seats(raw: Any) -> list[int]:
    """
    Decode a stored seat list into seat numbers, in stored order, without
    duplicates. Accepts a list, a JSON list string or a comma-separated
    string; returns [] for anything else.
    """
    if raw is None:
        return []
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")

    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return []
        try:
            parsed = json.loads(text)
        except ValueError:
            parsed = text.split(",")
    else:
        parsed = raw

    if not isinstance(parsed, (list, tuple)):
        return []

    seats: dict[int, None] = {}
    for entry in parsed:
        seat = _coerce_seat(entry)
        if seat is not None:
            seats.setdefault(seat, None)
    return list(seats)


async def committed_seats(
    db: AsyncSession,
    event_id: int,
    user_id: Optional[int] = None,
) -> set[int]:
    """
    Seats held by live bookings of an event, optionally only those of one
    requester. Requires the bookings.seats column.
    """
    query = select(Booking.seats).where(
        Booking.event_id == event_id,
        Booking.seats.is_not(None),
        Booking.status != STATUS_CANCELLED,
    )
    if user_id is not None:
        query = query.where(Booking.user_id == user_id)

    result = await db.execute(query)

    taken: set[int] = set()
    for raw in result.scalars():
        taken.update(decode_seats(raw))
    return taken
