"""
Reservation outcome taxonomy.

Expected rejections (bad input, sold-out events, taken seats...) are plain
values: the reservation coordinator returns them instead of raising, so the
caller always gets a machine-readable reason plus a human-readable message.
Only store-level faults escape as exceptions (StoreFailure).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional


class RejectionReason(str, Enum):
    INVALID_INPUT = "INVALID_INPUT"
    REQUESTER_NOT_FOUND = "REQUESTER_NOT_FOUND"
    ADMIN_BOOKING_FORBIDDEN = "ADMIN_BOOKING_FORBIDDEN"
    DUPLICATE_SEAT_REQUEST = "DUPLICATE_SEAT_REQUEST"
    EVENT_NOT_FOUND = "EVENT_NOT_FOUND"
    EVENT_CLOSED = "EVENT_CLOSED"
    EVENT_FULL = "EVENT_FULL"
    SEAT_CONFLICT = "SEAT_CONFLICT"
    INVALID_SEAT_RANGE = "INVALID_SEAT_RANGE"
    INSUFFICIENT_CAPACITY = "INSUFFICIENT_CAPACITY"
    CAPACITY_RACE_DETECTED = "CAPACITY_RACE_DETECTED"
    STORE_FAILURE = "STORE_FAILURE"


HTTP_STATUS_BY_REASON = {
    RejectionReason.INVALID_INPUT: 400,
    RejectionReason.INVALID_SEAT_RANGE: 400,
    RejectionReason.REQUESTER_NOT_FOUND: 404,
    RejectionReason.EVENT_NOT_FOUND: 404,
    RejectionReason.ADMIN_BOOKING_FORBIDDEN: 403,
    RejectionReason.EVENT_CLOSED: 403,
    RejectionReason.DUPLICATE_SEAT_REQUEST: 409,
    RejectionReason.SEAT_CONFLICT: 409,
    RejectionReason.EVENT_FULL: 409,
    RejectionReason.INSUFFICIENT_CAPACITY: 409,
    RejectionReason.CAPACITY_RACE_DETECTED: 409,
    RejectionReason.STORE_FAILURE: 500,
}


def _seat_list(seats: Iterable[int]) -> str:
    return ", ".join(str(seat) for seat in seats)


@dataclass(frozen=True)
class Rejection:
    """A reservation attempt that was refused without mutating anything."""

    reason: RejectionReason
    message: str
    seats: tuple[int, ...] = ()

    @property
    def status_code(self) -> int:
        return HTTP_STATUS_BY_REASON[self.reason]

    def to_dict(self) -> dict:
        return {
            "reason": self.reason.value,
            "message": self.message,
            "seats": list(self.seats),
        }

    # Constructors keep the user-facing wording in one place.

    @classmethod
    def invalid_input(cls, message: str) -> "Rejection":
        return cls(RejectionReason.INVALID_INPUT, message)

    @classmethod
    def requester_not_found(cls) -> "Rejection":
        return cls(RejectionReason.REQUESTER_NOT_FOUND, "User not found")

    @classmethod
    def admin_forbidden(cls) -> "Rejection":
        return cls(
            RejectionReason.ADMIN_BOOKING_FORBIDDEN,
            "Admins cannot book tickets. Please sign in as a user to make bookings.",
        )

    @classmethod
    def duplicate_seats(cls, seats: Iterable[int]) -> "Rejection":
        seats = tuple(seats)
        return cls(
            RejectionReason.DUPLICATE_SEAT_REQUEST,
            f"You have already booked seats {_seat_list(seats)} for this event.",
            seats,
        )

    @classmethod
    def event_not_found(cls) -> "Rejection":
        return cls(RejectionReason.EVENT_NOT_FOUND, "Event not found")

    @classmethod
    def event_closed(cls) -> "Rejection":
        return cls(
            RejectionReason.EVENT_CLOSED,
            "This event is closed. Bookings are no longer available.",
        )

    @classmethod
    def event_full(cls) -> "Rejection":
        return cls(RejectionReason.EVENT_FULL, "Event is fully booked. Registration is closed.")

    @classmethod
    def seat_conflict(cls, seats: Iterable[int]) -> "Rejection":
        seats = tuple(seats)
        return cls(
            RejectionReason.SEAT_CONFLICT,
            f"Seats {_seat_list(seats)} are already booked. Please select different seats.",
            seats,
        )

    @classmethod
    def invalid_seat_range(cls, seats: Iterable[int], total_seats: int) -> "Rejection":
        seats = tuple(seats)
        return cls(
            RejectionReason.INVALID_SEAT_RANGE,
            f"Invalid seat numbers: {_seat_list(seats)}. Seats must be between 1 and {total_seats}.",
            seats,
        )

    @classmethod
    def insufficient_capacity(cls, requested: int, available: int) -> "Rejection":
        return cls(
            RejectionReason.INSUFFICIENT_CAPACITY,
            f"Not enough seats available. Requested: {requested}, Available: {available}",
        )

    @classmethod
    def capacity_race(cls) -> "Rejection":
        return cls(
            RejectionReason.CAPACITY_RACE_DETECTED,
            "Seat count validation failed. Please try again.",
        )


class RejectionError(Exception):
    """Carries a Rejection across the HTTP boundary (guard and routes)."""

    def __init__(self, rejection: Rejection) -> None:
        super().__init__(rejection.message)
        self.rejection = rejection


class StoreFailure(Exception):
    """A lock, statement or commit failed inside a unit of work.

    The transaction has already been rolled back when this is raised.
    """

    reason = RejectionReason.STORE_FAILURE

    def __init__(self, operation: str, detail: Optional[str] = None) -> None:
        super().__init__(f"{operation} failed")
        self.operation = operation
        self.detail = detail
