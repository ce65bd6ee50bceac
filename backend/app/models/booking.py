"""
Booking model: one row per successful reservation.

Key design decisions:
- Seats live on the booking as a JSON-encoded list (`seats`), so the set
  of taken seats for an event is derived by scanning its live bookings
- No unique (user_id, event_id): a user may book the same event again as
  long as the new seats do not overlap the old ones
- `seats` is nullable and missing entirely on pre-002 schemas
- Status field allows cancellation without deleting records
"""

from sqlalchemy import CheckConstraint, Column, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from app.db.base import Base, TimestampMixin

STATUS_PENDING = "pending"
STATUS_CONFIRMED = "confirmed"
STATUS_CANCELLED = "cancelled"
BOOKING_STATUSES = (STATUS_PENDING, STATUS_CONFIRMED, STATUS_CANCELLED)


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(100), nullable=True)
    email = Column(String(255), nullable=True)
    mobile = Column(String(30), nullable=True)
    quantity = Column(Integer, nullable=False)
    total_amount = Column(Numeric(10, 2, asdecimal=False), nullable=False)
    seats = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=STATUS_CONFIRMED)

    user = relationship("User", back_populates="bookings", lazy="raise")
    event = relationship("Event", back_populates="bookings", lazy="raise")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="check_booking_quantity_positive"),
        CheckConstraint("total_amount > 0", name="check_booking_amount_positive"),
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled')", name="check_booking_status"
        ),
    )

    def __repr__(self) -> str:
        return f"<Booking(id={self.id}, user={self.user_id}, event={self.event_id}, status={self.status})>"
