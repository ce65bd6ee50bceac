"""
Event model with seat inventory tracking.

Key design decisions:
- `available_seats` is the capacity counter; only the reservation
  coordinator decrements it, cancellation and admin resizes restore it
- CHECK constraints keep 0 <= available_seats <= total_seats in the DB itself
- Index on `date` for the listing query
"""

from sqlalchemy import CheckConstraint, Column, DateTime, Index, Integer, Numeric, String
from sqlalchemy.orm import relationship

from app.db.base import Base, TimestampMixin

STATUS_UPCOMING = "upcoming"
STATUS_CLOSED = "closed"


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(String(1000), nullable=True)
    location = Column(String(255), nullable=True)
    date = Column(DateTime(timezone=True), nullable=False)
    total_seats = Column(Integer, nullable=False)
    available_seats = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2, asdecimal=False), nullable=False, default=0)
    img = Column(String(500), nullable=True)
    status = Column(String(20), nullable=False, default=STATUS_UPCOMING)

    bookings = relationship("Booking", back_populates="event", lazy="raise")

    __table_args__ = (
        CheckConstraint("available_seats >= 0", name="check_available_seats_non_negative"),
        CheckConstraint("total_seats > 0", name="check_total_seats_positive"),
        CheckConstraint("available_seats <= total_seats", name="check_available_lte_total"),
        Index("ix_events_date", "date"),
    )

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, title={self.title}, available={self.available_seats}/{self.total_seats})>"
