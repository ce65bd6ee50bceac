"""
Who may book what.

One predicate shared by the HTTP guard and the reservation coordinator, so
both layers enforce the same rules independently.
"""

from typing import Optional

from app.core.errors import Rejection
from app.models.event import STATUS_CLOSED
from app.models.user import ROLE_ADMIN


def check_booking_allowed(role: Optional[str], event_status: Optional[str]) -> Optional[Rejection]:
    """Return the rejection for a forbidden booking, or None if it may proceed."""
    if role == ROLE_ADMIN:
        return Rejection.admin_forbidden()
    if event_status == STATUS_CLOSED:
        return Rejection.event_closed()
    return None
