"""
Schema capability flags, resolved once at startup.

Databases created before migration 002 have no bookings.seats column. On
those, per-seat conflict detection is impossible and reservations fall back
to aggregate capacity checks only.
"""

from dataclasses import dataclass

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncEngine

from app.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class SchemaCapabilities:
    seat_list: bool = True


def _booking_columns(sync_conn) -> set[str] | None:
    inspector = inspect(sync_conn)
    if not inspector.has_table("bookings"):
        return None
    return {column["name"] for column in inspector.get_columns("bookings")}


async def resolve_capabilities(engine: AsyncEngine, mode: str = "auto") -> SchemaCapabilities:
    if mode == "enabled":
        return SchemaCapabilities(seat_list=True)
    if mode == "disabled":
        logger.warning("seat_list_disabled", source="config")
        return SchemaCapabilities(seat_list=False)

    async with engine.connect() as conn:
        columns = await conn.run_sync(_booking_columns)

    if columns is None:
        # Tables not created yet; migrations will create the current shape.
        logger.info("schema_probe_no_bookings_table")
        return SchemaCapabilities(seat_list=True)

    capabilities = SchemaCapabilities(seat_list="seats" in columns)
    if not capabilities.seat_list:
        logger.warning(
            "seat_list_disabled",
            source="schema_probe",
            message="bookings.seats missing; only aggregate capacity is enforced",
        )
    return capabilities
