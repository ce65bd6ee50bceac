"""
Event endpoints. Listings are cached in Redis; writes require an admin token.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_capabilities, require_admin
from app.db.capabilities import SchemaCapabilities
from app.db.session import get_db
from app.schemas.event import EventCreate, EventListResponse, EventResponse, EventUpdate
from app.services.cache_service import get_cached_events, invalidate_event_cache, set_cached_events
from app.services.event_service import create_event, delete_event, get_event, list_events, update_event

router = APIRouter(prefix="/events", tags=["Events"])


@router.post(
    "/",
    response_model=EventResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
async def create_event_endpoint(
    event_data: EventCreate,
    db: AsyncSession = Depends(get_db),
):
    """Create a new event. All seats start available."""
    event = await create_event(db, event_data)
    await invalidate_event_cache()
    return event


@router.get("/", response_model=EventListResponse)
async def list_events_endpoint(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100, alias="pageSize"),
    upcoming_only: bool = Query(False, alias="upcomingOnly"),
    db: AsyncSession = Depends(get_db),
):
    """
    List events ordered by date.
    Served from Redis when possible; any booking or event change clears the cache.
    """
    cached = await get_cached_events(page, page_size, upcoming_only)
    if cached:
        cached["cached"] = True
        return EventListResponse(**cached)

    events, total = await list_events(db, page, page_size, upcoming_only)

    response_data = {
        "events": [EventResponse.model_validate(e).model_dump(mode="json") for e in events],
        "total": total,
        "page": page,
        "page_size": page_size,
        "cached": False,
    }
    await set_cached_events(page, page_size, upcoming_only, response_data)

    return EventListResponse(**response_data)


@router.get("/{event_id}", response_model=EventResponse)
async def get_event_endpoint(
    event_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Get a single event by ID. Never cached: seat counts must be current."""
    return await get_event(db, event_id)


@router.put("/{event_id}", response_model=EventResponse, dependencies=[Depends(require_admin)])
async def update_event_endpoint(
    event_id: int,
    event_data: EventUpdate,
    db: AsyncSession = Depends(get_db),
    capabilities: SchemaCapabilities = Depends(get_capabilities),
):
    event = await update_event(db, event_id, event_data, capabilities)
    await invalidate_event_cache()
    return event


@router.delete("/{event_id}", dependencies=[Depends(require_admin)])
async def delete_event_endpoint(
    event_id: int,
    db: AsyncSession = Depends(get_db),
):
    await delete_event(db, event_id)
    await invalidate_event_cache()
    return {"message": "Event deleted"}
