"""Hit history API - data behind the uptime/latency charts."""
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Tuple

from fastapi import APIRouter, Depends, Query

from ..dependencies import get_storage
from ..schemas import DayOverview, EndpointHits
from ..services import Storage

router = APIRouter(prefix="/api/hits", tags=["hits"])


def day_window(day: Optional[date]) -> Tuple[date, datetime, datetime]:
    """Return the day (today if None) and its [start, end) bounds in UTC."""
    if day is None:
        day = datetime.now(timezone.utc).date()
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    return day, start, start + timedelta(days=1)


@router.get("", response_model=DayOverview)
async def get_day_overview(
    day: Optional[date] = Query(None, description="UTC day, defaults to today"),
    storage: Storage = Depends(get_storage),
):
    """Get every endpoint with its hits for one UTC day."""
    day, start, end = day_window(day)

    items = []
    for endpoint in await storage.get_all_endpoints():
        hits = await storage.get_hits(endpoint.id, start, end)
        items.append(EndpointHits(endpoint=endpoint, hits=hits))

    return DayOverview(
        day=day,
        previous_day=day - timedelta(days=1),
        next_day=day + timedelta(days=1),
        items=items,
    )
