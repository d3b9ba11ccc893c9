"""Endpoint CRUD API.

Every mutation is forwarded to the scheduler so that probing follows the
stored configuration without a restart.
"""
from datetime import date, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..dependencies import get_scheduler, get_storage
from ..exceptions import EndpointNotFoundError, InvalidEndpointError
from ..schemas import DayHits, Endpoint, EndpointCreate, EndpointUpdate
from ..services import SchedulerService, Storage
from .hits import day_window

router = APIRouter(prefix="/api/endpoints", tags=["endpoints"])


@router.get("", response_model=List[Endpoint])
async def list_endpoints(storage: Storage = Depends(get_storage)):
    """List all endpoints."""
    return await storage.get_all_endpoints()


@router.post("", response_model=Endpoint, status_code=201)
async def create_endpoint(
    item: EndpointCreate,
    storage: Storage = Depends(get_storage),
    scheduler: SchedulerService = Depends(get_scheduler),
):
    """Create a new endpoint and start probing it."""
    endpoint = await storage.insert_endpoint(item)
    scheduler.register_endpoint(endpoint)
    return endpoint


@router.get("/{endpoint_id}", response_model=Endpoint)
async def get_endpoint(endpoint_id: int, storage: Storage = Depends(get_storage)):
    """Get a specific endpoint by ID."""
    try:
        return await storage.get_endpoint(endpoint_id)
    except EndpointNotFoundError:
        raise HTTPException(status_code=404, detail="Endpoint not found")


@router.put("/{endpoint_id}", response_model=Endpoint)
async def update_endpoint(
    endpoint_id: int,
    update: EndpointUpdate,
    storage: Storage = Depends(get_storage),
    scheduler: SchedulerService = Depends(get_scheduler),
):
    """Update an endpoint; its job is rescheduled with the new settings."""
    try:
        endpoint = await storage.update_endpoint(endpoint_id, update)
    except EndpointNotFoundError:
        raise HTTPException(status_code=404, detail="Endpoint not found")
    except InvalidEndpointError as e:
        raise HTTPException(status_code=422, detail=e.message)

    scheduler.register_endpoint(endpoint)
    return endpoint


@router.delete("/{endpoint_id}", status_code=204)
async def delete_endpoint(
    endpoint_id: int,
    storage: Storage = Depends(get_storage),
    scheduler: SchedulerService = Depends(get_scheduler),
):
    """Delete an endpoint and its hits."""
    try:
        await storage.delete_endpoint(endpoint_id)
    except EndpointNotFoundError:
        raise HTTPException(status_code=404, detail="Endpoint not found")

    scheduler.unregister_endpoint(endpoint_id)


@router.get("/{endpoint_id}/hits", response_model=DayHits)
async def get_endpoint_hits(
    endpoint_id: int,
    day: Optional[date] = Query(None, description="UTC day, defaults to today"),
    storage: Storage = Depends(get_storage),
):
    """Get an endpoint's hits for one UTC day."""
    try:
        await storage.get_endpoint(endpoint_id)
    except EndpointNotFoundError:
        raise HTTPException(status_code=404, detail="Endpoint not found")

    day, start, end = day_window(day)
    hits = await storage.get_hits(endpoint_id, start, end)
    return DayHits(
        day=day,
        previous_day=day - timedelta(days=1),
        next_day=day + timedelta(days=1),
        hits=hits,
    )
