"""
Location Entity API Routes
CRUD for outlets plus the active address pointer. Cache fields are read-only.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from location_sync.database import get_db
from location_sync.schemas.location_entity import (
    LocationEntityCreate,
    LocationEntityUpdate,
    LocationEntityResponse,
    ActiveAddressUpdate,
    EntityCoordinatesResponse
)
from location_sync.services.location_entity_store import LocationEntityStore
from location_sync.utils.retry import retry_on_conflict

router = APIRouter()


@router.get("/", response_model=List[LocationEntityResponse])
async def list_location_entities(
    operator_id: Optional[int] = Query(None, description="Filter by operator"),
    active_address_id: Optional[int] = Query(None, description="Filter by active address"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db)
):
    """List location entities"""
    return await LocationEntityStore(db).list(
        operator_id=operator_id, active_address_id=active_address_id, limit=limit, offset=offset
    )


@router.get("/{entity_id}", response_model=LocationEntityResponse)
async def get_location_entity(entity_id: int, db: AsyncSession = Depends(get_db)):
    """Get a specific location entity"""
    return await LocationEntityStore(db).get(entity_id)


@router.get("/{entity_id}/coordinates", response_model=EntityCoordinatesResponse)
async def get_location_entity_coordinates(entity_id: int, db: AsyncSession = Depends(get_db)):
    """Cached coordinates of a location entity"""
    entity = await LocationEntityStore(db).get(entity_id)
    return EntityCoordinatesResponse(
        id=entity.id,
        latitude=entity.cached_latitude,
        longitude=entity.cached_longitude,
        point=entity.cached_point,
        is_location_verified=entity.is_location_verified,
        last_location_sync=entity.last_location_sync,
    )


@router.post("/", response_model=LocationEntityResponse, status_code=201)
async def create_location_entity(entity: LocationEntityCreate, db: AsyncSession = Depends(get_db)):
    """Create a location entity; an initial active address fills the cache"""
    return await retry_on_conflict(LocationEntityStore(db).create, entity.model_dump(exclude_none=True))


@router.patch("/{entity_id}", response_model=LocationEntityResponse)
async def update_location_entity(
    entity_id: int, changes: LocationEntityUpdate, db: AsyncSession = Depends(get_db)
):
    """Update a location entity"""
    return await retry_on_conflict(
        LocationEntityStore(db).update, entity_id, changes.model_dump(exclude_unset=True)
    )


@router.put("/{entity_id}/active-address", response_model=LocationEntityResponse)
async def set_active_address(
    entity_id: int, body: ActiveAddressUpdate, db: AsyncSession = Depends(get_db)
):
    """Point a location entity at an address (or detach it with null)"""
    return await retry_on_conflict(LocationEntityStore(db).set_active_address, entity_id, body.address_id)


@router.delete("/{entity_id}", status_code=204)
async def delete_location_entity(entity_id: int, db: AsyncSession = Depends(get_db)):
    """Delete a location entity"""
    await retry_on_conflict(LocationEntityStore(db).delete, entity_id)
