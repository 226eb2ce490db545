"""
Address API Routes
CRUD for addresses; coordinate changes propagate to location entity caches
before the response is returned.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from location_sync.database import get_db
from location_sync.schemas.address import AddressCreate, AddressUpdate, AddressResponse, AddressDeleteResponse
from location_sync.services.address_store import AddressStore
from location_sync.utils.retry import retry_on_conflict

router = APIRouter()


@router.get("/", response_model=List[AddressResponse])
async def list_addresses(
    user_id: Optional[int] = Query(None, description="Filter by owning user"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db)
):
    """List addresses"""
    return await AddressStore(db).list(user_id=user_id, limit=limit, offset=offset)


@router.get("/{address_id}", response_model=AddressResponse)
async def get_address(address_id: int, db: AsyncSession = Depends(get_db)):
    """Get a specific address"""
    return await AddressStore(db).get(address_id)


@router.post("/", response_model=AddressResponse, status_code=201)
async def create_address(address: AddressCreate, db: AsyncSession = Depends(get_db)):
    """Create a new address"""
    return await retry_on_conflict(AddressStore(db).create, address.model_dump())


@router.patch("/{address_id}", response_model=AddressResponse)
async def update_address(address_id: int, changes: AddressUpdate, db: AsyncSession = Depends(get_db)):
    """Update an address; only fields present in the body are changed"""
    return await retry_on_conflict(
        AddressStore(db).update, address_id, changes.model_dump(exclude_unset=True)
    )


@router.delete("/{address_id}", response_model=AddressDeleteResponse)
async def delete_address(address_id: int, db: AsyncSession = Depends(get_db)):
    """Delete an address, detaching (or refusing, per policy) entities that point at it"""
    detached = await retry_on_conflict(AddressStore(db).delete, address_id)
    return AddressDeleteResponse(id=address_id, detached_entities=detached)
