"""
Location entity store - outlets and their active address pointer.

The coordinate cache columns are never written here; pointer changes go
through the synchronization engine inside the same unit of work.
"""
import logging
import re
import time
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from location_sync.database import unit_of_work
from location_sync.exceptions import AddressReferenceError, NotFoundError, ValidationError
from location_sync.models import Address, LocationEntity, CACHE_FIELDS
from location_sync.sync import engine as sync_engine
from location_sync.sync.representation import RepresentationAdapter, get_adapter
from location_sync.utils.metrics import record_store_operation

logger = logging.getLogger(__name__)

WRITABLE_FIELDS = {"operator_id", "outlet_name", "outlet_code", "is_active", "active_address_id"}

# NOT NULL columns; an explicit null is rejected before any write
REQUIRED_FIELDS = {"operator_id", "outlet_name", "outlet_code", "is_active"}


def generate_outlet_code(outlet_name: str, locality: Optional[str] = None) -> str:
    """Outlet code like 'JOLLIB-MAN-4821' from the outlet name and city"""
    name = re.sub(r'[^a-zA-Z0-9]', '', outlet_name)[:6].upper()
    stamp = str(int(time.time() * 1000))[-4:]
    if locality:
        city = re.sub(r'[^a-zA-Z0-9]', '', locality)[:3].upper()
        return f"{name}-{city}-{stamp}"
    return f"{name}-{stamp}"


class LocationEntityStore:
    """Location entity CRUD; the active address pointer drives the cache"""

    def __init__(self, session: AsyncSession, adapter: Optional[RepresentationAdapter] = None):
        self.session = session
        self.adapter = adapter or get_adapter()

    async def get(self, entity_id: int) -> LocationEntity:
        entity = await self.session.get(LocationEntity, entity_id)
        if entity is None:
            raise NotFoundError(f"Location entity {entity_id} not found")
        return entity

    async def list(
        self,
        operator_id: Optional[int] = None,
        active_address_id: Optional[int] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[LocationEntity]:
        query = select(LocationEntity)
        if operator_id is not None:
            query = query.where(LocationEntity.operator_id == operator_id)
        if active_address_id is not None:
            query = query.where(LocationEntity.active_address_id == active_address_id)
        query = query.order_by(LocationEntity.id).offset(offset).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def create(self, data: Dict[str, Any]) -> LocationEntity:
        """Create an entity; an initial active_address_id syncs the cache before commit."""
        fields = self._writable(data)
        if not fields.get("outlet_name"):
            raise ValidationError("outlet_name is required")
        if fields.get("operator_id") is None:
            raise ValidationError("operator_id is required")
        address_id = fields.pop("active_address_id", None)

        async with unit_of_work(self.session):
            address = await self._require_address(address_id)
            if not fields.get("outlet_code"):
                fields["outlet_code"] = generate_outlet_code(
                    fields["outlet_name"], address.locality if address is not None else None
                )

            entity = LocationEntity(**fields)
            self.session.add(entity)
            await self.session.flush()

            if address_id is not None:
                entity.active_address_id = address_id
                await sync_engine.on_active_address_changed(
                    self.session, entity.id, None, address_id, adapter=self.adapter
                )

        record_store_operation("location_entity", "create")
        logger.info(f"Location entity created: {entity.id} ({entity.outlet_code})")
        return entity

    async def update(self, entity_id: int, changes: Dict[str, Any]) -> LocationEntity:
        """Update non-cache fields; an active_address_id change is handled like set_active_address."""
        fields = self._writable(changes)
        has_pointer = "active_address_id" in fields
        address_id = fields.pop("active_address_id", None)

        async with unit_of_work(self.session):
            entity = await self.get(entity_id)
            for name, value in fields.items():
                setattr(entity, name, value)
            if has_pointer:
                await self._point_at(entity, address_id)
            await self.session.flush()

        record_store_operation("location_entity", "update")
        logger.info(f"Location entity updated: {entity_id}")
        return entity

    async def set_active_address(self, entity_id: int, address_id: Optional[int]) -> LocationEntity:
        """
        Point an entity at an address (or at nothing) and re-derive its cache.

        Raises:
            NotFoundError: unknown entity
            AddressReferenceError: address_id does not exist
        """
        async with unit_of_work(self.session):
            entity = await self.get(entity_id)
            await self._point_at(entity, address_id)

        record_store_operation("location_entity", "set_active_address")
        return entity

    async def delete(self, entity_id: int) -> None:
        async with unit_of_work(self.session):
            entity = await self.get(entity_id)
            await self.session.delete(entity)
            await self.session.flush()

        record_store_operation("location_entity", "delete")
        logger.info(f"Location entity deleted: {entity_id}")

    async def _point_at(self, entity: LocationEntity, address_id: Optional[int]) -> None:
        await self._require_address(address_id)
        old_address_id = entity.active_address_id
        entity.active_address_id = address_id
        await sync_engine.on_active_address_changed(
            self.session, entity.id, old_address_id, address_id, adapter=self.adapter
        )

    async def _require_address(self, address_id: Optional[int]) -> Optional[Address]:
        if address_id is None:
            return None
        address = await self.session.get(Address, address_id)
        if address is None:
            raise AddressReferenceError(f"Address {address_id} does not exist")
        return address

    def _writable(self, data: Dict[str, Any]) -> Dict[str, Any]:
        cache_fields = set(data) & set(CACHE_FIELDS)
        if cache_fields:
            raise ValidationError(
                f"Cache fields are maintained by synchronization: {', '.join(sorted(cache_fields))}"
            )
        unknown = set(data) - WRITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Fields not writable on location entity: {', '.join(sorted(unknown))}")
        nulls = sorted(name for name in REQUIRED_FIELDS if name in data and data[name] is None)
        if nulls:
            raise ValidationError(f"Fields may not be null on location entity: {', '.join(nulls)}")
        return dict(data)
