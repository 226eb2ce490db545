"""
Address store - create/update/delete of canonical geocoded addresses.

Every coordinate-affecting write calls the synchronization engine inside the
same unit of work, so location entity caches never lag behind a commit.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from location_sync.config import get_settings
from location_sync.database import unit_of_work
from location_sync.exceptions import AddressReferenceError, NotFoundError, ValidationError
from location_sync.models import Address, LocationEntity
from location_sync.sync import engine as sync_engine
from location_sync.sync.representation import Coordinate, RepresentationAdapter, get_adapter
from location_sync.utils.datetime_utils import utcnow
from location_sync.utils.metrics import record_store_operation

logger = logging.getLogger(__name__)

DELETE_POLICY_NULLIFY = "nullify"
DELETE_POLICY_RESTRICT = "restrict"

# Fields callers may set; coordinates/last_geocoded_at/timestamps are derived
WRITABLE_FIELDS = {
    "user_id", "formatted_address", "google_place_id", "street_number", "route",
    "subpremise", "barangay", "locality", "administrative_area_level_2",
    "administrative_area_level_1", "country", "postal_code", "latitude", "longitude",
    "coordinate_source", "geocoding_accuracy", "address_type", "is_default",
    "is_verified", "notes",
}

# NOT NULL columns; an explicit null is rejected before any write
REQUIRED_FIELDS = {"user_id", "formatted_address", "address_type", "is_default", "is_verified"}

# Fields whose change must be propagated to location entity caches
SYNCED_FIELDS = ("latitude", "longitude", "is_verified")


class AddressStore:
    """Address CRUD with synchronous cache propagation"""

    def __init__(
        self,
        session: AsyncSession,
        adapter: Optional[RepresentationAdapter] = None,
        delete_policy: Optional[str] = None,
    ):
        self.session = session
        self.adapter = adapter or get_adapter()
        self.delete_policy = (delete_policy or get_settings().address_delete_policy).lower()
        if self.delete_policy not in (DELETE_POLICY_NULLIFY, DELETE_POLICY_RESTRICT):
            raise ValueError(f"Unknown address delete policy: {self.delete_policy!r}")

    async def get(self, address_id: int) -> Address:
        address = await self.session.get(Address, address_id)
        if address is None:
            raise NotFoundError(f"Address {address_id} not found")
        return address

    async def list(
        self, user_id: Optional[int] = None, limit: int = 100, offset: int = 0
    ) -> List[Address]:
        query = select(Address)
        if user_id is not None:
            query = query.where(Address.user_id == user_id)
        query = query.order_by(Address.id).offset(offset).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def create(self, data: Dict[str, Any]) -> Address:
        """Create an address. Raises ValidationError for bad fields or coordinates."""
        fields = self._writable(data)
        coordinate = Coordinate.from_values(fields.get("latitude"), fields.get("longitude"))
        fields.update(self._normalized_pair(coordinate))
        if not fields.get("formatted_address"):
            raise ValidationError("formatted_address is required")
        if fields.get("user_id") is None:
            raise ValidationError("user_id is required")

        async with unit_of_work(self.session):
            address = Address(**fields)
            self._derive_geometry(address, coordinate)
            self.session.add(address)
            await self.session.flush()

        record_store_operation("address", "create")
        logger.info(f"Address created: {address.id} (user {address.user_id})")
        return address

    async def update(self, address_id: int, changes: Dict[str, Any]) -> Address:
        """
        Apply changes to an address.

        When latitude, longitude or is_verified change, the caches of every
        entity pointing at this address are rewritten before commit.
        """
        fields = self._writable(changes)

        async with unit_of_work(self.session):
            address = await self.get(address_id)
            before = {name: getattr(address, name) for name in SYNCED_FIELDS}

            latitude = fields.get("latitude", address.latitude)
            longitude = fields.get("longitude", address.longitude)
            coordinate = Coordinate.from_values(latitude, longitude)
            if "latitude" in fields or "longitude" in fields:
                fields.update(self._normalized_pair(coordinate))

            for name, value in fields.items():
                setattr(address, name, value)
            if "latitude" in fields or "longitude" in fields:
                moved = (address.latitude, address.longitude) != (before["latitude"], before["longitude"])
                self._derive_geometry(address, coordinate, stamp=moved)
            await self.session.flush()

            if any(getattr(address, name) != before[name] for name in SYNCED_FIELDS):
                await sync_engine.on_address_coordinates_changed(
                    self.session,
                    address.id,
                    address.latitude,
                    address.longitude,
                    address.is_verified,
                    adapter=self.adapter,
                )

        record_store_operation("address", "update")
        logger.info(f"Address updated: {address_id} ({', '.join(sorted(fields)) or 'no fields'})")
        return address

    async def delete(self, address_id: int) -> int:
        """
        Delete an address without leaving dangling pointers.

        Under the 'nullify' policy, entities pointing at it are detached and
        their caches cleared in the same transaction; under 'restrict' the
        delete is refused. Returns the number of entities detached.
        """
        async with unit_of_work(self.session):
            address = await self.get(address_id)

            if self.delete_policy == DELETE_POLICY_RESTRICT:
                result = await self.session.execute(
                    select(func.count(LocationEntity.id)).where(LocationEntity.active_address_id == address_id)
                )
                in_use = result.scalar()
                if in_use:
                    raise AddressReferenceError(
                        f"Address {address_id} is the active address of {in_use} location entities"
                    )
                detached = 0
            else:
                detached = await sync_engine.on_address_deleted(self.session, address_id, adapter=self.adapter)

            await self.session.delete(address)
            await self.session.flush()

        record_store_operation("address", "delete")
        logger.info(f"Address deleted: {address_id} (detached {detached} location entities)")
        return detached

    def _writable(self, data: Dict[str, Any]) -> Dict[str, Any]:
        unknown = set(data) - WRITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Fields not writable on address: {', '.join(sorted(unknown))}")
        nulls = sorted(name for name in REQUIRED_FIELDS if name in data and data[name] is None)
        if nulls:
            raise ValidationError(f"Fields may not be null on address: {', '.join(nulls)}")
        return dict(data)

    def _normalized_pair(self, coordinate: Optional[Coordinate]) -> Dict[str, Optional[float]]:
        if coordinate is None:
            return {"latitude": None, "longitude": None}
        return {"latitude": coordinate.latitude, "longitude": coordinate.longitude}

    def _derive_geometry(self, address: Address, coordinate: Optional[Coordinate], stamp: bool = True) -> None:
        """Keep the read-only point document and geocode timestamp in step with lat/lng"""
        address.coordinates = self.adapter.encode(coordinate)
        if stamp and coordinate is not None:
            address.last_geocoded_at = utcnow()
