"""
Synchronization engine for the location entity coordinate cache.

Address is always the source of truth; data only flows Address -> LocationEntity.
Handlers run inside the caller's transaction and never commit: if a handler
fails, the triggering write fails with it. Every cache write is change-guarded
(rows whose cache already equals the source are not touched), which makes the
handlers idempotent and keeps downstream listeners from re-firing.
"""
import logging
from typing import Any, Dict, Iterable, Optional, Tuple

from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from location_sync.database import is_conflict_error
from location_sync.exceptions import AddressReferenceError, ConcurrencyConflict, SynchronizationError
from location_sync.models import Address, LocationEntity
from location_sync.sync.representation import Coordinate, RepresentationAdapter, get_adapter
from location_sync.utils.datetime_utils import utcnow
from location_sync.utils.metrics import record_cache_write, record_sync_failure

logger = logging.getLogger(__name__)

TRIGGER_ADDRESS_CHANGED = "address_changed"
TRIGGER_ACTIVE_ADDRESS_CHANGED = "active_address_changed"
TRIGGER_ADDRESS_DELETED = "address_deleted"
TRIGGER_RECONCILIATION = "reconciliation"


def desired_cache(
    coordinate: Optional[Coordinate],
    is_verified: bool,
    adapter: RepresentationAdapter,
) -> Dict[str, Any]:
    """Cache column values for a source coordinate (None clears the whole cache)."""
    if coordinate is None:
        return {
            "cached_latitude": None,
            "cached_longitude": None,
            "cached_point": None,
            "cached_point_format": None,
            "is_location_verified": False,
        }
    return {
        "cached_latitude": coordinate.latitude,
        "cached_longitude": coordinate.longitude,
        "cached_point": adapter.encode(coordinate),
        "cached_point_format": adapter.name,
        "is_location_verified": bool(is_verified),
    }


def _cache_differs(values: Dict[str, Any]):
    # cached_point is a pure function of (latitude, longitude, format), so comparing those is enough
    return or_(
        LocationEntity.cached_latitude.is_distinct_from(values["cached_latitude"]),
        LocationEntity.cached_longitude.is_distinct_from(values["cached_longitude"]),
        LocationEntity.cached_point_format.is_distinct_from(values["cached_point_format"]),
        LocationEntity.is_location_verified.is_distinct_from(values["is_location_verified"]),
    )


async def write_cache(
    session: AsyncSession,
    criteria: Iterable[Any],
    coordinate: Optional[Coordinate],
    is_verified: bool = False,
    *,
    trigger: str,
    adapter: Optional[RepresentationAdapter] = None,
    force: bool = False,
    extra_values: Optional[Dict[str, Any]] = None,
) -> int:
    """
    Write the cache of every entity matching criteria in one UPDATE statement.

    Unless force is set, rows whose cache already equals the new value are
    excluded by the WHERE clause. Returns the number of rows written.

    Raises:
        ConcurrencyConflict: the statement was aborted by a concurrent writer
        SynchronizationError: any other storage failure
    """
    adapter = adapter or get_adapter()
    values = desired_cache(coordinate, is_verified, adapter)

    stmt = update(LocationEntity).where(*criteria)
    if not force:
        stmt = stmt.where(_cache_differs(values))

    now = utcnow()
    values.update(last_location_sync=now, updated_at=now)
    if extra_values:
        values.update(extra_values)

    stmt = (
        stmt.values(**values)
        .returning(LocationEntity.id)
        .execution_options(synchronize_session=False)
    )
    try:
        result = await session.execute(stmt)
        written = result.scalars().all()
        await _refresh_loaded(session, written)
    except SQLAlchemyError as e:
        record_sync_failure(trigger, type(e).__name__)
        if is_conflict_error(e):
            raise ConcurrencyConflict(f"Cache write ({trigger}) aborted by a concurrent write") from e
        raise SynchronizationError(f"Cache write ({trigger}) failed: {e}") from e

    record_cache_write(trigger, len(written))
    if written:
        logger.debug(f"Cache written ({trigger}) for location entities {written}")
    return len(written)


async def _refresh_loaded(session: AsyncSession, entity_ids: Iterable[int]) -> None:
    """Reload written entities that the session already holds"""
    for entity_id in entity_ids:
        entity = session.identity_map.get(Session.identity_key(LocationEntity, entity_id))
        if entity is not None:
            await session.refresh(entity)


def source_query(address_id: int):
    """
    SELECT of an address's synced columns under a share lock.

    The lock is held until the caller's transaction ends, so a concurrent
    coordinate update either commits before the read (and is seen) or waits
    until the cache written from this read is committed (and then propagates
    over it). Dialects without row locks (SQLite) drop the clause.
    """
    return (
        select(Address.latitude, Address.longitude, Address.is_verified)
        .where(Address.id == address_id)
        .with_for_update(read=True)
    )


async def resolve_source(
    session: AsyncSession, address_id: Optional[int]
) -> Tuple[Optional[Coordinate], bool]:
    """
    Current (coordinate, is_verified) of an address, (None, False) for a null pointer.

    Reads the row under a share lock rather than the session's cached instance.

    Raises:
        AddressReferenceError: address_id does not exist
    """
    if address_id is None:
        return None, False

    result = await session.execute(source_query(address_id))
    source = result.one_or_none()
    if source is None:
        raise AddressReferenceError(f"Address {address_id} does not exist")

    coordinate = Coordinate.from_values(source.latitude, source.longitude)
    return coordinate, bool(source.is_verified) if coordinate else False


async def on_address_coordinates_changed(
    session: AsyncSession,
    address_id: int,
    new_latitude: Optional[float],
    new_longitude: Optional[float],
    is_verified: Optional[bool] = None,
    *,
    adapter: Optional[RepresentationAdapter] = None,
) -> int:
    """
    Propagate an address's coordinates to every entity pointing at it.

    One batched, change-guarded UPDATE. Null coordinates clear the caches.
    is_verified defaults to the address's current flag.
    Returns the number of entity rows written.
    """
    # Validate before anything reaches the cache
    coordinate = Coordinate.from_values(new_latitude, new_longitude)

    await session.flush()
    if is_verified is None:
        address = await session.get(Address, address_id)
        is_verified = bool(address.is_verified) if address is not None else False

    written = await write_cache(
        session,
        [LocationEntity.active_address_id == address_id],
        coordinate,
        is_verified,
        trigger=TRIGGER_ADDRESS_CHANGED,
        adapter=adapter,
    )
    if written:
        logger.info(f"Address {address_id} coordinates propagated to {written} location entities")
    return written


async def on_active_address_changed(
    session: AsyncSession,
    entity_id: int,
    old_address_id: Optional[int],
    new_address_id: Optional[int],
    *,
    adapter: Optional[RepresentationAdapter] = None,
) -> int:
    """
    Re-derive one entity's cache after its active address pointer changed.

    No-op when the pointer did not change. A null pointer, or an address
    without coordinates, clears the cache. Only writes when the entity really
    points at new_address_id. Returns the number of rows written (0 or 1).
    """
    if old_address_id == new_address_id:
        return 0

    await session.flush()
    coordinate, is_verified = await resolve_source(session, new_address_id)

    if new_address_id is None:
        pointer_matches = LocationEntity.active_address_id.is_(None)
    else:
        pointer_matches = LocationEntity.active_address_id == new_address_id

    written = await write_cache(
        session,
        [LocationEntity.id == entity_id, pointer_matches],
        coordinate,
        is_verified,
        trigger=TRIGGER_ACTIVE_ADDRESS_CHANGED,
        adapter=adapter,
    )
    logger.info(
        f"Location entity {entity_id} active address {old_address_id} -> {new_address_id} "
        f"({'cache written' if written else 'cache unchanged'})"
    )
    return written


async def on_address_deleted(
    session: AsyncSession,
    address_id: int,
    *,
    adapter: Optional[RepresentationAdapter] = None,
) -> int:
    """
    Clear pointer and cache of every entity pointing at an address about to be deleted.

    Returns the number of entities detached.
    """
    await session.flush()
    detached = await write_cache(
        session,
        [LocationEntity.active_address_id == address_id],
        None,
        trigger=TRIGGER_ADDRESS_DELETED,
        adapter=adapter,
        force=True,
        extra_values={"active_address_id": None},
    )
    if detached:
        logger.info(f"Address {address_id} deleted: detached {detached} location entities")
    return detached
