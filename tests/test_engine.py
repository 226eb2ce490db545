"""Synchronization engine: propagation, change guard, transactional failure"""
import pytest
from sqlalchemy import text
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import OperationalError

from location_sync.database import unit_of_work
from location_sync.exceptions import (
    AddressReferenceError,
    ConcurrencyConflict,
    CoordinateValidationError,
    SynchronizationError,
)
from location_sync.models import Address, LocationEntity
from location_sync.services.address_store import AddressStore
from location_sync.services.location_entity_store import LocationEntityStore
from location_sync.sync import engine as sync_engine
from location_sync.sync.representation import Coordinate, PairAdapter, PointAdapter


def assert_cache(entity, latitude, longitude, verified=False):
    assert entity.cached_latitude == latitude
    assert entity.cached_longitude == longitude
    if latitude is None:
        assert entity.cached_point is None
        assert entity.cached_point_format is None
    else:
        assert entity.cached_point == {"type": "Point", "coordinates": [longitude, latitude]}
        assert entity.cached_point_format == "point"
    assert entity.is_location_verified is verified


async def test_pointing_at_address_fills_cache(make_address, make_entity, load_entity):
    address = await make_address(14.5995, 120.9842)
    entity = await make_entity(active_address_id=address.id)

    stored = await load_entity(entity.id)
    assert_cache(stored, 14.5995, 120.9842)
    assert stored.last_location_sync is not None


async def test_address_change_propagates(session_factory, make_address, make_entity, load_entity):
    address = await make_address(14.5995, 120.9842)
    entity = await make_entity(active_address_id=address.id)

    async with session_factory() as session:
        await AddressStore(session).update(address.id, {"latitude": 14.6000, "longitude": 121.0000})

    assert_cache(await load_entity(entity.id), 14.6, 121.0)


async def test_clearing_pointer_clears_cache(session_factory, make_address, make_entity, load_entity):
    address = await make_address()
    entity = await make_entity(active_address_id=address.id)

    async with session_factory() as session:
        await LocationEntityStore(session).set_active_address(entity.id, None)

    stored = await load_entity(entity.id)
    assert stored.active_address_id is None
    assert_cache(stored, None, None)


async def test_shared_address_updates_all_entities(session_factory, make_address, make_entity, load_entity):
    address = await make_address(14.5995, 120.9842)
    first = await make_entity(active_address_id=address.id)
    second = await make_entity(active_address_id=address.id)
    bystander = await make_entity()

    async with session_factory() as session:
        async with unit_of_work(session):
            written = await sync_engine.on_address_coordinates_changed(session, address.id, 14.6, 121.0, False)
    assert written == 2

    assert_cache(await load_entity(first.id), 14.6, 121.0)
    assert_cache(await load_entity(second.id), 14.6, 121.0)
    assert_cache(await load_entity(bystander.id), None, None)


async def test_handlers_are_idempotent(session_factory, make_address, make_entity):
    address = await make_address(14.5995, 120.9842)
    entity = await make_entity(active_address_id=address.id)

    async with session_factory() as session:
        async with unit_of_work(session):
            again = await sync_engine.on_address_coordinates_changed(
                session, address.id, 14.5995, 120.9842, False
            )
            repointed = await sync_engine.on_active_address_changed(session, entity.id, None, address.id)
    assert again == 0
    assert repointed == 0


async def test_same_pointer_is_a_noop():
    assert await sync_engine.on_active_address_changed(None, 7, 3, 3) == 0
    assert await sync_engine.on_active_address_changed(None, 7, None, None) == 0


async def test_stale_pointer_event_writes_nothing(session_factory, make_address, make_entity, load_entity):
    home = await make_address(14.5995, 120.9842)
    elsewhere = await make_address(10.3157, 123.8854)
    entity = await make_entity(active_address_id=home.id)

    async with session_factory() as session:
        async with unit_of_work(session):
            written = await sync_engine.on_active_address_changed(session, entity.id, None, elsewhere.id)
    assert written == 0
    assert_cache(await load_entity(entity.id), 14.5995, 120.9842)


async def test_verified_flag_follows_address(session_factory, make_address, make_entity, load_entity):
    address = await make_address()
    entity = await make_entity(active_address_id=address.id)

    async with session_factory() as session:
        await AddressStore(session).update(address.id, {"is_verified": True})

    assert (await load_entity(entity.id)).is_location_verified is True


async def test_null_coordinates_clear_cache(session_factory, make_address, make_entity, load_entity):
    address = await make_address()
    entity = await make_entity(active_address_id=address.id)

    async with session_factory() as session:
        await AddressStore(session).update(address.id, {"latitude": None, "longitude": None, "is_verified": True})

    # verified without coordinates is not a verified location
    assert_cache(await load_entity(entity.id), None, None, verified=False)


async def test_unrelated_address_fields_do_not_touch_cache(session_factory, make_address, make_entity, load_entity):
    address = await make_address()
    entity = await make_entity(active_address_id=address.id)
    synced_at = (await load_entity(entity.id)).last_location_sync

    async with session_factory() as session:
        await AddressStore(session).update(address.id, {"notes": "Gate 3", "postal_code": "1000"})

    assert (await load_entity(entity.id)).last_location_sync == synced_at


async def test_invalid_coordinates_write_nothing(session_factory, make_address, make_entity, load_address, load_entity):
    address = await make_address(14.5995, 120.9842)
    entity = await make_entity(active_address_id=address.id)

    async with session_factory() as session:
        with pytest.raises(CoordinateValidationError):
            await AddressStore(session).update(address.id, {"latitude": 91.0})
        with pytest.raises(CoordinateValidationError):
            await AddressStore(session).update(address.id, {"longitude": None})

    assert (await load_address(address.id)).latitude == 14.5995
    assert_cache(await load_entity(entity.id), 14.5995, 120.9842)


async def test_failed_sync_rolls_back_address_write(
    monkeypatch, session_factory, make_address, make_entity, load_address, load_entity
):
    address = await make_address(14.5995, 120.9842)
    entity = await make_entity(active_address_id=address.id)

    async def broken_write_cache(*args, **kwargs):
        raise SynchronizationError("cache unavailable")

    monkeypatch.setattr(sync_engine, "write_cache", broken_write_cache)

    async with session_factory() as session:
        with pytest.raises(SynchronizationError):
            await AddressStore(session).update(address.id, {"latitude": 14.6, "longitude": 121.0})

    assert (await load_address(address.id)).latitude == 14.5995
    assert_cache(await load_entity(entity.id), 14.5995, 120.9842)


async def test_failed_sync_rolls_back_pointer_change(
    monkeypatch, session_factory, make_address, make_entity, load_entity
):
    home = await make_address(14.5995, 120.9842)
    elsewhere = await make_address(10.3157, 123.8854)
    entity = await make_entity(active_address_id=home.id)

    async def broken_write_cache(*args, **kwargs):
        raise SynchronizationError("cache unavailable")

    monkeypatch.setattr(sync_engine, "write_cache", broken_write_cache)

    async with session_factory() as session:
        with pytest.raises(SynchronizationError):
            await LocationEntityStore(session).set_active_address(entity.id, elsewhere.id)

    stored = await load_entity(entity.id)
    assert stored.active_address_id == home.id
    assert_cache(stored, 14.5995, 120.9842)


class _FailingSession:
    def __init__(self, message):
        self.message = message

    async def execute(self, statement):
        raise OperationalError("UPDATE location_entity", {}, Exception(self.message))


async def test_write_cache_wraps_storage_errors():
    with pytest.raises(SynchronizationError):
        await sync_engine.write_cache(
            _FailingSession("disk I/O error"),
            [LocationEntity.id == 1],
            Coordinate(1.0, 2.0),
            trigger=sync_engine.TRIGGER_ADDRESS_CHANGED,
        )


async def test_write_cache_reports_conflicts():
    with pytest.raises(ConcurrencyConflict):
        await sync_engine.write_cache(
            _FailingSession("database is locked"),
            [LocationEntity.id == 1],
            Coordinate(1.0, 2.0),
            trigger=sync_engine.TRIGGER_ADDRESS_CHANGED,
        )


async def test_resolve_source_missing_address(session):
    with pytest.raises(AddressReferenceError):
        await sync_engine.resolve_source(session, 12345)
    assert await sync_engine.resolve_source(session, None) == (None, False)


def test_source_is_read_under_share_lock():
    sql = str(sync_engine.source_query(7).compile(dialect=postgresql.dialect()))
    assert sql.rstrip().endswith("FOR SHARE")
    assert "address.latitude" in sql


async def test_resolve_source_reads_row_not_session_copy(session, session_factory, make_address):
    address = await make_address(14.5995, 120.9842)
    held = await session.get(Address, address.id)
    await session.commit()

    async with session_factory() as other:
        await other.execute(
            text("UPDATE address SET latitude = 14.6, longitude = 121.0, is_verified = 1 WHERE id = :id"),
            {"id": address.id},
        )
        await other.commit()

    coordinate, is_verified = await sync_engine.resolve_source(session, address.id)
    assert held.latitude == 14.5995
    assert (coordinate.latitude, coordinate.longitude) == (14.6, 121.0)
    assert is_verified is True


def test_desired_cache_per_adapter():
    coordinate = Coordinate(14.5995, 120.9842)
    point = sync_engine.desired_cache(coordinate, True, PointAdapter())
    pair = sync_engine.desired_cache(coordinate, True, PairAdapter())

    assert point["cached_point"] == {"type": "Point", "coordinates": [120.9842, 14.5995]}
    assert pair["cached_point"] == {"latitude": 14.5995, "longitude": 120.9842}
    assert pair["cached_point_format"] == "pair"
    assert sync_engine.desired_cache(None, True, PointAdapter())["is_location_verified"] is False
