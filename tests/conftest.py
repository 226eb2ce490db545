"""Shared fixtures: a fresh SQLite database per test"""
import pytest
from httpx import ASGITransport, AsyncClient

from location_sync import database
from location_sync.services.address_store import AddressStore
from location_sync.services.location_entity_store import LocationEntityStore

MANILA = (14.5995, 120.9842)


@pytest.fixture
async def engine(tmp_path):
    database.init_engine(f"sqlite+aiosqlite:///{tmp_path / 'location_sync.db'}")
    await database.init_db()
    yield database.get_engine()
    await database.close_db()


@pytest.fixture
def session_factory(engine):
    return database.get_session_factory()


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def address_data():
    def build(latitude=MANILA[0], longitude=MANILA[1], **overrides):
        data = {
            "user_id": 1,
            "formatted_address": "Rizal Park, Ermita, Manila",
            "locality": "Manila",
            "administrative_area_level_1": "Metro Manila",
            "latitude": latitude,
            "longitude": longitude,
        }
        data.update(overrides)
        return data
    return build


@pytest.fixture
def make_address(session_factory, address_data):
    async def make(latitude=MANILA[0], longitude=MANILA[1], **overrides):
        async with session_factory() as session:
            return await AddressStore(session).create(address_data(latitude, longitude, **overrides))
    return make


@pytest.fixture
def make_entity(session_factory):
    counter = {"n": 0}

    async def make(active_address_id=None, **overrides):
        counter["n"] += 1
        data = {
            "operator_id": 1,
            "outlet_name": f"Outlet {counter['n']}",
            "outlet_code": f"OUTLET-{counter['n']:04d}",
        }
        if active_address_id is not None:
            data["active_address_id"] = active_address_id
        data.update(overrides)
        async with session_factory() as session:
            return await LocationEntityStore(session).create(data)
    return make


@pytest.fixture
def load_entity(session_factory):
    """Read an entity through a fresh session, as a later transaction would"""
    from location_sync.models import LocationEntity

    async def load(entity_id):
        async with session_factory() as session:
            return await session.get(LocationEntity, entity_id)
    return load


@pytest.fixture
def load_address(session_factory):
    from location_sync.models import Address

    async def load(address_id):
        async with session_factory() as session:
            return await session.get(Address, address_id)
    return load


@pytest.fixture
async def client(engine):
    from location_sync.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
