import pytest

from placedir.app.use_cases.listing_lifecycle import ListingLifecycleUseCase
from placedir.app.use_cases.manage_places import ManagePlacesUseCase
from placedir.app.use_cases.search_places import SearchPlacesUseCase
from placedir.app.use_cases.user_collections import UserCollectionsUseCase
from placedir.core.entities import Principal, Role
from placedir.infrastructure.persistence.sqlite.collections_repository import (
    SQLiteCollectionsRepository,
)
from placedir.infrastructure.persistence.sqlite.db import make_engine
from placedir.infrastructure.persistence.sqlite.listing_repository import SQLiteListingRepository
from placedir.infrastructure.persistence.sqlite.place_repository import SQLitePlaceRepository

ALEXANDRIA = {"lng": 29.9187, "lat": 31.2001}
CAIRO = {"lng": 31.2357, "lat": 30.0444}


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(str(tmp_path / "places.db"))
    yield engine
    engine.dispose()


@pytest.fixture
def places(engine):
    return SQLitePlaceRepository(engine=engine)


@pytest.fixture
def listings(engine):
    return SQLiteListingRepository(engine=engine)


@pytest.fixture
def collections(engine):
    return SQLiteCollectionsRepository(engine=engine)


@pytest.fixture
def lifecycle(places, listings, collections):
    return ListingLifecycleUseCase(places, listings, collections)


@pytest.fixture
def search(places):
    return SearchPlacesUseCase(places)


@pytest.fixture
def manage(places, listings, collections):
    return ManagePlacesUseCase(places, listings, collections)


@pytest.fixture
def user_collections(places, collections):
    return UserCollectionsUseCase(places, collections)


@pytest.fixture
def admin():
    return Principal(id="admin-1", role=Role.ADMIN)


@pytest.fixture
def owner():
    return Principal(id="owner-1", role=Role.OWNER)


@pytest.fixture
def other_owner():
    return Principal(id="owner-2", role=Role.OWNER)


@pytest.fixture
def user():
    return Principal(id="user-1", role=Role.USER)


@pytest.fixture
def make_data():
    def _make(**overrides):
        data = {
            "name": "Fish Market",
            "city": "Alexandria",
            "category": ["restaurant", "seafood"],
            "priceLevel": 2,
            "ratingsAverage": 4.5,
            "ratingsQuantity": 120,
            "address": "26 July St",
            "location": dict(ALEXANDRIA),
        }
        data.update(overrides)
        return data

    return _make


@pytest.fixture
def published(places, make_data):
    """Create a published place directly in the store."""

    def _create(**overrides):
        return places.create(make_data(**overrides), published=True)

    return _create
