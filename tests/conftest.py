import pytest

from vista.modules.assets.repository import AssetRepository
from vista.modules.catalog.facade import CatalogFacade
from vista.modules.catalog.repository import CatalogRepository
from vista.stores.memory import MemoryBlobStore, MemoryDocumentStore


class FakeClock:
    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now


@pytest.fixture
def document_store():
    return MemoryDocumentStore()


@pytest.fixture
def blob_store():
    return MemoryBlobStore("test-bucket")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def catalog(document_store):
    return CatalogRepository(document_store)


@pytest.fixture
def assets(blob_store, clock):
    return AssetRepository(blob_store, clock_ms=clock)


@pytest.fixture
def facade(catalog, assets):
    return CatalogFacade(catalog, assets)


@pytest.fixture
async def floor_id(catalog):
    return await catalog.floors.create({"number": 1, "name": "Ground", "status": "ACTIVE"})


@pytest.fixture
async def apartment_id(catalog, floor_id):
    return await catalog.apartments.create(
        {"floor_id": floor_id, "lot_number": "A101", "area": 75.5, "price": 150000, "status": "AVAILABLE"}
    )
