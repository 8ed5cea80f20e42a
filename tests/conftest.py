import pytest
from fastapi.testclient import TestClient

import main
from cart import Cart
from helpers import InMemoryStore, make_loyal, make_voucher


@pytest.fixture
def store():
    """In-memory store seeded with a 20% voucher and a $3 loyal discount."""
    return InMemoryStore(vouchers=[make_voucher()], loyal=[make_loyal()])


@pytest.fixture
def cart(store):
    return Cart(store, min_mobile_length=10)


@pytest.fixture
def client(store):
    """FastAPI test client wired to the in-memory store."""
    main.app.dependency_overrides[main.get_store] = lambda: store
    main._carts.clear()
    with TestClient(main.app) as test_client:
        yield test_client
    main.app.dependency_overrides.clear()
    main._carts.clear()
