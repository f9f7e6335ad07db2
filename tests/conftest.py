"""Shared test fixtures and configuration."""
from __future__ import annotations

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from menusearch.cache import InMemoryCache
from menusearch.config import Settings
from menusearch.container import ServiceContainer
from menusearch.main import create_app
from menusearch.models import Product, Venue
from menusearch.records import RecordsClient

from fake_engine import FakeEngine

VENUES = [
    {
        "id": "100",
        "name": "La Parrilla",
        "description": "Carnes a la brasa",
        "address": "Calle Mayor 1",
        "cuisine": "Argentina",
        "rating": 4.5,
        "priceRange": 2,
        "imageUrl": "https://example.com/parrilla.jpg",
    },
    {
        "id": "101",
        "name": "Pizzeria Napoli",
        "description": "Pizza al horno de leña",
        "address": "Via Roma 7",
        "cuisine": "Italiana",
        "rating": 4.0,
        "priceRange": 1,
        "imageUrl": "https://example.com/napoli.jpg",
    },
]

PRODUCTS = [
    {
        "id": "1",
        "restaurantId": "100",
        "name": "Burger Deluxe",
        "description": "Una deliciosa hamburguesa con queso y tocino",
        "price": 10.99,
        "category": "Hamburguesas",
        "featured": True,
        "available": True,
    },
    {
        "id": "2",
        "restaurantId": "101",
        "name": "Pizza Margarita",
        "description": "",
        "price": 12.99,
        "category": "Pizzas",
        "featured": False,
        "available": True,
    },
    {
        "id": "3",
        "restaurantId": "101",
        "name": "Pizza Cuatro Quesos",
        "description": "Mozzarella, gorgonzola, parmesano y provolone",
        "price": 14.5,
        "category": "Pizzas",
        "featured": False,
        "available": False,
    },
]


@pytest.fixture
def settings():
    return Settings(
        cache_enabled=True,
        cache_ttl_seconds=60,
        schema_retry_attempts=3,
        schema_retry_backoff=0,
        default_page_size=20,
        max_page_size=50,
        records_api_url="http://records.test",
    )


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def record_store():
    """Mutable copy of the system of record served by the mock transport."""
    return {"venues": [dict(v) for v in VENUES], "products": [dict(p) for p in PRODUCTS], "fail": False}


@pytest.fixture
def records(record_store):
    def handler(request: httpx.Request) -> httpx.Response:
        if record_store["fail"]:
            return httpx.Response(500, json={"error": "boom"})
        if request.url.path == "/api/restaurants":
            return httpx.Response(200, json=record_store["venues"])
        if request.url.path == "/api/menu-items":
            return httpx.Response(200, json={"results": record_store["products"]})
        return httpx.Response(404)

    client = httpx.Client(base_url="http://records.test", transport=httpx.MockTransport(handler))
    return RecordsClient("http://records.test", client=client)


@pytest.fixture
def container(settings, engine, records):
    services = ServiceContainer(settings, engine, InMemoryCache(), records)
    services.startup()
    return services


@pytest.fixture
def seeded(container):
    """Container whose indices hold the sample venues and products."""
    for venue in VENUES:
        container.indexing.index_venue(Venue.model_validate(venue))
    for product in PRODUCTS:
        container.indexing.index_product(Product.model_validate(product))
    return container


@pytest.fixture
async def client(seeded, settings):
    app = create_app(seeded, settings)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
