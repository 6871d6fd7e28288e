import asyncio
import os
from datetime import datetime, timezone

# config is read at import time
os.environ["STORE_BACKEND"] = "memory"
os.environ["ADMIN_USERNAMES"] = "admin@example.com"

import httpx
import pytest
from fastapi.testclient import TestClient

from storefront.main import create_app
from storefront.memory_store import MemoryStore
from storefront.oauth import TOKEN_URL, USERINFO_URL, GoogleOAuthClient
from storefront.schemas import DiscountKind, ProductCreate, ProductOut, PromoCodeOut

# name -> (price in minor units, stock)
CATALOG = {
    "A": (1000, 10),
    "B": (500, 10),
    "X": (1500, 2),
    "LAST": (4999, 1),
}

PROMOS = [
    PromoCodeOut(code="SAVE10", discount_kind=DiscountKind.PERCENT, discount_value=10, active=True),
    PromoCodeOut(code="MINUS20", discount_kind=DiscountKind.AMOUNT, discount_value=2000, active=True),
    PromoCodeOut(code="OLD50", discount_kind=DiscountKind.PERCENT, discount_value=50, active=False),
]


def make_product(product_id, price, quantity=10, name=None):
    return ProductOut(
        id=product_id,
        name=name or f"product-{product_id}",
        price=price,
        quantity=quantity,
        created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )


async def seed(store):
    ids = {}
    category_id = await store.create_category("Misc")
    for name, (price, quantity) in CATALOG.items():
        ids[name] = await store.create_product(ProductCreate(
            producer="ACME", name=name, price=price, quantity=quantity, category_id=category_id,
        ))
    for promo in PROMOS:
        await store.create_promo_code(promo)
    return ids


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def catalog(store):
    return asyncio.run(seed(store))


def google_handler(request: httpx.Request) -> httpx.Response:
    if str(request.url) == TOKEN_URL:
        if b"code=bad" in request.content:
            return httpx.Response(400, json={"error": "invalid_grant"})
        return httpx.Response(200, json={"access_token": "tok-123", "token_type": "Bearer"})
    if str(request.url) == USERINFO_URL:
        assert request.headers["Authorization"] == "Bearer tok-123"
        return httpx.Response(200, json={"email": "oauth.user@example.com", "name": "OAuth User"})
    return httpx.Response(404)


@pytest.fixture
def oauth():
    return GoogleOAuthClient(
        client_id="client-id",
        client_secret="client-secret",
        redirect_uri="http://testserver/callback",
        transport=httpx.MockTransport(google_handler),
    )


@pytest.fixture
def client(store, catalog, oauth):
    return TestClient(create_app(store=store, oauth=oauth))


def register_and_login(client, username, password="password123", display_name="Tester"):
    r = client.post("/register", json={"username": username, "display_name": display_name, "password": password},
                    follow_redirects=False)
    assert r.status_code == 303
    r = client.post("/login", json={"username": username, "password": password}, follow_redirects=False)
    assert r.status_code == 303
    return r
