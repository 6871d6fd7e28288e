import asyncio

import httpx
from fastapi.testclient import TestClient

from storefront.auth import safe_return_url
from storefront.cookies import CART_COOKIE, USER_COOKIE, sign
from storefront.errors import StoreUnavailable
from storefront.main import create_app
from storefront.memory_store import MemoryStore
from storefront.oauth import GoogleOAuthClient

from conftest import register_and_login


def get_product(store, product_id):
    return asyncio.run(store.get_product(product_id))


def add(client, product_id, times=1):
    for _ in range(times):
        r = client.post(f"/cart/add/{product_id}", follow_redirects=False)
        assert r.status_code == 303


# 👤 auth

def test_register_same_username_twice_keeps_one_user(client, store):
    payload = {"username": "alice", "display_name": "Alice", "password": "password123"}
    first = client.post("/register", json=payload, follow_redirects=False)
    second = client.post("/register", json=payload, follow_redirects=False)

    assert first.status_code == 303
    assert first.headers["location"] == "/login"
    assert second.status_code == 409
    users = asyncio.run(store.list_users())
    assert [u.username for u in users] == ["alice"]
    assert users[0].password_hash != "password123"


def test_register_rejects_short_password(client):
    r = client.post("/register", json={"username": "bob", "display_name": "Bob", "password": "short"})
    assert r.status_code == 422


def test_login_wrong_password(client):
    register_and_login(client, "alice")
    client.cookies.clear()
    r = client.post("/login", json={"username": "alice", "password": "nope-nope"})
    assert r.status_code == 401
    assert r.json()["message"] == "Wrong username or password"
    assert r.json()["google"].startswith("https://accounts.google.com/")


def test_login_redirects_to_local_return_url_only(client):
    client.post("/register", json={"username": "alice", "display_name": "A", "password": "password123"})
    creds = {"username": "alice", "password": "password123"}

    r = client.post("/login?returnUrl=/account", json=creds, follow_redirects=False)
    assert r.headers["location"] == "/account"

    r = client.post("/login?returnUrl=https://evil.example/", json=creds, follow_redirects=False)
    assert r.headers["location"] == "/"

    for url in ("//evil.example/", "/\\evil.example/", "/\\/evil.example/"):
        r = client.post("/login", params={"returnUrl": url}, json=creds, follow_redirects=False)
        assert r.headers["location"] == "/", url


def test_account_requires_login(client):
    r = client.get("/account", follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/login?returnUrl=%2Faccount"


def test_forged_user_cookie_is_ignored(client):
    register_and_login(client, "alice")
    token = client.cookies.get(USER_COOKIE)
    client.cookies.clear()
    client.cookies.set(USER_COOKIE, token + "x")
    assert client.get("/account", follow_redirects=False).status_code == 303


def test_cookie_for_unknown_user_is_rejected(client):
    client.cookies.set(USER_COOKIE, sign("ghost"))
    assert client.get("/account", follow_redirects=False).status_code == 303


def test_logout_clears_identity(client):
    register_and_login(client, "alice")
    assert client.get("/account").json()["user"]["username"] == "alice"

    r = client.get("/logout", follow_redirects=False)
    assert r.status_code == 303
    assert client.get("/account", follow_redirects=False).status_code == 303


def test_admin_panel_is_for_admins_only(client):
    register_and_login(client, "alice")
    r = client.get("/admin", follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/login?returnUrl=%2Fadmin"

    client.cookies.clear()
    register_and_login(client, "admin@example.com")
    r = client.get("/admin")
    assert r.status_code == 200
    assert {p["code"] for p in r.json()["promo_codes"]} == {"SAVE10", "MINUS20", "OLD50"}


def test_oauth_callback_provisions_user_once(client, store):
    for _ in range(2):
        client.cookies.clear()
        r = client.get("/callback?code=good", follow_redirects=False)
        assert r.status_code == 303
        assert r.headers["location"] == "/"

    users = asyncio.run(store.list_users())
    assert [(u.username, u.display_name, u.password_hash) for u in users] == [
        ("oauth.user@example.com", "OAuth User", None),
    ]
    assert client.get("/account").json()["user"]["username"] == "oauth.user@example.com"

    # no password for OAuth-only accounts
    client.cookies.clear()
    r = client.post("/login", json={"username": "oauth.user@example.com", "password": ""})
    assert r.status_code == 401


def test_oauth_failure_goes_back_to_login(client, store):
    r = client.get("/callback?code=bad", follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/login"
    assert asyncio.run(store.list_users()) == []


# 🛒 cart & promo

def test_cart_total_with_promo(client, catalog):
    add(client, catalog["A"], times=2)
    add(client, catalog["B"])
    r = client.post("/cart/apply-promo", json={"code": "SAVE10"}, follow_redirects=False)
    assert r.status_code == 303

    cart = client.get("/cart").json()
    assert [(line["product"]["name"], line["quantity"], line["row_total"]) for line in cart["items"]] == [
        ("A", 2, "20.00"),
        ("B", 1, "5.00"),
    ]
    assert cart["subtotal"] == "25.00"
    assert cart["discount"] == "2.50"
    assert cart["delivery"] == "20.00"
    assert cart["total"] == "42.50"
    assert cart["promo_code"] == "SAVE10"
    assert cart["promo_error"] is False


def test_unknown_promo_sets_one_shot_error(client, catalog):
    add(client, catalog["A"])
    before = client.get("/cart").json()["total"]

    client.post("/cart/apply-promo", json={"code": "NOPE"}, follow_redirects=False)

    first = client.get("/cart").json()
    assert first["promo_error"] is True
    assert first["total"] == before
    assert client.get("/cart").json()["promo_error"] is False


def test_inactive_promo_is_refused(client, catalog):
    add(client, catalog["A"])
    client.post("/cart/apply-promo", json={"code": "OLD50"}, follow_redirects=False)
    cart = client.get("/cart").json()
    assert cart["promo_error"] is True
    assert cart["discount"] == "0.00"


def test_remove_promo(client, catalog):
    add(client, catalog["A"])
    client.post("/cart/apply-promo", json={"code": "MINUS20"}, follow_redirects=False)
    assert client.get("/cart").json()["discount"] == "10.00"
    client.post("/cart/remove-promo", follow_redirects=False)
    assert client.get("/cart").json()["discount"] == "0.00"


def test_increase_decrease_remove(client, catalog):
    last, a = catalog["LAST"], catalog["A"]
    add(client, last)
    client.post(f"/cart/increase/{last}", follow_redirects=False)
    client.post(f"/cart/increase/{a}", follow_redirects=False)
    client.post(f"/cart/increase/{a}", follow_redirects=False)
    quantities = {line["product"]["name"]: line["quantity"] for line in client.get("/cart").json()["items"]}
    assert quantities == {"LAST": 1, "A": 2}

    client.post(f"/cart/decrease/{a}", follow_redirects=False)
    client.post(f"/cart/remove/{last}", follow_redirects=False)
    quantities = {line["product"]["name"]: line["quantity"] for line in client.get("/cart").json()["items"]}
    assert quantities == {"A": 1}


def test_add_unknown_product_is_404(client):
    assert client.post("/cart/add/9999", follow_redirects=False).status_code == 404


def test_tampered_cart_cookie_reads_as_empty(client, catalog):
    client.cookies.set(CART_COOKIE, "not-a-token")
    cart = client.get("/cart").json()
    assert cart["items"] == []
    assert cart["total"] == "0.00"


# 📦 checkout

def test_checkout_places_order_and_clears_cart(client, store, catalog):
    register_and_login(client, "alice")
    a, b = catalog["A"], catalog["B"]
    add(client, a, times=2)
    add(client, b)
    client.post("/cart/apply-promo", json={"code": "SAVE10"}, follow_redirects=False)

    assert client.get("/checkout").json()["total"] == "42.50"

    r = client.post("/checkout", follow_redirects=False)
    assert r.status_code == 201
    assert r.json()["total"] == "42.50"

    assert client.get("/cart").json()["items"] == []
    assert get_product(store, a).quantity == 8
    assert get_product(store, b).quantity == 9

    orders = client.get("/account").json()["orders"]
    assert len(orders) == 1
    assert orders[0]["id"] == r.json()["order_id"]
    assert orders[0]["total"] == "42.50"
    assert orders[0]["item_count"] == 3


def test_checkout_with_too_few_in_stock_goes_back_to_cart(client, store, catalog):
    register_and_login(client, "alice")
    x = catalog["X"]
    user = asyncio.run(store.get_user("alice"))
    # three of X bypassing the increase cap; only two in stock
    add(client, x, times=3)

    r = client.post("/checkout", follow_redirects=False)

    assert r.status_code == 303
    assert r.headers["location"] == "/cart"
    assert get_product(store, x).quantity == 2
    assert asyncio.run(store.list_orders_for_user(user.id)) == []
    assert len(client.get("/cart").json()["items"]) == 1


def test_empty_cart_checkout_goes_back_to_cart(client):
    r = client.post("/checkout", follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/cart"


# 🛠️ admin

def test_admin_manages_catalog_and_promos(client, store):
    register_and_login(client, "admin@example.com")

    r = client.post("/admin/add-product", json={
        "producer": "Lumen", "name": "Desk lamp", "price": "129.50", "quantity": 4,
    }, follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/admin"

    products = client.get("/shop").json()["products"]
    assert products[0]["name"] == "Desk lamp"
    assert products[0]["price"] == "129.50"
    lamp_id = products[0]["id"]

    client.post("/admin/set-quantity", json={"product_id": lamp_id, "quantity": 9}, follow_redirects=False)
    assert get_product(store, lamp_id).quantity == 9

    client.post("/admin/delete-product", json={"product_id": lamp_id}, follow_redirects=False)
    assert get_product(store, lamp_id) is None
    assert client.post("/admin/delete-product", json={"product_id": lamp_id}).status_code == 404

    client.post("/admin/add-promo", json={"code": "FLAT5", "discount_kind": "amount", "discount_value": "5.00"},
                follow_redirects=False)
    promo = asyncio.run(store.get_promo_code("FLAT5"))
    assert promo.discount_value == 500

    client.post("/admin/delete-promo", json={"code": "FLAT5"}, follow_redirects=False)
    assert asyncio.run(store.get_promo_code("FLAT5")) is None


def test_admin_writes_need_admin_role(client, store):
    register_and_login(client, "alice")
    r = client.post("/admin/add-product", json={"name": "Sneaky", "price": "1.00"}, follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"].startswith("/login?returnUrl=")
    assert all(p.name != "Sneaky" for p in asyncio.run(store.list_products()))


def test_shop_lists_newest_first_with_categories(client, catalog):
    data = client.get("/shop").json()
    assert [p["name"] for p in data["products"]][:1] == ["LAST"]
    assert [c["name"] for c in data["categories"]] == ["Misc"]
    assert data["user"] is None


def test_safe_return_url_keeps_only_local_paths():
    assert safe_return_url("/account?tab=orders") == "/account?tab=orders"
    assert safe_return_url(None) == "/"
    assert safe_return_url("account") == "/"
    assert safe_return_url("//evil.example/") == "/"
    assert safe_return_url("/\\evil.example/") == "/"
    assert safe_return_url("https://evil.example/") == "/"


# 🧹 deleted products

def test_cart_drops_products_deleted_since_they_were_added(client, store, catalog):
    a, b = catalog["A"], catalog["B"]
    add(client, a)
    add(client, b)
    asyncio.run(store.delete_product(b))

    cart = client.get("/cart").json()
    assert [line["product"]["name"] for line in cart["items"]] == ["A"]

    r = client.post("/checkout", follow_redirects=False)
    assert r.status_code == 201
    assert get_product(store, a).quantity == 9


def test_failed_checkout_forgets_deleted_products(client, store, catalog):
    a, b = catalog["A"], catalog["B"]
    add(client, a)
    add(client, b)
    asyncio.run(store.delete_product(b))

    # straight to checkout, without viewing the cart first
    r = client.post("/checkout", follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/cart"

    r = client.post("/checkout", follow_redirects=False)
    assert r.status_code == 201
    assert get_product(store, a).quantity == 9


# 💥 upstream failures

class BrokenStore(MemoryStore):
    async def list_products(self):
        raise StoreUnavailable("connection refused")


def test_store_outage_answers_503_with_generic_message(oauth):
    client = TestClient(create_app(store=BrokenStore(), oauth=oauth))
    r = client.get("/shop")
    assert r.status_code == 503
    assert r.json() == {"detail": "Service temporarily unavailable, please try again later"}
    assert "connection refused" not in r.text


def test_oauth_network_error_goes_back_to_login(store):
    def unreachable(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("network down", request=request)

    oauth = GoogleOAuthClient(
        client_id="client-id",
        client_secret="client-secret",
        redirect_uri="http://testserver/callback",
        transport=httpx.MockTransport(unreachable),
    )
    client = TestClient(create_app(store=store, oauth=oauth))

    r = client.get("/callback?code=good", follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/login"
    assert asyncio.run(store.list_users()) == []
