"""Seed the configured store with demo categories, users, products and a promo code.

This script is idempotent: users, categories and promo codes are inserted with
no-op-on-duplicate semantics, and products are only added when the catalog is
empty.

Usage:
    python scripts/db_seed.py

The store is chosen by STORE_BACKEND (sql | memory | json); DATABASE_URL and
STORE_PATH are read the same way the app reads them.
"""
import asyncio
import os
import sys
from decimal import Decimal
from pathlib import Path

# Ensure project root is on sys.path so the package imports without installation
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from storefront.auth import get_password_hash
from storefront.store import build_store
from storefront.pricing import promo_from_form, to_minor
from storefront.schemas import DiscountKind, ProductCreate, PromoCodeForm, Role, UserCreate

ADMIN_USERNAME = os.environ.get("SEED_ADMIN_USERNAME", "admin@example.com")
ADMIN_PASSWORD = os.environ.get("SEED_ADMIN_PASSWORD", "admin12345")

CATEGORIES = ["Akcesoria", "Elektronika", "Książki", "Odzież"]

# A fixed catalog so the demo always looks the same.
FIXED_PRODUCTS = [
    {"producer": "Logi", "name": "Mysz bezprzewodowa", "price": "89.99", "quantity": 25, "category": "Elektronika",
     "description": "Cicha mysz z odbiornikiem USB i baterią na 12 miesięcy."},
    {"producer": "Keyko", "name": "Klawiatura mechaniczna", "price": "349.00", "quantity": 8, "category": "Elektronika",
     "description": "Przełączniki brązowe, podświetlenie, układ ISO."},
    {"producer": "Lumen", "name": "Lampka biurkowa LED", "price": "129.50", "quantity": 12, "category": "Akcesoria",
     "description": "Trzy temperatury barwowe i port USB-C do ładowania."},
    {"producer": "Papiro", "name": "Notes w kropki A5", "price": "24.90", "quantity": 60, "category": "Akcesoria",
     "description": "192 strony, papier 100 g/m², twarda okładka."},
    {"producer": "Wydawnictwo Nowe", "name": "Python w praktyce", "price": "79.00", "quantity": 15, "category": "Książki",
     "description": "Praktyczny przewodnik po bibliotece standardowej i narzędziach."},
    {"producer": "Nordwear", "name": "Bluza z kapturem", "price": "159.00", "quantity": 20, "category": "Odzież",
     "description": "Bawełna organiczna, krój unisex."},
    {"producer": "Sonic", "name": "Słuchawki nauszne", "price": "599.00", "quantity": 5, "category": "Elektronika",
     "description": "Aktywna redukcja szumów, 30 godzin pracy."},
    {"producer": "Nordwear", "name": "Czapka zimowa", "price": "49.99", "quantity": 1, "category": "Odzież",
     "description": "Ostatnia sztuka z kolekcji."},
]

PROMO_CODES = [
    PromoCodeForm(code="SAVE10", discount_kind=DiscountKind.PERCENT, discount_value=Decimal("10")),
    PromoCodeForm(code="MINUS20", discount_kind=DiscountKind.AMOUNT, discount_value=Decimal("20.00")),
]


async def seed():
    store = build_store()
    await store.prepare()

    category_ids = {}
    for name in CATEGORIES:
        category_ids[name] = await store.create_category(name)
    print(f"Seeded {len(category_ids)} categories")

    await store.create_user(UserCreate(
        username=ADMIN_USERNAME,
        display_name="Administrator",
        password_hash=get_password_hash(ADMIN_PASSWORD),
        role=Role.ADMIN,
    ))
    await store.create_user(UserCreate(
        username="demo@example.com",
        display_name="Demo User",
        password_hash=get_password_hash("password123"),
    ))
    print("Seeded users")

    if await store.list_products():
        print("Catalog already has products, skipping")
    else:
        for item in FIXED_PRODUCTS:
            await store.create_product(ProductCreate(
                producer=item["producer"],
                name=item["name"],
                description=item["description"],
                price=to_minor(item["price"]),
                quantity=item["quantity"],
                category_id=category_ids[item["category"]],
            ))
        print(f"Seeded {len(FIXED_PRODUCTS)} fixed demo products")

    for form in PROMO_CODES:
        await store.create_promo_code(promo_from_form(form))
    print("Seeded promo codes")

    # Dump products for debugging (id, name, quantity)
    for p in await store.list_products():
        print(p.id, p.name, p.quantity)


def main():
    print("Seed starting")
    asyncio.run(seed())
    print("Seed complete")


if __name__ == "__main__":
    main()
