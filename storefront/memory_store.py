"""In-memory and JSON-file stores.

Simple stores for local dev/demo and tests. Every mutation runs under one
``asyncio.Lock``; a unit of work holds that lock for its whole lifetime and
restores a snapshot of the tables when the block raises, which gives the same
all-or-nothing checkout the relational store gets from its transaction.
"""
import asyncio
import json
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, Dict, List, Optional

from pydantic import BaseModel

from .errors import NotFound, StoreUnavailable
from .schemas import (
    CategoryOut, OrderItemOut, OrderOut, ProductCreate, ProductOut,
    PromoCodeOut, UserCreate, UserOut,
)

logger = logging.getLogger(__name__)


class _OrderRow(BaseModel):
    id: int
    user_id: Optional[int]
    total: int
    created_at: datetime


class _OrderItemRow(BaseModel):
    order_id: int
    product_id: Optional[int]
    quantity: int
    price: int


def _now() -> datetime:
    return datetime.now(timezone.utc)


class _MemoryUnitOfWork:
    def __init__(self, store: "MemoryStore"):
        self._store = store

    async def lock_product(self, product_id: int) -> Optional[ProductOut]:
        return self._store._products.get(product_id)

    async def set_product_quantity(self, product_id: int, quantity: int) -> None:
        self._store._set_quantity(product_id, quantity)

    async def create_order(self, user_id, items, total) -> int:
        return self._store._insert_order(user_id, items, total)


class MemoryStore:
    def __init__(self):
        self._lock = asyncio.Lock()
        self._users: Dict[int, UserOut] = {}
        self._products: Dict[int, ProductOut] = {}
        self._categories: Dict[int, CategoryOut] = {}
        self._promos: Dict[str, PromoCodeOut] = {}
        self._orders: Dict[int, _OrderRow] = {}
        self._order_items: List[_OrderItemRow] = []
        self._next_ids: Dict[str, int] = {"users": 1, "products": 1, "categories": 1, "orders": 1}

    async def prepare(self) -> None:
        return None

    def _next_id(self, table: str) -> int:
        value = self._next_ids[table]
        self._next_ids[table] = value + 1
        return value

    def _snapshot(self) -> dict:
        return {
            "users": dict(self._users),
            "products": dict(self._products),
            "categories": dict(self._categories),
            "promos": dict(self._promos),
            "orders": dict(self._orders),
            "order_items": list(self._order_items),
            "next_ids": dict(self._next_ids),
        }

    def _restore(self, snapshot: dict) -> None:
        self._users = snapshot["users"]
        self._products = snapshot["products"]
        self._categories = snapshot["categories"]
        self._promos = snapshot["promos"]
        self._orders = snapshot["orders"]
        self._order_items = snapshot["order_items"]
        self._next_ids = snapshot["next_ids"]

    def _committed(self) -> None:
        """Hook run after every successful mutation, still under the lock."""

    @asynccontextmanager
    async def _write(self) -> AsyncIterator[None]:
        # a failing _committed() rolls back too
        async with self._lock:
            snapshot = self._snapshot()
            try:
                yield
                self._committed()
            except BaseException:
                self._restore(snapshot)
                raise

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[_MemoryUnitOfWork]:
        async with self._write():
            yield _MemoryUnitOfWork(self)

    # ---------------- users ----------------

    async def list_users(self) -> List[UserOut]:
        return list(self._users.values())

    async def get_user(self, username: str) -> Optional[UserOut]:
        for user in self._users.values():
            if user.username == username:
                return user
        return None

    async def create_user(self, user: UserCreate) -> None:
        async with self._write():
            if any(u.username == user.username for u in self._users.values()):
                logger.debug("user %s already exists, skipping insert", user.username)
                return
            user_id = self._next_id("users")
            self._users[user_id] = UserOut(id=user_id, **user.model_dump())

    # ---------------- products ----------------

    async def list_products(self) -> List[ProductOut]:
        return sorted(self._products.values(), key=lambda p: (p.created_at, p.id), reverse=True)

    async def get_product(self, product_id: int) -> Optional[ProductOut]:
        return self._products.get(product_id)

    async def create_product(self, fields: ProductCreate) -> int:
        async with self._write():
            if fields.category_id is not None and fields.category_id not in self._categories:
                raise NotFound(f"category {fields.category_id} not found")
            product_id = self._next_id("products")
            self._products[product_id] = ProductOut(id=product_id, created_at=_now(), **fields.model_dump())
            return product_id

    async def delete_product(self, product_id: int) -> None:
        async with self._write():
            if self._products.pop(product_id, None) is None:
                raise NotFound(f"product {product_id} not found")
            self._order_items = [
                it.model_copy(update={"product_id": None}) if it.product_id == product_id else it
                for it in self._order_items
            ]

    def _set_quantity(self, product_id: int, quantity: int) -> None:
        if quantity < 0:
            raise ValueError("quantity must be >= 0")
        product = self._products.get(product_id)
        if product is None:
            raise NotFound(f"product {product_id} not found")
        self._products[product_id] = product.model_copy(update={"quantity": quantity})

    async def set_product_quantity(self, product_id: int, quantity: int) -> None:
        async with self._write():
            self._set_quantity(product_id, quantity)

    # ---------------- categories ----------------

    async def list_categories(self) -> List[CategoryOut]:
        return sorted(self._categories.values(), key=lambda c: c.name)

    async def create_category(self, name: str) -> int:
        async with self._write():
            for category in self._categories.values():
                if category.name == name:
                    return category.id
            category_id = self._next_id("categories")
            self._categories[category_id] = CategoryOut(id=category_id, name=name)
            return category_id

    # ---------------- promo codes ----------------

    async def list_promo_codes(self) -> List[PromoCodeOut]:
        return sorted(self._promos.values(), key=lambda p: p.code)

    async def get_promo_code(self, code: str) -> Optional[PromoCodeOut]:
        return self._promos.get(code)

    async def create_promo_code(self, promo: PromoCodeOut) -> None:
        async with self._write():
            if promo.code in self._promos:
                logger.debug("promo code %s already exists, skipping insert", promo.code)
                return
            self._promos[promo.code] = promo

    async def delete_promo_code(self, code: str) -> None:
        async with self._write():
            if self._promos.pop(code, None) is None:
                raise NotFound(f"promo code {code!r} not found")

    # ---------------- orders ----------------

    def _insert_order(self, user_id, items, total) -> int:
        order_id = self._next_id("orders")
        self._orders[order_id] = _OrderRow(id=order_id, user_id=user_id, total=total, created_at=_now())
        for item in items:
            self._order_items.append(_OrderItemRow(order_id=order_id, **item.model_dump()))
        return order_id

    async def create_order(self, user_id, items, total) -> int:
        async with self.unit_of_work() as uow:
            return await uow.create_order(user_id, items, total)

    async def list_orders_for_user(self, user_id: int) -> List[OrderOut]:
        orders = sorted(
            (o for o in self._orders.values() if o.user_id == user_id),
            key=lambda o: (o.created_at, o.id),
            reverse=True,
        )
        out = []
        for o in orders:
            items = []
            for it in self._order_items:
                if it.order_id != o.id:
                    continue
                product = self._products.get(it.product_id) if it.product_id is not None else None
                items.append(OrderItemOut(
                    product_id=it.product_id,
                    product_name=product.name if product else None,
                    quantity=it.quantity,
                    price=it.price,
                ))
            out.append(OrderOut(
                id=o.id,
                user_id=o.user_id,
                total=o.total,
                created_at=o.created_at,
                item_count=sum(it.quantity for it in items),
                items=items,
            ))
        return out


class JsonFileStore(MemoryStore):
    """MemoryStore that rewrites one JSON document after every committed change."""

    def __init__(self, path):
        super().__init__()
        self.path = Path(path)
        if self.path.exists():
            self._load()

    def _load(self) -> None:
        with self.path.open(encoding="utf-8") as fh:
            data = json.load(fh)
        self._users = {u["id"]: UserOut.model_validate(u) for u in data.get("users", [])}
        self._products = {p["id"]: ProductOut.model_validate(p) for p in data.get("products", [])}
        self._categories = {c["id"]: CategoryOut.model_validate(c) for c in data.get("categories", [])}
        self._promos = {p["code"]: PromoCodeOut.model_validate(p) for p in data.get("promo_codes", [])}
        self._orders = {o["id"]: _OrderRow.model_validate(o) for o in data.get("orders", [])}
        self._order_items = [_OrderItemRow.model_validate(it) for it in data.get("order_items", [])]
        self._next_ids.update(data.get("next_ids", {}))
        logger.info("loaded store from %s (%d products)", self.path, len(self._products))

    def _committed(self) -> None:
        data = {
            "users": [u.model_dump(mode="json") for u in self._users.values()],
            "products": [p.model_dump(mode="json") for p in self._products.values()],
            "categories": [c.model_dump(mode="json") for c in self._categories.values()],
            "promo_codes": [p.model_dump(mode="json") for p in self._promos.values()],
            "orders": [o.model_dump(mode="json") for o in self._orders.values()],
            "order_items": [it.model_dump(mode="json") for it in self._order_items],
            "next_ids": self._next_ids,
        }
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tmp.open("w", encoding="utf-8") as fh:
                json.dump(data, fh, ensure_ascii=False, indent=2)
            os.replace(tmp, self.path)
        except OSError as exc:
            raise StoreUnavailable(f"cannot write {self.path}: {exc}") from exc
