"""Persistence port and its SQLAlchemy implementation.

Every backing store (relational, in-memory, JSON file) answers the same
``Store`` contract. Reads return pydantic records, never ORM objects, so route
handlers do not care which store is configured.

Writes that touch stock go through :meth:`Store.unit_of_work`, which yields a
transaction handle and commits on clean exit or rolls everything back when the
block raises.
"""
import logging
from contextlib import asynccontextmanager
from typing import AsyncContextManager, AsyncIterator, List, Optional, Protocol, Sequence

from fastapi import Request
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession
from sqlalchemy.orm import selectinload, sessionmaker

from .config import STORE_BACKEND, STORE_PATH
from .database import Base, async_session_maker, engine
from .errors import NotFound, StoreUnavailable
from .memory_store import JsonFileStore, MemoryStore
from .models import Category, Order, OrderItem, Product, PromoCode, User
from .schemas import (
    CategoryOut, OrderItemCreate, OrderItemOut, OrderOut, ProductCreate,
    ProductOut, PromoCodeOut, UserCreate, UserOut,
)

logger = logging.getLogger(__name__)


class UnitOfWork(Protocol):
    async def lock_product(self, product_id: int) -> Optional[ProductOut]: ...

    async def set_product_quantity(self, product_id: int, quantity: int) -> None: ...

    async def create_order(
        self, user_id: Optional[int], items: Sequence[OrderItemCreate], total: int
    ) -> int: ...


class Store(Protocol):
    async def prepare(self) -> None: ...

    # users
    async def list_users(self) -> List[UserOut]: ...
    async def get_user(self, username: str) -> Optional[UserOut]: ...
    async def create_user(self, user: UserCreate) -> None: ...

    # products
    async def list_products(self) -> List[ProductOut]: ...
    async def get_product(self, product_id: int) -> Optional[ProductOut]: ...
    async def create_product(self, fields: ProductCreate) -> int: ...
    async def delete_product(self, product_id: int) -> None: ...
    async def set_product_quantity(self, product_id: int, quantity: int) -> None: ...

    # categories
    async def list_categories(self) -> List[CategoryOut]: ...
    async def create_category(self, name: str) -> int: ...

    # promo codes
    async def list_promo_codes(self) -> List[PromoCodeOut]: ...
    async def get_promo_code(self, code: str) -> Optional[PromoCodeOut]: ...
    async def create_promo_code(self, promo: PromoCodeOut) -> None: ...
    async def delete_promo_code(self, code: str) -> None: ...

    # orders
    async def create_order(
        self, user_id: Optional[int], items: Sequence[OrderItemCreate], total: int
    ) -> int: ...
    async def list_orders_for_user(self, user_id: int) -> List[OrderOut]: ...

    def unit_of_work(self) -> AsyncContextManager[UnitOfWork]: ...


def get_store(request: Request) -> Store:
    return request.app.state.store


def _check_quantity(quantity: int) -> None:
    if quantity < 0:
        raise ValueError("quantity must be >= 0")


class SqlUnitOfWork:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def lock_product(self, product_id: int) -> Optional[ProductOut]:
        result = await self.session.execute(
            select(Product).where(Product.id == product_id).with_for_update()
        )
        product = result.scalar_one_or_none()
        return ProductOut.model_validate(product) if product is not None else None

    async def set_product_quantity(self, product_id: int, quantity: int) -> None:
        _check_quantity(quantity)
        result = await self.session.execute(
            update(Product).where(Product.id == product_id).values(quantity=quantity)
        )
        if result.rowcount == 0:
            raise NotFound(f"product {product_id} not found")

    async def create_order(self, user_id, items, total) -> int:
        order = Order(user_id=user_id, total=total)
        self.session.add(order)
        await self.session.flush()  # получим order.id
        for item in items:
            self.session.add(OrderItem(
                order_id=order.id,
                product_id=item.product_id,
                quantity=item.quantity,
                price=item.price,
            ))
        await self.session.flush()
        return order.id


class SqlStore:
    """Relational store; PostgreSQL in production, anything SQLAlchemy async speaks in tests."""

    def __init__(self, session_maker: sessionmaker, engine: Optional[AsyncEngine] = None):
        self._session_maker = session_maker
        self._engine = engine

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_maker() as session:
                yield session
        except (SQLAlchemyError, OSError) as exc:
            raise StoreUnavailable(str(exc)) from exc

    async def prepare(self) -> None:
        if self._engine is None:
            return
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except (SQLAlchemyError, OSError) as exc:
            raise StoreUnavailable(str(exc)) from exc

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[SqlUnitOfWork]:
        async with self._session() as session:
            async with session.begin():
                yield SqlUnitOfWork(session)

    # ---------------- users ----------------

    async def list_users(self) -> List[UserOut]:
        async with self._session() as session:
            result = await session.execute(select(User).order_by(User.id))
            return [UserOut.model_validate(u) for u in result.scalars().all()]

    async def get_user(self, username: str) -> Optional[UserOut]:
        async with self._session() as session:
            result = await session.execute(select(User).where(User.username == username))
            user = result.scalar_one_or_none()
            return UserOut.model_validate(user) if user is not None else None

    async def create_user(self, user: UserCreate) -> None:
        async with self._session() as session:
            existing = await session.execute(select(User.id).where(User.username == user.username))
            if existing.scalar_one_or_none() is not None:
                logger.debug("user %s already exists, skipping insert", user.username)
                return
            session.add(User(
                username=user.username,
                display_name=user.display_name,
                password_hash=user.password_hash,
                role=user.role.value,
            ))
            try:
                await session.commit()
            except IntegrityError:
                # lost a race against a concurrent insert of the same username
                await session.rollback()

    # ---------------- products ----------------

    async def list_products(self) -> List[ProductOut]:
        async with self._session() as session:
            result = await session.execute(
                select(Product).order_by(Product.created_at.desc(), Product.id.desc())
            )
            return [ProductOut.model_validate(p) for p in result.scalars().all()]

    async def get_product(self, product_id: int) -> Optional[ProductOut]:
        async with self._session() as session:
            product = await session.get(Product, product_id)
            return ProductOut.model_validate(product) if product is not None else None

    async def create_product(self, fields: ProductCreate) -> int:
        async with self._session() as session:
            if fields.category_id is not None and await session.get(Category, fields.category_id) is None:
                raise NotFound(f"category {fields.category_id} not found")
            product = Product(**fields.model_dump())
            session.add(product)
            try:
                await session.commit()
            except IntegrityError as exc:
                # category deleted between the check and the insert
                await session.rollback()
                raise NotFound(f"category {fields.category_id} not found") from exc
            return product.id

    async def delete_product(self, product_id: int) -> None:
        async with self._session() as session:
            result = await session.execute(delete(Product).where(Product.id == product_id))
            if result.rowcount == 0:
                raise NotFound(f"product {product_id} not found")
            await session.commit()

    async def set_product_quantity(self, product_id: int, quantity: int) -> None:
        async with self.unit_of_work() as uow:
            await uow.set_product_quantity(product_id, quantity)

    # ---------------- categories ----------------

    async def list_categories(self) -> List[CategoryOut]:
        async with self._session() as session:
            result = await session.execute(select(Category).order_by(Category.name))
            return [CategoryOut.model_validate(c) for c in result.scalars().all()]

    async def create_category(self, name: str) -> int:
        async with self._session() as session:
            existing = await session.execute(select(Category.id).where(Category.name == name))
            category_id = existing.scalar_one_or_none()
            if category_id is not None:
                return category_id
            category = Category(name=name)
            session.add(category)
            await session.commit()
            return category.id

    # ---------------- promo codes ----------------

    async def list_promo_codes(self) -> List[PromoCodeOut]:
        async with self._session() as session:
            result = await session.execute(select(PromoCode).order_by(PromoCode.code))
            return [PromoCodeOut.model_validate(p) for p in result.scalars().all()]

    async def get_promo_code(self, code: str) -> Optional[PromoCodeOut]:
        async with self._session() as session:
            result = await session.execute(select(PromoCode).where(PromoCode.code == code))
            promo = result.scalar_one_or_none()
            return PromoCodeOut.model_validate(promo) if promo is not None else None

    async def create_promo_code(self, promo: PromoCodeOut) -> None:
        async with self._session() as session:
            existing = await session.execute(select(PromoCode.id).where(PromoCode.code == promo.code))
            if existing.scalar_one_or_none() is not None:
                logger.debug("promo code %s already exists, skipping insert", promo.code)
                return
            session.add(PromoCode(
                code=promo.code,
                discount_kind=promo.discount_kind.value,
                discount_value=promo.discount_value,
                active=promo.active,
            ))
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()

    async def delete_promo_code(self, code: str) -> None:
        async with self._session() as session:
            result = await session.execute(delete(PromoCode).where(PromoCode.code == code))
            if result.rowcount == 0:
                raise NotFound(f"promo code {code!r} not found")
            await session.commit()

    # ---------------- orders ----------------

    async def create_order(self, user_id, items, total) -> int:
        async with self.unit_of_work() as uow:
            return await uow.create_order(user_id, items, total)

    async def list_orders_for_user(self, user_id: int) -> List[OrderOut]:
        async with self._session() as session:
            result = await session.execute(
                select(Order)
                .options(selectinload(Order.items).selectinload(OrderItem.product))
                .where(Order.user_id == user_id)
                .order_by(Order.created_at.desc(), Order.id.desc())
            )
            out = []
            for o in result.scalars().all():
                items = [
                    OrderItemOut(
                        product_id=it.product_id,
                        product_name=it.product.name if it.product else None,
                        quantity=it.quantity,
                        price=it.price,
                    )
                    for it in o.items
                ]
                out.append(OrderOut(
                    id=o.id,
                    user_id=o.user_id,
                    total=o.total,
                    created_at=o.created_at,
                    item_count=sum(it.quantity for it in items),
                    items=items,
                ))
            return out


def build_store(backend: str = STORE_BACKEND) -> Store:
    if backend == "memory":
        return MemoryStore()
    if backend == "json":
        return JsonFileStore(STORE_PATH)
    if backend == "sql":
        return SqlStore(async_session_maker, engine)
    raise ValueError(f"unknown STORE_BACKEND {backend!r}")
