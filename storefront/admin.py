# storefront/admin.py
import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import RedirectResponse

from .auth import require_roles
from .pricing import format_minor, promo_from_form, to_minor
from .schemas import (
    DiscountKind, ProductCreate, ProductForm, ProductRef, PromoCodeForm, PromoRef,
    QuantityUpdate, Role, UserOut,
)
from .shop import product_view
from .store import Store, get_store

logger = logging.getLogger(__name__)

# весь раздел только для роли admin
router = APIRouter(prefix="/admin", tags=["admin"])
require_admin = require_roles(Role.ADMIN)


def _back_to_admin() -> RedirectResponse:
    return RedirectResponse("/admin", status_code=status.HTTP_303_SEE_OTHER)


@router.get("")
async def admin_page(store: Store = Depends(get_store), admin: UserOut = Depends(require_admin)):
    promos = await store.list_promo_codes()
    return {
        "products": [product_view(p) for p in await store.list_products()],
        "categories": [c.model_dump() for c in await store.list_categories()],
        "promo_codes": [
            {
                "code": p.code,
                "discount_kind": p.discount_kind.value,
                "discount_value": p.discount_value if p.discount_kind is DiscountKind.PERCENT else format_minor(p.discount_value),
                "active": p.active,
            }
            for p in promos
        ],
    }


@router.post("/add-product")
async def add_product(
    payload: ProductForm,
    store: Store = Depends(get_store),
    admin: UserOut = Depends(require_admin),
):
    fields = ProductCreate(**payload.model_dump(exclude={"price"}), price=to_minor(payload.price))
    product_id = await store.create_product(fields)
    logger.info("admin %s added product %s (%s)", admin.username, product_id, fields.name)
    return _back_to_admin()


@router.post("/delete-product")
async def delete_product(
    payload: ProductRef,
    store: Store = Depends(get_store),
    admin: UserOut = Depends(require_admin),
):
    await store.delete_product(payload.product_id)
    logger.info("admin %s deleted product %s", admin.username, payload.product_id)
    return _back_to_admin()


@router.post("/set-quantity")
async def set_quantity(
    payload: QuantityUpdate,
    store: Store = Depends(get_store),
    admin: UserOut = Depends(require_admin),
):
    await store.set_product_quantity(payload.product_id, payload.quantity)
    return _back_to_admin()


@router.post("/add-promo")
async def add_promo(
    payload: PromoCodeForm,
    store: Store = Depends(get_store),
    admin: UserOut = Depends(require_admin),
):
    await store.create_promo_code(promo_from_form(payload))
    logger.info("admin %s added promo code %s", admin.username, payload.code)
    return _back_to_admin()


@router.post("/delete-promo")
async def delete_promo(
    payload: PromoRef,
    store: Store = Depends(get_store),
    admin: UserOut = Depends(require_admin),
):
    await store.delete_promo_code(payload.code)
    return _back_to_admin()
