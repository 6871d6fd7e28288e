# storefront/shop.py
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse, RedirectResponse

from . import cookies
from .auth import current_user
from .cart import Cart, summarize
from .errors import NotFound
from .pricing import breakdown_view, find_active_promo, format_minor, quote
from .schemas import CartSummary, PriceBreakdown, ProductOut, PromoApply, UserOut
from .store import Store, get_store

router = APIRouter(tags=["shop"])


def product_view(product: ProductOut) -> dict:
    data = product.model_dump(mode="json")
    data["price"] = format_minor(product.price)
    return data


def user_view(user: Optional[UserOut]) -> Optional[dict]:
    if user is None:
        return None
    return {"username": user.username, "display_name": user.display_name, "role": user.role.value}


def _see_other(url: str) -> RedirectResponse:
    return RedirectResponse(url, status_code=status.HTTP_303_SEE_OTHER)


async def price_cart(request: Request, store: Store) -> tuple[Cart, CartSummary, PriceBreakdown]:
    """Cart from the cookie, priced against live products and the applied promo (if still active)."""
    cart = cookies.read_cart(request)
    summary = summarize(cart, await store.list_products())
    promo = find_active_promo(await store.list_promo_codes(), cookies.read_promo_code(request))
    return cart, summary, quote(summary, promo)


def live_cart(cart: Cart, summary: CartSummary) -> Cart:
    """The cart without ids whose product has been deleted."""
    live = {line.product.id for line in summary.items}
    return Cart(pid for pid in cart if pid in live)


def write_live_cart(response: Response, cart: Cart, summary: CartSummary) -> None:
    pruned = live_cart(cart, summary)
    if pruned != cart:
        cookies.write_cart(response, pruned)


def cart_view(summary: CartSummary, breakdown: PriceBreakdown) -> dict:
    return {
        "items": [
            {
                "product": product_view(line.product),
                "quantity": line.quantity,
                "row_total": format_minor(line.row_total),
            }
            for line in summary.items
        ],
        **breakdown_view(breakdown),
    }


@router.get("/")
async def root():
    return {"message": "Storefront API работает"}


@router.get("/health")
async def health():
    return {"status": "ok"}


# 🛍️ Каталог
@router.get("/shop")
async def shop_page(store: Store = Depends(get_store), user: Optional[UserOut] = Depends(current_user)):
    products = await store.list_products()
    categories = await store.list_categories()
    return {
        "user": user_view(user),
        "products": [product_view(p) for p in products],
        "categories": [c.model_dump() for c in categories],
    }


# 🛒 Корзина
@router.get("/cart")
async def cart_page(
    request: Request,
    store: Store = Depends(get_store),
    user: Optional[UserOut] = Depends(current_user),
):
    cart, summary, breakdown = await price_cart(request, store)
    promo_error = cookies.read_promo_error(request)
    response = JSONResponse({
        "user": user_view(user),
        **cart_view(summary, breakdown),
        "promo_error": promo_error,
    })
    write_live_cart(response, cart, summary)
    if promo_error:
        # one-shot: shown on this render only
        cookies.clear(response, cookies.PROMO_ERROR_COOKIE)
    return response


@router.post("/cart/add/{product_id}")
async def add_to_cart(product_id: int, request: Request, store: Store = Depends(get_store)):
    if await store.get_product(product_id) is None:
        raise NotFound(f"product {product_id} not found")
    response = _see_other("/shop")
    cookies.write_cart(response, cookies.read_cart(request).add(product_id))
    return response


@router.post("/cart/increase/{product_id}")
async def increase_in_cart(product_id: int, request: Request, store: Store = Depends(get_store)):
    product = await store.get_product(product_id)
    if product is None:
        raise NotFound(f"product {product_id} not found")
    response = _see_other("/cart")
    cookies.write_cart(response, cookies.read_cart(request).increase(product_id, product.quantity))
    return response


@router.post("/cart/decrease/{product_id}")
async def decrease_in_cart(product_id: int, request: Request):
    response = _see_other("/cart")
    cookies.write_cart(response, cookies.read_cart(request).decrease(product_id))
    return response


@router.post("/cart/remove/{product_id}")
async def remove_from_cart(product_id: int, request: Request):
    response = _see_other("/cart")
    cookies.write_cart(response, cookies.read_cart(request).remove(product_id))
    return response


# 🎟️ Промокод
@router.post("/cart/apply-promo")
async def apply_promo(payload: PromoApply, store: Store = Depends(get_store)):
    promo = find_active_promo(await store.list_promo_codes(), payload.code)
    response = _see_other("/cart")
    if promo is None:
        cookies.set_signed(response, cookies.PROMO_ERROR_COOKIE, True)
    else:
        cookies.set_signed(response, cookies.PROMO_COOKIE, promo.code)
        cookies.clear(response, cookies.PROMO_ERROR_COOKIE)
    return response


@router.post("/cart/remove-promo")
async def remove_promo():
    response = _see_other("/cart")
    cookies.clear(response, cookies.PROMO_COOKIE)
    return response
