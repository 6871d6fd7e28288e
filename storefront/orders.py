# storefront/orders.py
from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, RedirectResponse

from . import cookies
from .auth import current_user, require_roles
from .cart import summarize
from .checkout import place_order
from .errors import CheckoutError, NotFound
from .pricing import find_active_promo, format_minor
from .schemas import UserOut
from .shop import cart_view, price_cart, user_view, write_live_cart
from .store import Store, get_store

router = APIRouter(tags=["orders"])


# 🧾 Предпросмотр заказа
@router.get("/checkout")
async def checkout_page(
    request: Request,
    store: Store = Depends(get_store),
    user: Optional[UserOut] = Depends(current_user),
):
    cart, summary, breakdown = await price_cart(request, store)
    response = JSONResponse({"user": user_view(user), **cart_view(summary, breakdown)})
    write_live_cart(response, cart, summary)
    return response


# ✅ Оформление заказа: проверка stock, уменьшение остатков, запись Order/OrderItem
@router.post("/checkout")
async def checkout(
    request: Request,
    store: Store = Depends(get_store),
    user: Optional[UserOut] = Depends(current_user),
):
    cart = cookies.read_cart(request)
    promo = find_active_promo(await store.list_promo_codes(), cookies.read_promo_code(request))

    try:
        attempt = await place_order(store, cart, user_id=user.id if user else None, promo=promo)
    except (CheckoutError, NotFound):
        # nothing was written; send the buyer back to fix the cart, minus deleted products
        response = RedirectResponse("/cart", status_code=status.HTTP_303_SEE_OTHER)
        write_live_cart(response, cart, summarize(cart, await store.list_products()))
        return response

    response = JSONResponse(
        status_code=status.HTTP_201_CREATED,
        content={
            "message": "Order placed",
            "order_id": attempt.order_id,
            "total": format_minor(attempt.breakdown.total),
        },
    )
    cookies.clear(response, cookies.CART_COOKIE)
    cookies.clear(response, cookies.PROMO_COOKIE)
    return response


# 👤 Личный кабинет
@router.get("/account")
async def account_page(
    store: Store = Depends(get_store),
    user: UserOut = Depends(require_roles()),
):
    orders = await store.list_orders_for_user(user.id)
    return {
        "user": user_view(user),
        "orders": [
            {
                "id": o.id,
                "created_at": o.created_at.isoformat(),
                "total": format_minor(o.total),
                "item_count": o.item_count,
                "items": [
                    {
                        "product_id": it.product_id,
                        "product_name": it.product_name,
                        "quantity": it.quantity,
                        "price": format_minor(it.price),
                    }
                    for it in o.items
                ],
            }
            for o in orders
        ],
    }
