"""Checkout: turn a cart into an order in one unit of work.

An attempt walks VALIDATING -> RESERVING -> COMMITTING and ends COMMITTED or
ROLLED_BACK. Products are locked in ascending id order so two attempts over
overlapping carts always take their row locks in the same sequence.
"""
import logging
from enum import Enum
from typing import Optional

from .cart import Cart, summarize
from .errors import EmptyCart, InsufficientStock, NotFound
from .pricing import quote
from .schemas import OrderItemCreate, PriceBreakdown, PromoCodeOut
from .store import Store

logger = logging.getLogger(__name__)


class CheckoutState(str, Enum):
    VALIDATING = "validating"
    RESERVING = "reserving"
    COMMITTING = "committing"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class CheckoutAttempt:
    def __init__(self, store: Store, cart: Cart, user_id: Optional[int] = None,
                 promo: Optional[PromoCodeOut] = None):
        self.store = store
        self.cart = cart
        self.user_id = user_id
        self.promo = promo
        self.state = CheckoutState.VALIDATING
        self.order_id: Optional[int] = None
        self.breakdown: Optional[PriceBreakdown] = None

    async def run(self) -> int:
        counts = self.cart.counts()
        if not counts:
            self.state = CheckoutState.ROLLED_BACK
            raise EmptyCart("cart is empty")

        try:
            async with self.store.unit_of_work() as uow:
                self.state = CheckoutState.VALIDATING
                locked = {}
                for pid in sorted(counts):
                    product = await uow.lock_product(pid)
                    if product is None:
                        raise NotFound(f"product {pid} not found")
                    if product.quantity < counts[pid]:
                        raise InsufficientStock(pid, counts[pid], product.quantity)
                    locked[pid] = product

                self.state = CheckoutState.RESERVING
                for pid, qty in counts.items():
                    await uow.set_product_quantity(pid, locked[pid].quantity - qty)

                self.state = CheckoutState.COMMITTING
                summary = summarize(self.cart, locked)
                breakdown = quote(summary, self.promo)
                items = [
                    OrderItemCreate(product_id=line.product.id, quantity=line.quantity, price=line.product.price)
                    for line in summary.items
                ]
                order_id = await uow.create_order(self.user_id, items, breakdown.total)
        except Exception as exc:
            failed_in = self.state
            self.state = CheckoutState.ROLLED_BACK
            logger.warning("checkout rolled back during %s: %s", failed_in.value, exc)
            raise

        self.state = CheckoutState.COMMITTED
        self.order_id = order_id
        self.breakdown = breakdown
        logger.info("order %s committed for user %s, total %s", order_id, self.user_id, breakdown.total)
        return order_id


async def place_order(store: Store, cart: Cart, user_id: Optional[int] = None,
                      promo: Optional[PromoCodeOut] = None) -> CheckoutAttempt:
    attempt = CheckoutAttempt(store, cart, user_id=user_id, promo=promo)
    await attempt.run()
    return attempt
