"""Money and promo arithmetic. Everything here works in integer minor units."""
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from .config import DELIVERY_FEE, FREE_DELIVERY_THRESHOLD
from .schemas import CartSummary, DiscountKind, PriceBreakdown, PromoCodeOut, PromoCodeForm


def to_minor(amount) -> int:
    """19.99 -> 1999, rounding half up at the minor unit."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_minor(amount: int) -> str:
    """4250 -> '42.50'."""
    sign = "-" if amount < 0 else ""
    whole, cents = divmod(abs(amount), 100)
    return f"{sign}{whole}.{cents:02d}"


def promo_from_form(form: PromoCodeForm) -> PromoCodeOut:
    if form.discount_kind is DiscountKind.PERCENT:
        value = int(form.discount_value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    else:
        value = to_minor(form.discount_value)
    return PromoCodeOut(
        code=form.code,
        discount_kind=form.discount_kind,
        discount_value=value,
        active=form.active,
    )


def find_active_promo(promos: Iterable[PromoCodeOut], code: Optional[str]) -> Optional[PromoCodeOut]:
    if not code:
        return None
    for promo in promos:
        if promo.code == code:
            return promo if promo.active else None
    return None


def discount_for(subtotal: int, promo: Optional[PromoCodeOut]) -> int:
    if promo is None or not promo.active or subtotal <= 0:
        return 0
    if promo.discount_kind is DiscountKind.PERCENT:
        raw = Decimal(subtotal) * Decimal(promo.discount_value) / Decimal(100)
        return int(raw.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return min(promo.discount_value, subtotal)


def delivery_for(subtotal: int, empty: bool) -> int:
    if empty or subtotal > FREE_DELIVERY_THRESHOLD:
        return 0
    return DELIVERY_FEE


def quote(summary: CartSummary, promo: Optional[PromoCodeOut] = None) -> PriceBreakdown:
    subtotal = summary.total
    discount = discount_for(subtotal, promo)
    after_discount = subtotal - discount
    delivery = delivery_for(subtotal, summary.is_empty)
    return PriceBreakdown(
        subtotal=subtotal,
        discount=discount,
        after_discount=after_discount,
        delivery=delivery,
        total=after_discount + delivery,
        promo_code=promo.code if promo is not None and promo.active else None,
    )


def breakdown_view(breakdown: PriceBreakdown) -> dict:
    """Display form of a breakdown: money as '0.00' strings."""
    return {
        "subtotal": format_minor(breakdown.subtotal),
        "discount": format_minor(breakdown.discount),
        "after_discount": format_minor(breakdown.after_discount),
        "delivery": format_minor(breakdown.delivery),
        "total": format_minor(breakdown.total),
        "promo_code": breakdown.promo_code,
    }
