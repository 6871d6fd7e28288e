"""The shopping cart: an ordered multiset of product ids.

Duplicates carry quantity, so ``Cart([3, 3, 7])`` is two of product 3 and one
of product 7. Carts are immutable; every operation returns a new cart. The
cookie form is a plain list of ints (see ``storefront.cookies`` for signing).
"""
from collections import OrderedDict
from typing import Dict, Iterable, Iterator, Mapping, Tuple, Union

from .schemas import CartLine, CartSummary, ProductOut


class Cart:
    __slots__ = ("_ids",)

    def __init__(self, ids: Iterable[int] = ()):
        self._ids: Tuple[int, ...] = tuple(ids)

    @property
    def ids(self) -> Tuple[int, ...]:
        return self._ids

    def __iter__(self) -> Iterator[int]:
        return iter(self._ids)

    def __len__(self) -> int:
        return len(self._ids)

    def __bool__(self) -> bool:
        return bool(self._ids)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Cart):
            return NotImplemented
        return self._ids == other._ids

    def __repr__(self) -> str:
        return f"Cart({list(self._ids)!r})"

    def count(self, product_id: int) -> int:
        return self._ids.count(product_id)

    def counts(self) -> Dict[int, int]:
        """``{product_id: quantity}`` in order of first appearance."""
        out: Dict[int, int] = OrderedDict()
        for pid in self._ids:
            out[pid] = out.get(pid, 0) + 1
        return out

    def add(self, product_id: int) -> "Cart":
        return Cart(self._ids + (product_id,))

    def increase(self, product_id: int, stock: int) -> "Cart":
        # availability is re-checked at checkout; this only stops obvious over-adding
        if self.count(product_id) < stock:
            return self.add(product_id)
        return self

    def decrease(self, product_id: int) -> "Cart":
        if product_id not in self._ids:
            return self
        ids = list(self._ids)
        ids.remove(product_id)
        return Cart(ids)

    def remove(self, product_id: int) -> "Cart":
        return Cart(pid for pid in self._ids if pid != product_id)

    def dumps(self) -> list:
        return list(self._ids)

    @classmethod
    def loads(cls, value) -> "Cart":
        """Decode a cookie value; anything that is not a list of ints is an empty cart."""
        if not isinstance(value, list):
            return cls()
        if not all(isinstance(v, int) and not isinstance(v, bool) for v in value):
            return cls()
        return cls(value)


def summarize(
    cart: Cart,
    products: Union[Mapping[int, ProductOut], Iterable[ProductOut]],
) -> CartSummary:
    """Group the cart by product and price each line in minor units.

    Ids with no matching product (deleted since they were added) are dropped.
    """
    if not isinstance(products, Mapping):
        products = {p.id: p for p in products}

    items = []
    for pid, qty in cart.counts().items():
        product = products.get(pid)
        if product is None:
            continue
        items.append(CartLine(product=product, quantity=qty, row_total=product.price * qty))
    return CartSummary(items=items, total=sum(line.row_total for line in items))
