# storefront/cookies.py
from datetime import datetime, timedelta
from typing import Any, Optional

from fastapi import Request, Response
from jose import jwt, JWTError

from .cart import Cart
from .config import ALGORITHM, SECRET_KEY, USER_COOKIE_EXPIRE_MINUTES

USER_COOKIE = "user"
CART_COOKIE = "cart"
PROMO_COOKIE = "promoCode"
PROMO_ERROR_COOKIE = "promoError"


def sign(value: Any, expires_minutes: Optional[int] = None) -> str:
    to_encode = {"v": value}
    if expires_minutes is not None:
        to_encode["exp"] = datetime.utcnow() + timedelta(minutes=expires_minutes)
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def unsign(token: Optional[str]) -> Any:
    """Value carried by a signed cookie, or None if missing, tampered with or expired."""
    if not token:
        return None
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
    return payload.get("v")


def read_signed(request: Request, name: str) -> Any:
    return unsign(request.cookies.get(name))


def set_signed(response: Response, name: str, value: Any, expires_minutes: Optional[int] = None) -> None:
    max_age = expires_minutes * 60 if expires_minutes is not None else None
    response.set_cookie(
        name,
        sign(value, expires_minutes),
        max_age=max_age,
        path="/",
        httponly=True,
        samesite="lax",
    )


def clear(response: Response, name: str) -> None:
    response.delete_cookie(name, path="/")


# 👤 identity

def read_username(request: Request) -> Optional[str]:
    value = read_signed(request, USER_COOKIE)
    return value if isinstance(value, str) and value else None


def set_username(response: Response, username: str) -> None:
    set_signed(response, USER_COOKIE, username, USER_COOKIE_EXPIRE_MINUTES)


# 🛒 cart

def read_cart(request: Request) -> Cart:
    return Cart.loads(read_signed(request, CART_COOKIE))


def write_cart(response: Response, cart: Cart) -> None:
    if cart:
        set_signed(response, CART_COOKIE, cart.dumps())
    else:
        clear(response, CART_COOKIE)


# 🎟️ promo

def read_promo_code(request: Request) -> Optional[str]:
    value = read_signed(request, PROMO_COOKIE)
    return value if isinstance(value, str) and value else None


def read_promo_error(request: Request) -> bool:
    return read_signed(request, PROMO_ERROR_COOKIE) is True
