import logging
from urllib.parse import quote

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse, RedirectResponse

logger = logging.getLogger(__name__)


class StorefrontError(Exception):
    """Base class for errors the HTTP layer knows how to answer."""


class NotFound(StorefrontError):
    pass


class StoreUnavailable(StorefrontError):
    pass


class CheckoutError(StorefrontError):
    pass


class InsufficientStock(CheckoutError):
    def __init__(self, product_id: int, requested: int, available: int):
        super().__init__(f"product {product_id}: requested {requested}, available {available}")
        self.product_id = product_id
        self.requested = requested
        self.available = available


class EmptyCart(CheckoutError):
    pass


class AuthRequired(StorefrontError):
    def __init__(self, return_url: str = "/"):
        super().__init__(return_url)
        self.return_url = return_url


class Forbidden(AuthRequired):
    pass


class UpstreamAuthFailure(StorefrontError):
    pass


def login_redirect(return_url: str) -> RedirectResponse:
    return RedirectResponse(
        f"/login?returnUrl={quote(return_url, safe='')}",
        status_code=status.HTTP_303_SEE_OTHER,
    )


async def _not_found(request: Request, exc: NotFound):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc) or "not found"})


async def _store_unavailable(request: Request, exc: StoreUnavailable):
    logger.exception("store unavailable while handling %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Service temporarily unavailable, please try again later"},
    )


async def _checkout_error(request: Request, exc: CheckoutError):
    return RedirectResponse("/cart", status_code=status.HTTP_303_SEE_OTHER)


async def _auth_required(request: Request, exc: AuthRequired):
    return login_redirect(exc.return_url)


async def _upstream_auth_failure(request: Request, exc: UpstreamAuthFailure):
    logger.warning("identity provider login failed: %s", exc)
    return RedirectResponse("/login", status_code=status.HTTP_303_SEE_OTHER)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(NotFound, _not_found)
    app.add_exception_handler(StoreUnavailable, _store_unavailable)
    app.add_exception_handler(CheckoutError, _checkout_error)
    app.add_exception_handler(AuthRequired, _auth_required)
    app.add_exception_handler(UpstreamAuthFailure, _upstream_auth_failure)
