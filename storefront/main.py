# storefront/main.py
import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI

from . import admin, auth, orders, shop
from .config import LOG_LEVEL
from .errors import register_exception_handlers
from .oauth import GoogleOAuthClient
from .store import Store, build_store

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s %(message)s")
logger = logging.getLogger(__name__)


def create_app(store: Optional[Store] = None, oauth: Optional[GoogleOAuthClient] = None) -> FastAPI:
    app = FastAPI(
        title="Storefront",
        description="🛒 Каталог, корзина, промокоды и оформление заказа",
        version="1.0.0",
    )
    app.state.store = store if store is not None else build_store()
    app.state.oauth = oauth if oauth is not None else GoogleOAuthClient()

    register_exception_handlers(app)

    # ✅ Роутеры
    app.include_router(shop.router)
    app.include_router(auth.router)
    app.include_router(orders.router)
    app.include_router(admin.router)

    @app.on_event("startup")
    async def on_startup():
        # Создаём таблицы (в development). В production используйте миграции (alembic).
        await app.state.store.prepare()
        logger.info("storefront started with %s", type(app.state.store).__name__)

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run("storefront.main:app", host="0.0.0.0", port=8000, reload=True)
