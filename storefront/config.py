import os

# Use DATABASE_URL env var when available; default points to the compose Postgres service.
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    "postgresql+asyncpg://postgres:postgres@db:5432/storefront_db",
)
SQL_ECHO = os.getenv("SQL_ECHO", "0") == "1"

# sql | memory | json
STORE_BACKEND = os.getenv("STORE_BACKEND", "sql")
STORE_PATH = os.getenv("STORE_PATH", "data/store.json")

SECRET_KEY = os.getenv("SECRET_KEY", "supersecretkey")  # ⚠️ override outside of dev
ALGORITHM = os.getenv("ALGORITHM", "HS256")
USER_COOKIE_EXPIRE_MINUTES = int(os.getenv("USER_COOKIE_EXPIRE_MINUTES", "1440"))

ADMIN_USERNAMES = frozenset(
    name.strip().lower()
    for name in os.getenv("ADMIN_USERNAMES", "admin@example.com").split(",")
    if name.strip()
)

GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID", "")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET", "")
OAUTH_REDIRECT_URI = os.getenv("OAUTH_REDIRECT_URI", "http://localhost:8000/callback")

# 💰 minor units (grosze/cents)
FREE_DELIVERY_THRESHOLD = int(os.getenv("FREE_DELIVERY_THRESHOLD", "50000"))
DELIVERY_FEE = int(os.getenv("DELIVERY_FEE", "2000"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
