from logging.config import fileConfig

from sqlalchemy import create_engine, pool

from alembic import context

from storefront import models  # noqa: F401  registers the tables on Base.metadata
from storefront.config import DATABASE_URL
from storefront.database import Base

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def sync_database_url() -> str:
    """The app's asyncpg URL, rewritten for the psycopg2 driver migrations run on."""
    return DATABASE_URL.replace("+asyncpg", "")


def migrate_offline():
    # emits SQL to stdout instead of touching a database
    context.configure(
        url=sync_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def migrate_online():
    engine = create_engine(sync_database_url(), poolclass=pool.NullPool)
    try:
        with engine.connect() as connection:
            context.configure(connection=connection, target_metadata=target_metadata, compare_type=True)
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    migrate_offline()
else:
    migrate_online()
