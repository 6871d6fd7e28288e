# storefront/database.py
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from .config import DATABASE_URL, SQL_ECHO

# Create engine
engine = create_async_engine(DATABASE_URL, echo=SQL_ECHO, future=True)

# Create session factory
async_session_maker = sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

# Base declarative
Base = declarative_base()
