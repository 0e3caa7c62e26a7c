from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def make_engine(database_url: str) -> AsyncEngine:
    # Dev/tests: SQLite (zero config), Prod: PostgreSQL
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url)
    return create_async_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=5,
        max_overflow=10,
        pool_timeout=30,
        pool_recycle=1800,
    )


def make_sessionmaker(engine: AsyncEngine) -> async_sessionmaker:
    # Rows are handed back to callers after the session closes.
    return async_sessionmaker(engine, autoflush=False, expire_on_commit=False)
