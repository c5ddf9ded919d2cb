import logging
import ssl
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from discount_engine.core.config import DATABASE_URL, DB_TYPE
from discount_engine.core.exceptions import InternalError

logger = logging.getLogger(__name__)

Base = declarative_base()

engine_kwargs = {"echo": False, "future": True}

if DB_TYPE == "postgres":
    # SSL setup for hosted Postgres
    ssl_ctx = ssl.create_default_context()
    ssl_ctx.check_hostname = False
    ssl_ctx.verify_mode = ssl.CERT_NONE

    # PgBouncer-safe: disable prepared statements
    engine_kwargs.update(
        pool_size=5,
        max_overflow=10,
        connect_args={
            "statement_cache_size": 0,
            "prepared_statement_cache_size": 0,
            "server_settings": {"prepareThreshold": "0"},  # must be string!
            "ssl": ssl_ctx,
        },
    )

engine = create_async_engine(DATABASE_URL, **engine_kwargs)

AsyncSessionLocal = sessionmaker(
    bind=engine,
    class_=AsyncSession,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session


@asynccontextmanager
async def transaction(db: AsyncSession):
    """
    Commit everything done on `db` inside the block, or roll all of it back.

    Business errors are re-raised untouched; storage failures surface as
    InternalError so callers never confuse them with pricing outcomes.
    """
    try:
        yield db
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.exception("Storage failure, transaction rolled back")
        raise InternalError(f"Storage failure: {e.__class__.__name__}") from e
    except Exception:
        await db.rollback()
        raise


# SQLite foreign key enforcement
if DB_TYPE == "sqlite":
    from sqlalchemy import event

    @event.listens_for(engine.sync_engine, "connect")
    def enable_sqlite_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


async def init_models():
    import discount_engine.models  # noqa: F401  registers tables on Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
