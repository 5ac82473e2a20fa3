import os

from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import NullPool

# ✅ 1. Database URL (SQLite by default)
DATABASE_URL = os.getenv(
    "FUELSTATION_DATABASE_URL",
    "sqlite+aiosqlite:///./fuelstation.db",
)

# seconds a SQLite writer waits for the lock before giving up
SQLITE_BUSY_TIMEOUT = 30


# ============================================================
# 🔥 ENGINE FACTORY
# ============================================================

def make_engine(url: str = DATABASE_URL, echo: bool = False):
    """
    Build an async engine.

    On SQLite every transaction is opened with BEGIN IMMEDIATE so that
    two approvals of the same unload are serialised by the database
    instead of failing with a lock upgrade deadlock.
    """
    if not url.startswith("sqlite"):
        return create_async_engine(url, echo=echo, pool_pre_ping=True)

    engine = create_async_engine(
        url,
        echo=echo,
        poolclass=NullPool,
        connect_args={"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        # let the "begin" listener below emit BEGIN itself
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def make_session_maker(engine):
    return sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


# ✅ 2. Async Engine
engine = make_engine(DATABASE_URL)

# ============================================================
# 🔥 MAIN SESSION MAKER
# ============================================================

# Used by FastAPI endpoints and by the unload service
AsyncSessionLocal = make_session_maker(engine)

# ============================================================
# Base class
# ============================================================

Base = declarative_base()

# ============================================================
# Create tables
# ============================================================

async def create_tables(bind=None):
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
