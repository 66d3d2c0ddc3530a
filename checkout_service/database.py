"""
Checkout Service — Database

Tables, engine and session factory. The catalog (products), identity
(users) and order ledger (orders, counters) share one database so that a
stock reservation and the order it pays for commit in the same
transaction.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    event,
    insert,
    select,
)
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool
from sqlalchemy.types import TypeDecorator

ORDER_COUNTER = "orders"
FIRST_ORDER_ID = 1001


class UTCDateTime(TypeDecorator):
    """Stores naive UTC, hands back timezone-aware UTC datetimes."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("naive datetime passed to a UTC column")
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value: datetime | None, dialect) -> datetime | None:
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=False),
    Column("name", String(120), nullable=False),
    Column("email", String(254), nullable=False, unique=True),
    Column("role", String(16), nullable=False, default="user"),
    Column("token_hash", String(64), unique=True),
    Column("deleted", Boolean, nullable=False, default=False),
)

products = Table(
    "products",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=False),
    Column("name", String(200), nullable=False),
    Column("price", Numeric(12, 2), nullable=False),
    Column("discount", Numeric(5, 2), nullable=False, default=0),
    Column("stock", Integer, nullable=False),
    Column("version", Integer, nullable=False, default=0),
    CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
)

orders = Table(
    "orders",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=False),
    Column("buyer_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("product_id", Integer, ForeignKey("products.id"), nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("unit_price", Numeric(12, 2), nullable=False),
    Column("total", Numeric(12, 2), nullable=False),
    Column("payment_method", String(16), nullable=False),
    Column("payment_status", String(16), nullable=False),
    Column("deferred_token", String(64), unique=True),
    Column("deferred_expires_at", UTCDateTime),
    Column("created_at", UTCDateTime, nullable=False),
    Column("updated_at", UTCDateTime, nullable=False),
    CheckConstraint("quantity >= 1", name="ck_orders_quantity_positive"),
    Index("ix_orders_buyer_id", "buyer_id"),
    Index("ix_orders_payment_status", "payment_status"),
)

counters = Table(
    "counters",
    metadata,
    Column("name", String(32), primary_key=True),
    Column("value", Integer, nullable=False),
)


def create_engine(database_url: str) -> AsyncEngine:
    """
    Build the async engine.

    SQLite serialises writers with a database-wide lock. A deferred
    transaction that first reads and then writes can fail with "database is
    locked" without waiting when another writer is committing, so every
    SQLite transaction is opened with BEGIN IMMEDIATE instead.
    """
    if not database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=False, pool_pre_ping=True)

    engine = create_async_engine(
        database_url,
        echo=False,
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, _connection_record) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return engine


def create_session_factory(engine: AsyncEngine) -> sessionmaker:
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_schema(engine: AsyncEngine) -> None:
    """Create missing tables and the order id counter."""
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
        existing = await conn.execute(
            select(counters.c.value).where(counters.c.name == ORDER_COUNTER)
        )
        if existing.first() is None:
            await conn.execute(
                insert(counters).values(name=ORDER_COUNTER, value=FIRST_ORDER_ID - 1)
            )
