import asyncio
import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import insert, select

from checkout_service.commands import Checkout
from checkout_service.database import (
    create_engine,
    create_session_factory,
    init_schema,
    products,
    users,
)
from checkout_service.identity import hash_token
from checkout_service.publisher import EventPublisher
from checkout_service.reservation import InventoryReservationEngine

TOKENS = {
    "ana": "ana-api-token",
    "bruno": "bruno-api-token",
    "admin": "admin-api-token",
    "deleted": "deleted-api-token",
}

USERS = [
    {"id": 1, "name": "Ana Souza", "email": "ana@example.com", "role": "user", "token": "ana"},
    {"id": 2, "name": "Bruno Lima", "email": "bruno@example.com", "role": "user", "token": "bruno"},
    {"id": 3, "name": "Carla Admin", "email": "carla@example.com", "role": "admin", "token": "admin"},
    {"id": 4, "name": "Davi Gone", "email": "davi@example.com", "role": "user", "token": "deleted"},
]

# id 1: 100.00 with 10% off, id 2: a single unit left, id 3: sold out
PRODUCTS = [
    {"id": 1, "name": "Mechanical Keyboard", "price": Decimal("100.00"), "discount": Decimal("10"), "stock": 5},
    {"id": 2, "name": "Desk Lamp", "price": Decimal("50.00"), "discount": Decimal("0"), "stock": 1},
    {"id": 3, "name": "Coffee Mug", "price": Decimal("20.00"), "discount": Decimal("0"), "stock": 0},
]

VALID_CARD = {
    "card_number": "4111 1111 1111 1111",
    "card_name": "Ana Souza",
    "cvv": "123",
    "expiry_date": "12/30",
}

START = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


class RecordingRedis:
    """Stands in for the Redis client; keeps what was published."""

    def __init__(self):
        self.published = []

    async def publish(self, channel, message):
        self.published.append((channel, json.loads(message)))
        return 0

    async def aclose(self):
        pass

    def event_types(self):
        return [message["event_type"] for _, message in self.published]


class FrozenClock:
    def __init__(self, now=START):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


async def _seed(engine):
    await init_schema(engine)
    async with engine.begin() as conn:
        await conn.execute(
            insert(users),
            [
                {
                    "id": u["id"],
                    "name": u["name"],
                    "email": u["email"],
                    "role": u["role"],
                    "token_hash": hash_token(TOKENS[u["token"]]),
                    "deleted": u["token"] == "deleted",
                }
                for u in USERS
            ],
        )
        await conn.execute(insert(products), [{**p, "version": 0} for p in PRODUCTS])


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'checkout.db'}"


@pytest.fixture
def engine(db_url):
    engine = create_engine(db_url)
    asyncio.run(_seed(engine))
    yield engine
    asyncio.run(engine.dispose())


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def stock(session_factory):
    """Read a product's current stock level."""

    async def _read(product_id):
        async with session_factory() as session:
            result = await session.execute(
                select(products.c.stock).where(products.c.id == product_id)
            )
            return result.scalar_one()

    return lambda product_id: asyncio.run(_read(product_id))


@pytest.fixture
def redis():
    return RecordingRedis()


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture(params=["atomic", "cas"])
def reservations(request):
    return InventoryReservationEngine(strategy=request.param)


@pytest.fixture
def checkout(session_factory, reservations, redis, clock):
    return Checkout(
        session_factory,
        reservations,
        publisher=EventPublisher(redis),
        pix_ttl=timedelta(minutes=5),
        clock=clock,
    )


@pytest.fixture
def auth():
    """Authorization headers by user nickname."""
    return {name: {"Authorization": f"Bearer {token}"} for name, token in TOKENS.items()}


@pytest.fixture
def card():
    return dict(VALID_CARD)
