"""
Checkout Service — Order ledger

Orders are inserted once and afterwards only their payment status (and
``updated_at``) may change. Two writes need care under concurrency:

* Order ids come from a single counter row incremented in the creating
  transaction, never from "highest existing id + 1", which hands the same
  id to two concurrent buyers.
* A status change is a conditional UPDATE on the status we expect to
  leave. If someone else settled the order first, zero rows match and the
  caller learns it lost the race instead of overwriting a terminal state.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Select, func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .aggregate import OrderAggregate, PaymentMethod, PaymentStatus, can_transition
from .database import ORDER_COUNTER, counters, orders, products, users
from .errors import InvalidTransition, OrderNotFound


@dataclass(frozen=True)
class OrderDraft:
    buyer_id: int
    product_id: int
    quantity: int
    unit_price: Decimal
    total: Decimal
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    created_at: datetime
    deferred_token: str | None = None
    deferred_expires_at: datetime | None = None


def _order_select() -> Select:
    return (
        select(
            orders,
            users.c.name.label("buyer_name"),
            users.c.email.label("buyer_email"),
            users.c.role.label("buyer_role"),
            products.c.name.label("product_name"),
        )
        .join(users, users.c.id == orders.c.buyer_id)
        # Orders outlive their product; product_name is None once it is gone.
        .outerjoin(products, products.c.id == orders.c.product_id)
    )


async def next_order_id(session: AsyncSession) -> int:
    result = await session.execute(
        update(counters)
        .where(counters.c.name == ORDER_COUNTER)
        .values(value=counters.c.value + 1)
        .returning(counters.c.value)
    )
    return result.scalar_one()


async def create_order(session: AsyncSession, draft: OrderDraft) -> OrderAggregate:
    """
    Append an order. The caller owns the transaction and commits it
    together with the stock reservation (if any).
    """
    order_id = await next_order_id(session)
    await session.execute(
        insert(orders).values(
            id=order_id,
            buyer_id=draft.buyer_id,
            product_id=draft.product_id,
            quantity=draft.quantity,
            unit_price=draft.unit_price,
            total=draft.total,
            payment_method=draft.payment_method.value,
            payment_status=draft.payment_status.value,
            deferred_token=draft.deferred_token,
            deferred_expires_at=draft.deferred_expires_at,
            created_at=draft.created_at,
            updated_at=draft.created_at,
        )
    )
    return await get_order(session, order_id)


async def update_order_status_if_current(
    session: AsyncSession,
    order_id: int,
    expected: PaymentStatus,
    new: PaymentStatus,
    now: datetime,
) -> bool:
    """
    Move ``order_id`` from ``expected`` to ``new``.

    Returns False when the order is no longer in ``expected`` (another
    request got there first). Raises InvalidTransition for moves the
    state machine never allows.
    """
    if not can_transition(expected, new):
        raise InvalidTransition(f"Cannot move payment from {expected.value} to {new.value}")
    result = await session.execute(
        update(orders)
        .where(orders.c.id == order_id, orders.c.payment_status == expected.value)
        .values(payment_status=new.value, updated_at=now)
    )
    return result.rowcount == 1


async def get_order(session: AsyncSession, order_id: int) -> OrderAggregate:
    result = await session.execute(_order_select().where(orders.c.id == order_id))
    row = result.first()
    if not row:
        raise OrderNotFound()
    return OrderAggregate.from_row(row)


async def find_order_by_token(session: AsyncSession, token: str) -> OrderAggregate | None:
    result = await session.execute(_order_select().where(orders.c.deferred_token == token))
    row = result.first()
    if not row:
        return None
    return OrderAggregate.from_row(row)


async def list_orders(
    session: AsyncSession,
    status: PaymentStatus | None = None,
    buyer_id: int | None = None,
    limit: int | None = None,
    offset: int = 0,
) -> list[OrderAggregate]:
    stmt = _order_select().order_by(orders.c.created_at.desc(), orders.c.id.desc())
    if status is not None:
        stmt = stmt.where(orders.c.payment_status == status.value)
    if buyer_id is not None:
        stmt = stmt.where(orders.c.buyer_id == buyer_id)
    if limit is not None:
        stmt = stmt.limit(limit).offset(offset)
    result = await session.execute(stmt)
    return [OrderAggregate.from_row(row) for row in result.fetchall()]


async def count_orders(
    session: AsyncSession,
    status: PaymentStatus | None = None,
    buyer_id: int | None = None,
) -> int:
    stmt = select(func.count()).select_from(orders)
    if status is not None:
        stmt = stmt.where(orders.c.payment_status == status.value)
    if buyer_id is not None:
        stmt = stmt.where(orders.c.buyer_id == buyer_id)
    result = await session.execute(stmt)
    return result.scalar_one()
