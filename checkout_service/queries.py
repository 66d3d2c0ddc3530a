"""
Checkout Service — Queries (read side)

Order and product lookups for the presentation layer. Access rules:
admins see everything, buyers see only their own orders.
"""

import math

from sqlalchemy.ext.asyncio import AsyncSession

from . import catalog, ledger
from .aggregate import PaymentStatus
from .errors import AccessDenied, ProductNotFound, ValidationError
from .identity import Buyer


def _require_owner_or_admin(caller: Buyer, buyer_id: int) -> None:
    if not caller.is_admin and caller.id != buyer_id:
        raise AccessDenied("Access denied: you can only see your own orders")


def _parse_status(status: str | None) -> PaymentStatus | None:
    if status is None:
        return None
    try:
        return PaymentStatus(status)
    except ValueError:
        raise ValidationError(f"Unknown payment status: {status}") from None


async def get_order(session: AsyncSession, caller: Buyer, order_id: int) -> dict:
    order = await ledger.get_order(session, order_id)
    _require_owner_or_admin(caller, order.buyer.id)
    return order.to_payload()


async def list_orders(
    session: AsyncSession,
    caller: Buyer,
    status: str | None = None,
    buyer_id: int | None = None,
    page: int = 1,
    limit: int = 10,
) -> dict:
    """Paginated order listing, admins only."""
    if not caller.is_admin:
        raise AccessDenied("Access denied: administrator privileges required")
    if page < 1 or limit < 1:
        raise ValidationError("page and limit must be >= 1")

    payment_status = _parse_status(status)
    orders = await ledger.list_orders(
        session,
        status=payment_status,
        buyer_id=buyer_id,
        limit=limit,
        offset=(page - 1) * limit,
    )
    total = await ledger.count_orders(session, status=payment_status, buyer_id=buyer_id)
    return {
        "data": [o.to_payload() for o in orders],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit),
        },
    }


async def list_buyer_orders(session: AsyncSession, caller: Buyer, buyer_id: int) -> list[dict]:
    _require_owner_or_admin(caller, buyer_id)
    orders = await ledger.list_orders(session, buyer_id=buyer_id)
    return [o.to_payload() for o in orders]


async def get_product(session: AsyncSession, product_id: int) -> dict:
    product = await catalog.get_product(session, product_id)
    if product is None:
        raise ProductNotFound()
    return {
        "id": product.id,
        "name": product.name,
        "price": float(product.price),
        "discount": float(product.discount),
        "stock": product.stock,
    }
