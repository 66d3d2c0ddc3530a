"""
Checkout Service — Catalog store access

Products are owned by the catalog; this service reads them and changes
exactly one column, ``stock``. Every stock change also bumps ``version``
so that the compare-and-swap reservation path can detect concurrent
writers.

Only the reservation engine may call the write functions below.
"""

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .database import products


@dataclass(frozen=True)
class Product:
    id: int
    name: str
    price: Decimal
    discount: Decimal
    stock: int


@dataclass(frozen=True)
class StockSnapshot:
    stock: int
    version: int


async def get_product(session: AsyncSession, product_id: int) -> Product | None:
    result = await session.execute(
        select(
            products.c.id,
            products.c.name,
            products.c.price,
            products.c.discount,
            products.c.stock,
        ).where(products.c.id == product_id)
    )
    row = result.first()
    if not row:
        return None
    return Product(
        id=row.id,
        name=row.name,
        price=row.price,
        discount=row.discount,
        stock=row.stock,
    )


async def reserve_stock(session: AsyncSession, product_id: int, quantity: int) -> int | None:
    """
    Decrement stock by ``quantity`` only if at least that much is left.

    Check and decrement are one statement, so two concurrent buyers of
    the last unit cannot both succeed. Returns the new stock level, or
    None when the product is missing or short.
    """
    result = await session.execute(
        update(products)
        .where(products.c.id == product_id, products.c.stock >= quantity)
        .values(stock=products.c.stock - quantity, version=products.c.version + 1)
        .returning(products.c.stock)
    )
    return result.scalar_one_or_none()


async def read_stock(session: AsyncSession, product_id: int) -> StockSnapshot | None:
    result = await session.execute(
        select(products.c.stock, products.c.version).where(products.c.id == product_id)
    )
    row = result.first()
    if not row:
        return None
    return StockSnapshot(stock=row.stock, version=row.version)


async def compare_and_swap_stock(
    session: AsyncSession,
    product_id: int,
    expected_version: int,
    new_stock: int,
) -> bool:
    """Write ``new_stock`` only if nobody changed the product since ``expected_version``."""
    result = await session.execute(
        update(products)
        .where(products.c.id == product_id, products.c.version == expected_version)
        .values(stock=new_stock, version=expected_version + 1)
    )
    return result.rowcount == 1
