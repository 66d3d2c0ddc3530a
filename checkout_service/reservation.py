"""
Checkout Service — Inventory reservation

The only code allowed to decrement stock. Two strategies:

  atomic  one conditional UPDATE (``stock >= quantity``) does check and
          decrement together. Default.
  cas     read (stock, version), write only if the version is unchanged,
          retry a bounded number of times. For catalog stores that cannot
          express the conditional decrement.

Both run inside the caller's transaction: if the order write that
follows fails, the reservation rolls back with it. No lock is held in
application code.
"""

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from . import catalog
from .errors import InsufficientStock, InvalidQuantity, ProductNotFound, ReservationConflict
from .utils.logging import get_logger

ATOMIC = "atomic"
CAS = "cas"

# Largest quantity a single order may ask for.
MAX_QUANTITY = 10_000

logger = get_logger(__name__)


def is_valid_quantity(quantity) -> bool:
    return (
        isinstance(quantity, int)
        and not isinstance(quantity, bool)
        and 0 < quantity <= MAX_QUANTITY
    )


@dataclass(frozen=True)
class Reservation:
    product_id: int
    quantity: int
    remaining_stock: int


class InventoryReservationEngine:
    def __init__(self, strategy: str = ATOMIC, max_retries: int = 5):
        if strategy not in (ATOMIC, CAS):
            raise ValueError(f"Unknown reservation strategy: {strategy}")
        self.strategy = strategy
        self.max_retries = max_retries

    async def reserve(self, session: AsyncSession, product_id: int, quantity: int) -> Reservation:
        """
        Take ``quantity`` units of ``product_id`` out of stock.

        Raises ProductNotFound, InsufficientStock, or ReservationConflict
        (cas only, after ``max_retries`` lost races).
        """
        if not is_valid_quantity(quantity):
            raise InvalidQuantity()

        if self.strategy == ATOMIC:
            return await self._reserve_atomic(session, product_id, quantity)
        return await self._reserve_cas(session, product_id, quantity)

    async def _reserve_atomic(
        self, session: AsyncSession, product_id: int, quantity: int
    ) -> Reservation:
        remaining = await catalog.reserve_stock(session, product_id, quantity)
        if remaining is not None:
            return Reservation(product_id, quantity, remaining)

        # Nothing updated: tell a missing product apart from a short one.
        snapshot = await catalog.read_stock(session, product_id)
        if snapshot is None:
            raise ProductNotFound()
        raise InsufficientStock(available=snapshot.stock, requested=quantity)

    async def _reserve_cas(
        self, session: AsyncSession, product_id: int, quantity: int
    ) -> Reservation:
        for attempt in range(1, self.max_retries + 1):
            snapshot = await catalog.read_stock(session, product_id)
            if snapshot is None:
                raise ProductNotFound()
            if snapshot.stock < quantity:
                raise InsufficientStock(available=snapshot.stock, requested=quantity)

            remaining = snapshot.stock - quantity
            if await catalog.compare_and_swap_stock(
                session, product_id, snapshot.version, remaining
            ):
                return Reservation(product_id, quantity, remaining)

            logger.debug(
                "Stock version changed, retrying reservation",
                product_id=product_id,
                attempt=attempt,
            )

        logger.warning(
            "Reservation gave up under contention",
            product_id=product_id,
            attempts=self.max_retries,
        )
        raise ReservationConflict()
