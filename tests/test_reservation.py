"""Tests for the inventory reservation engine (both strategies)."""

import asyncio

import pytest

from checkout_service import catalog
from checkout_service.errors import (
    InsufficientStock,
    InvalidQuantity,
    ProductNotFound,
    ReservationConflict,
)
from checkout_service.reservation import InventoryReservationEngine


async def _reserve(session_factory, engine, product_id, quantity, commit=True):
    async with session_factory() as session:
        reservation = await engine.reserve(session, product_id, quantity)
        if commit:
            await session.commit()
        return reservation


class TestReserve:
    def test_decrements_stock(self, session_factory, reservations, stock):
        reservation = asyncio.run(_reserve(session_factory, reservations, 1, 2))
        assert reservation.remaining_stock == 3
        assert reservation.quantity == 2
        assert stock(1) == 3

    def test_exact_remaining_stock(self, session_factory, reservations, stock):
        reservation = asyncio.run(_reserve(session_factory, reservations, 1, 5))
        assert reservation.remaining_stock == 0
        assert stock(1) == 0

    def test_insufficient_stock(self, session_factory, reservations, stock):
        with pytest.raises(InsufficientStock) as exc_info:
            asyncio.run(_reserve(session_factory, reservations, 1, 6))
        assert exc_info.value.available == 5
        assert exc_info.value.requested == 6
        assert stock(1) == 5

    def test_sold_out(self, session_factory, reservations, stock):
        with pytest.raises(InsufficientStock):
            asyncio.run(_reserve(session_factory, reservations, 3, 1))
        assert stock(3) == 0

    def test_unknown_product(self, session_factory, reservations):
        with pytest.raises(ProductNotFound):
            asyncio.run(_reserve(session_factory, reservations, 999, 1))

    @pytest.mark.parametrize("quantity", [0, -1, 1.5, True, "2", 10_001, 10**20])
    def test_rejects_quantities_outside_range(self, session_factory, reservations, stock, quantity):
        with pytest.raises(InvalidQuantity):
            asyncio.run(_reserve(session_factory, reservations, 1, quantity))
        assert stock(1) == 5

    def test_rolled_back_with_transaction(self, session_factory, reservations, stock):
        asyncio.run(_reserve(session_factory, reservations, 1, 2, commit=False))
        assert stock(1) == 5

    def test_concurrent_reservations_never_oversell(self, session_factory, reservations, stock):
        async def scenario():
            return await asyncio.gather(
                *(_reserve(session_factory, reservations, 1, 2) for _ in range(4)),
                return_exceptions=True,
            )

        results = asyncio.run(scenario())
        succeeded = [r for r in results if not isinstance(r, Exception)]
        failed = [r for r in results if isinstance(r, Exception)]

        assert len(succeeded) == 2
        assert all(isinstance(e, InsufficientStock) for e in failed)
        assert stock(1) == 1


class TestCompareAndSwap:
    def test_gives_up_after_max_retries(self, session_factory, stock, monkeypatch):
        calls = []

        async def always_lose(session, product_id, expected_version, new_stock):
            calls.append(expected_version)
            return False

        monkeypatch.setattr(catalog, "compare_and_swap_stock", always_lose)
        engine = InventoryReservationEngine(strategy="cas", max_retries=3)

        with pytest.raises(ReservationConflict):
            asyncio.run(_reserve(session_factory, engine, 1, 1))
        assert len(calls) == 3
        assert stock(1) == 5

    def test_retries_after_lost_race(self, session_factory, stock, monkeypatch):
        real_cas = catalog.compare_and_swap_stock
        attempts = []

        async def lose_once(session, product_id, expected_version, new_stock):
            attempts.append(expected_version)
            if len(attempts) == 1:
                return False
            return await real_cas(session, product_id, expected_version, new_stock)

        monkeypatch.setattr(catalog, "compare_and_swap_stock", lose_once)
        engine = InventoryReservationEngine(strategy="cas")

        reservation = asyncio.run(_reserve(session_factory, engine, 1, 1))
        assert reservation.remaining_stock == 4
        assert len(attempts) == 2
        assert stock(1) == 4

    def test_unknown_strategy(self):
        with pytest.raises(ValueError):
            InventoryReservationEngine(strategy="optimistic")
