"""
Checkout Service — Payment workflow (write side)

  card / boleto   validate → price → reserve stock → write APPROVED order,
                  all in one transaction. If anything fails nothing is
                  persisted and the caller gets the reason.

  pix             initiate: price → write PENDING order with a one-time
                  code and a deadline. No stock is touched.
                  confirm:  reserve stock → APPROVED, or FAILED when the
                  stock is gone, or EXPIRED after the deadline. Stock is
                  taken at most once however often confirm is called.
                  poll:     report status, expiring lazily on the way.

There is no timer for expiry: the deadline is stored with the order and
checked whenever the order is confirmed or polled.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable

from sqlalchemy.orm import sessionmaker

from . import catalog, identity, ledger, payment_methods, pricing
from .aggregate import OrderAggregate, PaymentMethod, PaymentStatus
from .errors import (
    BuyerNotFound,
    DeferredTokenNotFound,
    InsufficientStock,
    InvalidPaymentMethod,
    InvalidQuantity,
    ProductNotFound,
)
from .events import OrderPlaced, PaymentApproved, PaymentExpired, PaymentFailed
from .ledger import OrderDraft
from .publisher import EventPublisher
from .reservation import MAX_QUANTITY, InventoryReservationEngine, is_valid_quantity
from .utils.logging import get_logger, mask_token

DEFAULT_PIX_TTL = timedelta(minutes=5)

logger = get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_quantity(quantity) -> int:
    """Missing quantity means 1; anything but an integer in 1..MAX_QUANTITY is rejected."""
    if quantity is None:
        return 1
    if not is_valid_quantity(quantity):
        raise InvalidQuantity(f"Quantity must be an integer between 1 and {MAX_QUANTITY}")
    return quantity


@dataclass(frozen=True)
class DeferredPayment:
    order_id: int
    token: str
    expires_at: datetime
    total: Decimal


@dataclass(frozen=True)
class DeferredStatus:
    order_id: int
    payment_status: PaymentStatus
    expires_at: datetime
    total: Decimal


class Checkout:
    """Entry point for every purchase and PIX settlement."""

    def __init__(
        self,
        session_factory: sessionmaker,
        reservations: InventoryReservationEngine,
        publisher: EventPublisher | None = None,
        pix_ttl: timedelta = DEFAULT_PIX_TTL,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.reservations = reservations
        self.publisher = publisher
        self.pix_ttl = pix_ttl
        self.clock = clock

    # ── Card / boleto ────────────────────────────

    async def purchase_immediate(
        self,
        buyer_id: int,
        product_id: int,
        quantity: int | None = 1,
        method: str = PaymentMethod.CARD.value,
        method_fields: dict | None = None,
    ) -> OrderAggregate:
        quantity = normalize_quantity(quantity)
        try:
            method = PaymentMethod(method)
        except ValueError:
            raise InvalidPaymentMethod(f"Unsupported payment method: {method}") from None
        if not method.settles_immediately:
            raise InvalidPaymentMethod("PIX payments must be initiated, not purchased directly")
        if method is PaymentMethod.CARD:
            payment_methods.validate_card(method_fields or {}, today=self.clock().date())

        log = logger.bind(
            buyer_id=buyer_id,
            product_id=product_id,
            quantity=quantity,
            payment_method=method.value,
        )

        async with self.session_factory() as session:
            if await identity.get_buyer(session, buyer_id) is None:
                raise BuyerNotFound()
            product = await catalog.get_product(session, product_id)
            if product is None:
                raise ProductNotFound()
            quote = pricing.quote(product, quantity)

            try:
                reservation = await self.reservations.reserve(session, product_id, quantity)
            except InsufficientStock as e:
                log.info("Purchase rejected", reason=e.code, available=e.available)
                raise

            now = self.clock()
            order = await ledger.create_order(
                session,
                OrderDraft(
                    buyer_id=buyer_id,
                    product_id=product_id,
                    quantity=quantity,
                    unit_price=quote.unit_price,
                    total=quote.total,
                    payment_method=method,
                    payment_status=PaymentStatus.APPROVED,
                    created_at=now,
                ),
            )
            await session.commit()

        log.info(
            "Order approved",
            order_id=order.id,
            total=str(order.total),
            remaining_stock=reservation.remaining_stock,
        )
        await self._publish(_order_placed(order, now))
        return order

    # ── PIX ──────────────────────────────────────

    async def initiate_deferred(
        self,
        buyer_id: int,
        product_id: int,
        quantity: int | None = 1,
    ) -> DeferredPayment:
        quantity = normalize_quantity(quantity)

        async with self.session_factory() as session:
            if await identity.get_buyer(session, buyer_id) is None:
                raise BuyerNotFound()
            product = await catalog.get_product(session, product_id)
            if product is None:
                raise ProductNotFound()
            # Advisory only: the real check happens when the payment is confirmed.
            if product.stock < quantity:
                raise InsufficientStock(available=product.stock, requested=quantity)
            quote = pricing.quote(product, quantity)

            now = self.clock()
            token = payment_methods.new_pix_code()
            expires_at = now + self.pix_ttl
            order = await ledger.create_order(
                session,
                OrderDraft(
                    buyer_id=buyer_id,
                    product_id=product_id,
                    quantity=quantity,
                    unit_price=quote.unit_price,
                    total=quote.total,
                    payment_method=PaymentMethod.PIX,
                    payment_status=PaymentStatus.PENDING,
                    created_at=now,
                    deferred_token=token,
                    deferred_expires_at=expires_at,
                ),
            )
            await session.commit()

        logger.info(
            "PIX payment initiated",
            order_id=order.id,
            buyer_id=buyer_id,
            product_id=product_id,
            quantity=quantity,
            token_hint=mask_token(token),
            expires_at=expires_at.isoformat(),
        )
        await self._publish(_order_placed(order, now))
        return DeferredPayment(
            order_id=order.id,
            token=token,
            expires_at=expires_at,
            total=order.total,
        )

    async def confirm_deferred(self, token: str) -> OrderAggregate:
        """
        Settle a PIX payment. Idempotent: an order already in a terminal
        state is returned unchanged.
        """
        payment_methods.validate_pix_code(token)
        log = logger.bind(token_hint=mask_token(token))

        async with self.session_factory() as session:
            order = await ledger.find_order_by_token(session, token)
            if order is None:
                raise DeferredTokenNotFound()
            log = log.bind(order_id=order.id)

            if order.is_terminal:
                log.info("PIX already settled", payment_status=order.payment_status.value)
                return order

            now = self.clock()
            if order.is_expired(now):
                return await self._expire(session, order, now, log)

            reason = None
            try:
                await self.reservations.reserve(session, order.product_id, order.quantity)
                target = PaymentStatus.APPROVED
            except (InsufficientStock, ProductNotFound) as e:
                reason = e.message
                target = PaymentStatus.FAILED

            if not await ledger.update_order_status_if_current(
                session, order.id, PaymentStatus.PENDING, target, now
            ):
                # Lost to a concurrent confirmation: undo our reservation.
                await session.rollback()
                order = await ledger.get_order(session, order.id)
                log.info("PIX settled concurrently", payment_status=order.payment_status.value)
                return order

            await session.commit()
            order = await ledger.get_order(session, order.id)

        if target is PaymentStatus.APPROVED:
            log.info("PIX payment approved", product_id=order.product_id, quantity=order.quantity)
            await self._publish(
                PaymentApproved(
                    order_id=order.id,
                    product_id=order.product_id,
                    quantity=order.quantity,
                    timestamp=now,
                )
            )
        else:
            log.info("PIX payment failed", reason=reason)
            await self._publish(
                PaymentFailed(
                    order_id=order.id,
                    product_id=order.product_id,
                    reason=reason,
                    timestamp=now,
                )
            )
        return order

    async def poll_deferred(self, token: str) -> DeferredStatus:
        payment_methods.validate_pix_code(token)

        async with self.session_factory() as session:
            order = await ledger.find_order_by_token(session, token)
            if order is None:
                raise DeferredTokenNotFound()

            now = self.clock()
            if order.payment_status is PaymentStatus.PENDING and order.is_expired(now):
                log = logger.bind(token_hint=mask_token(token), order_id=order.id)
                order = await self._expire(session, order, now, log)

        return DeferredStatus(
            order_id=order.id,
            payment_status=order.payment_status,
            expires_at=order.deferred_expires_at,
            total=order.total,
        )

    # ── Internals ────────────────────────────────

    async def _expire(self, session, order: OrderAggregate, now: datetime, log) -> OrderAggregate:
        expired = await ledger.update_order_status_if_current(
            session, order.id, PaymentStatus.PENDING, PaymentStatus.EXPIRED, now
        )
        await session.commit()
        order = await ledger.get_order(session, order.id)
        if expired:
            log.info("PIX payment expired", expired_at=order.deferred_expires_at.isoformat())
            await self._publish(
                PaymentExpired(
                    order_id=order.id,
                    expired_at=order.deferred_expires_at,
                    timestamp=now,
                )
            )
        return order

    async def _publish(self, event) -> None:
        if self.publisher is not None:
            await self.publisher.publish(event)


def _order_placed(order: OrderAggregate, now: datetime) -> OrderPlaced:
    return OrderPlaced(
        order_id=order.id,
        buyer_id=order.buyer.id,
        product_id=order.product_id,
        quantity=order.quantity,
        total=order.total,
        payment_method=order.payment_method.value,
        payment_status=order.payment_status.value,
        timestamp=now,
    )
