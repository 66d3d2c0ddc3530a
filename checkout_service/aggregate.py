"""
Checkout Service — Order Aggregate

One order = one product line paid with one payment method.

Payment state machine:
    PENDING → APPROVED  (stock reserved)
    PENDING → FAILED    (stock insufficient when a PIX payment is confirmed)
    PENDING → EXPIRED   (PIX confirmed or polled after its deadline)

APPROVED, FAILED and EXPIRED are terminal. Card and boleto orders are
written directly as APPROVED; only PIX orders ever sit in PENDING.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from .identity import Buyer


class PaymentMethod(str, Enum):
    CARD = "card"
    BOLETO = "boleto"
    PIX = "pix"

    @property
    def settles_immediately(self) -> bool:
        return self is not PaymentMethod.PIX


class PaymentStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    FAILED = "failed"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self is not PaymentStatus.PENDING


TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset(
        {PaymentStatus.APPROVED, PaymentStatus.FAILED, PaymentStatus.EXPIRED}
    ),
    PaymentStatus.APPROVED: frozenset(),
    PaymentStatus.FAILED: frozenset(),
    PaymentStatus.EXPIRED: frozenset(),
}

# Display label; payment_status stays the only source of truth.
ORDER_STATUS_LABELS = {
    PaymentStatus.PENDING: "pending",
    PaymentStatus.APPROVED: "approved",
    PaymentStatus.FAILED: "cancelled",
    PaymentStatus.EXPIRED: "cancelled",
}


def can_transition(current: PaymentStatus, target: PaymentStatus) -> bool:
    return target in TRANSITIONS[current]


class OrderAggregate:
    """An order as read back from the ledger, joined with buyer and product names."""

    def __init__(self) -> None:
        self.id: int | None = None
        self.buyer: Buyer | None = None
        self.product_id: int | None = None
        self.product_name: str | None = None
        self.quantity: int = 0
        self.unit_price: Decimal = Decimal("0.00")
        self.total: Decimal = Decimal("0.00")
        self.payment_method: PaymentMethod | None = None
        self.payment_status: PaymentStatus = PaymentStatus.PENDING
        self.deferred_token: str | None = None
        self.deferred_expires_at: datetime | None = None
        self.created_at: datetime | None = None
        self.updated_at: datetime | None = None

    @property
    def order_status(self) -> str:
        return ORDER_STATUS_LABELS[self.payment_status]

    @property
    def is_terminal(self) -> bool:
        return self.payment_status.is_terminal

    def is_expired(self, now: datetime) -> bool:
        """True once a deferred payment's deadline has passed."""
        return self.deferred_expires_at is not None and now > self.deferred_expires_at

    @classmethod
    def from_row(cls, row) -> "OrderAggregate":
        agg = cls()
        agg.id = row.id
        agg.buyer = Buyer(
            id=row.buyer_id,
            name=row.buyer_name,
            email=row.buyer_email,
            role=row.buyer_role,
        )
        agg.product_id = row.product_id
        agg.product_name = row.product_name
        agg.quantity = row.quantity
        agg.unit_price = Decimal(row.unit_price)
        agg.total = Decimal(row.total)
        agg.payment_method = PaymentMethod(row.payment_method)
        agg.payment_status = PaymentStatus(row.payment_status)
        agg.deferred_token = row.deferred_token
        agg.deferred_expires_at = row.deferred_expires_at
        agg.created_at = row.created_at
        agg.updated_at = row.updated_at
        return agg

    def to_payload(self) -> dict:
        """Presentation payload. Buyer reduced to id/name/email; no token."""
        payload = {
            "id": self.id,
            "buyer": self.buyer.public_fields() if self.buyer else None,
            "product": {"id": self.product_id, "name": self.product_name},
            "quantity": self.quantity,
            "unit_price": float(self.unit_price),
            "total": float(self.total),
            "payment_method": self.payment_method.value if self.payment_method else None,
            "payment_status": self.payment_status.value,
            "order_status": self.order_status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if self.payment_method is PaymentMethod.PIX:
            payload["expires_at"] = (
                self.deferred_expires_at.isoformat() if self.deferred_expires_at else None
            )
        return payload
