"""
Checkout Service — Event definitions

Facts published on the ``order_events`` channel after the transaction
that produced them has committed. Named in the past tense, never mutated.
Events carry ids and amounts only: no buyer contact data, no tokens.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel


class OrderPlaced(BaseModel):
    """An order was written to the ledger (approved for card/boleto, pending for PIX)."""
    order_id: int
    buyer_id: int
    product_id: int
    quantity: int
    total: Decimal
    payment_method: str
    payment_status: str
    timestamp: datetime


class PaymentApproved(BaseModel):
    """A PIX payment was confirmed and its stock reserved."""
    order_id: int
    product_id: int
    quantity: int
    timestamp: datetime


class PaymentFailed(BaseModel):
    """A PIX payment was confirmed but the stock was gone."""
    order_id: int
    product_id: int
    reason: str
    timestamp: datetime


class PaymentExpired(BaseModel):
    """A PIX payment passed its deadline before being confirmed."""
    order_id: int
    expired_at: datetime
    timestamp: datetime
