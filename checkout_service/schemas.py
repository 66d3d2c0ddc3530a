"""
Checkout Service — Request / response models
"""

from datetime import datetime

from pydantic import BaseModel


class BoletoCheckoutRequest(BaseModel):
    quantity: int | None = 1


class PixCheckoutRequest(BaseModel):
    quantity: int | None = 1


class CardCheckoutRequest(BaseModel):
    quantity: int | None = 1
    card_number: str | None = None
    card_name: str | None = None
    cvv: str | None = None
    expiry_date: str | None = None

    def method_fields(self) -> dict:
        return self.model_dump(exclude={"quantity"})


class PixCheckoutResponse(BaseModel):
    success: bool = True
    message: str
    payment_method: str = "pix"
    order_id: int
    pix_code: str
    confirm_url: str
    expires_at: datetime
    total: float


class PixStatusResponse(BaseModel):
    success: bool = True
    order_id: int
    payment_status: str
    expires_at: datetime
    total: float
