"""
Checkout Service — Payment method validation

Stateless checks run before anything touches the database. Error
messages name the offending field but never echo its value.
"""

import calendar
import re
import secrets
from datetime import date

from .errors import InvalidCardDetails, MalformedToken

CARD_NUMBER_RE = re.compile(r"[0-9]{16}")
CVV_RE = re.compile(r"[0-9]{3,4}")
CARD_NAME_RE = re.compile(r"[a-zA-ZÀ-ÿ ]{3,}")
EXPIRY_RE = re.compile(r"(0[1-9]|1[0-2])/([0-9]{2}|[0-9]{4})")

PIX_CODE_BYTES = 24
PIX_CODE_RE = re.compile(r"[A-Za-z0-9_-]{32}")


# ── Card ─────────────────────────────────────────


def is_valid_card_number(card_number: str) -> bool:
    cleaned = re.sub(r"[ -]", "", card_number)
    return bool(CARD_NUMBER_RE.fullmatch(cleaned))


def is_valid_cvv(cvv: str) -> bool:
    return bool(CVV_RE.fullmatch(cvv))


def is_valid_card_name(name: str) -> bool:
    return bool(CARD_NAME_RE.fullmatch(name))


def is_valid_expiry_date(expiry_date: str, today: date) -> bool:
    """MM/YY or MM/YYYY; a card is usable through the last day of its month."""
    match = EXPIRY_RE.fullmatch(expiry_date)
    if not match:
        return False
    month = int(match.group(1))
    year = match.group(2)
    full_year = int(f"20{year}") if len(year) == 2 else int(year)
    if full_year < 2000:
        return False
    last_day = calendar.monthrange(full_year, month)[1]
    return date(full_year, month, last_day) >= today


def validate_card(fields: dict, today: date) -> None:
    card_number = fields.get("card_number")
    card_name = fields.get("card_name")
    cvv = fields.get("cvv")
    expiry_date = fields.get("expiry_date")

    if not card_number or not card_name or not cvv or not expiry_date:
        raise InvalidCardDetails("Incomplete card details")
    if not is_valid_card_number(card_number):
        raise InvalidCardDetails("Invalid card number")
    if not is_valid_card_name(card_name):
        raise InvalidCardDetails("Invalid cardholder name")
    if not is_valid_cvv(cvv):
        raise InvalidCardDetails("Invalid CVV")
    if not is_valid_expiry_date(expiry_date, today):
        raise InvalidCardDetails("Invalid expiry date or card expired")


# ── PIX ──────────────────────────────────────────


def new_pix_code() -> str:
    return secrets.token_urlsafe(PIX_CODE_BYTES)


def validate_pix_code(code: str) -> None:
    if not isinstance(code, str) or not PIX_CODE_RE.fullmatch(code):
        raise MalformedToken()
