"""
Checkout Service — Identity lookups

Authentication itself lives outside this service. Callers present an API
token; we keep only its SHA-256 hash and resolve it to a Buyer. Nothing
but id, name and email ever leaves this module towards a response.
"""

import hashlib
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .database import users


@dataclass(frozen=True)
class Buyer:
    id: int
    name: str
    email: str
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def public_fields(self) -> dict:
        return {"id": self.id, "name": self.name, "email": self.email}


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


async def resolve_caller(session: AsyncSession, token: str) -> Buyer | None:
    """Return the active user owning ``token``, or None."""
    result = await session.execute(
        select(users.c.id, users.c.name, users.c.email, users.c.role).where(
            users.c.token_hash == hash_token(token),
            users.c.deleted.is_(False),
        )
    )
    row = result.first()
    if not row:
        return None
    return Buyer(id=row.id, name=row.name, email=row.email, role=row.role)


async def get_buyer(session: AsyncSession, buyer_id: int) -> Buyer | None:
    result = await session.execute(
        select(users.c.id, users.c.name, users.c.email, users.c.role).where(
            users.c.id == buyer_id,
            users.c.deleted.is_(False),
        )
    )
    row = result.first()
    if not row:
        return None
    return Buyer(id=row.id, name=row.name, email=row.email, role=row.role)
