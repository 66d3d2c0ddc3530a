"""
Checkout Service — FastAPI entry point

Commands (POST) change state through the Checkout workflow; queries (GET)
read orders and products. Domain errors become JSON responses of the form
``{"success": false, "error": <code>, "message": <text>}``.
"""

from contextlib import asynccontextmanager
from datetime import timedelta

import redis.asyncio as aioredis
from fastapi import Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse

from . import identity, queries
from .aggregate import PaymentStatus
from .commands import Checkout
from .config import Settings
from .database import create_engine, create_session_factory, init_schema
from .errors import (
    AuthenticationRequired,
    CheckoutError,
    PaymentExpired,
    PaymentFailed,
)
from .identity import Buyer
from .publisher import EventPublisher
from .reservation import InventoryReservationEngine
from .schemas import (
    BoletoCheckoutRequest,
    CardCheckoutRequest,
    PixCheckoutRequest,
    PixCheckoutResponse,
    PixStatusResponse,
)
from .utils.logging import add_context, clear_context, configure_logging, get_logger

logger = get_logger(__name__)


def describe_ttl(ttl: timedelta) -> str:
    """Human-readable payment window: whole minutes when exact, else seconds."""
    seconds = int(ttl.total_seconds())
    if seconds % 60:
        return f"{seconds} second" if seconds == 1 else f"{seconds} seconds"
    minutes = seconds // 60
    return f"{minutes} minute" if minutes == 1 else f"{minutes} minutes"


def create_app(settings: Settings | None = None, redis: aioredis.Redis | None = None) -> FastAPI:
    settings = settings or Settings.from_env()
    engine = create_engine(settings.database_url)
    session_factory = create_session_factory(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging()
        await init_schema(engine)
        redis_client = redis or aioredis.from_url(settings.redis_url, decode_responses=True)
        app.state.checkout = Checkout(
            session_factory,
            InventoryReservationEngine(
                strategy=settings.reservation_strategy,
                max_retries=settings.reservation_max_retries,
            ),
            publisher=EventPublisher(redis_client),
            pix_ttl=settings.pix_ttl,
        )
        yield
        if redis is None:
            await redis_client.aclose()
        await engine.dispose()

    app = FastAPI(title="Checkout Service", lifespan=lifespan)
    app.state.settings = settings
    app.state.session_factory = session_factory

    @app.exception_handler(CheckoutError)
    async def handle_checkout_error(request: Request, exc: CheckoutError):
        if exc.status_code >= 500:
            logger.error("Checkout request failed", path=request.url.path, error=exc.code)
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.code, "message": exc.message},
        )

    @app.middleware("http")
    async def bind_request_context(request: Request, call_next):
        clear_context()
        add_context(method=request.method, path=request.url.path)
        return await call_next(request)

    # ── Dependencies ─────────────────────────────

    def get_checkout(request: Request) -> Checkout:
        return request.app.state.checkout

    async def current_user(
        request: Request,
        authorization: str | None = Header(default=None),
    ) -> Buyer:
        scheme, _, token = (authorization or "").partition(" ")
        if scheme.lower() != "bearer" or not token:
            raise AuthenticationRequired()
        async with request.app.state.session_factory() as session:
            caller = await identity.resolve_caller(session, token.strip())
        if caller is None:
            raise AuthenticationRequired("User not found or deactivated")
        add_context(caller_id=caller.id)
        return caller

    # ── Command endpoints (write side) ──────────

    @app.post("/commands/checkout/card/{product_id}", status_code=201)
    async def cmd_checkout_card(
        product_id: int,
        req: CardCheckoutRequest,
        caller: Buyer = Depends(current_user),
        checkout: Checkout = Depends(get_checkout),
    ):
        """Card purchase: stock reserved and order approved in one step."""
        order = await checkout.purchase_immediate(
            caller.id, product_id, req.quantity, "card", req.method_fields()
        )
        return {
            "success": True,
            "message": "Purchase completed",
            "payment_method": "card",
            "data": order.to_payload(),
        }

    @app.post("/commands/checkout/boleto/{product_id}", status_code=201)
    async def cmd_checkout_boleto(
        product_id: int,
        req: BoletoCheckoutRequest,
        caller: Buyer = Depends(current_user),
        checkout: Checkout = Depends(get_checkout),
    ):
        order = await checkout.purchase_immediate(caller.id, product_id, req.quantity, "boleto")
        return {
            "success": True,
            "message": "Boleto issued, purchase completed",
            "payment_method": "boleto",
            "data": order.to_payload(),
        }

    @app.post(
        "/commands/checkout/pix/{product_id}",
        status_code=201,
        response_model=PixCheckoutResponse,
    )
    async def cmd_checkout_pix(
        product_id: int,
        req: PixCheckoutRequest,
        request: Request,
        caller: Buyer = Depends(current_user),
        checkout: Checkout = Depends(get_checkout),
    ):
        """PIX: issue a one-time code. Stock is only taken on confirmation."""
        payment = await checkout.initiate_deferred(caller.id, product_id, req.quantity)
        base_url = settings.public_base_url or str(request.base_url).rstrip("/")
        return PixCheckoutResponse(
            message=f"PIX code generated. Payment expires in {describe_ttl(checkout.pix_ttl)}.",
            order_id=payment.order_id,
            pix_code=payment.token,
            confirm_url=f"{base_url}/commands/checkout/pix/confirm/{payment.token}",
            expires_at=payment.expires_at,
            total=float(payment.total),
        )

    @app.post("/commands/checkout/pix/confirm/{pix_code}")
    async def cmd_confirm_pix(pix_code: str, checkout: Checkout = Depends(get_checkout)):
        """Public: called by the payer's bank (simulated). Safe to repeat."""
        order = await checkout.confirm_deferred(pix_code)
        if order.payment_status is PaymentStatus.EXPIRED:
            raise PaymentExpired()
        if order.payment_status is PaymentStatus.FAILED:
            raise PaymentFailed()
        return {"success": True, "message": "Payment confirmed", "data": order.to_payload()}

    # ── Query endpoints (read side) ─────────────

    @app.get("/queries/checkout/pix/status/{pix_code}", response_model=PixStatusResponse)
    async def query_pix_status(pix_code: str, checkout: Checkout = Depends(get_checkout)):
        status = await checkout.poll_deferred(pix_code)
        return PixStatusResponse(
            order_id=status.order_id,
            payment_status=status.payment_status.value,
            expires_at=status.expires_at,
            total=float(status.total),
        )

    @app.get("/queries/orders")
    async def query_list_orders(
        request: Request,
        status: str | None = None,
        buyer_id: int | None = None,
        page: int = 1,
        limit: int = 10,
        caller: Buyer = Depends(current_user),
    ):
        async with request.app.state.session_factory() as session:
            result = await queries.list_orders(session, caller, status, buyer_id, page, limit)
        return {"success": True, **result}

    @app.get("/queries/orders/buyer/{buyer_id}")
    async def query_buyer_orders(
        buyer_id: int,
        request: Request,
        caller: Buyer = Depends(current_user),
    ):
        async with request.app.state.session_factory() as session:
            data = await queries.list_buyer_orders(session, caller, buyer_id)
        return {"success": True, "data": data}

    @app.get("/queries/orders/{order_id}")
    async def query_get_order(
        order_id: int,
        request: Request,
        caller: Buyer = Depends(current_user),
    ):
        async with request.app.state.session_factory() as session:
            data = await queries.get_order(session, caller, order_id)
        return {"success": True, "data": data}

    @app.get("/queries/products/{product_id}")
    async def query_get_product(product_id: int, request: Request):
        async with request.app.state.session_factory() as session:
            data = await queries.get_product(session, product_id)
        return {"success": True, "data": data}

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": "checkout-service"}

    return app


app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run("checkout_service.main:app", host="0.0.0.0", port=8000)
