import asyncio
import logging
from uuid import UUID

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Query, Request

from order_service import schemas, workers
from order_service.callbacks import PaymentCallbackHandler
from order_service.checkout import CheckoutWorkflow
from order_service.config import Settings, settings as default_settings
from order_service.crud import OrderStore
from order_service.db import Database
from order_service.exceptions import CheckoutError, PersistenceError, UpstreamError
from order_service.gateways import Gateways
from order_service.messaging import Broker

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, gateways: Gateways | None = None) -> FastAPI:
    settings = settings or default_settings
    app = FastAPI(title="Order Service")

    @app.on_event("startup")
    async def startup_event():
        app.state.database = Database(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
        await app.state.database.open()

        app.state.gateways = gateways or Gateways.from_settings(settings)
        app.state.store = OrderStore(app.state.database.session_factory)
        app.state.checkout = CheckoutWorkflow(app.state.store, app.state.gateways, settings)
        app.state.callbacks = PaymentCallbackHandler(app.state.store, app.state.gateways, settings)

        app.state.broker = None
        app.state.consumer_task = None
        if settings.RABBIT_ENABLED:
            app.state.broker = Broker(settings)
            await app.state.broker.init()
            app.state.consumer_task = asyncio.create_task(
                workers.payment_status_consumer(app.state.broker, app.state.callbacks)
            )
        logger.info("[Orders] Order service started (db=%s, rabbit=%s)", settings.DATABASE_URL, settings.RABBIT_ENABLED)

    @app.on_event("shutdown")
    async def shutdown_event():
        if app.state.consumer_task:
            app.state.consumer_task.cancel()
        if app.state.broker:
            await app.state.broker.close()
        if gateways is None:
            await app.state.gateways.aclose()
        await app.state.database.close()
        logger.info("[Orders] Order service stopped")

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/orders", response_model=list[schemas.OrderRead])
    async def list_orders(store: OrderStore = Depends(get_store)):
        return [schemas.OrderRead.from_order(o) for o in await store.list_all()]

    @app.get("/orders/by-payment-reference/{payment_reference}", response_model=schemas.OrderRead)
    async def get_order_by_payment_reference(
        payment_reference: str,
        store: OrderStore = Depends(get_store),
    ):
        order = await store.get_by_payment_reference(payment_reference)
        if not order:
            raise HTTPException(status_code=404, detail="Order not found")
        return schemas.OrderRead.from_order(order)

    @app.get("/orders/{order_id}", response_model=schemas.OrderRead)
    async def get_order(order_id: UUID, store: OrderStore = Depends(get_store)):
        order = await store.get_by_id(order_id)
        if not order:
            raise HTTPException(status_code=404, detail="Order not found")
        return schemas.OrderRead.from_order(order)

    @app.post("/orders", response_model=schemas.OrderRead)
    async def create_order(
        order_in: schemas.OrderCreateRequest,
        checkout: CheckoutWorkflow = Depends(get_checkout),
    ):
        try:
            order = await checkout.create_order(order_in)
        except CheckoutError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except UpstreamError as e:
            raise HTTPException(status_code=502, detail=str(e))
        except PersistenceError as e:
            raise HTTPException(status_code=500, detail=str(e))
        return schemas.OrderRead.from_order(order)

    @app.get("/shipping-options", response_model=list[schemas.ShippingOptionRead])
    async def get_shipping_options(
        destination_city: str = Query(..., alias="destinationCity"),
        product_id: str = Query(..., alias="productId"),
        quantity: int = Query(..., gt=0),
        checkout: CheckoutWorkflow = Depends(get_checkout),
    ):
        try:
            options = await checkout.get_shipping_options(destination_city, product_id, quantity)
        except UpstreamError as e:
            raise HTTPException(status_code=502, detail=str(e))
        return [
            schemas.ShippingOptionRead(method=o.method, cost=o.cost, eta_days=o.eta_days)
            for o in options
        ]

    @app.post("/payments/callback", response_model=schemas.PaymentStatusResult)
    async def update_payment_status(
        update: schemas.PaymentStatusUpdate,
        callbacks: PaymentCallbackHandler = Depends(get_callbacks),
    ):
        try:
            success = await callbacks.update_payment_status(update.payment_reference, update.status)
        except PersistenceError as e:
            raise HTTPException(status_code=500, detail=str(e))
        return schemas.PaymentStatusResult(success=success)

    return app


def get_store(request: Request) -> OrderStore:
    return request.app.state.store


def get_checkout(request: Request) -> CheckoutWorkflow:
    return request.app.state.checkout


def get_callbacks(request: Request) -> PaymentCallbackHandler:
    return request.app.state.callbacks


app = create_app()


if __name__ == "__main__":
    logging.basicConfig(level=default_settings.LOG_LEVEL)
    uvicorn.run("order_service.main:app", host="0.0.0.0", port=7003)
