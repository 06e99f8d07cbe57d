import json
import logging

from pydantic import ValidationError

from order_service.callbacks import PaymentCallbackHandler
from order_service.exceptions import OrderServiceError
from order_service.messaging import Broker
from order_service.schemas import PaymentStatusUpdate

logger = logging.getLogger("orders.workers")


def parse_payment_status(body: bytes) -> PaymentStatusUpdate | None:
    try:
        data = json.loads(body.decode())
        if "vaNumber" in data and "paymentReference" not in data:
            data["paymentReference"] = data.pop("vaNumber")
        return PaymentStatusUpdate.model_validate(data)
    except (ValueError, TypeError, AttributeError, ValidationError) as e:
        logger.error("[Orders] Invalid payment status message: %s", e)
        return None


async def handle_payment_status(body: bytes, handler: PaymentCallbackHandler) -> bool | None:
    event = parse_payment_status(body)
    if event is None:
        return None
    try:
        return await handler.update_payment_status(event.payment_reference, event.status)
    except OrderServiceError as e:
        logger.error("[Orders] Payment status for VA %s not applied: %s", event.payment_reference, e)
        return None


async def payment_status_consumer(broker: Broker, handler: PaymentCallbackHandler):
    queue = await broker.payment_status_queue()

    logger.info("[Orders] Starting payment_status_consumer on '%s'", queue.name)
    async with queue.iterator() as it:
        async for message in it:
            async with message.process():
                logger.info("[Orders] Received payment status message: %s", message.body.decode(errors="replace"))
                result = await handle_payment_status(message.body, handler)
                logger.info("[Orders] Payment status message handled: %s", result)
