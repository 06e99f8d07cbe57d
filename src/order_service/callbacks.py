import logging

from order_service.config import Settings
from order_service.crud import OrderStore
from order_service.exceptions import ShipmentAlreadyExistsError, UpstreamError
from order_service.gateways import Gateways
from order_service.models import Order, is_placeholder, placeholder_receipt
from order_service.schemas import ShipmentRequest

logger = logging.getLogger("orders.callbacks")

CLEARED_STATUSES = {"PAID", "SUCCESS", "SETTLED", "SETTLEMENT", "COMPLETED"}


class PaymentCallbackHandler:
    def __init__(self, store: OrderStore, gateways: Gateways, settings: Settings):
        self.store = store
        self.gateways = gateways
        self.settings = settings

    async def update_payment_status(self, payment_reference: str, status: str) -> bool:
        """
        Applies a payment notification keyed by payment reference.

        Returns False only when no order carries the reference. Once the
        order is paid the result is True, whatever happened to the shipment.
        Only the caller that marks the order paid requests the shipment; a
        later callback retries it only while a placeholder receipt is stored.
        """
        logger.info("[Orders] Payment update: VA %s -> %s", payment_reference, status)
        order = await self.store.get_by_payment_reference(payment_reference)
        if order is None:
            logger.warning("[Orders] No order with VA %s", payment_reference)
            return False

        if status.upper() not in CLEARED_STATUSES:
            logger.info("[Orders] Status %s for order %s does not clear payment, ignored", status, order.id)
            return True

        if await self.store.mark_paid(order.id):
            logger.info("[Orders] Order %s marked PAID", order.id)
        else:
            order = await self.store.get_by_id(order.id)
            if order.shipping_receipt is None:
                logger.info("[Orders] Order %s already paid, shipment requested elsewhere", order.id)
                return True
            if not is_placeholder(order.shipping_receipt):
                logger.info("[Orders] Order %s already paid and shipped (%s)", order.id, order.shipping_receipt)
                return True
            logger.info("[Orders] Retrying shipment for order %s (%s)", order.id, order.shipping_receipt)

        receipt, shipped = await self._request_shipment(order)
        stored = await self.store.set_shipping_receipt(order.id, receipt, shipped=shipped)
        logger.info("[Orders] Order %s receipt %s", order.id, stored.shipping_receipt)
        return True

    async def _request_shipment(self, order: Order) -> tuple[str, bool]:
        request = ShipmentRequest(
            order_id=order.id,
            address=order.shipping_address,
            weight=order.total_weight,
            origin=self.settings.ORIGIN_CITY_ID,
            destination=order.destination_city,
            method=order.shipping_method,
            pickup_address=self.settings.PICKUP_ADDRESS,
        )
        try:
            result = await self.gateways.logistics.request_shipment(request)
        except ShipmentAlreadyExistsError as e:
            receipt = e.receipt or f"EXISTING-{order.id}"
            logger.info("[Orders] Shipment for order %s already exists, using %s", order.id, receipt)
            return receipt, True
        except UpstreamError as e:
            logger.error("[Orders] Shipment request for order %s failed: %s", order.id, e)
            return placeholder_receipt(order.id), False

        if not result.receipt:
            logger.error("[Orders] Shipment for order %s returned no receipt (status %s)", order.id, result.status)
            return placeholder_receipt(order.id), False
        return result.receipt, True
