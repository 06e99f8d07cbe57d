import enum
import logging
import time
import uuid
from decimal import Decimal
from typing import List

from order_service.config import Settings
from order_service.crud import OrderStore
from order_service.exceptions import (
    CheckoutError,
    InsufficientStockError,
    InvalidShippingMethodError,
    OrderServiceError,
    UpstreamError,
)
from order_service.gateways import Gateways
from order_service.models import Order, OrderItem, OrderStatus, PaymentStatus
from order_service.schemas import OrderCreateRequest, ShippingOption

logger = logging.getLogger("orders.checkout")


class CheckoutState(str, enum.Enum):
    VALIDATING_STOCK = "VALIDATING_STOCK"
    PRICING_SHIPPING = "PRICING_SHIPPING"
    CHARGING_PAYMENT = "CHARGING_PAYMENT"
    DECREASING_STOCK = "DECREASING_STOCK"
    PERSISTING = "PERSISTING"
    DONE = "DONE"
    ABORTED = "ABORTED"


def fallback_payment_reference() -> str:
    return f"VA-OFFLINE-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}"


class CheckoutWorkflow:
    """
    One pass per request: validate stock, price shipping, charge payment,
    decrease stock, persist. Holds no per-request state.
    """

    def __init__(self, store: OrderStore, gateways: Gateways, settings: Settings):
        self.store = store
        self.gateways = gateways
        self.settings = settings

    async def get_shipping_options(
        self,
        destination_city: str,
        product_id: str,
        quantity: int,
    ) -> List[ShippingOption]:
        logger.info("[Orders] Shipping quote to city %s for %d x product %s",
                    destination_city, quantity, product_id)
        product = await self.gateways.product.fetch_product(product_id)
        return await self.gateways.logistics.fetch_shipping_options(
            self.settings.ORIGIN_CITY_ID, destination_city, product.weight * quantity
        )

    async def create_order(self, order_in: OrderCreateRequest) -> Order:
        state = CheckoutState.VALIDATING_STOCK
        logger.info("[Orders] Checkout started: product %s, quantity %d, method %s",
                    order_in.product_id, order_in.quantity, order_in.shipping_method)
        try:
            product = await self.gateways.product.fetch_product(order_in.product_id)
            if order_in.quantity > product.stock:
                raise InsufficientStockError(product.stock, order_in.quantity)

            state = self._advance(state, CheckoutState.PRICING_SHIPPING)
            total_weight = product.weight * order_in.quantity
            options = await self.gateways.logistics.fetch_shipping_options(
                self.settings.ORIGIN_CITY_ID, order_in.destination_city, total_weight
            )
            selected = next((opt for opt in options if opt.method == order_in.shipping_method), None)
            if selected is None:
                raise InvalidShippingMethodError(order_in.shipping_method, [opt.method for opt in options])
            shipping_cost = selected.cost

            grand_total = product.price * order_in.quantity + shipping_cost
            logger.info("[Orders] Shipping %s costs %s, grand total %s",
                        selected.method, shipping_cost, grand_total)

            state = self._advance(state, CheckoutState.CHARGING_PAYMENT)
            payment_reference, status = await self._charge(grand_total)

            state = self._advance(state, CheckoutState.DECREASING_STOCK)
            await self._decrease_stock(order_in.product_id, order_in.quantity)

            state = self._advance(state, CheckoutState.PERSISTING)
            order = Order(
                status=status.value,
                payment_status=PaymentStatus.UNPAID.value,
                total_amount=grand_total,
                shipping_address=order_in.shipping_address,
                shipping_method=selected.method,
                shipping_cost=shipping_cost,
                destination_city=order_in.destination_city,
                total_weight=total_weight,
                payment_reference=payment_reference,
            )
            item = OrderItem(
                product_id=order_in.product_id,
                product_name=product.name,
                quantity=order_in.quantity,
                price_at_purchase=product.price,
                weight_per_item=product.weight,
            )
            order_id = await self.store.insert(order, [item])
            stored = await self.store.get_by_id(order_id)

            self._advance(state, CheckoutState.DONE)
            logger.info("[Orders] Order %s created with payment reference %s", order_id, payment_reference)
            return stored
        except CheckoutError as e:
            e.state = state
            logger.warning("[Orders] Checkout %s at %s: %s", CheckoutState.ABORTED.value, state.value, e)
            raise
        except OrderServiceError as e:
            logger.error("[Orders] Checkout %s at %s: %s", CheckoutState.ABORTED.value, state.value, e)
            raise

    async def _charge(self, amount: Decimal) -> tuple[str, OrderStatus]:
        try:
            ticket = await self.gateways.payment.request_payment(amount)
        except UpstreamError as e:
            reference = fallback_payment_reference()
            logger.error("[Orders] Payment gateway unavailable (%s), using offline reference %s",
                         e, reference)
            return reference, OrderStatus.MANUAL_CHECK
        logger.info("[Orders] VA created: %s", ticket.payment_reference)
        return ticket.payment_reference, OrderStatus.PENDING

    async def _decrease_stock(self, product_id: str, quantity: int) -> None:
        try:
            await self.gateways.product.decrease_stock(product_id, quantity)
        except UpstreamError as e:
            logger.warning("[Orders] Stock of product %s not decreased by %d: %s",
                           product_id, quantity, e)

    @staticmethod
    def _advance(current: CheckoutState, nxt: CheckoutState) -> CheckoutState:
        logger.debug("[Orders] Checkout %s -> %s", current.value, nxt.value)
        return nxt
