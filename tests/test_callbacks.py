"""
Payment callback handler tests.

Run with:
    pytest tests/test_callbacks.py -v
"""

import asyncio

import httpx
import pytest
import pytest_asyncio

from order_service.callbacks import PaymentCallbackHandler
from order_service.checkout import CheckoutWorkflow
from order_service.exceptions import ShipmentAlreadyExistsError, UpstreamError
from order_service.gateways import LogisticsGateway
from order_service.schemas import OrderCreateRequest, ShipmentReceipt


@pytest.fixture
def handler(store, gateways, settings):
    return PaymentCallbackHandler(store, gateways, settings)


@pytest_asyncio.fixture
async def placed_order(store, gateways, settings):
    workflow = CheckoutWorkflow(store, gateways, settings)
    return await workflow.create_order(OrderCreateRequest(
        product_id="1",
        quantity=2,
        shipping_address="Jl. Merdeka 1, Bandung",
        destination_city="2",
        shipping_method="REGULER",
    ))


class TestUpdatePaymentStatus:

    @pytest.mark.asyncio
    async def test_marks_paid_and_ships(self, handler, store, gateways, placed_order):
        assert await handler.update_payment_status(placed_order.payment_reference, "PAID") is True

        order = await store.get_by_id(placed_order.id)
        assert order.payment_status == "PAID"
        assert order.status == "SHIPPED"
        assert order.shipping_receipt == "RESI-0001"

        request = gateways.logistics.shipment_calls[0]
        assert request.order_id == placed_order.id
        assert request.weight == 342
        assert (request.origin, request.destination, request.method) == ("1", "2", "REGULER")
        assert request.address == "Jl. Merdeka 1, Bandung"

    @pytest.mark.asyncio
    async def test_unknown_reference_returns_false(self, handler, store, gateways, placed_order):
        assert await handler.update_payment_status("VA-UNKNOWN", "PAID") is False

        order = await store.get_by_id(placed_order.id)
        assert order.payment_status == "UNPAID"
        assert gateways.logistics.shipment_calls == []

    @pytest.mark.asyncio
    async def test_second_callback_changes_nothing(self, handler, store, gateways, placed_order):
        await handler.update_payment_status(placed_order.payment_reference, "PAID")
        before = await store.get_by_id(placed_order.id)

        assert await handler.update_payment_status(placed_order.payment_reference, "PAID") is True

        after = await store.get_by_id(placed_order.id)
        assert (after.status, after.payment_status, after.shipping_receipt) == \
            (before.status, before.payment_status, before.shipping_receipt)
        assert len(gateways.logistics.shipment_calls) == 1

    @pytest.mark.asyncio
    async def test_shipment_failure_keeps_payment(self, handler, store, gateways, placed_order):
        gateways.logistics.shipment_error = UpstreamError("logistics", "HTTP 503")

        assert await handler.update_payment_status(placed_order.payment_reference, "PAID") is True

        order = await store.get_by_id(placed_order.id)
        assert order.payment_status == "PAID"
        assert order.status == "PROCESSED"
        assert order.shipping_receipt == f"MANUAL_CHECK-{placed_order.id}"

    @pytest.mark.asyncio
    async def test_missing_receipt_gets_placeholder(self, handler, store, gateways, placed_order):
        gateways.logistics.shipment_result = ShipmentReceipt(receipt=None, status="FAILED")

        await handler.update_payment_status(placed_order.payment_reference, "PAID")

        order = await store.get_by_id(placed_order.id)
        assert order.shipping_receipt == f"MANUAL_CHECK-{placed_order.id}"

    @pytest.mark.asyncio
    async def test_repeat_callback_retries_placeholder_shipment(self, handler, store, gateways, placed_order):
        gateways.logistics.shipment_error = UpstreamError("logistics", "HTTP 503")
        await handler.update_payment_status(placed_order.payment_reference, "PAID")

        gateways.logistics.shipment_error = None
        assert await handler.update_payment_status(placed_order.payment_reference, "PAID") is True

        order = await store.get_by_id(placed_order.id)
        assert order.shipping_receipt == "RESI-0001"
        assert order.status == "SHIPPED"
        assert order.payment_status == "PAID"
        assert len(gateways.logistics.shipment_calls) == 2

    @pytest.mark.asyncio
    async def test_duplicate_shipment_reuses_existing_receipt(self, handler, store, gateways, placed_order):
        gateways.logistics.shipment_error = ShipmentAlreadyExistsError("already exists", "RESI-OLD")

        assert await handler.update_payment_status(placed_order.payment_reference, "PAID") is True

        order = await store.get_by_id(placed_order.id)
        assert order.shipping_receipt == "RESI-OLD"
        assert order.status == "SHIPPED"

    @pytest.mark.asyncio
    async def test_duplicate_shipment_without_receipt_derives_one(self, handler, store, gateways, placed_order):
        gateways.logistics.shipment_error = ShipmentAlreadyExistsError("already exists")

        await handler.update_payment_status(placed_order.payment_reference, "PAID")

        order = await store.get_by_id(placed_order.id)
        assert order.shipping_receipt == f"EXISTING-{placed_order.id}"

    @pytest.mark.asyncio
    async def test_non_clearing_status_is_ignored(self, handler, store, gateways, placed_order):
        assert await handler.update_payment_status(placed_order.payment_reference, "EXPIRED") is True

        order = await store.get_by_id(placed_order.id)
        assert order.payment_status == "UNPAID"
        assert gateways.logistics.shipment_calls == []

    @pytest.mark.asyncio
    async def test_status_is_case_insensitive(self, handler, store, placed_order):
        assert await handler.update_payment_status(placed_order.payment_reference, "success") is True

        order = await store.get_by_id(placed_order.id)
        assert order.payment_status == "PAID"


class ScriptedLogistics:
    """Answers shipment requests from a script of results and errors."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.shipment_calls = []

    async def request_shipment(self, request):
        self.shipment_calls.append(request)
        await asyncio.sleep(0)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class TestConcurrentAndMalformed:

    @pytest.mark.asyncio
    async def test_concurrent_callbacks_keep_real_receipt(self, store, gateways, settings, placed_order):
        gateways.logistics = ScriptedLogistics(
            ShipmentReceipt(receipt="RESI-REAL", status="CREATED"),
            ShipmentAlreadyExistsError("already exists"),
        )
        handler = PaymentCallbackHandler(store, gateways, settings)

        results = await asyncio.gather(
            handler.update_payment_status(placed_order.payment_reference, "PAID"),
            handler.update_payment_status(placed_order.payment_reference, "PAID"),
        )

        assert results == [True, True]
        assert len(gateways.logistics.shipment_calls) == 1
        order = await store.get_by_id(placed_order.id)
        assert order.shipping_receipt == "RESI-REAL"
        assert order.status == "SHIPPED"
        assert order.payment_status == "PAID"

    @pytest.mark.asyncio
    async def test_real_receipt_survives_late_duplicate(self, store, placed_order):
        await store.mark_paid(placed_order.id)
        await store.set_shipping_receipt(placed_order.id, "RESI-REAL")

        order = await store.set_shipping_receipt(placed_order.id, f"EXISTING-{placed_order.id}")

        assert order.shipping_receipt == "RESI-REAL"

    @pytest.mark.asyncio
    async def test_malformed_shipment_payload_gets_placeholder(self, store, gateways, settings, placed_order):
        def respond(request):
            return httpx.Response(200, json={"data": {"createShipmentFromMarketplace": {"nomorResi": 12345}}})

        client = httpx.AsyncClient(transport=httpx.MockTransport(respond))
        gateways.logistics = LogisticsGateway(settings.LOGISTICS_SERVICE_URL, client)
        handler = PaymentCallbackHandler(store, gateways, settings)

        assert await handler.update_payment_status(placed_order.payment_reference, "PAID") is True
        await client.aclose()

        order = await store.get_by_id(placed_order.id)
        assert order.payment_status == "PAID"
        assert order.status == "PROCESSED"
        assert order.shipping_receipt == f"MANUAL_CHECK-{placed_order.id}"
