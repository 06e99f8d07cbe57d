"""
Shared fixtures: a temporary SQLite database and in-memory fakes standing in
for the product, logistics and payment services.
"""

from decimal import Decimal

import pytest
import pytest_asyncio

from order_service.config import Settings
from order_service.crud import OrderStore
from order_service.db import Database
from order_service.exceptions import UpstreamError
from order_service.gateways import Gateways
from order_service.schemas import (
    PaymentTicket,
    Product,
    ShipmentReceipt,
    ShippingOption,
)


class FakeProductGateway:
    def __init__(self, products=None):
        self.products = products or {}
        self.decrease_calls = []
        self.decrease_error = None

    async def fetch_product(self, product_id):
        if product_id not in self.products:
            raise UpstreamError("product", f"product {product_id} not found")
        return self.products[product_id]

    async def decrease_stock(self, product_id, quantity):
        self.decrease_calls.append((product_id, quantity))
        if self.decrease_error:
            raise self.decrease_error
        return True


class FakeLogisticsGateway:
    def __init__(self, options=None):
        self.options = options or []
        self.quote_calls = []
        self.quote_error = None
        self.shipment_calls = []
        self.shipment_result = ShipmentReceipt(receipt="RESI-0001", status="CREATED")
        self.shipment_error = None

    async def fetch_shipping_options(self, origin, destination, weight):
        self.quote_calls.append((origin, destination, weight))
        if self.quote_error:
            raise self.quote_error
        return list(self.options)

    async def request_shipment(self, request):
        self.shipment_calls.append(request)
        if self.shipment_error:
            raise self.shipment_error
        return self.shipment_result


class FakePaymentGateway:
    def __init__(self):
        self.calls = []
        self.error = None
        self.counter = 0

    async def request_payment(self, amount):
        self.calls.append(amount)
        if self.error:
            raise self.error
        self.counter += 1
        return PaymentTicket(payment_reference=f"VA-TEST-{self.counter}", transaction_id=f"TRX-{self.counter}",
                             status="PENDING")


@pytest.fixture
def settings(tmp_path):
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}",
        ORIGIN_CITY_ID="1",
        PICKUP_ADDRESS="Gudang Pusat Jakarta",
        RABBIT_ENABLED=False,
    )


@pytest.fixture
def laptop():
    return Product(id="1", name="Laptop Pro 14", price=Decimal("15000000"), weight=171, stock=5)


@pytest.fixture
def gateways(laptop):
    return Gateways(
        product=FakeProductGateway({"1": laptop}),
        logistics=FakeLogisticsGateway([
            ShippingOption(method="REGULER", cost=Decimal("10855"), eta_days="2-3"),
            ShippingOption(method="EXPRESS", cost=Decimal("25000"), eta_days="1"),
        ]),
        payment=FakePaymentGateway(),
    )


@pytest_asyncio.fixture
async def database(settings):
    db = Database(settings.DATABASE_URL)
    await db.open()
    yield db
    await db.close()


@pytest_asyncio.fixture
async def store(database):
    return OrderStore(database.session_factory)
