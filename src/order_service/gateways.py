import logging
from contextlib import contextmanager
from decimal import Decimal
from typing import Any, List

import httpx
from pydantic import ValidationError

from order_service.config import Settings
from order_service.exceptions import ShipmentAlreadyExistsError, UpstreamError
from order_service.schemas import (
    PaymentTicket,
    Product,
    ShipmentReceipt,
    ShipmentRequest,
    ShippingOption,
)

logger = logging.getLogger("orders.gateways")

DUPLICATE_CODES = {"ALREADY_EXISTS", "DUPLICATE", "DUPLICATE_SHIPMENT"}

GET_PRODUCT = """
query GetProduct($id: ID!) {
  getProduct(id: $id) { namaProduk harga berat stok }
}
"""

DECREASE_STOCK = """
mutation DecreaseStock($productId: ID!, $quantity: Int!) {
  decreaseStock(productId: $productId, quantity: $quantity)
}
"""

GET_SHIPPING_OPTIONS = """
query GetShippingOptions($kotaAsal: String!, $kotaTujuan: String!, $berat: Int!) {
  getShippingOptions(kotaAsal: $kotaAsal, kotaTujuan: $kotaTujuan, berat: $berat) {
    metodePengiriman
    hargaOngkir
    estimasiHari
  }
}
"""

CREATE_SHIPMENT = """
mutation CreateShipment(
  $orderId: String!, $alamatPengiriman: String!, $alamatPenjemputan: String!,
  $berat: Int!, $kotaAsal: String!, $kotaTujuan: String!, $metodePengiriman: String
) {
  createShipmentFromMarketplace(
    orderId: $orderId,
    alamatPengiriman: $alamatPengiriman,
    alamatPenjemputan: $alamatPenjemputan,
    berat: $berat,
    kotaAsal: $kotaAsal,
    kotaTujuan: $kotaTujuan,
    metodePengiriman: $metodePengiriman
  ) { nomorResi status }
}
"""

CREATE_TRANSACTION = """
mutation CreateTransaction($walletId: String!, $amount: Float!) {
  createTransaction(input: {walletId: $walletId, amount: $amount, type: PAYMENT}) {
    transactionId
    vaNumber
    status
  }
}
"""


class GraphQLGateway:
    service = "upstream"

    def __init__(self, url: str, client: httpx.AsyncClient):
        self.url = url
        self.client = client

    async def _post(self, query: str, variables: dict) -> httpx.Response:
        try:
            return await self.client.post(self.url, json={"query": query, "variables": variables})
        except httpx.HTTPError as e:
            logger.error("[Orders] %s call failed: %s", self.service, e)
            raise UpstreamError(self.service, str(e) or type(e).__name__) from e

    def _unwrap(self, resp: httpx.Response, field: str) -> Any:
        if resp.status_code >= 400:
            raise UpstreamError(self.service, f"HTTP {resp.status_code}")
        try:
            body = resp.json()
        except ValueError as e:
            raise UpstreamError(self.service, "invalid JSON response") from e

        if not isinstance(body, dict):
            raise UpstreamError(self.service, "malformed response")

        errors = body.get("errors")
        if errors:
            first = errors[0] if isinstance(errors, list) else errors
            message = first.get("message") if isinstance(first, dict) else None
            raise UpstreamError(self.service, message or "unknown error")

        data = body.get("data") or {}
        if not isinstance(data, dict):
            raise UpstreamError(self.service, "malformed response")
        return data.get(field)

    @contextmanager
    def parsing(self):
        """Turns a payload of the wrong shape into UpstreamError."""
        try:
            yield
        except (KeyError, TypeError, ValueError, ArithmeticError, AttributeError, ValidationError) as e:
            logger.error("[Orders] %s returned a malformed payload: %r", self.service, e)
            raise UpstreamError(self.service, "malformed response") from e

    async def execute(self, query: str, variables: dict, field: str) -> Any:
        resp = await self._post(query, variables)
        return self._unwrap(resp, field)


class ProductGateway(GraphQLGateway):
    service = "product"

    async def fetch_product(self, product_id: str) -> Product:
        data = await self.execute(GET_PRODUCT, {"id": product_id}, "getProduct")
        if not data:
            raise UpstreamError(self.service, f"product {product_id} not found")
        with self.parsing():
            return Product(
                id=product_id,
                name=data["namaProduk"],
                price=Decimal(str(data["harga"])),
                weight=int(data["berat"]),
                stock=int(data["stok"]),
            )

    async def decrease_stock(self, product_id: str, quantity: int) -> bool:
        data = await self.execute(
            DECREASE_STOCK, {"productId": product_id, "quantity": quantity}, "decreaseStock"
        )
        if data is False:
            raise UpstreamError(self.service, f"stock of product {product_id} was not decreased")
        return True


class LogisticsGateway(GraphQLGateway):
    service = "logistics"

    async def fetch_shipping_options(self, origin: str, destination: str, weight: int) -> List[ShippingOption]:
        data = await self.execute(
            GET_SHIPPING_OPTIONS,
            {"kotaAsal": origin, "kotaTujuan": destination, "berat": weight},
            "getShippingOptions",
        )
        with self.parsing():
            return [
                ShippingOption(
                    method=opt["metodePengiriman"],
                    cost=Decimal(str(opt["hargaOngkir"])),
                    eta_days=opt.get("estimasiHari"),
                )
                for opt in data or []
            ]

    async def request_shipment(self, request: ShipmentRequest) -> ShipmentReceipt:
        resp = await self._post(
            CREATE_SHIPMENT,
            {
                "orderId": str(request.order_id),
                "alamatPengiriman": request.address,
                "alamatPenjemputan": request.pickup_address,
                "berat": request.weight,
                "kotaAsal": request.origin,
                "kotaTujuan": request.destination,
                "metodePengiriman": request.method,
            },
        )
        self._raise_for_duplicate(resp)
        data = self._unwrap(resp, "createShipmentFromMarketplace")
        if not data:
            raise UpstreamError(self.service, "empty shipment response")
        with self.parsing():
            return ShipmentReceipt(receipt=data.get("nomorResi"), status=data.get("status"))

    def _raise_for_duplicate(self, resp: httpx.Response) -> None:
        if resp.status_code == 409:
            raise ShipmentAlreadyExistsError("HTTP 409")
        if resp.status_code >= 400:
            return
        try:
            body = resp.json()
        except ValueError:
            return
        errors = body.get("errors") if isinstance(body, dict) else None
        if not isinstance(errors, list):
            return
        for err in errors:
            ext = err.get("extensions") if isinstance(err, dict) else None
            if isinstance(ext, dict) and ext.get("code") in DUPLICATE_CODES:
                existing = ext.get("nomorResi")
                raise ShipmentAlreadyExistsError(
                    str(err.get("message", "shipment already exists")),
                    str(existing) if existing else None,
                )


class PaymentGateway(GraphQLGateway):
    service = "payment"

    def __init__(self, url: str, client: httpx.AsyncClient, wallet_id: str):
        super().__init__(url, client)
        self.wallet_id = wallet_id

    async def request_payment(self, amount: Decimal) -> PaymentTicket:
        data = await self.execute(
            CREATE_TRANSACTION, {"walletId": self.wallet_id, "amount": float(amount)}, "createTransaction"
        )
        with self.parsing():
            if not data or not data.get("vaNumber"):
                raise UpstreamError(self.service, "transaction created without a VA number")
            return PaymentTicket(
                payment_reference=data["vaNumber"],
                transaction_id=data.get("transactionId"),
                status=data.get("status"),
            )


class Gateways:
    """The three collaborator clients sharing one HTTP connection pool."""

    def __init__(self, product, logistics, payment, client: httpx.AsyncClient | None = None):
        self.product = product
        self.logistics = logistics
        self.payment = payment
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> "Gateways":
        client = httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS, transport=transport)
        return cls(
            product=ProductGateway(settings.PRODUCT_SERVICE_URL, client),
            logistics=LogisticsGateway(settings.LOGISTICS_SERVICE_URL, client),
            payment=PaymentGateway(settings.PAYMENT_SERVICE_URL, client, settings.PAYMENT_WALLET_ID),
            client=client,
        )

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
