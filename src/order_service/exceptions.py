class OrderServiceError(Exception):
    pass


class CheckoutError(OrderServiceError):
    """Checkout aborted; `state` is the workflow step that failed."""

    def __init__(self, message: str, state=None):
        super().__init__(message)
        self.state = state


class InsufficientStockError(CheckoutError):
    def __init__(self, available: int, requested: int, state=None):
        super().__init__(
            f"Insufficient stock. Available: {available} unit(s), requested: {requested} unit(s)",
            state,
        )
        self.available = available
        self.requested = requested


class InvalidShippingMethodError(CheckoutError):
    def __init__(self, method: str, available: list[str], state=None):
        super().__init__(f"Shipping method '{method}' is not available", state)
        self.method = method
        self.available = available


class UpstreamError(OrderServiceError):
    def __init__(self, service: str, detail: str):
        super().__init__(f"{service} service error: {detail}")
        self.service = service
        self.detail = detail


class ShipmentAlreadyExistsError(UpstreamError):
    def __init__(self, detail: str, receipt: str | None = None):
        super().__init__("logistics", detail)
        self.receipt = receipt


class PersistenceError(OrderServiceError):
    pass
